# app/tasks/expire.py
from app.celery_worker import celery_app
from app.data.database import SessionLocal
from app.services.inventory_service import InventoryService
from app.utils.logging import get_logger

logger = get_logger(__name__)


def expire_reservations(session_factory=SessionLocal) -> int:
    db = session_factory()
    try:
        released = InventoryService(db).release_expired()
        logger.info(f"Released {released} expired reservations")
        return released
    finally:
        db.close()


@celery_app.task(name="app.tasks.expire.expire_reservations_task")
def expire_reservations_task():
    logger.info("Expire reservations task started")
    return expire_reservations()
