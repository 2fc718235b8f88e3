# app/tasks/reconcile.py
from app.celery_worker import celery_app
from app.data.database import SessionLocal
from app.services.checkout_service import CheckoutService
from app.utils.settings import RECONCILE_MAX_ATTEMPTS
from app.utils.logging import get_logger

logger = get_logger(__name__)


def reconcile_checkouts(session_factory=SessionLocal, max_attempts: int = RECONCILE_MAX_ATTEMPTS) -> int:
    db = session_factory()
    try:
        # retry_commit reuses the stored payment reference, no authorizer needed
        resolved = CheckoutService(db, authorizer=None).reconcile_open(max_attempts)
        logger.info(f"Reconciled {resolved} parked checkouts")
        return resolved
    finally:
        db.close()


@celery_app.task(name="app.tasks.reconcile.reconcile_checkouts_task")
def reconcile_checkouts_task():
    logger.info("Reconcile checkouts task started")
    return reconcile_checkouts()
