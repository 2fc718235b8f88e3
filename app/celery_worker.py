# app/celery_worker.py
from celery import Celery

from app.utils.settings import (
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    RECONCILE_SWEEP_SECONDS,
    RESERVATION_SWEEP_SECONDS,
)

celery_app = Celery(
    "checkout",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# explicit imports so the worker registers the tasks
celery_app.conf.imports = (
    "app.tasks.expire",
    "app.tasks.reconcile",
)

celery_app.conf.beat_schedule = {
    "expire-reservations": {
        "task": "app.tasks.expire.expire_reservations_task",
        "schedule": RESERVATION_SWEEP_SECONDS,
    },
    "reconcile-checkouts": {
        "task": "app.tasks.reconcile.reconcile_checkouts_task",
        "schedule": RECONCILE_SWEEP_SECONDS,
    },
}

celery_app.conf.timezone = "UTC"
