# app/celery_worker.py
from celery import Celery

from app.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND, LIFECYCLE_SWEEP_SECONDS

celery_app = Celery(
    "teamcart",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# explicit imports so the worker registers every task
celery_app.conf.imports = (
    "app.tasks.lifecycle",
    "app.tasks.provider_sync",
)

celery_app.conf.beat_schedule = {
    "reconcile-cart-lifecycle": {
        "task": "app.tasks.lifecycle.reconcile_lifecycle_task",
        "schedule": LIFECYCLE_SWEEP_SECONDS,
    },
}

celery_app.conf.timezone = "UTC"
