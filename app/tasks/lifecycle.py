# app/tasks/lifecycle.py
from datetime import datetime

from sqlalchemy.orm import Session

from app.celery_worker import celery_app
from app.data.database import SessionLocal
from app.domain.lifecycle import CartStatus, effective_status, local_now
from app.repos.cart_repo import CartRepo
from app.utils.logging import get_logger

logger = get_logger(__name__)


def sweep_abandoned_carts(db: Session, now: datetime | None = None) -> list[str]:
    """Flip every draft cart whose scheduled moment has passed to ``abandoned``."""
    now = now or local_now()
    repo = CartRepo(db)

    candidates = repo.list_draft_carts_scheduled_before(now.date())
    lapsed = [
        cart.id
        for cart in candidates
        if effective_status(cart.status, cart.scheduled_date, cart.scheduled_time, now) == CartStatus.ABANDONED
    ]
    logger.info(f"Found {len(lapsed)} of {len(candidates)} scheduled drafts to abandon")

    repo.mark_abandoned(lapsed)
    return lapsed


@celery_app.task(name="app.tasks.lifecycle.reconcile_lifecycle_task")
def reconcile_lifecycle_task():
    logger.info("Lifecycle sweep started")

    db = SessionLocal()
    try:
        lapsed = sweep_abandoned_carts(db)
        return {"abandoned": len(lapsed)}
    finally:
        db.close()
