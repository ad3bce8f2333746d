# app/tasks/provider_sync.py
"""Celery side of the provider mirror (``PROVIDER_SYNC_MODE=celery``).

Tasks re-read the cart and item by id in their own session; anything that
vanished in the meantime is skipped. The adapter already swallows remote
failures, so these tasks never retry.
"""
from app.celery_worker import celery_app
from app.data.database import SessionLocal
from app.repos.cart_repo import CartRepo
from app.services.provider_sync import ProviderSyncAdapter
from app.utils.logging import get_logger

logger = get_logger(__name__)


def _run(cart_id: str, action):
    db = SessionLocal()
    try:
        adapter = ProviderSyncAdapter(CartRepo(db))
        cart = adapter.repo.get_cart(cart_id)
        if cart is None:
            logger.info(f"Cart {cart_id} is gone, skipping provider mirror")
            return None
        return action(adapter, cart)
    finally:
        db.close()


@celery_app.task(name="app.tasks.provider_sync.ensure_remote_cart_task")
def ensure_remote_cart_task(cart_id: str):
    return _run(cart_id, lambda adapter, cart: adapter.ensure_remote_cart(cart))


@celery_app.task(name="app.tasks.provider_sync.mirror_add_item_task")
def mirror_add_item_task(cart_id: str, item_id: str):
    def action(adapter, cart):
        item = adapter.repo.get_cart_item(cart_id, item_id)
        if item is None:
            return None
        return adapter.mirror_add_item(cart, item)

    return _run(cart_id, action)


@celery_app.task(name="app.tasks.provider_sync.mirror_update_item_task")
def mirror_update_item_task(cart_id: str, item_id: str):
    return _run(cart_id, lambda adapter, cart: adapter.mirror_update_item(cart, item_id))


@celery_app.task(name="app.tasks.provider_sync.mirror_remove_item_task")
def mirror_remove_item_task(cart_id: str, snapshot: dict):
    return _run(cart_id, lambda adapter, cart: adapter.mirror_remove_item(cart, snapshot))


@celery_app.task(name="app.tasks.provider_sync.reconcile_remote_cart_task")
def reconcile_remote_cart_task(cart_id: str):
    return _run(cart_id, lambda adapter, cart: adapter.reconcile_remote_cart(cart))
