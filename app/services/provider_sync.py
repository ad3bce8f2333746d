# app/services/provider_sync.py
"""Best-effort mirror of local carts into the commerce provider's carts.

Nothing here is a precondition for a local write: every public method logs
and swallows its failures and returns ``None``/``False``. A mirror that
falls behind (for instance a line removed remotely whose re-add failed) is
caught up by ``reconcile_remote_cart``, never retried inside the same call.
"""
import functools

from app.domain.errors import RemoteSyncError
from app.repos.cart_repo import CartRepo
from app.services.pricing import to_cents
from app.services.provider_client import ProviderClient
from app.utils.settings import MIRRORED_PROVIDERS, PROVIDER_SYNC_MODE
from app.utils.logging import get_logger

logger = get_logger(__name__)


def best_effort(default=None):
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except RemoteSyncError as e:
                logger.warning(f"Provider mirror {fn.__name__} failed (code={e.code}): {e}")
            except Exception:
                logger.exception(f"Provider mirror {fn.__name__} failed unexpectedly")
            return default

        return wrapper

    return decorator


def _extract_id(response, keys) -> str | None:
    if not isinstance(response, dict):
        return None
    for key in keys:
        if response.get(key):
            return str(response[key])
    for nested in ("cart", "line_item", "item"):
        if isinstance(response.get(nested), dict):
            found = _extract_id(response[nested], keys)
            if found:
                return found
    return None


def item_snapshot(item) -> dict:
    return {
        "id": item.id,
        "cart_id": item.cart_id,
        "remote_line_item_id": item.remote_line_item_id,
    }


class ProviderSyncAdapter:
    def __init__(self, repo: CartRepo, client: ProviderClient | None = None, mirrored_providers=None):
        self.repo = repo
        self.client = client or ProviderClient()
        self.mirrored_providers = frozenset(mirrored_providers if mirrored_providers is not None else MIRRORED_PROVIDERS)

    def requires_mirror(self, cart) -> bool:
        return (cart.provider_type or "none").lower() in self.mirrored_providers and bool(cart.provider_restaurant_id)

    def _create_remote_cart(self, cart) -> str:
        scheduled_at = None
        if cart.scheduled_date:
            scheduled_at = cart.scheduled_date.isoformat()
            if cart.scheduled_time:
                scheduled_at = f"{scheduled_at}T{cart.scheduled_time.isoformat()}"
        coordinates = None
        if cart.fulfillment_latitude is not None and cart.fulfillment_longitude is not None:
            coordinates = {"latitude": cart.fulfillment_latitude, "longitude": cart.fulfillment_longitude}

        payload = {
            "provider_restaurant_id": cart.provider_restaurant_id,
            "team": {"id": cart.team_id},
            "service_type": cart.fulfillment_service or "delivery",
            "scheduled_at": scheduled_at,
            "address": cart.fulfillment_address,
            "coordinates": coordinates,
            "cart_name": cart.title,
        }
        response = self.client.create_cart({k: v for k, v in payload.items() if v is not None})
        remote_id = _extract_id(response, ("cart_id", "id", "cartId"))
        if not remote_id:
            raise RemoteSyncError("Provider create cart returned no cart id", code="bad_response", details=response)

        self.repo.update_cart(cart.id, {"provider_cart_id": remote_id, "provider_cart_raw": response})
        self.repo.commit()
        logger.info(f"Remote cart {remote_id} opened for cart {cart.id}")
        return remote_id

    def _add_line(self, cart, remote_cart_id: str, item) -> str:
        line_item = {
            "provider_item_id": item.provider_item_id or item.menu_item_id,
            "name": item.item_name,
            "quantity": item.quantity,
            "price_cents": to_cents(item.unit_price),
        }
        if item.special_instructions:
            line_item["special_instructions"] = item.special_instructions
        if item.selected_options:
            line_item["selected_options"] = item.selected_options

        response = self.client.add_line_item(
            remote_cart_id,
            {"provider_restaurant_id": cart.provider_restaurant_id, "line_item": line_item},
        )
        remote_line_id = _extract_id(response, ("line_item_id", "item_id", "id"))
        if not remote_line_id:
            raise RemoteSyncError("Provider add line item returned no line id", code="bad_response", details=response)
        self.repo.set_remote_line_item_id(item.id, remote_line_id)
        return remote_line_id

    def _remove_line(self, cart, remote_line_item_id: str) -> None:
        self.client.remove_line_item(
            cart.provider_cart_id,
            {"provider_restaurant_id": cart.provider_restaurant_id, "line_item_id": remote_line_item_id},
        )

    @best_effort()
    def ensure_remote_cart(self, cart) -> str | None:
        if cart.provider_cart_id:
            return cart.provider_cart_id
        if not self.requires_mirror(cart):
            return None
        return self._create_remote_cart(cart)

    @best_effort()
    def mirror_add_item(self, cart, item) -> str | None:
        remote_cart_id = cart.provider_cart_id or self.ensure_remote_cart(cart)
        if not remote_cart_id:
            return None
        return self._add_line(cart, remote_cart_id, item)

    @best_effort(default=False)
    def mirror_remove_item(self, cart, snapshot: dict) -> bool:
        remote_line_item_id = (snapshot or {}).get("remote_line_item_id")
        if not cart.provider_cart_id or not remote_line_item_id:
            return False
        self._remove_line(cart, remote_line_item_id)
        return True

    @best_effort()
    def mirror_update_item(self, cart, item_id: str) -> str | None:
        """Remote lines cannot be edited in place: remove, then add again."""
        item = self.repo.get_cart_item(cart.id, item_id)
        if item is None or not item.remote_line_item_id or not cart.provider_cart_id:
            return None
        self._remove_line(cart, item.remote_line_item_id)
        # removed remotely; a failed re-add leaves it for reconcile_remote_cart
        self.repo.set_remote_line_item_id(item.id, None)
        return self._add_line(cart, cart.provider_cart_id, item)

    @best_effort(default=0)
    def reconcile_remote_cart(self, cart) -> int:
        """Open the remote cart if needed and add every line it is missing."""
        remote_cart_id = self.ensure_remote_cart(cart)
        if not remote_cart_id:
            return 0
        mirrored = 0
        for item in self.repo.get_cart_items(cart.id):
            if item.remote_line_item_id:
                continue
            if self.mirror_add_item(cart, item):
                mirrored += 1
        logger.info(f"Reconciled cart {cart.id}: {mirrored} line(s) mirrored")
        return mirrored


class MirrorDispatcher:
    """Runs provider mirroring inline, hands it to Celery, or skips it."""

    def __init__(self, adapter: ProviderSyncAdapter | None, mode: str | None = None):
        self.adapter = adapter
        self.mode = (mode or PROVIDER_SYNC_MODE).lower()

    @property
    def enabled(self) -> bool:
        if self.mode == "off":
            return False
        return self.mode == "celery" or self.adapter is not None

    def _enqueue(self, task_name: str, *args):
        from app.tasks import provider_sync as tasks

        try:
            getattr(tasks, task_name).delay(*args)
        except Exception:
            logger.exception(f"Could not enqueue {task_name}{args}")

    def ensure_remote_cart(self, cart):
        if not self.enabled:
            return None
        if self.mode == "celery":
            return self._enqueue("ensure_remote_cart_task", cart.id)
        return self.adapter.ensure_remote_cart(cart)

    def item_added(self, cart, item):
        if not self.enabled:
            return None
        if self.mode == "celery":
            return self._enqueue("mirror_add_item_task", cart.id, item.id)
        return self.adapter.mirror_add_item(cart, item)

    def item_updated(self, cart, item_id: str):
        if not self.enabled:
            return None
        if self.mode == "celery":
            return self._enqueue("mirror_update_item_task", cart.id, item_id)
        return self.adapter.mirror_update_item(cart, item_id)

    def item_removed(self, cart, snapshot: dict):
        if not self.enabled:
            return None
        if self.mode == "celery":
            return self._enqueue("mirror_remove_item_task", cart.id, snapshot)
        return self.adapter.mirror_remove_item(cart, snapshot)

    def reconcile(self, cart):
        if not self.enabled:
            return None
        if self.mode == "celery":
            return self._enqueue("reconcile_remote_cart_task", cart.id)
        return self.adapter.reconcile_remote_cart(cart)
