# app/services/events.py
"""Typed cart events and the in-process bus that carries them.

``CartChanged`` and ``CartBadgeUpdated`` go out to whoever listens;
``FulfillmentChangedExternally``, ``ItemRemoveRequested`` and
``CartViewToggled`` come in from collaborators. Delivery is at least once per
committed mutation with no ordering between events: listeners re-read the
snapshot instead of trusting the payload as a delta.
"""
import json
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any, Callable

import redis
from redis.exceptions import RedisError

from app.utils.retry import redis_retry
from app.utils.settings import EVENT_RELAY_ENABLED, REDIS_URL
from app.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CartChanged:
    cart_id: str
    kind: str
    item_id: str | None = None


@dataclass(frozen=True)
class CartBadgeUpdated:
    cart_id: str
    count: int
    subtotal: Any
    name: str
    restaurant: dict | None = None
    items: list = field(default_factory=list)
    fulfillment: dict | None = None


@dataclass(frozen=True)
class FulfillmentChangedExternally:
    cart_id: str
    fulfillment: dict
    meta: dict | None = None


@dataclass(frozen=True)
class ItemRemoveRequested:
    cart_id: str
    item_id: str


@dataclass(frozen=True)
class CartViewToggled:
    cart_id: str
    open: bool = True


OUTBOUND_EVENTS = (CartChanged, CartBadgeUpdated)


class RedisEventRelay:
    """Forwards outbound events to ``cart:{cart_id}:events`` pub/sub channels."""

    def __init__(self, url: str | None = None, client=None):
        self.redis = client or redis.Redis.from_url(url or REDIS_URL, decode_responses=True)

    @staticmethod
    def channel(cart_id: str) -> str:
        return f"cart:{cart_id}:events"

    @redis_retry()
    def _publish(self, channel: str, message: str) -> int:
        return self.redis.publish(channel, message)

    def forward(self, event) -> bool:
        message = json.dumps({"type": type(event).__name__, **asdict(event)}, default=str)
        try:
            self._publish(self.channel(event.cart_id), message)
        except RedisError as e:
            logger.warning(f"Event relay failed for cart {event.cart_id}: {e}")
            return False
        return True


class EventBus:
    def __init__(self, relay: RedisEventRelay | None = None):
        self.relay = relay
        self._handlers: dict[type, list[tuple[str | None, Callable]]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Callable, cart_id: str | None = None) -> Callable[[], None]:
        """Register ``handler`` for ``event_type`` (optionally one cart only); returns the unsubscribe."""
        entry = (cart_id, handler)
        self._handlers[event_type].append(entry)

        def unsubscribe():
            if entry in self._handlers[event_type]:
                self._handlers[event_type].remove(entry)

        return unsubscribe

    def publish(self, event) -> int:
        delivered = 0
        for cart_id, handler in list(self._handlers.get(type(event), ())):
            if cart_id is not None and cart_id != event.cart_id:
                continue
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.exception(f"Handler {handler!r} failed on {type(event).__name__} for cart {event.cart_id}")

        if self.relay is not None and isinstance(event, OUTBOUND_EVENTS):
            self.relay.forward(event)
        return delivered


def build_event_bus() -> EventBus:
    return EventBus(relay=RedisEventRelay() if EVENT_RELAY_ENABLED else None)
