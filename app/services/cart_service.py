# app/services/cart_service.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List

from pydantic import ValidationError as PayloadError
from sqlalchemy.orm import Session

from app.data.models.cart import CartModel
from app.data.models.cart_item import CartItemModel
from app.domain.assignment import clamp_quantity, resolve_assignment, split_assignment
from app.domain.errors import CartError, ConcurrencyConflict, NotFoundOrForbidden, ValidationError
from app.domain.lifecycle import CartStatus, effective_status, local_now, scheduled_at
from app.domain.options import normalize_selected_options
from app.domain.progress import Progress, RosterMember, compute_progress, progress_items
from app.domain.schemas import Fulfillment, FulfillmentMeta, ItemPatch, NewItem
from app.repos.cart_repo import CartRepo
from app.repos.member_repo import MemberRepo
from app.services.events import (
    CartBadgeUpdated,
    CartChanged,
    CartViewToggled,
    EventBus,
    FulfillmentChangedExternally,
    ItemRemoveRequested,
)
from app.services.pricing import pick_default_provider, unit_price_for
from app.services.provider_sync import MirrorDispatcher, ProviderSyncAdapter, item_snapshot
from app.utils.settings import PERSIST_DERIVED_STATUS, PROVIDER_SYNC_MODE
from app.utils.logging import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(value: datetime | None) -> float:
    if value is None:
        return 0.0
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def _parse(model, payload):
    try:
        return model.model_validate(payload)
    except PayloadError as exc:
        raise ValidationError(f"invalid {model.__name__}: {exc.error_count()} error(s)") from exc


def _as_fulfillment(value) -> Fulfillment | None:
    if value is None or isinstance(value, Fulfillment):
        return value
    return _parse(Fulfillment, value)


def fulfillment_values(fulfillment: Fulfillment) -> dict:
    """Cart columns for the fulfillment fields that were actually sent."""
    sent = fulfillment.model_fields_set
    values = {}
    if "service" in sent:
        values["fulfillment_service"] = fulfillment.service
    if "address" in sent:
        values["fulfillment_address"] = fulfillment.address
    if "coordinates" in sent:
        coords = fulfillment.coordinates
        values["fulfillment_latitude"] = coords.latitude if coords else None
        values["fulfillment_longitude"] = coords.longitude if coords else None
    if "date" in sent:
        values["scheduled_date"] = fulfillment.date
    if "time" in sent:
        values["scheduled_time"] = fulfillment.time
    return values


def display_name(member) -> str | None:
    if member is None:
        return None
    return member.full_name or member.email


class CartService:
    """
    Shared team carts: one cart per team, restaurant and fulfillment slot,
    rows owned by one member, the extras bucket, or nobody yet.

    Local writes are the source of truth. Provider mirroring runs after the
    local commit through the ``MirrorDispatcher`` and never fails a call.
    """

    def __init__(
        self,
        db: Session,
        provider_client=None,
        events: EventBus | None = None,
        sync_mode: str | None = None,
        clock: Callable[[], datetime] | None = None,
        persist_derived_status: bool | None = None,
    ):
        self.repo = CartRepo(db)
        self.members = MemberRepo(db)
        self.events = events or EventBus()
        mode = (sync_mode or PROVIDER_SYNC_MODE).lower()
        adapter = None if mode == "off" else ProviderSyncAdapter(self.repo, provider_client)
        self.sync = MirrorDispatcher(adapter, mode)
        self.clock = clock or local_now
        self.persist_derived_status = (
            PERSIST_DERIVED_STATUS if persist_derived_status is None else persist_derived_status
        )

    # helpers
    def _require_cart(self, cart_id: str) -> CartModel:
        cart = self.repo.get_cart(cart_id)
        if cart is None:
            raise NotFoundOrForbidden(f"Cart {cart_id} not found")
        return cart

    def _ensure_editable(self, cart: CartModel):
        if cart.status == CartStatus.SUBMITTED.value:
            raise ValidationError(f"Cart {cart.id} is submitted and can no longer be changed")

    def _status_for(self, cart: CartModel, now: datetime | None = None) -> CartStatus:
        return effective_status(cart.status, cart.scheduled_date, cart.scheduled_time, now or self.clock())

    def _persist_abandoned(self, cart_ids: List[str]):
        """Write derived ``abandoned`` statuses back; a failure only costs a re-derive later."""
        if not cart_ids or not self.persist_derived_status:
            return
        try:
            count = self.repo.mark_abandoned(cart_ids)
            logger.info(f"Marked {count} cart(s) abandoned")
        except CartError as e:
            self.repo.rollback()
            logger.warning(f"Could not persist abandoned status for {cart_ids}: {e}")

    def _join(self, cart_id: str, member_id: str | None, joined_via: str = "roster"):
        if not member_id:
            return
        try:
            if self.repo.add_cart_member(cart_id, member_id, joined_via):
                logger.info(f"Member {member_id} joined cart {cart_id} via {joined_via}")
        except CartError as e:
            # roster membership is advisory; the item write already happened
            self.repo.rollback()
            logger.warning(f"Could not register member {member_id} on cart {cart_id}: {e}")

    def _changed(self, cart_id: str, kind: str, item_id: str | None = None):
        self.events.publish(CartChanged(cart_id=cart_id, kind=kind, item_id=item_id))

    def _touch(self, cart_id: str):
        self.repo.touch_cart(cart_id)
        self.repo.commit()

    @staticmethod
    def fulfillment_dict(cart: CartModel) -> Dict[str, Any]:
        coordinates = None
        if cart.fulfillment_latitude is not None and cart.fulfillment_longitude is not None:
            coordinates = {"latitude": cart.fulfillment_latitude, "longitude": cart.fulfillment_longitude}
        return {
            "service": cart.fulfillment_service,
            "address": cart.fulfillment_address,
            "coordinates": coordinates,
            "date": cart.scheduled_date,
            "time": cart.scheduled_time,
        }

    def cart_dict(self, cart: CartModel, status: CartStatus | None = None) -> Dict[str, Any]:
        return {
            "id": cart.id,
            "team_id": cart.team_id,
            "restaurant_id": cart.restaurant_id,
            "title": cart.title,
            "status": (status or self._status_for(cart)).value,
            "meal_type": cart.meal_type,
            "provider_type": cart.provider_type,
            "provider_restaurant_id": cart.provider_restaurant_id,
            "provider_cart_id": cart.provider_cart_id,
            "created_by_member_id": cart.created_by_member_id,
            "fulfillment": self.fulfillment_dict(cart),
            "created_at": cart.created_at,
            "updated_at": cart.updated_at,
            "submitted_at": cart.submitted_at,
        }

    @staticmethod
    def item_dict(item: CartItemModel, member_name: str | None = None) -> Dict[str, Any]:
        return {
            "id": item.id,
            "cart_id": item.cart_id,
            "menu_item_id": item.menu_item_id,
            "name": item.item_name,
            "image": item.image_url,
            "quantity": item.quantity,
            "unit_price": Decimal(str(item.unit_price or 0)).quantize(CENT),
            "special_instructions": item.special_instructions or "",
            "selected_options": item.selected_options or {},
            "member_id": item.member_id,
            "member_name": member_name,
            "is_extra": bool(item.is_extra),
            "added_by_member_id": item.added_by_member_id,
            "remote_line_item_id": item.remote_line_item_id,
            "version": item.version,
        }

    # queries
    def find_active_cart(
        self,
        team_id: str,
        restaurant_id: str,
        provider_type: str | None = None,
        fulfillment=None,
        meal_type: str | None = None,
    ) -> str | None:
        provider_type = provider_type.strip().lower() if provider_type else None
        fulfillment = _as_fulfillment(fulfillment)
        now = self.clock()
        candidates = [
            c
            for c in self.repo.find_carts(team_id, restaurant_id, provider_type, meal_type)
            if self._status_for(c, now) == CartStatus.DRAFT
        ]
        if not candidates:
            return None

        # candidates come most recently updated first
        if fulfillment is not None and fulfillment.date is not None:
            for cart in candidates:
                if cart.scheduled_date != fulfillment.date:
                    continue
                if fulfillment.time is not None and cart.scheduled_time != fulfillment.time:
                    continue
                return cart.id
            return None

        undated = [c for c in candidates if c.scheduled_date is None]
        return (undated or candidates)[0].id

    def list_open_carts(self, team_id: str) -> List[Dict[str, Any]]:
        carts = self.repo.list_open_carts(team_id)
        now = self.clock()
        totals = self.repo.cart_totals([c.id for c in carts])

        lapsed = []
        entries = []
        for cart in carts:
            status = self._status_for(cart, now)
            if status == CartStatus.ABANDONED and cart.status == CartStatus.DRAFT.value:
                lapsed.append(cart.id)
            count, subtotal = totals.get(cart.id, (0, Decimal("0.00")))
            entry = self.cart_dict(cart, status)
            entry["item_count"] = count
            entry["subtotal"] = subtotal
            entries.append((self._open_sort_key(cart, now), entry))

        self._persist_abandoned(lapsed)
        entries.sort(key=lambda pair: pair[0])
        return [entry for _, entry in entries]

    @staticmethod
    def _open_sort_key(cart: CartModel, now: datetime) -> tuple:
        """Upcoming soonest first, then lapsed most recent first, then unscheduled by last update."""
        when = scheduled_at(cart.scheduled_date, cart.scheduled_time, tzinfo=now.tzinfo)
        if when is None:
            return (2, -_timestamp(cart.updated_at))
        if when >= now:
            return (0, when.timestamp())
        return (1, -when.timestamp())

    def get_snapshot(self, cart_id: str) -> Dict[str, Any]:
        cart = self._require_cart(cart_id)
        status = self._status_for(cart)
        if status == CartStatus.ABANDONED and cart.status == CartStatus.DRAFT.value:
            self._persist_abandoned([cart.id])

        restaurant = self.repo.get_restaurant(cart.restaurant_id)
        items = self.repo.get_cart_items(cart_id)
        team = self.members.get_members(
            list({i.member_id for i in items if i.member_id} | {cart.created_by_member_id} - {None})
        )

        assignment_member_ids = []
        for item in items:
            if item.member_id and item.member_id not in assignment_member_ids:
                assignment_member_ids.append(item.member_id)

        cart_block = self.cart_dict(cart, status)
        cart_block["created_by_member_name"] = display_name(team.get(cart.created_by_member_id))
        return {
            "cart": cart_block,
            "restaurant": (
                {"id": restaurant.id, "name": restaurant.name, "image": restaurant.image_url}
                if restaurant
                else None
            ),
            "items": [self.item_dict(i, display_name(team.get(i.member_id))) for i in items],
            "assignment_member_ids": assignment_member_ids,
        }

    def get_progress(self, cart_id: str) -> Progress:
        snapshot = self.get_snapshot(cart_id)
        roster_ids = [m.member_id for m in self.repo.get_cart_members(cart_id)]
        team = self.members.get_members(roster_ids)
        roster = [
            RosterMember(id=member_id, display_name=display_name(team.get(member_id)) or "Team member")
            for member_id in roster_ids
        ]
        return compute_progress(
            roster,
            progress_items(snapshot["items"]),
            snapshot["cart"]["created_by_member_id"],
        )

    def get_badge(self, cart_id: str) -> Dict[str, Any]:
        snapshot = self.get_snapshot(cart_id)
        cart, restaurant, items = snapshot["cart"], snapshot["restaurant"], snapshot["items"]

        title = (cart["title"] or "").strip()
        if title:
            name = f"{title} • Cart"
        elif restaurant and restaurant["name"]:
            name = f"{restaurant['name']} • Cart"
        else:
            name = "Cart"

        badge = {
            "cart_id": cart["id"],
            "count": sum(i["quantity"] for i in items),
            "subtotal": sum((i["unit_price"] * i["quantity"] for i in items), Decimal("0.00")).quantize(CENT),
            "name": name,
            "restaurant": restaurant,
            "items": items,
            "fulfillment": cart["fulfillment"],
        }
        self.events.publish(CartBadgeUpdated(**badge))
        return badge

    # commands
    def ensure_cart(
        self,
        team_id: str,
        restaurant_id: str,
        *,
        title: str | None = None,
        provider_type: str | None = None,
        provider_restaurant_id: str | None = None,
        fulfillment=None,
        meal_type: str | None = None,
        created_by_member_id: str | None = None,
    ) -> str:
        if not team_id or not restaurant_id:
            raise ValidationError("team_id and restaurant_id are required")
        fulfillment = _as_fulfillment(fulfillment)

        existing = self.find_active_cart(team_id, restaurant_id, provider_type, fulfillment, meal_type)
        if existing:
            logger.info(f"Team {team_id} already has cart {existing} for restaurant {restaurant_id}")
            return existing

        restaurant = self.repo.get_restaurant(restaurant_id)
        if not provider_type and restaurant is not None and restaurant.supported_providers:
            provider_type = pick_default_provider(restaurant.supported_providers)
        provider_type = (provider_type or "none").strip().lower()
        if provider_restaurant_id is None and provider_type != "none" and restaurant is not None:
            provider_restaurant_id = (restaurant.provider_restaurant_ids or {}).get(provider_type)

        cart = CartModel(
            team_id=team_id,
            restaurant_id=restaurant_id,
            title=(title or "").strip() or None,
            provider_type=provider_type,
            provider_restaurant_id=provider_restaurant_id,
            meal_type=meal_type,
            status=CartStatus.DRAFT.value,
            created_by_member_id=created_by_member_id,
            **(fulfillment_values(fulfillment) if fulfillment else {}),
        )
        created = self.repo.create_cart(cart)
        logger.info(f"Created cart {created.id} for team {team_id} at restaurant {restaurant_id}")

        self._join(created.id, created_by_member_id)
        self.sync.ensure_remote_cart(created)
        self._changed(created.id, "cart_created")
        return created.id

    def _insert_row(self, cart: CartModel, item: NewItem, resolved) -> CartItemModel:
        menu_item = item.menu_item
        options = normalize_selected_options(item.selected_options or {}, item.option_catalog)

        if item.unit_price is not None:
            unit_price = Decimal(str(item.unit_price)).quantize(CENT)
        elif menu_item.base_price is not None:
            unit_price = unit_price_for(menu_item.base_price, cart.provider_type, options)
        else:
            unit_price = Decimal("0.00")

        row = CartItemModel(
            cart_id=cart.id,
            menu_item_id=menu_item.id,
            provider_item_id=menu_item.provider_item_id,
            item_name=menu_item.name or "Item",
            image_url=menu_item.image,
            quantity=resolved.quantity,
            unit_price=unit_price,
            special_instructions=item.special_instructions or "",
            selected_options=options,
            member_id=resolved.member_id,
            is_extra=resolved.is_extra,
            added_by_member_id=item.added_by_member_id,
            position=self.repo.next_position(cart.id),
        )
        created = self.repo.add_cart_item(row)
        self._touch(cart.id)
        logger.info(
            f"Added item {created.id} x{created.quantity} to cart {cart.id} "
            f"(member={created.member_id}, extra={created.is_extra})"
        )

        self._join(cart.id, item.added_by_member_id)
        self.sync.item_added(cart, created)
        self._changed(cart.id, "item_added", created.id)
        return created

    @staticmethod
    def _validated_item(new_item) -> NewItem:
        item = new_item if isinstance(new_item, NewItem) else _parse(NewItem, new_item)
        if item.menu_item is None or not (item.menu_item.id or item.menu_item.name):
            raise ValidationError("menu item is required")
        return item

    def add_item(self, cart_id: str, new_item) -> str:
        item = self._validated_item(new_item)
        cart = self._require_cart(cart_id)
        self._ensure_editable(cart)

        resolved = resolve_assignment(item.quantity, item.assignment)
        return self._insert_row(cart, item, resolved).id

    def add_split_item(self, cart_id: str, new_item, assignees: list, replace_item_id: str | None = None) -> List[str]:
        """Add one logical item shared by several people as one row per owner kind."""
        item = self._validated_item(new_item)
        cart = self._require_cart(cart_id)
        self._ensure_editable(cart)

        item_ids = []
        for quantity, assignment in split_assignment(item.quantity, assignees):
            resolved = resolve_assignment(quantity, assignment)
            item_ids.append(self._insert_row(cart, item, resolved).id)

        if replace_item_id:
            self.remove_item(cart_id, replace_item_id)
        return item_ids

    def update_item(self, cart_id: str, item_id: str, patch) -> str:
        patch = patch if isinstance(patch, ItemPatch) else _parse(ItemPatch, patch)
        cart = self._require_cart(cart_id)
        self._ensure_editable(cart)
        current = self.repo.get_cart_item(cart_id, item_id)
        if current is None:
            raise NotFoundOrForbidden(f"Item {item_id} not found in cart {cart_id}")

        sent = patch.model_fields_set
        values: Dict[str, Any] = {}
        if patch.quantity is not None:
            values["quantity"] = clamp_quantity(patch.quantity)
        if patch.unit_price is not None:
            values["unit_price"] = Decimal(str(patch.unit_price)).quantize(CENT)
        if "special_instructions" in sent:
            values["special_instructions"] = patch.special_instructions or ""
        if "selected_options" in sent:
            values["selected_options"] = normalize_selected_options(patch.selected_options or {}, patch.option_catalog)
        if "assignment" in sent:
            resolved = resolve_assignment(values.get("quantity", current.quantity), patch.assignment)
            values.update(quantity=resolved.quantity, member_id=resolved.member_id, is_extra=resolved.is_extra)
        values["updated_at"] = _utcnow()

        rows = self.repo.update_cart_item(cart_id, item_id, values, expected_version=patch.expected_version)
        if rows == 0:
            self.repo.rollback()
            if patch.expected_version is not None and self.repo.get_cart_item(cart_id, item_id) is not None:
                raise ConcurrencyConflict(
                    f"Item {item_id} changed since version {patch.expected_version}; reload and retry"
                )
            raise NotFoundOrForbidden(f"Item {item_id} not found in cart {cart_id}")
        self._touch(cart_id)
        logger.info(f"Updated item {item_id} in cart {cart_id}: {sorted(values)}")

        self.sync.item_updated(cart, item_id)
        self._changed(cart_id, "item_updated", item_id)
        return item_id

    def remove_item(self, cart_id: str, item_id: str):
        cart = self._require_cart(cart_id)
        self._ensure_editable(cart)
        item = self.repo.get_cart_item(cart_id, item_id)
        if item is None:
            raise NotFoundOrForbidden(f"Item {item_id} not found in cart {cart_id}")

        # the remote line id is gone once the row is
        snapshot = item_snapshot(item)
        self.sync.item_removed(cart, snapshot)

        rows = self.repo.delete_cart_item(cart_id, item_id)
        if rows == 0:
            self.repo.rollback()
            raise NotFoundOrForbidden(f"Item {item_id} not found in cart {cart_id}")
        self._touch(cart_id)
        logger.info(f"Removed item {item_id} from cart {cart_id}")
        self._changed(cart_id, "item_removed", item_id)

    def upsert_fulfillment(self, cart_id: str, fulfillment, meta=None) -> Dict[str, Any]:
        fulfillment = _as_fulfillment(fulfillment) or Fulfillment()
        if meta is not None and not isinstance(meta, FulfillmentMeta):
            meta = _parse(FulfillmentMeta, meta)
        cart = self._require_cart(cart_id)
        self._ensure_editable(cart)

        values = fulfillment_values(fulfillment)
        if meta is not None:
            if meta.provider_type:
                values["provider_type"] = meta.provider_type.lower()
            if meta.provider_restaurant_id:
                values["provider_restaurant_id"] = meta.provider_restaurant_id

        # status follows the new schedule, not the stored one
        status = effective_status(
            cart.status,
            values.get("scheduled_date", cart.scheduled_date),
            values.get("scheduled_time", cart.scheduled_time),
            self.clock(),
        )
        values["status"] = status.value
        values["updated_at"] = _utcnow()

        if self.repo.update_cart(cart_id, values) == 0:
            self.repo.rollback()
            raise NotFoundOrForbidden(f"Cart {cart_id} not found")
        self.repo.commit()
        logger.info(f"Fulfillment for cart {cart_id} set ({status.value}): {sorted(values)}")

        cart = self._require_cart(cart_id)
        if not cart.provider_cart_id:
            self.sync.ensure_remote_cart(cart)
        self._changed(cart_id, "fulfillment_updated")
        return self.cart_dict(cart, status)

    def update_cart_title(self, cart_id: str, title: str) -> Dict[str, Any]:
        title = (title or "").strip()
        if not title:
            raise ValidationError("title must not be empty")
        cart = self._require_cart(cart_id)
        self._ensure_editable(cart)

        if self.repo.update_cart(cart_id, {"title": title, "updated_at": _utcnow()}) == 0:
            self.repo.rollback()
            raise NotFoundOrForbidden(f"Cart {cart_id} not found")
        self.repo.commit()
        self._changed(cart_id, "title_updated")
        return self.cart_dict(self._require_cart(cart_id))

    def submit_cart(self, cart_id: str) -> Dict[str, Any]:
        cart = self._require_cart(cart_id)
        status = self._status_for(cart)
        if status != CartStatus.DRAFT:
            raise ValidationError(f"Cart {cart_id} is {status.value} and cannot be submitted")
        if not self.repo.get_cart_items(cart_id):
            raise ValidationError(f"Cart {cart_id} is empty")

        now = _utcnow()
        rows = self.repo.update_cart(
            cart_id, {"status": CartStatus.SUBMITTED.value, "submitted_at": now, "updated_at": now}
        )
        if rows == 0:
            self.repo.rollback()
            raise NotFoundOrForbidden(f"Cart {cart_id} not found")
        self.repo.commit()
        logger.info(f"Cart {cart_id} submitted")
        self._changed(cart_id, "cart_submitted")
        return self.cart_dict(self._require_cart(cart_id), CartStatus.SUBMITTED)

    def delete_cart(self, cart_id: str):
        rows = self.repo.delete_cart(cart_id)
        if rows == 0:
            self.repo.rollback()
            raise NotFoundOrForbidden(f"Cart {cart_id} not found")
        self.repo.commit()
        logger.info(f"Cart {cart_id} deleted")
        self._changed(cart_id, "cart_deleted")

    def reconcile_lifecycle(self, cart_id: str) -> str:
        """Persist a lapsed draft as ``abandoned``; returns the effective status."""
        cart = self._require_cart(cart_id)
        status = self._status_for(cart)
        if status == CartStatus.ABANDONED and cart.status == CartStatus.DRAFT.value:
            self.repo.mark_abandoned([cart_id])
            logger.info(f"Cart {cart_id} reconciled to abandoned")
            self._changed(cart_id, "status_changed")
        return status.value

    def reconcile_remote_cart(self, cart_id: str):
        cart = self._require_cart(cart_id)
        return self.sync.reconcile(cart)

    # realtime
    def subscribe(self, cart_id: str, on_change: Callable) -> Callable[[], None]:
        return self.events.subscribe(CartChanged, on_change, cart_id=cart_id)

    def bind_inbound(self, cart_id: str | None = None) -> Callable[[], None]:
        """Handle collaborator signals on the bus; returns one callable that unbinds all of them."""
        unsubscribers = [
            self.events.subscribe(
                FulfillmentChangedExternally,
                lambda e: self.upsert_fulfillment(e.cart_id, e.fulfillment, e.meta),
                cart_id=cart_id,
            ),
            self.events.subscribe(
                ItemRemoveRequested,
                lambda e: self.remove_item(e.cart_id, e.item_id),
                cart_id=cart_id,
            ),
            self.events.subscribe(
                CartViewToggled,
                lambda e: self.get_badge(e.cart_id) if e.open else None,
                cart_id=cart_id,
            ),
        ]

        def unbind():
            for unsubscribe in unsubscribers:
                unsubscribe()

        return unbind
