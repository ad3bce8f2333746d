# app/repos/cart_repo.py
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, update, delete, func, and_
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from app.data.models.cart import CartModel
from app.data.models.cart_item import CartItemModel
from app.data.models.cart_member import CartMemberModel
from app.data.models.restaurant import RestaurantModel
from app.domain.errors import TransientIOError


@contextmanager
def io_errors():
    try:
        yield
    except DBAPIError as e:
        raise TransientIOError(f"Storage unavailable: {e.orig or e}") from e


class CartRepo:
    """Plain CRUD and queries over carts, cart items and cart members."""

    def __init__(self, db: Session):
        self.db = db

    # carts
    def get_cart(self, cart_id: str) -> CartModel | None:
        with io_errors():
            return self.db.get(CartModel, cart_id)

    def find_carts(
        self,
        team_id: str,
        restaurant_id: str,
        provider_type: str | None = None,
        meal_type: str | None = None,
    ) -> list[CartModel]:
        stmt = select(CartModel).where(
            CartModel.team_id == team_id,
            CartModel.restaurant_id == restaurant_id,
            CartModel.status == "draft",
        )
        if provider_type:
            stmt = stmt.where(CartModel.provider_type == provider_type)
        if meal_type:
            stmt = stmt.where(CartModel.meal_type == meal_type)
        stmt = stmt.order_by(CartModel.updated_at.desc())
        with io_errors():
            return list(self.db.execute(stmt).scalars().all())

    def list_open_carts(self, team_id: str) -> list[CartModel]:
        stmt = (
            select(CartModel)
            .where(CartModel.team_id == team_id, CartModel.status != "submitted")
            .order_by(CartModel.updated_at.desc())
        )
        with io_errors():
            return list(self.db.execute(stmt).scalars().all())

    def list_draft_carts_scheduled_before(self, day) -> list[CartModel]:
        stmt = select(CartModel).where(
            CartModel.status == "draft",
            CartModel.scheduled_date.is_not(None),
            CartModel.scheduled_date <= day,
        )
        with io_errors():
            return list(self.db.execute(stmt).scalars().all())

    def create_cart(self, cart: CartModel) -> CartModel:
        with io_errors():
            self.db.add(cart)
            self.db.commit()
            self.db.refresh(cart)
        return cart

    def update_cart(self, cart_id: str, values: dict) -> int:
        stmt = update(CartModel).where(CartModel.id == cart_id).values(**values)
        with io_errors():
            result = self.db.execute(stmt)
        return result.rowcount

    def mark_abandoned(self, cart_ids: list[str]) -> int:
        if not cart_ids:
            return 0
        stmt = (
            update(CartModel)
            .where(CartModel.id.in_(cart_ids), CartModel.status == "draft")
            .values(status="abandoned")
        )
        with io_errors():
            result = self.db.execute(stmt)
            self.db.commit()
        return result.rowcount

    def delete_cart(self, cart_id: str) -> int:
        with io_errors():
            self.db.execute(delete(CartItemModel).where(CartItemModel.cart_id == cart_id))
            self.db.execute(delete(CartMemberModel).where(CartMemberModel.cart_id == cart_id))
            result = self.db.execute(delete(CartModel).where(CartModel.id == cart_id))
        return result.rowcount

    def cart_totals(self, cart_ids: list[str]) -> dict[str, tuple[int, Decimal]]:
        if not cart_ids:
            return {}
        stmt = (
            select(
                CartItemModel.cart_id,
                func.coalesce(func.sum(CartItemModel.quantity), 0),
                func.coalesce(func.sum(CartItemModel.quantity * CartItemModel.unit_price), 0),
            )
            .where(CartItemModel.cart_id.in_(cart_ids))
            .group_by(CartItemModel.cart_id)
        )
        with io_errors():
            rows = self.db.execute(stmt).all()
        return {
            cart_id: (int(count or 0), Decimal(str(subtotal or 0)).quantize(Decimal("0.01")))
            for cart_id, count, subtotal in rows
        }

    def get_restaurant(self, restaurant_id: str) -> RestaurantModel | None:
        with io_errors():
            return self.db.get(RestaurantModel, restaurant_id)

    # items
    def get_cart_item(self, cart_id: str, item_id: str) -> CartItemModel | None:
        stmt = select(CartItemModel).where(CartItemModel.id == item_id, CartItemModel.cart_id == cart_id)
        with io_errors():
            return self.db.execute(stmt).scalar_one_or_none()

    def get_cart_items(self, cart_id: str) -> list[CartItemModel]:
        stmt = (
            select(CartItemModel)
            .where(CartItemModel.cart_id == cart_id)
            .order_by(CartItemModel.position.asc(), CartItemModel.created_at.asc())
        )
        with io_errors():
            return list(self.db.execute(stmt).scalars().all())

    def next_position(self, cart_id: str) -> int:
        stmt = select(func.max(CartItemModel.position)).where(CartItemModel.cart_id == cart_id)
        with io_errors():
            current = self.db.execute(stmt).scalar()
        return (current or 0) + 1

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        with io_errors():
            self.db.add(item)
            self.db.commit()
            self.db.refresh(item)
        return item

    def update_cart_item(self, cart_id: str, item_id: str, values: dict, expected_version: int | None = None) -> int:
        """Conditional row update; bumps the version. Returns rows affected."""
        conditions = [CartItemModel.id == item_id, CartItemModel.cart_id == cart_id]
        if expected_version is not None:
            conditions.append(CartItemModel.version == expected_version)
        stmt = (
            update(CartItemModel)
            .where(and_(*conditions))
            .values(**values, version=CartItemModel.version + 1)
        )
        with io_errors():
            result = self.db.execute(stmt)
        return result.rowcount

    def set_remote_line_item_id(self, item_id: str, remote_id: str | None) -> int:
        stmt = (
            update(CartItemModel)
            .where(CartItemModel.id == item_id)
            .values(remote_line_item_id=remote_id)
        )
        with io_errors():
            result = self.db.execute(stmt)
            self.db.commit()
        return result.rowcount

    def delete_cart_item(self, cart_id: str, item_id: str) -> int:
        stmt = delete(CartItemModel).where(CartItemModel.id == item_id, CartItemModel.cart_id == cart_id)
        with io_errors():
            result = self.db.execute(stmt)
        return result.rowcount

    def touch_cart(self, cart_id: str) -> None:
        self.update_cart(cart_id, {"updated_at": datetime.now(timezone.utc)})

    # members
    def get_cart_members(self, cart_id: str) -> list[CartMemberModel]:
        stmt = select(CartMemberModel).where(CartMemberModel.cart_id == cart_id).order_by(CartMemberModel.id)
        with io_errors():
            return list(self.db.execute(stmt).scalars().all())

    def add_cart_member(self, cart_id: str, member_id: str, joined_via: str = "roster") -> bool:
        stmt = select(CartMemberModel.id).where(
            CartMemberModel.cart_id == cart_id, CartMemberModel.member_id == member_id
        )
        with io_errors():
            if self.db.execute(stmt).first():
                return False
            self.db.add(CartMemberModel(cart_id=cart_id, member_id=member_id, joined_via=joined_via))
            self.db.commit()
        return True

    def remove_cart_members(self, cart_id: str, member_ids: list[str]) -> int:
        if not member_ids:
            return 0
        stmt = delete(CartMemberModel).where(
            CartMemberModel.cart_id == cart_id, CartMemberModel.member_id.in_(member_ids)
        )
        with io_errors():
            result = self.db.execute(stmt)
            self.db.commit()
        return result.rowcount

    def commit(self):
        with io_errors():
            self.db.commit()

    def rollback(self):
        self.db.rollback()
