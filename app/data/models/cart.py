#app/data/models/cart.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Date, Time, Float, JSON
from sqlalchemy.orm import relationship

from app.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class CartModel(Base):
    __tablename__ = "carts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    team_id = Column(String(36), nullable=False, index=True)
    restaurant_id = Column(String(36), nullable=False, index=True)

    provider_type = Column(String(20), nullable=False, default="none")
    provider_restaurant_id = Column(String, nullable=True)
    provider_cart_id = Column(String, nullable=True)
    provider_cart_raw = Column(JSON, nullable=True)

    title = Column(String(200), nullable=True)
    meal_type = Column(String(40), nullable=True)
    status = Column(String(20), nullable=False, default="draft")

    # fulfillment
    fulfillment_service = Column(String(20), nullable=True)
    fulfillment_address = Column(String, nullable=True)
    fulfillment_latitude = Column(Float, nullable=True)
    fulfillment_longitude = Column(Float, nullable=True)
    scheduled_date = Column(Date, nullable=True)
    scheduled_time = Column(Time, nullable=True)

    created_by_member_id = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)
    submitted_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItemModel.position",
    )
    members = relationship(
        "CartMemberModel",
        back_populates="cart",
        cascade="all, delete-orphan",
    )
