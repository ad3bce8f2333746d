import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, Numeric, String, Boolean, JSON, DateTime, Text
from sqlalchemy.orm import relationship

from app.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    cart_id = Column(String(36), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)

    menu_item_id = Column(String, nullable=True)
    provider_item_id = Column(String, nullable=True)
    item_name = Column(String(200), nullable=False, default="Item")
    image_url = Column(String, nullable=True)

    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False, default=0)
    special_instructions = Column(Text, nullable=False, default="")
    selected_options = Column(JSON, nullable=False, default=dict)

    # ownership: one member, the extras bucket, or neither (unassigned)
    member_id = Column(String(36), nullable=True, index=True)
    is_extra = Column(Boolean, nullable=False, default=False)
    added_by_member_id = Column(String(36), nullable=True)

    remote_line_item_id = Column(String, nullable=True)
    position = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    cart = relationship("CartModel", back_populates="items")
