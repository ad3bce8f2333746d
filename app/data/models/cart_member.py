from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship

from app.data.database import Base


class CartMemberModel(Base):
    __tablename__ = "cart_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cart_id = Column(String(36), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    member_id = Column(String(36), nullable=False)
    # roster | email_link
    joined_via = Column(String(20), nullable=False, default="roster")
    joined_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    cart = relationship("CartModel", back_populates="members")

    __table_args__ = (UniqueConstraint("cart_id", "member_id", name="u_cart_member"),)
