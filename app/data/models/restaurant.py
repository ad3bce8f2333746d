from sqlalchemy import Column, String, JSON

from app.data.database import Base


class RestaurantModel(Base):
    """Read-only copy of the restaurant directory owned by the menu service."""

    __tablename__ = "restaurants"

    id = Column(String(36), primary_key=True)
    name = Column(String, nullable=False)
    image_url = Column(String, nullable=True)
    supported_providers = Column(JSON, nullable=False, default=list)
    provider_restaurant_ids = Column(JSON, nullable=False, default=dict)
