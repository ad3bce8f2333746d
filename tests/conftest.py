import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PROVIDER_SYNC_MODE"] = "inline"
os.environ["MIRRORED_PROVIDERS"] = "mealme"
os.environ["EVENT_RELAY_ENABLED"] = "false"
os.environ["PERSIST_DERIVED_STATUS"] = "true"

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402

from app.data import models  # noqa: E402,F401
from app.data.database import Base, SessionLocal, engine  # noqa: E402
from app.data.models.restaurant import RestaurantModel  # noqa: E402
from app.data.models.team_member import TeamMemberModel  # noqa: E402
from app.domain.errors import RemoteSyncError  # noqa: E402
from app.services.cart_service import CartService  # noqa: E402
from app.services.events import EventBus  # noqa: E402

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)

TEAM = "team-1"
RESTAURANT = "rest-1"
OWNER = "6f1c2a9e-3b1d-4c57-9e0a-1a2b3c4d5e01"
ALICE = "6f1c2a9e-3b1d-4c57-9e0a-1a2b3c4d5e02"
BOB = "6f1c2a9e-3b1d-4c57-9e0a-1a2b3c4d5e03"
CAROL = "6f1c2a9e-3b1d-4c57-9e0a-1a2b3c4d5e04"


class FakeProviderClient:
    """Records provider calls; ``fail_on`` names the calls that should raise."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []
        self._lines = 0

    def _call(self, name, *args):
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise RemoteSyncError(f"{name} failed", code="500")

    def create_cart(self, payload):
        self._call("create_cart", payload)
        return {"cart_id": "remote-cart-1", "status": "open"}

    def add_line_item(self, remote_cart_id, payload):
        self._call("add_line_item", remote_cart_id, payload)
        self._lines += 1
        return {"line_item_id": f"line-{self._lines}"}

    def remove_line_item(self, remote_cart_id, payload):
        self._call("remove_line_item", remote_cart_id, payload)
        return {}

    def names(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seeded(db):
    db.add(
        RestaurantModel(
            id=RESTAURANT,
            name="Taco Town",
            image_url="https://img.example/taco.png",
            supported_providers=["grubhub", "mealme"],
            provider_restaurant_ids={"mealme": "mm-rest-9"},
        )
    )
    db.add_all(
        [
            TeamMemberModel(id=OWNER, team_id=TEAM, full_name="Olive Owner", email="olive@example.com"),
            TeamMemberModel(id=ALICE, team_id=TEAM, full_name="Alice", email="alice@example.com"),
            TeamMemberModel(id=BOB, team_id=TEAM, full_name="Bob", email="bob@example.com"),
            TeamMemberModel(id=CAROL, team_id=TEAM, full_name="Carol", email="carol@example.com"),
        ]
    )
    db.commit()
    return db


@pytest.fixture
def provider():
    return FakeProviderClient()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def service(seeded, provider, bus):
    return CartService(seeded, provider_client=provider, events=bus, clock=lambda: NOW)


def menu_item(name="Burrito", **overrides):
    item = {"id": f"menu-{name.lower()}", "name": name, "provider_item_id": f"prov-{name.lower()}"}
    item.update(overrides)
    return item
