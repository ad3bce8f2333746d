from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.api import create_app
from app.api.routers import carts
from app.data.database import get_db
from app.domain.errors import TransientIOError
from app.services.cart_service import CartService
from conftest import ALICE, BOB, NOW, OWNER, RESTAURANT, TEAM, menu_item


@pytest.fixture
def app(seeded, provider, bus):
    app = create_app()
    app.dependency_overrides[get_db] = lambda: seeded
    app.dependency_overrides[carts.get_service] = lambda: CartService(
        seeded, provider_client=provider, events=bus, clock=lambda: NOW
    )
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def cart_id(client):
    resp = client.post(
        "/carts/ensure",
        json={"team_id": TEAM, "restaurant_id": RESTAURANT, "title": "Lunch", "created_by_member_id": OWNER},
    )
    assert resp.status_code == 200
    return resp.json()["cart_id"]


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}
        assert client.get("/health/db").json()["database"] == "up"


class TestCartsApi:
    def test_ensure_and_find(self, client, cart_id):
        resp = client.post("/carts/find", json={"team_id": TEAM, "restaurant_id": RESTAURANT})
        assert resp.json() == {"cart_id": cart_id}
        resp = client.post("/carts/find", json={"team_id": TEAM, "restaurant_id": "other"})
        assert resp.json() == {"cart_id": None}

    def test_item_lifecycle(self, client, cart_id):
        resp = client.post(
            f"/carts/{cart_id}/items",
            json={
                "menu_item": menu_item(),
                "quantity": 3,
                "unit_price": "6.00",
                "assignment": {"memberIds": [ALICE], "unitsByMember": {ALICE: 2}},
                "added_by_member_id": BOB,
            },
        )
        assert resp.status_code == 201
        item_id = resp.json()["item_id"]

        snapshot = client.get(f"/carts/{cart_id}").json()
        assert snapshot["cart"]["title"] == "Lunch"
        assert snapshot["restaurant"]["name"] == "Taco Town"
        item = snapshot["items"][0]
        assert (item["quantity"], item["member_id"], item["is_extra"]) == (2, ALICE, False)
        assert Decimal(item["unit_price"]) == Decimal("6.00")
        assert snapshot["assignment_member_ids"] == [ALICE]

        resp = client.patch(f"/carts/{cart_id}/items/{item_id}", json={"quantity": 1, "expected_version": 1})
        assert resp.status_code == 200
        resp = client.patch(f"/carts/{cart_id}/items/{item_id}", json={"quantity": 4, "expected_version": 1})
        assert resp.status_code == 409

        assert client.delete(f"/carts/{cart_id}/items/{item_id}").status_code == 204
        assert client.delete(f"/carts/{cart_id}/items/{item_id}").status_code == 404

    def test_split_add(self, client, cart_id):
        resp = client.post(
            f"/carts/{cart_id}/items/split",
            json={"item": {"menu_item": menu_item(), "quantity": 3}, "assignees": [ALICE, BOB]},
        )
        assert resp.status_code == 201
        assert len(resp.json()["item_ids"]) == 3

    def test_validation_errors(self, client, cart_id):
        assert client.post(f"/carts/{cart_id}/items", json={"quantity": 1}).status_code == 400
        assert client.post(f"/carts/{cart_id}/submit").status_code == 400
        assert client.post(f"/carts/{cart_id}/items", json={"menu_item": menu_item(), "quantity": "lots"}).status_code == 422

    def test_zero_quantity_is_clamped(self, client, cart_id):
        resp = client.post(f"/carts/{cart_id}/items", json={"menu_item": menu_item(), "quantity": 0})
        assert resp.status_code == 201
        items = client.get(f"/carts/{cart_id}").json()["items"]
        assert [i["quantity"] for i in items] == [1]

    def test_fulfillment_title_and_submit(self, client, cart_id):
        resp = client.put(
            f"/carts/{cart_id}/fulfillment",
            json={"fulfillment": {"service": "pickup", "date": "2026-03-12", "time": "11:45"}},
        )
        assert resp.status_code == 200
        assert resp.json()["fulfillment"]["date"] == "2026-03-12"
        assert resp.json()["status"] == "draft"

        assert client.put(f"/carts/{cart_id}/title", json={"title": "Team lunch"}).json()["title"] == "Team lunch"

        client.post(f"/carts/{cart_id}/items", json={"menu_item": menu_item()})
        resp = client.post(f"/carts/{cart_id}/submit")
        assert resp.json()["status"] == "submitted"
        assert client.get("/carts/open", params={"team_id": TEAM}).json() == []

    def test_open_progress_badge(self, client, cart_id):
        client.post(
            f"/carts/{cart_id}/items",
            json={"menu_item": menu_item(), "quantity": 2, "unit_price": "4.00", "assignment": {"member_ids": [ALICE]}},
        )
        open_carts = client.get("/carts/open", params={"team_id": TEAM}).json()
        assert [c["id"] for c in open_carts] == [cart_id]
        assert open_carts[0]["item_count"] == 2

        progress = client.get(f"/carts/{cart_id}/progress").json()
        assert [m["id"] for m in progress["ordered_members"]] == [ALICE]
        assert progress["ordered_members"][0]["medal"] == 1
        assert progress["has_recipients"] is True

        badge = client.get(f"/carts/{cart_id}/badge").json()
        assert badge["name"] == "Lunch • Cart"
        assert Decimal(badge["subtotal"]) == Decimal("8.00")

    def test_reconcile_and_delete(self, client, cart_id):
        assert client.post(f"/carts/{cart_id}/reconcile/lifecycle").json()["status"] == "draft"
        assert client.post(f"/carts/{cart_id}/reconcile/remote").json()["mirrored"] == 0
        assert client.delete(f"/carts/{cart_id}").status_code == 204
        assert client.delete(f"/carts/{cart_id}").status_code == 404
        assert client.get(f"/carts/{cart_id}").status_code == 404

    def test_storage_failure_maps_to_503(self, app, client):
        class Unavailable:
            def get_snapshot(self, cart_id):
                raise TransientIOError("database is down")

        app.dependency_overrides[carts.get_service] = lambda: Unavailable()
        resp = client.get("/carts/any")
        assert resp.status_code == 503
        assert resp.json() == {"detail": "database is down"}


class TestMembersApi:
    def test_member_endpoints(self, client, cart_id):
        resp = client.post("/members/", json={"id": "m-7", "team_id": TEAM, "full_name": "Max"})
        assert resp.json()["full_name"] == "Max"
        assert client.get("/members/m-7").json()["team_id"] == TEAM
        assert client.get("/members/ghost").status_code == 404

        assert client.post(f"/members/carts/{cart_id}/join", json={"member_id": ALICE}).json()["joined"] is True
        resp = client.post(f"/members/carts/{cart_id}/join-email", json={"email": "bob@example.com"})
        assert resp.json()["member_id"] == BOB
        assert client.post(f"/members/carts/{cart_id}/join-email", json={"email": "x@y.z"}).status_code == 400

        roster = client.get(f"/members/carts/{cart_id}").json()
        assert [m["member_id"] for m in roster] == [OWNER, ALICE, BOB]

        resp = client.put(f"/members/carts/{cart_id}", json={"member_ids": [ALICE]})
        assert resp.json() == {"added": [], "removed": [OWNER, BOB]}
