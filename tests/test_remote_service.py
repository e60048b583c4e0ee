from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from grocery_cart.models import CartMutation, MutationKind
from grocery_cart.remote_service.main import create_app


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    return TestClient(app)


def mutation(sequence=1, **fields):
    fields.setdefault("kind", MutationKind.SET_QUANTITY)
    return CartMutation(sequence=sequence, modified_at=datetime.now(timezone.utc), **fields)


def post(client, user_id, m):
    return client.post(f"/api/carts/{user_id}/mutations", json=m.model_dump(mode="json"))


class TestCartEndpoints:

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_new_cart_is_empty(self, client):
        response = client.get("/api/carts/user-1")

        assert response.status_code == 200
        data = response.json()
        assert data["items"] == []
        assert data["coupon"] is None

    def test_set_quantity(self, client):
        response = post(client, "user-1", mutation(product_id="prod-001", quantity=2))

        assert response.status_code == 200
        assert response.json()["applied"] is True

        items = client.get("/api/carts/user-1").json()["items"]
        assert len(items) == 1
        assert items[0]["product_id"] == "prod-001"
        assert items[0]["quantity"] == 2
        assert items[0]["sequence"] == 1
        assert items[0]["name"] == "Organic Bananas"

    def test_replayed_mutation_is_deduplicated(self, client):
        m = mutation(product_id="prod-001", quantity=2)
        post(client, "user-1", m)

        replay = post(client, "user-1", m).json()

        assert replay["duplicate"] is True
        assert replay["applied"] is True

    def test_out_of_order_mutation_is_ignored(self, client):
        """An older sequence for the same product never overwrites a newer one"""
        post(client, "user-1", mutation(sequence=3, product_id="prod-001", quantity=5))

        result = post(client, "user-1", mutation(sequence=2, product_id="prod-001", quantity=1)).json()

        assert result["stale"] is True
        assert result["applied"] is False
        assert client.get("/api/carts/user-1").json()["items"][0]["quantity"] == 5

    def test_remove_item(self, client):
        post(client, "user-1", mutation(product_id="prod-001", quantity=2))
        post(client, "user-1", mutation(sequence=2, kind=MutationKind.REMOVE_ITEM, product_id="prod-001"))

        assert client.get("/api/carts/user-1").json()["items"] == []

    def test_unknown_product_rejected(self, client):
        response = post(client, "user-1", mutation(product_id="prod-999", quantity=1))
        assert response.status_code == 404

    def test_inactive_product_rejected(self, client):
        response = post(client, "user-1", mutation(product_id="prod-006", quantity=1))
        assert response.status_code == 404

    def test_insufficient_stock(self, client):
        response = post(client, "user-1", mutation(product_id="prod-003", quantity=20))

        assert response.status_code == 409
        assert "Available: 12" in response.json()["detail"]

    def test_coupon_mutations(self, client):
        post(client, "user-1", mutation(kind=MutationKind.APPLY_COUPON, coupon_code="SAVE20"))
        assert client.get("/api/carts/user-1").json()["coupon"]["code"] == "SAVE20"

        post(client, "user-1", mutation(sequence=2, kind=MutationKind.REMOVE_COUPON, coupon_code="SAVE20"))
        assert client.get("/api/carts/user-1").json()["coupon"] is None

    def test_unknown_coupon_rejected(self, client):
        response = post(client, "user-1", mutation(kind=MutationKind.APPLY_COUPON, coupon_code="NOPE"))
        assert response.status_code == 404

    def test_clear(self, client):
        post(client, "user-1", mutation(product_id="prod-001", quantity=1))
        post(client, "user-1", mutation(product_id="prod-002", quantity=1))

        post(client, "user-1", mutation(kind=MutationKind.CLEAR))

        assert client.get("/api/carts/user-1").json()["items"] == []

    def test_delete_cart(self, client):
        client.get("/api/carts/user-1")

        assert client.delete("/api/carts/user-1").json() == {"deleted": True}
        assert client.delete("/api/carts/user-1").status_code == 404


class TestCatalogEndpoints:

    def test_resolve_coupon(self, client):
        response = client.get("/api/coupons/save20")

        assert response.status_code == 200
        assert response.json()["code"] == "SAVE20"
        assert response.json()["kind"] == "percentage"

    def test_unknown_coupon(self, client):
        assert client.get("/api/coupons/NOPE").status_code == 404

    def test_availability(self, client, app):
        app.state.catalog_db.update_stock("prod-001", 3)

        response = client.post(
            "/api/products/availability",
            json={"product_ids": ["prod-001", "prod-005", "prod-404"]},
        )

        assert response.status_code == 200
        by_id = {entry["product_id"]: entry for entry in response.json()}
        assert by_id["prod-001"]["is_available"] is True
        assert by_id["prod-001"]["max_quantity"] == 3
        assert by_id["prod-005"]["is_available"] is False
        assert by_id["prod-404"]["max_quantity"] == 0
