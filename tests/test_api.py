"""
Tests for the carts HTTP router
"""

import uuid
from decimal import Decimal
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from cartmerge.api.routers import carts
from cartmerge.data.database import get_db
from cartmerge.domain.errors import CartConcurrencyError
from cartmerge.main import create_app
from cartmerge.repos.cart_repo import SqlCartRepo
from cartmerge.repos.cart_store import CartStore


@pytest.fixture
def app(db_session):
    app = create_app()

    def override_db():
        yield db_session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[carts.get_store] = lambda: SqlCartRepo(db_session)
    app.dependency_overrides[carts.get_lock_service] = lambda: None
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_guest_flow_then_merge(client):
    guest = client.get("/carts/session/sess-abc").json()
    assert guest["session_id"] == "sess-abc"
    assert guest["expires_at"] is not None

    product = str(uuid.uuid4())
    resp = client.post(
        f"/carts/{guest['id']}/lines",
        json={"product_id": product, "quantity": 2, "unit_price": "9.99"},
    )
    assert resp.status_code == 200
    assert Decimal(resp.json()["subtotal"]) == Decimal("19.98")

    customer_id = str(uuid.uuid4())
    merged = client.post("/carts/merge", json={"session_id": "sess-abc", "customer_id": customer_id})

    assert merged.status_code == 200
    body = merged.json()
    assert body["id"] == guest["id"]
    assert body["customer_id"] == customer_id
    assert body["session_id"] is None
    assert body["expires_at"] is None
    assert body["item_count"] == 2


def test_merge_into_existing_customer_cart(client):
    customer_id = str(uuid.uuid4())
    product = str(uuid.uuid4())
    customer = client.get(f"/carts/customer/{customer_id}").json()
    client.post(f"/carts/{customer['id']}/lines", json={"product_id": product, "quantity": 1, "unit_price": "5.00"})

    guest = client.get("/carts/session/sess-xyz").json()
    client.post(f"/carts/{guest['id']}/lines", json={"product_id": product, "quantity": 3, "unit_price": "4.00"})

    body = client.post("/carts/merge", json={"session_id": "sess-xyz", "customer_id": customer_id}).json()

    assert body["id"] == customer["id"]
    assert len(body["lines"]) == 1
    assert body["lines"][0]["quantity"] == 4
    assert Decimal(body["lines"][0]["line_total"]) == Decimal("20.00")
    assert client.get(f"/carts/{guest['id']}").status_code == 404


def test_merge_validates_payload(client):
    resp = client.post("/carts/merge", json={"session_id": "sess-1", "customer_id": "nope"})
    assert resp.status_code == 422


def test_merge_conflict_maps_to_503(app, client):
    store = Mock(spec=CartStore)
    store.load_cart_by_session.side_effect = CartConcurrencyError("busy")
    app.dependency_overrides[carts.get_store] = lambda: store

    resp = client.post("/carts/merge", json={"session_id": "sess-1", "customer_id": str(uuid.uuid4())})

    assert resp.status_code == 503


def test_update_and_remove_line(client):
    cart = client.get("/carts/session/sess-1").json()
    added = client.post(
        f"/carts/{cart['id']}/lines",
        json={"product_id": str(uuid.uuid4()), "quantity": 1, "unit_price": "3.00"},
    ).json()
    line_id = added["lines"][0]["id"]

    updated = client.patch(f"/carts/{cart['id']}/lines/{line_id}", json={"quantity": 5}).json()
    assert updated["lines"][0]["quantity"] == 5

    removed = client.delete(f"/carts/{cart['id']}/lines/{line_id}").json()
    assert removed["lines"] == []

    assert client.delete(f"/carts/{cart['id']}/lines/{line_id}").status_code == 404


def test_unknown_cart_is_404(client):
    assert client.get(f"/carts/{uuid.uuid4()}").status_code == 404


def test_maintenance_endpoints(client):
    client.get("/carts/session/sess-1")

    assert client.post("/carts/maintenance/expire").json() == {"deleted": 0}
    assert client.get("/carts/abandoned").json() == []
    stats = client.get("/carts/statistics").json()
    assert stats["total_carts"] == 1
    assert stats["guest_carts"] == 1


def test_notes_and_expiration(client):
    cart = client.get("/carts/session/sess-1").json()

    noted = client.post(f"/carts/{cart['id']}/notes", json={"notes": "no substitutions"})
    assert noted.status_code == 200
    assert noted.json()["notes"] == "no substitutions"

    moved = client.post(f"/carts/{cart['id']}/expiration", json={"expires_at": "2030-01-01T00:00:00Z"}).json()
    assert moved["expires_at"].startswith("2030-01-01T00:00:00")

    cleared = client.post(f"/carts/{cart['id']}/expiration", json={"expires_at": None}).json()
    assert cleared["expires_at"] is None


def test_expiration_rejected_for_customer_cart(client):
    cart = client.get(f"/carts/customer/{uuid.uuid4()}").json()

    resp = client.post(f"/carts/{cart['id']}/expiration", json={"expires_at": "2030-01-01T00:00:00Z"})

    assert resp.status_code == 400


def test_notes_too_long_is_422(client):
    cart = client.get("/carts/session/sess-1").json()

    resp = client.post(f"/carts/{cart['id']}/notes", json={"notes": "x" * 2001})

    assert resp.status_code == 422
