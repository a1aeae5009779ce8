from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.gharse import db
from api.gharse.deps import get_dispatcher
from api.gharse.domain import OrderStatus
from api.gharse.routes_order_modify import router as order_modify_router
from api.gharse.routes_orders import router as orders_router
from api.gharse.services import grace_period, order_creation
from tests._seed_orders import load_order, seed_menu, seed_order

ITEMS = [
    {"menuItemId": "garlic-naan", "quantity": 2, "price": 100},
    {"menuItemId": "mango-lassi", "quantity": 1, "price": 50},
]


@pytest.fixture
def client(sessionmaker, settings, dispatcher, monkeypatch):
    monkeypatch.setattr(grace_period, "get_settings", lambda: settings)
    monkeypatch.setattr(order_creation, "get_settings", lambda: settings)

    app = FastAPI()
    app.include_router(order_modify_router)
    app.include_router(orders_router)

    async def _session():
        async with sessionmaker() as session:
            yield session

    app.dependency_overrides[db.get_session] = _session
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    return TestClient(app)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def test_modify_order(client, sessionmaker, dispatcher):
    order_id = seed_order(sessionmaker, created_at=_now())

    resp = client.post("/api/orders/modify", json={"orderId": order_id, "items": ITEMS})

    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    data = body["data"]
    assert data["order"]["pricing"] == {
        "subtotal": 250.0,
        "tax": 12.5,
        "delivery_fee": 50.0,
        "discount": 0.0,
        "total": 312.5,
    }
    assert data["finalized"] is False
    assert 0 < data["time_remaining_ms"] <= 180_000
    assert data["message"].startswith("Order updated! You have")
    assert dispatcher.calls[0][0] == "updated"


def test_modify_and_finalize(client, sessionmaker, dispatcher):
    order_id = seed_order(sessionmaker, created_at=_now())

    resp = client.post(
        "/api/orders/modify",
        json={"order_id": order_id, "items": ITEMS, "finalize": True},
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["order"]["status"] == "PENDING"
    assert data["order"]["grace_period_expires_at"] is None
    assert data["time_remaining_ms"] == 0
    assert dispatcher.calls == [("finalized", order_id)]


def test_modify_invalid_state(client, sessionmaker):
    order_id = seed_order(
        sessionmaker, created_at=_now(), status=OrderStatus.CONFIRMED, expires_in=None
    )

    resp = client.post("/api/orders/modify", json={"orderId": order_id, "items": ITEMS})

    assert resp.status_code == 409
    error = resp.json()["error"]
    assert error["code"] == "INVALID_STATE"
    assert error["details"]["current_status"] == "CONFIRMED"


def test_modify_window_expired(client, sessionmaker):
    order_id = seed_order(sessionmaker, created_at=_now() - timedelta(minutes=10))

    resp = client.post("/api/orders/modify", json={"orderId": order_id, "items": ITEMS})

    assert resp.status_code == 410
    assert resp.json()["error"]["code"] == "WINDOW_EXPIRED"


def test_modify_to_nothing_should_cancel(client, sessionmaker):
    order_id = seed_order(sessionmaker, created_at=_now())

    resp = client.post(
        "/api/orders/modify",
        json={
            "orderId": order_id,
            "items": [{"menuItemId": "butter-chicken", "quantity": 0, "price": 200}],
        },
    )

    assert resp.status_code == 422
    error = resp.json()["error"]
    assert error["code"] == "SHOULD_CANCEL"
    assert error["details"]["should_cancel"] is True
    assert load_order(sessionmaker, order_id).items[0].quantity == 2


def test_modify_unknown_order(client):
    resp = client.post("/api/orders/modify", json={"orderId": "nope", "items": ITEMS})
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"


def test_modify_wrong_customer(client, sessionmaker):
    order_id = seed_order(sessionmaker, created_at=_now())
    resp = client.post(
        "/api/orders/modify",
        json={"orderId": order_id, "items": ITEMS, "customerId": "cust-2"},
    )
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "UNAUTHORIZED"


def test_check_modifiability(client, sessionmaker):
    order_id = seed_order(sessionmaker, created_at=_now())

    resp = client.get("/api/orders/modify", params={"orderId": order_id})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["can_modify"] is True
    assert data["status"] == "PENDING_CONFIRMATION"
    assert data["modification_count"] == 0
    assert data["order"]["id"] == order_id
    assert data["order"]["items"]


def test_finalize_route(client, sessionmaker, dispatcher):
    active = seed_order(sessionmaker, order_id="order-active", created_at=_now())
    resp = client.post("/api/orders/finalize", json={"orderId": active})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "GRACE_ACTIVE"

    expired = seed_order(
        sessionmaker,
        order_id="order-expired",
        created_at=_now() - timedelta(minutes=4),
    )
    resp = client.post("/api/orders/finalize", json={"orderId": expired})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["order"]["status"] == "PENDING"
    assert data["already_finalized"] is False

    resp = client.post("/api/orders/finalize", json={"orderId": expired})
    assert resp.json()["data"]["already_finalized"] is True
    assert dispatcher.calls == [("finalized", expired)]


def test_cancel_route(client, sessionmaker, dispatcher):
    order_id = seed_order(sessionmaker, created_at=_now())

    resp = client.post(
        "/api/orders/cancel", json={"orderId": order_id, "reason": "changed my mind"}
    )

    assert resp.status_code == 200
    assert resp.json()["data"]["order"]["status"] == "CANCELLED"
    assert dispatcher.calls == [("cancelled", order_id, "changed my mind")]


def test_create_and_fetch_order(client, sessionmaker):
    seed_menu(sessionmaker)

    resp = client.post(
        "/api/orders",
        json={
            "customer": {
                "name": "Asha Rao",
                "email": "asha@example.com",
                "phone": "9876543210",
            },
            "items": [{"menuItemId": "butter-chicken", "quantity": 2}],
            "orderType": "pickup",
        },
    )

    assert resp.status_code == 201
    order = resp.json()["data"]["order"]
    assert order["status"] == "PENDING_CONFIRMATION"
    assert order["pricing"]["subtotal"] == 400.0
    assert order["grace_period_expires_at"] is not None

    fetched = client.get(f"/api/orders/{order['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["order"]["order_number"] == order["order_number"]


def test_fetch_unknown_order(client):
    resp = client.get("/api/orders/order-missing")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"
