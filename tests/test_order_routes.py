"""HTTP layer: auth, validation and mapping of order errors to responses."""
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from services.order_service.main import order_app
from services.order_service.router import get_order_service
from shared.security import create_access_token


def auth(user_id, role="customer"):
    token = create_access_token({"sub": str(user_id), "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(service):
    order_app.dependency_overrides[get_order_service] = lambda: service
    async with AsyncClient(transport=ASGITransport(app=order_app), base_url="http://test") as ac:
        yield ac
    order_app.dependency_overrides.clear()


def order_payload(product_id, quantity=1, total=100000, **overrides):
    payload = {
        "items": [{"product_id": product_id, "quantity": quantity}],
        "shipping_address": "  12 Hang Bac, Ha Noi ",
        "payment_method": "cod",
        "total_amount": total,
    }
    payload.update(overrides)
    return payload


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"service": "order", "status": "running"}


async def test_create_order(client, add_product, stock_of):
    pid = await add_product(price="100000", stock=5, name="Swaddle", images='["swaddle.jpg"]')

    resp = await client.post("/", json=order_payload(pid, 3, 300000), headers=auth(1))

    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "Order created successfully"
    order = body["order"]
    assert order["user_id"] == 1
    assert order["shipping_address"] == "12 Hang Bac, Ha Noi"
    assert Decimal(order["total_amount"]) == Decimal("300000")
    assert order["items"][0]["product_name"] == "Swaddle"
    assert order["items"][0]["images"] == ["swaddle.jpg"]
    assert await stock_of(pid) == 2


async def test_create_order_requires_token(client, add_product):
    pid = await add_product()
    resp = await client.post("/", json=order_payload(pid))
    assert resp.status_code == 401


@pytest.mark.parametrize(
    "overrides",
    [
        {"items": []},
        {"items": [{"product_id": 1, "quantity": 0}]},
        {"shipping_address": "   "},
        {"payment_method": "paypal"},
        {"total_amount": -1},
    ],
)
async def test_create_order_validation(client, overrides):
    resp = await client.post("/", json=order_payload(1, **overrides), headers=auth(1))
    assert resp.status_code == 422


async def test_insufficient_stock_response(client, add_product, stock_of):
    pid = await add_product(price="100000", stock=2)

    resp = await client.post("/", json=order_payload(pid, 3, 300000), headers=auth(1))

    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "insufficient_stock"
    assert body["details"] == {"product_id": pid, "available": 2}
    assert await stock_of(pid) == 2


async def test_total_mismatch_response(client, add_product):
    pid = await add_product(price="100000", stock=2)

    resp = await client.post("/", json=order_payload(pid, 1, 999999), headers=auth(1))

    assert resp.status_code == 400
    assert resp.json()["code"] == "total_mismatch"


async def test_product_not_found_response(client):
    resp = await client.post("/", json=order_payload(31337), headers=auth(1))
    assert resp.status_code == 400
    assert resp.json()["details"] == {"product_id": 31337}


async def test_get_and_list_own_orders(client, add_product):
    pid = await add_product(stock=5)
    created = (await client.post("/", json=order_payload(pid), headers=auth(1))).json()["order"]

    mine = await client.get(f"/{created['id']}", headers=auth(1))
    theirs = await client.get(f"/{created['id']}", headers=auth(2))
    listing = await client.get("/", headers=auth(1))

    assert mine.status_code == 200
    assert theirs.status_code == 404
    assert theirs.json()["code"] == "order_not_found"
    assert [o["id"] for o in listing.json()["orders"]] == [created["id"]]
    assert listing.json()["pagination"]["total_orders"] == 1


async def test_cancel_flow(client, add_product, stock_of):
    pid = await add_product(stock=10)
    created = (await client.post("/", json=order_payload(pid, 2, 200000), headers=auth(1))).json()["order"]

    first = await client.put(f"/{created['id']}/cancel", headers=auth(1))
    second = await client.put(f"/{created['id']}/cancel", headers=auth(1))

    assert first.status_code == 200
    assert first.json() == {"message": "Order cancelled successfully"}
    assert second.status_code == 409
    assert second.json()["code"] == "order_not_cancellable"
    assert await stock_of(pid) == 10


async def test_status_update_is_admin_only(client, add_product):
    pid = await add_product(stock=5)
    created = (await client.post("/", json=order_payload(pid), headers=auth(1))).json()["order"]

    denied = await client.put(f"/{created['id']}/status", json={"status": "confirmed"}, headers=auth(1))
    invalid = await client.put(f"/{created['id']}/status", json={"status": "lost"}, headers=auth(9, "admin"))
    ok = await client.put(
        f"/{created['id']}/status",
        json={"status": "confirmed", "payment_status": "paid"},
        headers=auth(9, "admin"),
    )

    assert denied.status_code == 403
    assert invalid.status_code == 422
    assert invalid.json()["details"] == {"field": "status", "value": "lost"}
    assert ok.status_code == 200
    assert ok.json()["order"]["status"] == "confirmed"
    assert ok.json()["order"]["payment_status"] == "paid"


async def test_status_update_rejects_backward_move_and_cancels_with_restock(client, add_product, stock_of):
    pid = await add_product(stock=10)
    created = (await client.post("/", json=order_payload(pid, 2, 200000), headers=auth(1))).json()["order"]
    admin = auth(9, "admin")

    await client.put(f"/{created['id']}/status", json={"status": "shipping"}, headers=admin)
    backwards = await client.put(f"/{created['id']}/status", json={"status": "pending"}, headers=admin)
    cancelled = await client.put(f"/{created['id']}/status", json={"status": "cancelled"}, headers=admin)

    assert backwards.status_code == 409
    assert backwards.json()["code"] == "invalid_status_transition"
    assert backwards.json()["details"]["current"] == "shipping"
    assert cancelled.status_code == 200
    assert cancelled.json()["order"]["status"] == "cancelled"
    assert await stock_of(pid) == 10


async def test_admin_lists_all_orders(client, add_product):
    pid = await add_product(stock=5)
    await client.post("/", json=order_payload(pid), headers=auth(1))
    await client.post("/", json=order_payload(pid), headers=auth(2))

    denied = await client.get("/admin/all", headers=auth(1))
    listing = await client.get("/admin/all", params={"status": "pending"}, headers=auth(9, "admin"))

    assert denied.status_code == 403
    assert listing.status_code == 200
    assert listing.json()["pagination"]["total_orders"] == 2
    assert "items" not in listing.json()["orders"][0]
