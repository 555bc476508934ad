"""Tests for one-time orders, status updates and delivery tracking."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import re
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import select

from conftest import ADDRESS, create_shop
from errors import ShopNotFound
from models.order import OrderEvent
from models.shop import Shop
from services.orders import generate_order_number, place_one_time_order, set_order_status


def test_order_number_format():
    """WJ + epoch milliseconds + 4 digits."""
    number = generate_order_number()
    assert re.fullmatch(r"WJ\d{17}", number)


@pytest.mark.asyncio
async def test_cash_order_stays_pending(db, user, shop):
    result = await place_one_time_order(db, user.id, shop.id, 3, ADDRESS, "cash")

    assert result.payment is None
    assert result.order.total_amount == Decimal("135.00")
    assert result.order.status == "pending"
    assert result.order.payment_status == "pending"
    assert result.order.order_type == "one-time"

    await db.refresh(shop)
    assert shop.total_orders == 1


@pytest.mark.asyncio
async def test_paid_order_confirmed(db, user, shop):
    with patch("services.payments.random.random", return_value=0.0):
        result = await place_one_time_order(db, user.id, shop.id, 2, ADDRESS, "upi")

    assert result.payment.success is True
    assert result.order.payment_status == "paid"
    assert result.order.status == "confirmed"
    assert result.order.payment_id == result.payment.payment_id


@pytest.mark.asyncio
async def test_declined_order_kept(db, user, shop):
    with patch("services.payments.random.random", return_value=0.99):
        result = await place_one_time_order(db, user.id, shop.id, 2, ADDRESS, "card")

    assert result.payment.success is False
    assert result.order.payment_status == "failed"
    assert result.order.status == "pending"


@pytest.mark.asyncio
async def test_inactive_shop_rejected(db, user):
    closed = await create_shop(db, phone="+919900000009", gst="29ABCDE1234F1Z9", is_active=False)
    with pytest.raises(ShopNotFound):
        await place_one_time_order(db, user.id, closed.id, 1, ADDRESS, "cash")


@pytest.mark.asyncio
async def test_status_change_logged(db, user, shop):
    order = (await place_one_time_order(db, user.id, shop.id, 1, ADDRESS, "cash")).order

    await set_order_status(db, order, "confirmed", actor_type="SHOP", actor_id=shop.id)
    await set_order_status(db, order, "delivered", actor_type="SHOP", actor_id=shop.id)

    assert order.actual_delivery_time is not None
    events = (await db.execute(
        select(OrderEvent).where(OrderEvent.order_id == order.id).order_by(OrderEvent.id)
    )).scalars().all()
    assert [(e.from_status, e.to_status) for e in events] == [("pending", "confirmed"), ("confirmed", "delivered")]


# ── HTTP ───────────────────────────────────────────────────

async def _place(client, headers, shop, method="cash", quantity=2):
    resp = await client.post(
        "/api/orders/one-time",
        json={
            "shop_id": str(shop.id),
            "quantity": quantity,
            "delivery_address": ADDRESS,
            "payment_method": method,
        },
        headers=headers,
    )
    return resp


@pytest.mark.asyncio
async def test_one_time_order_endpoint(client, user_headers, shop):
    resp = await _place(client, user_headers, shop)

    assert resp.status_code == 201
    body = resp.json()
    assert body["payment_required"] is False
    assert body["payment"] is None
    assert body["order"]["total_amount"] == 90
    assert body["order"]["order_number"].startswith("WJ")


@pytest.mark.asyncio
async def test_one_time_order_declined_payment(client, user_headers, shop):
    with patch("services.payments.random.random", return_value=0.99):
        resp = await _place(client, user_headers, shop, method="wallet")

    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "Order placed but payment failed"
    assert body["payment"]["success"] is False


@pytest.mark.asyncio
async def test_one_time_quantity_bounds(client, user_headers, shop):
    resp = await _place(client, user_headers, shop, quantity=51)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_retry_payment_for_order(client, user_headers, shop):
    with patch("services.payments.random.random", return_value=0.99):
        order = (await _place(client, user_headers, shop, method="upi")).json()["order"]

    with patch("services.payments.random.random", return_value=0.0):
        resp = await client.post(
            "/api/payment/initiate",
            json={"order_id": order["id"], "payment_method": "upi"},
            headers=user_headers,
        )
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    history = (await client.get("/api/payment/history", headers=user_headers)).json()
    assert sorted(p["status"] for p in history) == ["failed", "success"]


@pytest.mark.asyncio
async def test_payment_needs_exactly_one_target(client, user_headers):
    resp = await client.post("/api/payment/initiate", json={"payment_method": "upi"}, headers=user_headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_shop_marks_delivered(client, user_headers, shop_headers, shop, db):
    order = (await _place(client, user_headers, shop)).json()["order"]

    resp = await client.put(f"/api/shop/order/{order['id']}/deliver", headers=shop_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "delivered"

    again = await client.put(f"/api/shop/order/{order['id']}/deliver", headers=shop_headers)
    assert again.status_code == 400

    fresh = (await db.execute(
        select(Shop).where(Shop.id == shop.id).execution_options(populate_existing=True)
    )).scalar_one()
    assert fresh.monthly_revenue == Decimal("90.00")


@pytest.mark.asyncio
async def test_pending_order_cannot_be_assigned(client, user_headers, shop_headers, shop):
    order = (await _place(client, user_headers, shop)).json()["order"]

    resp = await client.post(
        "/api/tracking/assign",
        json={"order_id": order["id"], "delivery_boy_name": "Suresh", "delivery_boy_phone": "+919876500000"},
        headers=shop_headers,
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_tracking_flow(client, user_headers, shop_headers, shop):
    with patch("services.payments.random.random", return_value=0.0):
        order = (await _place(client, user_headers, shop, method="upi")).json()["order"]
    assert order["status"] == "confirmed"

    resp = await client.post(
        "/api/tracking/assign",
        json={"order_id": order["id"], "delivery_boy_name": "Suresh", "delivery_boy_phone": "+919876500000"},
        headers=shop_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "preparing"

    resp = await client.post(
        "/api/tracking/location",
        json={"order_id": order["id"], "latitude": 12.9340, "longitude": 77.6220},
        headers=shop_headers,
    )
    assert resp.json()["status"] == "out-for-delivery"

    resp = await client.get(f"/api/tracking/order/{order['id']}", headers=user_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["delivery_boy_name"] == "Suresh"
    assert body["delivery_boy_location"] == {"latitude": 12.934, "longitude": 77.622}
    assert 0 < body["distance_km"] < 1
    assert body["eta_minutes"] == 11


@pytest.mark.asyncio
async def test_paid_order_not_charged_again(client, user_headers, shop):
    with patch("services.payments.random.random", return_value=0.0):
        order = (await _place(client, user_headers, shop, method="upi")).json()["order"]
        resp = await client.post(
            "/api/payment/initiate",
            json={"order_id": order["id"], "payment_method": "upi"},
            headers=user_headers,
        )

    assert resp.status_code == 400
    assert resp.json()["message"] == "Order is already paid"
