"""Tests for the subscription accrual engine (SQLite-backed)."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from conftest import ADDRESS, create_shop, create_user
from errors import (
    DuplicateActiveSubscription, InvalidQuantity, InvalidStatusTransition,
    MonthlyCapExceeded, PaymentNotDue, ShopNotFound, SubscriptionNotFound,
)
from models.order import Order
from models.payment import Payment
from models.subscription import Subscription, SubscriptionDelivery
from services.accrual import (
    add_months, change_status, create_subscription, jars_for_plan, next_delivery_after,
    order_jars, record_delivery, settle_monthly_cycle,
)

NOW = datetime(2026, 3, 10, 9, 30)


async def _count(db, model, **filters) -> int:
    stmt = select(func.count()).select_from(model)
    for column, value in filters.items():
        stmt = stmt.where(getattr(model, column) == value)
    return (await db.execute(stmt)).scalar_one()


async def _subscribe(db, user, shop, plan="30-jars", **kwargs):
    return await create_subscription(db, user.id, shop.id, plan, ADDRESS, now=NOW, **kwargs)


# ── Pure helpers ───────────────────────────────────────────

def test_jars_for_plan_parses_leading_integer():
    assert jars_for_plan("5-jars") == 5
    assert jars_for_plan("30-jars") == 30
    assert jars_for_plan("45-jars") == 45


def test_jars_for_plan_rejects_unknown_plan():
    with pytest.raises(ValueError):
        jars_for_plan("12-jars")


def test_add_months_clamps_to_month_end():
    assert add_months(datetime(2026, 1, 31)) == datetime(2026, 2, 28)
    assert add_months(datetime(2028, 1, 31)) == datetime(2028, 2, 29)
    assert add_months(datetime(2026, 12, 15)) == datetime(2027, 1, 15)


def test_next_delivery_offsets():
    start = datetime(2026, 3, 1)
    assert next_delivery_after(start, "weekly") == datetime(2026, 3, 8)
    assert next_delivery_after(start, "bi-weekly") == datetime(2026, 3, 15)
    assert next_delivery_after(start, "monthly") == datetime(2026, 4, 1)


# ── Creation ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_subscription_snapshots_price(db, user, shop):
    sub = await _subscribe(db, user, shop)

    assert sub.jars_per_month == 30
    assert sub.price_per_jar == Decimal("45.00")
    assert sub.monthly_amount == Decimal("1350.00")
    assert sub.jars_ordered_this_month == 0
    assert sub.jars_delivered_this_month == 0
    assert sub.current_month_bill == Decimal("0.00")
    assert sub.next_delivery_date == NOW + timedelta(days=7)
    assert sub.next_payment_date == NOW + timedelta(days=30)
    assert sub.status == "active"


@pytest.mark.asyncio
async def test_shop_price_change_does_not_touch_subscription(db, user, shop):
    sub = await _subscribe(db, user, shop, plan="10-jars")
    shop.price_per_jar = 60
    await db.commit()

    result = await order_jars(db, user.id, sub.id, 2, now=NOW)
    assert result.order.total_amount == Decimal("90.00")
    assert result.subscription.monthly_amount == Decimal("450.00")


@pytest.mark.asyncio
async def test_duplicate_active_subscription_writes_nothing(db, user, shop):
    await _subscribe(db, user, shop)

    with pytest.raises(DuplicateActiveSubscription):
        await _subscribe(db, user, shop, plan="10-jars")
    assert await _count(db, Subscription, user_id=user.id) == 1


@pytest.mark.asyncio
async def test_create_requires_verified_active_shop(db, user):
    unverified = await create_shop(db, phone="+919900000002", gst="29ABCDE1234F1Z6", is_verified=False)
    with pytest.raises(ShopNotFound):
        await _subscribe(db, user, unverified)


@pytest.mark.asyncio
async def test_cancelled_subscription_allows_new_one(db, user, shop):
    first = await _subscribe(db, user, shop)
    await change_status(db, user.id, first.id, "cancelled")

    second = await _subscribe(db, user, shop, plan="15-jars")
    assert second.status == "active"


# ── Order jars ─────────────────────────────────────────────

@pytest.mark.asyncio
async def test_order_jars_accrues_and_creates_order(db, user, shop):
    sub = await _subscribe(db, user, shop)

    result = await order_jars(db, user.id, sub.id, 4, now=NOW)

    assert result.subscription.jars_ordered_this_month == 4
    assert result.subscription.current_month_bill == Decimal("180.00")
    assert result.remaining_jars == 26
    assert result.order.order_type == "subscription"
    assert result.order.payment_method == "subscription"
    assert result.order.subscription_id == sub.id
    assert result.order.notes == "Subscription order - 30-jars plan"
    assert await _count(db, Order, subscription_id=sub.id) == 1


@pytest.mark.asyncio
async def test_order_jars_over_cap_leaves_counters_unchanged(db, user, shop):
    sub = await _subscribe(db, user, shop, plan="10-jars")
    await order_jars(db, user.id, sub.id, 7, now=NOW)

    with pytest.raises(MonthlyCapExceeded) as exc:
        await order_jars(db, user.id, sub.id, 4, now=NOW)

    assert exc.value.remaining == 3
    assert "Only 3 jars remaining" in exc.value.message
    await db.refresh(sub)
    assert sub.jars_ordered_this_month == 7
    assert sub.current_month_bill == Decimal("315.00")
    assert await _count(db, Order, subscription_id=sub.id) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -3])
async def test_order_jars_rejects_non_positive_quantity(db, user, shop, quantity):
    sub = await _subscribe(db, user, shop)
    with pytest.raises(InvalidQuantity):
        await order_jars(db, user.id, sub.id, quantity, now=NOW)


@pytest.mark.asyncio
async def test_order_jars_scoped_to_owner(db, user, shop):
    sub = await _subscribe(db, user, shop)
    stranger = await create_user(db, phone="+919800000002", name="Imran")

    with pytest.raises(SubscriptionNotFound):
        await order_jars(db, stranger.id, sub.id, 1, now=NOW)


@pytest.mark.asyncio
async def test_paused_subscription_rejects_orders(db, user, shop):
    sub = await _subscribe(db, user, shop)
    await change_status(db, user.id, sub.id, "paused")

    with pytest.raises(SubscriptionNotFound):
        await order_jars(db, user.id, sub.id, 1, now=NOW)


@pytest.mark.asyncio
async def test_stale_read_cannot_overshoot_cap(session_factory):
    """Two callers both asking for the whole month: exactly one wins."""
    async with session_factory() as setup:
        user = await create_user(setup)
        shop = await create_shop(setup)
        sub = await _subscribe(setup, user, shop)

    async with session_factory() as first, session_factory() as second:
        # `first` reads the fresh subscription before `second` commits
        stale = await first.get(Subscription, sub.id)
        assert stale.jars_ordered_this_month == 0

        won = await order_jars(second, user.id, sub.id, 30, now=NOW)
        assert won.remaining_jars == 0

        with pytest.raises(MonthlyCapExceeded) as exc:
            await order_jars(first, user.id, sub.id, 30, now=NOW)
        assert exc.value.remaining == 0

    async with session_factory() as check:
        fresh = await check.get(Subscription, sub.id)
        assert fresh.jars_ordered_this_month == 30
        assert fresh.current_month_bill == Decimal("1350.00")
        assert await _count(check, Order, subscription_id=sub.id) == 1


# ── Deliveries ─────────────────────────────────────────────

@pytest.mark.asyncio
async def test_record_delivery_appends_history(db, user, shop):
    sub = await _subscribe(db, user, shop, plan="10-jars")

    result = await record_delivery(db, shop.id, sub.id, 3, notes="Left at gate", now=NOW)

    assert result.subscription.jars_delivered_this_month == 3
    assert result.subscription.current_month_bill == Decimal("135.00")
    assert result.remaining_jars == 7
    assert result.delivery.amount == Decimal("135.00")
    assert result.delivery.notes == "Left at gate"
    assert await _count(db, SubscriptionDelivery, subscription_id=sub.id) == 1


@pytest.mark.asyncio
async def test_deliveries_up_to_cap_then_reject(db, user, shop):
    sub = await _subscribe(db, user, shop, plan="10-jars")

    remaining = None
    for quantity in (4, 4, 2):
        result = await record_delivery(db, shop.id, sub.id, quantity, now=NOW)
        remaining = result.remaining_jars
        assert remaining == sub.jars_per_month - result.subscription.jars_delivered_this_month
    assert remaining == 0

    with pytest.raises(MonthlyCapExceeded) as exc:
        await record_delivery(db, shop.id, sub.id, 1, now=NOW)
    assert exc.value.remaining == 0
    assert await _count(db, SubscriptionDelivery, subscription_id=sub.id) == 3


@pytest.mark.asyncio
async def test_stale_read_cannot_overshoot_delivery_cap(session_factory):
    async with session_factory() as setup:
        user = await create_user(setup)
        shop = await create_shop(setup)
        sub = await _subscribe(setup, user, shop, plan="10-jars")

    async with session_factory() as first, session_factory() as second:
        stale = await first.get(Subscription, sub.id)
        assert stale.jars_delivered_this_month == 0

        won = await record_delivery(second, shop.id, sub.id, 10, now=NOW)
        assert won.remaining_jars == 0

        with pytest.raises(MonthlyCapExceeded) as exc:
            await record_delivery(first, shop.id, sub.id, 10, now=NOW)
        assert exc.value.remaining == 0

    async with session_factory() as check:
        fresh = await check.get(Subscription, sub.id)
        assert fresh.jars_delivered_this_month == 10
        assert fresh.current_month_bill == Decimal("450.00")
        assert await _count(check, SubscriptionDelivery, subscription_id=sub.id) == 1


@pytest.mark.asyncio
async def test_record_delivery_scoped_to_shop(db, user, shop):
    sub = await _subscribe(db, user, shop)
    other = await create_shop(db, phone="+919900000003", gst="29ABCDE1234F1Z7")

    with pytest.raises(SubscriptionNotFound):
        await record_delivery(db, other.id, sub.id, 1, now=NOW)
    assert await _count(db, SubscriptionDelivery, subscription_id=sub.id) == 0


@pytest.mark.asyncio
async def test_order_and_delivery_counters_are_independent(db, user, shop):
    """Ordering and delivering the same jars bills them twice."""
    sub = await _subscribe(db, user, shop)
    assert sub.jars_per_month == 30
    assert sub.monthly_amount == Decimal("1350.00")

    ordered = await order_jars(db, user.id, sub.id, 10, now=NOW)
    assert ordered.subscription.jars_ordered_this_month == 10
    assert ordered.subscription.current_month_bill == Decimal("450.00")

    delivered = await record_delivery(db, shop.id, sub.id, 10, now=NOW)
    assert delivered.subscription.jars_delivered_this_month == 10
    assert delivered.subscription.jars_ordered_this_month == 10
    assert delivered.subscription.current_month_bill == Decimal("900.00")


# ── Monthly cycle ──────────────────────────────────────────

@pytest.mark.asyncio
async def test_monthly_cycle_before_due_date(db, user, shop):
    sub = await _subscribe(db, user, shop)
    before = (sub.last_payment_date, sub.next_payment_date)

    with pytest.raises(PaymentNotDue):
        await settle_monthly_cycle(db, user.id, sub.id, now=NOW + timedelta(days=29))

    await db.refresh(sub)
    assert (sub.last_payment_date, sub.next_payment_date) == before
    assert await _count(db, Payment, subscription_id=sub.id) == 0


@pytest.mark.asyncio
async def test_monthly_cycle_resets_delivered_only(db, user, shop):
    sub = await _subscribe(db, user, shop)
    await order_jars(db, user.id, sub.id, 10, now=NOW)
    await record_delivery(db, shop.id, sub.id, 10, now=NOW)
    settle_at = NOW + timedelta(days=30, hours=1)

    with patch("services.payments.random.random", return_value=0.0):
        result = await settle_monthly_cycle(db, user.id, sub.id, now=settle_at)

    assert result.payment.success is True
    assert result.payment.invoice_url.endswith(f"{result.invoice['invoice_number']}.pdf")
    assert result.invoice["jars_delivered"] == 10
    assert result.invoice["amount"] == Decimal("1350.00")

    await db.refresh(sub)
    assert sub.jars_delivered_this_month == 0
    assert sub.jars_ordered_this_month == 10
    assert sub.current_month_bill == Decimal("900.00")
    assert sub.last_payment_date == settle_at
    assert sub.next_payment_date == settle_at + timedelta(days=30)


@pytest.mark.asyncio
async def test_monthly_cycle_failure_leaves_state(db, user, shop):
    sub = await _subscribe(db, user, shop)
    await record_delivery(db, shop.id, sub.id, 5, now=NOW)
    settle_at = NOW + timedelta(days=31)

    with patch("services.payments.random.random", return_value=0.99):
        result = await settle_monthly_cycle(db, user.id, sub.id, now=settle_at)

    assert result.payment.success is False
    assert result.invoice is None
    await db.refresh(sub)
    assert sub.jars_delivered_this_month == 5
    assert sub.last_payment_date is None
    assert sub.next_payment_date == NOW + timedelta(days=30)

    # Still due, so a retry goes through
    with patch("services.payments.random.random", return_value=0.0):
        retry = await settle_monthly_cycle(db, user.id, sub.id, now=settle_at)
    assert retry.payment.success is True
    assert await _count(db, Payment, subscription_id=sub.id) == 2


@pytest.mark.asyncio
async def test_stale_read_cannot_settle_cycle_twice(session_factory):
    async with session_factory() as setup:
        user = await create_user(setup)
        shop = await create_shop(setup)
        sub = await _subscribe(setup, user, shop)
    settle_at = NOW + timedelta(days=31)

    async with session_factory() as first, session_factory() as second:
        # `first` still sees the cycle as due after `second` settles it
        stale = await first.get(Subscription, sub.id)
        assert stale.next_payment_date == NOW + timedelta(days=30)

        with patch("services.payments.random.random", return_value=0.0):
            won = await settle_monthly_cycle(second, user.id, sub.id, now=settle_at)
            assert won.payment.success is True

            with pytest.raises(PaymentNotDue):
                await settle_monthly_cycle(first, user.id, sub.id, now=settle_at)

    async with session_factory() as check:
        fresh = await check.get(Subscription, sub.id)
        assert fresh.next_payment_date == settle_at + timedelta(days=30)
        assert await _count(check, Payment, subscription_id=sub.id) == 1


# ── Status ─────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_status_transitions(db, user, shop):
    sub = await _subscribe(db, user, shop)

    assert (await change_status(db, user.id, sub.id, "paused")).status == "paused"
    assert (await change_status(db, user.id, sub.id, "paused")).status == "paused"
    assert (await change_status(db, user.id, sub.id, "active")).status == "active"
    assert (await change_status(db, user.id, sub.id, "cancelled")).status == "cancelled"

    with pytest.raises(InvalidStatusTransition):
        await change_status(db, user.id, sub.id, "active")


@pytest.mark.asyncio
async def test_resume_blocked_by_newer_active_subscription(db, user, shop):
    old = await _subscribe(db, user, shop)
    await change_status(db, user.id, old.id, "paused")
    await _subscribe(db, user, shop, plan="8-jars")

    with pytest.raises(DuplicateActiveSubscription):
        await change_status(db, user.id, old.id, "active")
