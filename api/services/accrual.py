"""
Subscription accrual engine.

A subscription grants `jars_per_month` jars per billing cycle. Two
independent counters accrue against that cap:

  jars_ordered_this_month    → consumer "order jars" requests
  jars_delivered_this_month  → shopkeeper-recorded deliveries

Both add quantity × price_per_jar to current_month_bill. Only the
delivered counter is reset when the monthly payment succeeds.

Cap checks are enforced by a single conditional UPDATE so two requests
racing for the last jars cannot both succeed.
"""

import calendar
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from errors import (
    DuplicateActiveSubscription, InvalidQuantity, InvalidStatusTransition,
    MonthlyCapExceeded, PaymentNotDue, ShopNotFound, SubscriptionNotFound,
)
from models.order import Order
from models.shop import Shop
from models.subscription import SUBSCRIPTION_PLANS, Subscription, SubscriptionDelivery
from services.invoices import generate_monthly_invoice
from services.notifications import send_notification
from services.orders import generate_order_number
from services.payments import PaymentResult, initiate_payment, to_money

logger = logging.getLogger(__name__)

FREQUENCY_DAYS = {"weekly": 7, "bi-weekly": 14}

# Allowed status moves; cancelled is terminal
STATUS_TRANSITIONS = {
    "active": {"paused", "cancelled"},
    "paused": {"active", "cancelled"},
    "cancelled": set(),
}


@dataclass
class JarOrderResult:
    order: Order
    subscription: Subscription
    remaining_jars: int


@dataclass
class DeliveryResult:
    subscription: Subscription
    delivery: SubscriptionDelivery
    remaining_jars: int


@dataclass
class SettlementResult:
    payment: PaymentResult
    subscription: Subscription
    invoice: dict | None = field(default=None)


# ── Pure helpers ───────────────────────────────────────────

def jars_for_plan(plan: str) -> int:
    """'15-jars' → 15."""
    if plan not in SUBSCRIPTION_PLANS:
        raise ValueError(f"Unknown plan: {plan}")
    return int(plan.split("-")[0])


def add_months(dt: datetime, months: int = 1) -> datetime:
    """Calendar month offset; the day is clamped to the target month's end."""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def next_delivery_after(start: datetime, frequency: str) -> datetime:
    if frequency == "monthly":
        return add_months(start, 1)
    if frequency not in FREQUENCY_DAYS:
        raise ValueError(f"Unknown delivery frequency: {frequency}")
    return start + timedelta(days=FREQUENCY_DAYS[frequency])


def as_utc_naive(dt: datetime | None) -> datetime | None:
    """Postgres hands back aware datetimes, SQLite naive ones; compare as naive UTC."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def remaining_to_order(sub: Subscription) -> int:
    return sub.jars_per_month - (sub.jars_ordered_this_month or 0)


def remaining_to_deliver(sub: Subscription) -> int:
    return sub.jars_per_month - (sub.jars_delivered_this_month or 0)


# ── Queries ────────────────────────────────────────────────

async def _active_subscription(db: AsyncSession, subscription_id: uuid.UUID, **scope) -> Subscription:
    stmt = select(Subscription).where(
        Subscription.id == subscription_id,
        Subscription.status == "active",
    )
    for column, value in scope.items():
        stmt = stmt.where(getattr(Subscription, column) == value)
    sub = (await db.execute(stmt)).scalar_one_or_none()
    if not sub:
        raise SubscriptionNotFound()
    return sub


async def _has_other_active(
    db: AsyncSession, user_id: uuid.UUID, shop_id: uuid.UUID, exclude_id: uuid.UUID | None = None,
) -> bool:
    stmt = select(Subscription.id).where(
        Subscription.user_id == user_id,
        Subscription.shop_id == shop_id,
        Subscription.status == "active",
    )
    if exclude_id is not None:
        stmt = stmt.where(Subscription.id != exclude_id)
    return (await db.execute(stmt.limit(1))).first() is not None


# ── Operations ─────────────────────────────────────────────

async def create_subscription(
    db: AsyncSession,
    user_id: uuid.UUID,
    shop_id: uuid.UUID,
    plan: str,
    delivery_address: dict,
    delivery_frequency: str = "weekly",
    now: datetime | None = None,
) -> Subscription:
    """
    Create an active subscription with zeroed counters.

    Price is snapshotted from the shop; later shop price changes do not
    affect this subscription. The first payment is the caller's concern.
    """
    now = now or datetime.utcnow()
    shop = (await db.execute(
        select(Shop).where(Shop.id == shop_id, Shop.is_active.is_(True), Shop.is_verified.is_(True))
    )).scalar_one_or_none()
    if not shop:
        raise ShopNotFound()

    if await _has_other_active(db, user_id, shop_id):
        raise DuplicateActiveSubscription()

    jars = jars_for_plan(plan)
    price = to_money(shop.price_per_jar)
    sub = Subscription(
        user_id=user_id,
        shop_id=shop_id,
        plan=plan,
        jars_per_month=jars,
        price_per_jar=price,
        monthly_amount=to_money(jars * price),
        delivery_address=delivery_address,
        delivery_frequency=delivery_frequency,
        status="active",
        jars_ordered_this_month=0,
        jars_delivered_this_month=0,
        current_month_bill=to_money(0),
        start_date=now,
        next_delivery_date=next_delivery_after(now, delivery_frequency),
        next_payment_date=now + timedelta(days=settings.BILLING_CYCLE_DAYS),
    )
    db.add(sub)
    await db.commit()
    logger.info("Subscription %s created: user=%s shop=%s plan=%s", sub.id, user_id, shop_id, plan)
    return sub


async def order_jars(
    db: AsyncSession,
    user_id: uuid.UUID,
    subscription_id: uuid.UUID,
    quantity: int,
    now: datetime | None = None,
) -> JarOrderResult:
    """Consumer requests jars against the monthly allowance."""
    if quantity is None or quantity <= 0:
        raise InvalidQuantity()

    sub = await _active_subscription(db, subscription_id, user_id=user_id)
    if quantity > remaining_to_order(sub):
        raise MonthlyCapExceeded(remaining_to_order(sub))

    amount = to_money(quantity * to_money(sub.price_per_jar))
    result = await db.execute(
        update(Subscription)
        .where(
            Subscription.id == sub.id,
            Subscription.status == "active",
            Subscription.jars_ordered_this_month + quantity <= Subscription.jars_per_month,
        )
        .values(
            jars_ordered_this_month=Subscription.jars_ordered_this_month + quantity,
            current_month_bill=Subscription.current_month_bill + amount,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # Lost a race: report from a fresh read
        await db.rollback()
        await db.refresh(sub)
        if sub.status != "active":
            raise SubscriptionNotFound()
        raise MonthlyCapExceeded(remaining_to_order(sub))

    now = now or datetime.utcnow()
    order = Order(
        order_number=generate_order_number(),
        user_id=user_id,
        shop_id=sub.shop_id,
        order_type="subscription",
        subscription_id=sub.id,
        subscription_plan=sub.plan,
        quantity=quantity,
        price_per_jar=to_money(sub.price_per_jar),
        total_amount=amount,
        delivery_address=sub.delivery_address,
        status="pending",
        payment_status="pending",
        payment_method="subscription",
        notes=f"Subscription order - {sub.plan} plan",
        estimated_delivery_time=now + timedelta(minutes=settings.ESTIMATED_DELIVERY_MINUTES),
    )
    db.add(order)
    await db.commit()
    await db.refresh(sub)

    logger.info(
        "Subscription %s: ordered %d jars (%d/%d this month)",
        sub.id, quantity, sub.jars_ordered_this_month, sub.jars_per_month,
    )
    await send_notification(
        db, type="new_order", user_id=user_id, shop_id=sub.shop_id,
        order_number=order.order_number, amount=amount,
        message=f"New subscription order #{order.order_number} for {quantity} jars from {sub.plan} plan",
    )
    return JarOrderResult(order=order, subscription=sub, remaining_jars=remaining_to_order(sub))


async def record_delivery(
    db: AsyncSession,
    shop_id: uuid.UUID,
    subscription_id: uuid.UUID,
    quantity: int,
    notes: str | None = None,
    now: datetime | None = None,
) -> DeliveryResult:
    """Shopkeeper records jars handed over against a subscription."""
    if quantity is None or quantity <= 0:
        raise InvalidQuantity()

    sub = await _active_subscription(db, subscription_id, shop_id=shop_id)
    if quantity > remaining_to_deliver(sub):
        raise MonthlyCapExceeded(remaining_to_deliver(sub))

    amount = to_money(quantity * to_money(sub.price_per_jar))
    result = await db.execute(
        update(Subscription)
        .where(
            Subscription.id == sub.id,
            Subscription.status == "active",
            Subscription.jars_delivered_this_month + quantity <= Subscription.jars_per_month,
        )
        .values(
            jars_delivered_this_month=Subscription.jars_delivered_this_month + quantity,
            current_month_bill=Subscription.current_month_bill + amount,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        await db.refresh(sub)
        if sub.status != "active":
            raise SubscriptionNotFound()
        raise MonthlyCapExceeded(remaining_to_deliver(sub))

    delivery = SubscriptionDelivery(
        subscription_id=sub.id,
        delivered_at=now or datetime.utcnow(),
        quantity=quantity,
        amount=amount,
        notes=notes,
    )
    db.add(delivery)
    await db.commit()
    await db.refresh(sub)

    logger.info(
        "Subscription %s: delivered %d jars (%d/%d this month)",
        sub.id, quantity, sub.jars_delivered_this_month, sub.jars_per_month,
    )
    return DeliveryResult(subscription=sub, delivery=delivery, remaining_jars=remaining_to_deliver(sub))


async def settle_monthly_cycle(
    db: AsyncSession,
    user_id: uuid.UUID,
    subscription_id: uuid.UUID,
    now: datetime | None = None,
) -> SettlementResult:
    """
    Auto-debit the monthly amount once the payment date has passed.

    The cycle is claimed by moving next_payment_date forward in a single
    conditional UPDATE before anything is charged, so only one caller
    can settle a given cycle. On success the delivered counter resets.
    On failure the old payment date is put back; calling again retries.
    """
    now = as_utc_naive(now or datetime.utcnow())
    sub = await _active_subscription(db, subscription_id, user_id=user_id)

    due = as_utc_naive(sub.next_payment_date)
    if due is not None and due > now:
        raise PaymentNotDue()

    next_due = now + timedelta(days=settings.BILLING_CYCLE_DAYS)
    claim = await db.execute(
        update(Subscription)
        .where(
            Subscription.id == sub.id,
            Subscription.status == "active",
            or_(Subscription.next_payment_date.is_(None), Subscription.next_payment_date <= now),
        )
        .values(next_payment_date=next_due, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if claim.rowcount == 0:
        # Another caller settled this cycle first
        await db.rollback()
        await db.refresh(sub)
        if sub.status != "active":
            raise SubscriptionNotFound()
        raise PaymentNotDue()
    await db.commit()

    payment = await initiate_payment(
        db,
        amount=sub.monthly_amount,
        payment_method="auto",
        user_id=user_id,
        shop_id=sub.shop_id,
        subscription_id=sub.id,
        success_rate=settings.AUTO_DEBIT_SUCCESS_RATE,
    )

    invoice = None
    if payment.success:
        await db.refresh(sub)
        invoice = generate_monthly_invoice(sub, payment.record, now)
        payment.record.invoice_number = invoice["invoice_number"]
        payment.record.invoice_url = invoice["invoice_url"]
        payment.invoice_url = invoice["invoice_url"]

        sub.last_payment_date = now
        sub.jars_delivered_this_month = 0
        await db.commit()
        logger.info("Subscription %s: monthly cycle settled, next due %s", sub.id, sub.next_payment_date)
    else:
        await db.execute(
            update(Subscription)
            .where(Subscription.id == sub.id, Subscription.next_payment_date == next_due)
            .values(next_payment_date=due)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        await db.refresh(sub)
        logger.warning("Subscription %s: monthly payment failed (%s)", sub.id, payment.error)

    await send_notification(
        db,
        type="monthly_payment_success" if payment.success else "monthly_payment_failed",
        user_id=user_id,
        amount=sub.monthly_amount,
    )
    return SettlementResult(payment=payment, subscription=sub, invoice=invoice)


async def mark_subscription_paid(db: AsyncSession, sub: Subscription, now: datetime | None = None) -> None:
    """Advance the payment dates after an out-of-cycle payment."""
    now = now or datetime.utcnow()
    sub.last_payment_date = now
    sub.next_payment_date = now + timedelta(days=settings.BILLING_CYCLE_DAYS)
    await db.commit()


async def change_status(
    db: AsyncSession,
    user_id: uuid.UUID,
    subscription_id: uuid.UUID,
    status: str,
) -> Subscription:
    """Pause, resume or cancel a subscription owned by the caller."""
    sub = (await db.execute(
        select(Subscription).where(Subscription.id == subscription_id, Subscription.user_id == user_id)
    )).scalar_one_or_none()
    if not sub:
        raise SubscriptionNotFound("Subscription not found")

    if status == sub.status:
        return sub
    if status not in STATUS_TRANSITIONS.get(sub.status, set()):
        raise InvalidStatusTransition(f"Cannot change subscription from {sub.status} to {status}")

    if status == "active" and await _has_other_active(db, user_id, sub.shop_id, exclude_id=sub.id):
        raise DuplicateActiveSubscription()

    previous = sub.status
    sub.status = status
    await db.commit()
    logger.info("Subscription %s: %s → %s", sub.id, previous, status)
    return sub
