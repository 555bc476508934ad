"""One-time jar orders and order status bookkeeping."""

import logging
import random
import string
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from errors import ShopNotFound
from models.order import Order, OrderEvent
from models.shop import Shop
from services.notifications import send_notification
from services.payments import PaymentResult, initiate_payment, to_money

logger = logging.getLogger(__name__)

# Status → notification type (anything else sends a generic update)
ORDER_STATUS_NOTIFICATIONS = {
    "out-for-delivery": "out_for_delivery",
    "delivered": "delivered",
}


@dataclass
class OneTimeOrderResult:
    order: Order
    payment: PaymentResult | None = None


def generate_order_number() -> str:
    """WJ<epoch ms><4 random digits>."""
    suffix = "".join(random.choices(string.digits, k=4))
    return f"WJ{int(time.time() * 1000)}{suffix}"


async def place_one_time_order(
    db: AsyncSession,
    user_id: uuid.UUID,
    shop_id: uuid.UUID,
    quantity: int,
    delivery_address: dict,
    payment_method: str,
    notes: str | None = None,
    now: datetime | None = None,
) -> OneTimeOrderResult:
    """
    Place a single order at the shop's current price.

    Non-cash orders are charged right away; a declined charge keeps the
    order with payment_status=failed so the customer can pay again later.
    """
    now = now or datetime.utcnow()
    shop = (await db.execute(
        select(Shop).where(Shop.id == shop_id, Shop.is_active.is_(True), Shop.is_verified.is_(True))
    )).scalar_one_or_none()
    if not shop:
        raise ShopNotFound()

    price = to_money(shop.price_per_jar)
    total = to_money(quantity * price)
    order = Order(
        order_number=generate_order_number(),
        user_id=user_id,
        shop_id=shop_id,
        order_type="one-time",
        quantity=quantity,
        price_per_jar=price,
        total_amount=total,
        delivery_address=delivery_address,
        status="pending",
        payment_status="pending",
        payment_method=payment_method,
        notes=notes,
        estimated_delivery_time=now + timedelta(minutes=settings.ESTIMATED_DELIVERY_MINUTES),
    )
    db.add(order)
    shop.total_orders = (shop.total_orders or 0) + 1
    await db.commit()
    logger.info("Order %s placed: %d jars from shop %s", order.order_number, quantity, shop_id)

    payment = None
    if payment_method != "cash":
        payment = await initiate_payment(
            db,
            amount=total,
            payment_method=payment_method,
            user_id=user_id,
            shop_id=shop_id,
            order_id=order.id,
        )
        order.payment_id = payment.payment_id
        if payment.success:
            order.payment_status = "paid"
            order.status = "confirmed"
        else:
            order.payment_status = "failed"
        await db.commit()

    await send_notification(
        db, type="order_placed", user_id=user_id, shop_id=shop_id,
        order_number=order.order_number, amount=total,
        message=f"New order #{order.order_number} placed for {quantity} jars",
    )
    return OneTimeOrderResult(order=order, payment=payment)


async def set_order_status(
    db: AsyncSession,
    order: Order,
    status: str,
    actor_type: str,
    actor_id: uuid.UUID | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Order:
    """
    Overwrite an order's status and append an audit event.

    Any status may be set (shops correct mistakes); the event log keeps
    the history. Delivered orders get their actual delivery time stamped.
    """
    previous = order.status
    order.status = status
    if notes:
        order.notes = notes
    if status == "delivered":
        order.actual_delivery_time = now or datetime.utcnow()
    db.add(OrderEvent(
        order_id=order.id,
        from_status=previous,
        to_status=status,
        actor_type=actor_type,
        actor_id=actor_id,
    ))
    await db.commit()
    logger.info("Order %s: %s → %s by %s", order.order_number, previous, status, actor_type)

    await send_notification(
        db,
        type=ORDER_STATUS_NOTIFICATIONS.get(status, "order_status"),
        user_id=order.user_id,
        order_number=order.order_number,
        message=f"Your order #{order.order_number} is now {status.replace('-', ' ')}.",
    )
    return order
