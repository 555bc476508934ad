"""
Read-side queries that join records into the view models the API returns.

Joins are written out explicitly so each listing loads exactly the
columns it shows and never triggers lazy loads on an async session.
"""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.order import Order
from models.shop import Shop
from models.subscription import Subscription, SubscriptionDelivery
from models.user import User
from schemas import CustomerSummary, DeliveryRecord, OrderView, ShopSummary, SubscriptionView


async def shop_orders(
    db: AsyncSession,
    shop_id: uuid.UUID,
    status: str | None = None,
    order_type: str | None = None,
    limit: int = 100,
) -> list[OrderView]:
    """Orders for a shop, newest first, with customer details."""
    stmt = (
        select(Order, User)
        .join(User, Order.user_id == User.id)
        .where(Order.shop_id == shop_id)
    )
    if status:
        stmt = stmt.where(Order.status == status)
    if order_type:
        stmt = stmt.where(Order.order_type == order_type)
    rows = (await db.execute(stmt.order_by(Order.created_at.desc()).limit(limit))).all()

    views = []
    for order, user in rows:
        view = OrderView.model_validate(order)
        view.customer = CustomerSummary.model_validate(user)
        views.append(view)
    return views


async def shop_subscriptions(
    db: AsyncSession,
    shop_id: uuid.UUID,
    status: str | None = None,
) -> list[SubscriptionView]:
    """Subscriptions held at a shop, with customer details."""
    stmt = (
        select(Subscription, User)
        .join(User, Subscription.user_id == User.id)
        .where(Subscription.shop_id == shop_id)
    )
    if status:
        stmt = stmt.where(Subscription.status == status)
    rows = (await db.execute(stmt.order_by(Subscription.created_at.desc()))).all()

    views = []
    for sub, user in rows:
        view = SubscriptionView.model_validate(sub)
        view.customer = CustomerSummary.model_validate(user)
        views.append(view)
    return views


async def user_orders(
    db: AsyncSession,
    user_id: uuid.UUID,
    page: int = 1,
    limit: int = 20,
    order_type: str | None = None,
) -> tuple[list[OrderView], int]:
    """One page of a customer's orders with shop summaries, plus the total count."""
    filters = [Order.user_id == user_id]
    if order_type:
        filters.append(Order.order_type == order_type)

    total = (await db.execute(select(func.count(Order.id)).where(*filters))).scalar() or 0
    rows = (await db.execute(
        select(Order, Shop)
        .join(Shop, Order.shop_id == Shop.id)
        .where(*filters)
        .order_by(Order.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )).all()

    views = []
    for order, shop in rows:
        view = OrderView.model_validate(order)
        view.shop = ShopSummary.model_validate(shop)
        views.append(view)
    return views, total


async def user_subscriptions(db: AsyncSession, user_id: uuid.UUID) -> list[SubscriptionView]:
    rows = (await db.execute(
        select(Subscription, Shop)
        .join(Shop, Subscription.shop_id == Shop.id)
        .where(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc())
    )).all()

    views = []
    for sub, shop in rows:
        view = SubscriptionView.model_validate(sub)
        view.shop = ShopSummary.model_validate(shop)
        views.append(view)
    return views


async def delivery_history(db: AsyncSession, subscription_id: uuid.UUID) -> list[DeliveryRecord]:
    """Recorded deliveries, most recent first."""
    rows = (await db.execute(
        select(SubscriptionDelivery)
        .where(SubscriptionDelivery.subscription_id == subscription_id)
        .order_by(SubscriptionDelivery.delivered_at.desc(), SubscriptionDelivery.id.desc())
    )).scalars().all()
    return [DeliveryRecord.model_validate(d) for d in rows]
