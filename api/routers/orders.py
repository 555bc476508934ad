"""Order and subscription endpoints for customers."""

import logging
import math
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from dependencies import get_current_user
from errors import SubscriptionNotFound
from models.shop import Shop
from models.subscription import Subscription
from models.user import User
from schemas import (
    OneTimeOrderCreate, OneTimeOrderResponse, OrderHistoryResponse, OrderJarsRequest,
    OrderJarsResponse, OrderResponse, OrderType, Pagination, PaymentOutcome,
    ShopSummary, SubscriptionCounters, SubscriptionCreate, SubscriptionCreateResponse,
    SubscriptionDetailResponse, SubscriptionResponse, SubscriptionStatusUpdate,
)
from services import accrual, repository
from services.notifications import send_notification
from services.orders import place_one_time_order
from services.payments import initiate_payment

router = APIRouter()
logger = logging.getLogger(__name__)


def _counters(sub: Subscription, remaining: int) -> SubscriptionCounters:
    return SubscriptionCounters(
        jars_per_month=sub.jars_per_month,
        jars_ordered_this_month=sub.jars_ordered_this_month,
        jars_delivered_this_month=sub.jars_delivered_this_month,
        current_month_bill=sub.current_month_bill,
        remaining_jars=remaining,
    )


@router.post("/one-time", response_model=OneTimeOrderResponse, status_code=201)
async def create_one_time_order(
    data: OneTimeOrderCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await place_one_time_order(
        db,
        user_id=user.id,
        shop_id=data.shop_id,
        quantity=data.quantity,
        delivery_address=data.delivery_address.model_dump(exclude_none=True),
        payment_method=data.payment_method.value,
        notes=data.notes,
    )
    payment = PaymentOutcome.model_validate(result.payment) if result.payment else None
    message = "Order placed successfully"
    if payment and not payment.success:
        message = "Order placed but payment failed"
    return OneTimeOrderResponse(
        message=message,
        order=OrderResponse.model_validate(result.order),
        payment_required=data.payment_method.value != "cash",
        payment=payment,
    )


@router.post("/subscription", response_model=SubscriptionCreateResponse, status_code=201)
async def create_subscription(
    data: SubscriptionCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Start a monthly plan and charge the first month.

    The subscription stays active even if the first charge is declined;
    the response reports the failed payment.
    """
    sub = await accrual.create_subscription(
        db,
        user_id=user.id,
        shop_id=data.shop_id,
        plan=data.plan.value,
        delivery_address=data.delivery_address.model_dump(exclude_none=True),
        delivery_frequency=data.delivery_frequency.value,
    )

    payment = await initiate_payment(
        db,
        amount=sub.monthly_amount,
        payment_method=data.payment_method.value,
        user_id=user.id,
        shop_id=sub.shop_id,
        subscription_id=sub.id,
    )
    if payment.success:
        await send_notification(
            db, type="subscription_created", user_id=user.id, shop_id=sub.shop_id,
            amount=sub.monthly_amount, message=f"New {sub.plan} subscription created",
        )
        message = "Subscription created successfully"
    else:
        await send_notification(db, type="payment_failed", user_id=user.id, amount=sub.monthly_amount)
        message = "Subscription created but payment failed"

    return SubscriptionCreateResponse(
        message=message,
        subscription=SubscriptionResponse.model_validate(sub),
        payment=PaymentOutcome.model_validate(payment),
    )


@router.post("/subscription/order-jars", response_model=OrderJarsResponse, status_code=201)
async def order_subscription_jars(
    data: OrderJarsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await accrual.order_jars(db, user.id, data.subscription_id, data.quantity)
    return OrderJarsResponse(
        message="Jars ordered successfully",
        order=OrderResponse.model_validate(result.order),
        subscription=_counters(result.subscription, result.remaining_jars),
    )


@router.get("/subscription/{subscription_id}", response_model=SubscriptionDetailResponse)
async def get_subscription(
    subscription_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    sub = (await db.execute(
        select(Subscription).where(Subscription.id == subscription_id, Subscription.user_id == user.id)
    )).scalar_one_or_none()
    if not sub:
        raise SubscriptionNotFound("Subscription not found")

    shop = await db.get(Shop, sub.shop_id)
    return SubscriptionDetailResponse(
        subscription=SubscriptionResponse.model_validate(sub),
        shop=ShopSummary.model_validate(shop) if shop else None,
        delivery_history=await repository.delivery_history(db, sub.id),
        remaining_to_order=accrual.remaining_to_order(sub),
        remaining_to_deliver=accrual.remaining_to_deliver(sub),
    )


@router.patch("/subscription/{subscription_id}/status", response_model=SubscriptionResponse)
async def update_subscription_status(
    subscription_id: uuid.UUID,
    data: SubscriptionStatusUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Pause, resume or cancel."""
    return await accrual.change_status(db, user.id, subscription_id, data.status.value)


@router.get("/history", response_model=OrderHistoryResponse)
async def order_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: OrderType | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await repository.user_orders(
        db, user.id, page=page, limit=limit, order_type=type.value if type else None,
    )
    subscriptions = await repository.user_subscriptions(db, user.id)
    return OrderHistoryResponse(
        orders=orders,
        subscriptions=subscriptions,
        pagination=Pagination(
            current=page,
            total=math.ceil(total / limit),
            has_next=page * limit < total,
        ),
    )
