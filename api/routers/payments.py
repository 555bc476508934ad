"""
Payment endpoints backed by the simulated gateway.

  initiate → pay an existing order or subscription (90% success)
  monthly  → subscription auto-debit once the cycle is due (95% success)
  history  → the caller's payments
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from dependencies import get_current_user
from errors import OrderAlreadyPaid, OrderNotFound, SubscriptionNotFound, ValidationFailed
from models.order import Order
from models.payment import Payment
from models.subscription import Subscription
from models.user import User
from schemas import (
    MonthlyPaymentRequest, MonthlyPaymentResponse, PaymentInitiateRequest,
    PaymentOutcome, PaymentResponse,
)
from services import accrual
from services.notifications import send_notification
from services.payments import initiate_payment

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/initiate")
async def pay(
    data: PaymentInitiateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Charge an order or subscription owned by the caller.

    Success marks the order paid and confirmed, or advances the
    subscription's payment dates.
    """
    if bool(data.order_id) == bool(data.subscription_id):
        raise ValidationFailed("Provide exactly one of order_id or subscription_id")

    order = subscription = None
    if data.order_id:
        order = (await db.execute(
            select(Order).where(Order.id == data.order_id, Order.user_id == user.id)
        )).scalar_one_or_none()
        if not order:
            raise OrderNotFound()
        if order.payment_status == "paid":
            raise OrderAlreadyPaid()
        shop_id, amount = order.shop_id, order.total_amount
    else:
        subscription = (await db.execute(
            select(Subscription).where(Subscription.id == data.subscription_id, Subscription.user_id == user.id)
        )).scalar_one_or_none()
        if not subscription:
            raise SubscriptionNotFound("Subscription not found")
        shop_id, amount = subscription.shop_id, subscription.monthly_amount

    result = await initiate_payment(
        db,
        amount=amount,
        payment_method=data.payment_method.value,
        user_id=user.id,
        shop_id=shop_id,
        order_id=data.order_id,
        subscription_id=data.subscription_id,
    )

    if result.success:
        if order:
            order.payment_id = result.payment_id
            order.payment_status = "paid"
            order.status = "confirmed"
            await db.commit()
        if subscription:
            await accrual.mark_subscription_paid(db, subscription)
    elif order:
        order.payment_id = result.payment_id
        order.payment_status = "failed"
        await db.commit()

    await send_notification(
        db,
        type="payment_success" if result.success else "payment_failed",
        user_id=user.id,
        shop_id=shop_id,
        order_number=order.order_number if order else None,
        amount=amount,
    )
    return {
        "success": result.success,
        "message": "Payment successful" if result.success else "Payment failed",
        "payment": PaymentOutcome.model_validate(result),
    }


@router.post("/monthly", response_model=MonthlyPaymentResponse)
async def monthly_payment(
    data: MonthlyPaymentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    settlement = await accrual.settle_monthly_cycle(db, user.id, data.subscription_id)
    payment = settlement.payment
    return MonthlyPaymentResponse(
        success=payment.success,
        message="Monthly payment processed successfully" if payment.success else "Monthly payment failed",
        payment=PaymentOutcome.model_validate(payment),
        next_payment_date=settlement.subscription.next_payment_date,
        invoice=settlement.invoice,
    )


@router.get("/history", response_model=list[PaymentResponse])
async def payment_history(
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Payment)
        .where(Payment.user_id == user.id)
        .order_by(Payment.created_at.desc())
        .limit(limit)
    )
    return result.scalars().all()
