"""Shop signup, phone login and the lightweight shop dashboard."""

import logging
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from dependencies import get_current_shop
from errors import (
    AlreadyExists, InvalidCredentials, InvalidStatusTransition, OrderNotFound, ShopNotFound, UpstreamFailure,
)
from models.order import Order
from models.shop import Shop
from schemas import (
    OrderResponse, OrderStatus, OrderView, PhoneRequest, ShopLoginResponse, ShopResponse,
    ShopSignup, ShopSignupResponse, SubscriptionStatus, SubscriptionView, VerifyOTPRequest,
)
from services import repository
from services.auth import create_access_token
from services.orders import set_order_status
from services.otp import OTPStore, get_otp_store, send_otp, verify_otp
from services.payments import to_money

router = APIRouter()
logger = logging.getLogger(__name__)


async def _shop_by_phone(db: AsyncSession, phone_number: str) -> Shop:
    shop = (await db.execute(select(Shop).where(Shop.phone_number == phone_number))).scalar_one_or_none()
    if not shop:
        raise ShopNotFound("Shop not found. Please register first.")
    return shop


@router.post("/signup", response_model=ShopSignupResponse, status_code=201)
async def signup(
    data: ShopSignup,
    db: AsyncSession = Depends(get_db),
    store: OTPStore = Depends(get_otp_store),
):
    """Register a shop that logs in by phone OTP. Verification is left to an operator."""
    email = data.email.lower() if data.email else None
    clauses = [Shop.phone_number == data.phone_number, Shop.gst_number == data.gst_number]
    if email:
        clauses.append(Shop.email == email)
    if (await db.execute(select(Shop.id).where(or_(*clauses)))).first():
        raise AlreadyExists("Shop already exists with this phone number or GST number")

    shop = Shop(
        phone_number=data.phone_number,
        email=email,
        shop_name=data.shop_name,
        owner_name=data.owner_name,
        address=data.address,
        city=data.city,
        state=data.state,
        pincode=data.pincode,
        latitude=data.latitude,
        longitude=data.longitude,
        gst_number=data.gst_number,
        photo_url=data.photo_url,
        price_per_jar=to_money(data.price_per_jar),
    )
    db.add(shop)
    await db.commit()
    logger.info("Shop %s signed up (%s)", shop.id, shop.phone_number)

    if not await send_otp(data.phone_number, store):
        raise UpstreamFailure("Shop registered but failed to send OTP. Please contact support.")
    return ShopSignupResponse(
        message="Shop registered successfully. OTP sent for verification.",
        shop_id=shop.id,
        shop_name=shop.shop_name,
        phone_number=shop.phone_number,
    )


@router.post("/send-otp")
async def send_shop_otp(
    data: PhoneRequest,
    db: AsyncSession = Depends(get_db),
    store: OTPStore = Depends(get_otp_store),
):
    await _shop_by_phone(db, data.phone_number)
    if not await send_otp(data.phone_number, store):
        raise UpstreamFailure("Failed to send OTP. Please try again.")
    return {"success": True, "message": "OTP sent to your phone number successfully."}


@router.post("/login", response_model=ShopLoginResponse)
async def shop_login(
    data: VerifyOTPRequest,
    db: AsyncSession = Depends(get_db),
    store: OTPStore = Depends(get_otp_store),
):
    shop = await _shop_by_phone(db, data.phone_number)
    result = await verify_otp(data.phone_number, data.otp, store)
    if not result["valid"]:
        raise InvalidCredentials(result.get("error") or "Invalid OTP. Please try again.")

    logger.info("Shop %s logged in", shop.id)
    return ShopLoginResponse(
        token=create_access_token(shop.id, "shop"),
        shop=ShopResponse.model_validate(shop),
    )


@router.get("/orders", response_model=list[OrderView])
async def list_orders(
    status: OrderStatus | None = None,
    limit: int = Query(50, ge=1, le=200),
    shop: Shop = Depends(get_current_shop),
    db: AsyncSession = Depends(get_db),
):
    return await repository.shop_orders(db, shop.id, status=status.value if status else None, limit=limit)


@router.put("/order/{order_id}/deliver", response_model=OrderResponse)
async def mark_delivered(
    order_id: uuid.UUID,
    shop: Shop = Depends(get_current_shop),
    db: AsyncSession = Depends(get_db),
):
    order = (await db.execute(
        select(Order).where(Order.id == order_id, Order.shop_id == shop.id)
    )).scalar_one_or_none()
    if not order:
        raise OrderNotFound()
    if order.status == "delivered":
        raise InvalidStatusTransition("Order already marked as delivered")

    shop.monthly_revenue = to_money(shop.monthly_revenue) + to_money(order.total_amount)
    return await set_order_status(db, order, "delivered", actor_type="SHOP", actor_id=shop.id)


@router.get("/subscriptions", response_model=list[SubscriptionView])
async def list_subscriptions(
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    shop: Shop = Depends(get_current_shop),
    db: AsyncSession = Depends(get_db),
):
    return await repository.shop_subscriptions(db, shop.id, status=status.value)
