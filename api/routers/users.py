"""Customer auth, shop discovery and complaints."""

import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db.database import get_db
from dependencies import get_current_user
from errors import TooManyAttempts, UpstreamFailure, UserNotFound, ValidationFailed
from models.complaint import Complaint
from models.order import Order
from models.shop import Shop
from models.user import User
from schemas import (
    ComplaintCreate, ComplaintResponse, NearbyShop, PhoneRequest,
    SendOTPRequest, TokenResponse, UserResponse, VerifyOTPRequest,
)
from services.accrual import as_utc_naive
from services.auth import create_access_token
from services.maps import haversine_distance
from services.otp import OTPStore, get_otp_store, resend_otp, send_otp, verify_otp

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_SHOPS = 50


def _is_blocked(user: User, now: datetime) -> bool:
    blocked_until = as_utc_naive(user.otp_blocked_until)
    return blocked_until is not None and blocked_until > now


def _shop_view(shop: Shop, distance_km: float | None = None) -> NearbyShop:
    view = NearbyShop.model_validate(shop)
    view.distance_km = distance_km
    view.is_open = shop.is_open()
    return view


# ── OTP login ──────────────────────────────────────────────

@router.post("/send-otp")
async def send_login_otp(
    data: SendOTPRequest,
    db: AsyncSession = Depends(get_db),
    store: OTPStore = Depends(get_otp_store),
):
    """Create the user on first contact, then text a login code."""
    user = (await db.execute(
        select(User).where(User.phone_number == data.phone_number)
    )).scalar_one_or_none()

    if not user:
        user = User(phone_number=data.phone_number, pincode=data.pincode or "000000")
        db.add(user)
        await db.commit()
        logger.info("User created: phone=%s", data.phone_number)
    elif data.pincode and user.pincode != data.pincode:
        user.pincode = data.pincode
        await db.commit()

    if _is_blocked(user, datetime.utcnow()):
        raise TooManyAttempts()

    if not await send_otp(data.phone_number, store):
        raise UpstreamFailure("Failed to send OTP. Please try again.")

    return {
        "success": True,
        "message": "OTP sent to your phone number successfully.",
        "user_id": user.id,
        "phone_number": user.phone_number,
        "pincode": user.pincode,
    }


@router.post("/verify-otp", response_model=TokenResponse)
async def verify_login_otp(
    data: VerifyOTPRequest,
    db: AsyncSession = Depends(get_db),
    store: OTPStore = Depends(get_otp_store),
):
    """Exchange a valid code for a user token; repeated failures block the phone."""
    user = (await db.execute(
        select(User).where(User.phone_number == data.phone_number)
    )).scalar_one_or_none()
    if not user:
        raise UserNotFound("User not found. Please request OTP first.")

    now = datetime.utcnow()
    if _is_blocked(user, now):
        raise TooManyAttempts()

    result = await verify_otp(data.phone_number, data.otp, store)
    if not result["valid"]:
        user.otp_attempts = (user.otp_attempts or 0) + 1
        if user.otp_attempts >= settings.LOGIN_MAX_FAILURES:
            user.otp_blocked_until = now + timedelta(minutes=settings.LOGIN_BLOCK_MINUTES)
            logger.warning("User %s blocked after %d failed OTP attempts", user.phone_number, user.otp_attempts)
        await db.commit()
        raise ValidationFailed(result.get("error") or "Invalid OTP. Please try again.")

    user.otp_attempts = 0
    user.otp_blocked_until = None
    user.last_login = now
    await db.commit()

    return TokenResponse(
        token=create_access_token(user.id, "user"),
        user=UserResponse.model_validate(user),
    )


@router.post("/resend-otp")
async def resend_login_otp(
    data: PhoneRequest,
    db: AsyncSession = Depends(get_db),
    store: OTPStore = Depends(get_otp_store),
):
    user = (await db.execute(
        select(User).where(User.phone_number == data.phone_number)
    )).scalar_one_or_none()
    if not user:
        raise UserNotFound("User not found. Please request OTP first.")
    if _is_blocked(user, datetime.utcnow()):
        raise TooManyAttempts()

    if not await resend_otp(data.phone_number, store):
        raise TooManyAttempts(
            f"Please wait {settings.OTP_RESEND_COOLDOWN_SECONDS} seconds before requesting a new OTP."
        )
    return {"success": True, "message": "OTP resent successfully."}


# ── Shop discovery ─────────────────────────────────────────

@router.get("/shops")
async def nearby_shops(
    latitude: float | None = Query(None, ge=-90, le=90),
    longitude: float | None = Query(None, ge=-180, le=180),
    radius: float = Query(10, gt=0, le=100),
    pincode: str | None = None,
    city: str | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Active verified shops. Filter priority: pincode, then city, then coordinates."""
    stmt = select(Shop).where(Shop.is_active.is_(True), Shop.is_verified.is_(True))

    if pincode:
        search_type = "pincode"
        shops = (await db.execute(stmt.where(Shop.pincode == pincode).limit(MAX_SHOPS))).scalars().all()
        views = [_shop_view(s) for s in shops]
    elif city:
        search_type = "city"
        shops = (await db.execute(
            stmt.where(func.lower(Shop.city) == city.strip().lower()).limit(MAX_SHOPS)
        )).scalars().all()
        views = [_shop_view(s) for s in shops]
    elif latitude is not None and longitude is not None:
        search_type = "coordinates"
        shops = (await db.execute(stmt)).scalars().all()
        nearby = []
        for s in shops:
            d = haversine_distance(latitude, longitude, s.latitude, s.longitude)
            if d <= radius:
                nearby.append((d, s))
        nearby.sort(key=lambda pair: pair[0])
        views = [_shop_view(s, d) for d, s in nearby[:MAX_SHOPS]]
    else:
        search_type = "all"
        shops = (await db.execute(stmt.limit(MAX_SHOPS))).scalars().all()
        views = [_shop_view(s) for s in shops]

    return {"success": True, "shops": views, "total": len(views), "search_type": search_type}


@router.get("/shops/by-pincode")
async def shops_by_pincode(
    pincode: str = Query(..., pattern=r"^\d{6}$"),
    db: AsyncSession = Depends(get_db),
):
    shops = (await db.execute(
        select(Shop).where(Shop.pincode == pincode, Shop.is_active.is_(True))
    )).scalars().all()
    return {
        "success": True,
        "shops": [_shop_view(s) for s in shops],
        "total": len(shops),
        "pincode": pincode,
    }


@router.get("/shops/by-location")
async def shops_by_location(
    state: str | None = None,
    pincode: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Text match on state / pincode across the shop's address fields."""
    if not state and not pincode:
        raise ValidationFailed("state or pincode is required")

    stmt = select(Shop).where(Shop.is_active.is_(True), Shop.is_verified.is_(True))
    if state:
        pattern = f"%{state.strip().lower()}%"
        stmt = stmt.where(or_(func.lower(Shop.state).like(pattern), func.lower(Shop.address).like(pattern)))
    if pincode:
        stmt = stmt.where(or_(Shop.pincode == pincode, Shop.address.like(f"%{pincode}%")))

    shops = (await db.execute(stmt.limit(MAX_SHOPS))).scalars().all()
    views = [_shop_view(s) for s in shops]
    return {"success": True, "shops": views, "total": len(views)}


# ── Complaints ─────────────────────────────────────────────

@router.post("/complaints", response_model=ComplaintResponse, status_code=201)
async def submit_complaint(
    data: ComplaintCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Shop comes from the body, else the referenced order, else the latest order."""
    shop_id = data.shop_id
    if not shop_id and data.order_id:
        order = await db.get(Order, data.order_id)
        shop_id = order.shop_id if order and order.user_id == user.id else None
    if not shop_id:
        shop_id = (await db.execute(
            select(Order.shop_id)
            .where(Order.user_id == user.id)
            .order_by(Order.created_at.desc())
            .limit(1)
        )).scalar()
    if not shop_id:
        raise ValidationFailed("Could not determine shop for this complaint.")

    complaint = Complaint(
        user_id=user.id,
        order_id=data.order_id,
        shop_id=shop_id,
        subject=data.subject,
        description=data.description,
        priority=data.priority.value,
    )
    db.add(complaint)
    await db.commit()
    logger.info("Complaint %s submitted by user %s for shop %s", complaint.id, user.id, shop_id)
    return complaint
