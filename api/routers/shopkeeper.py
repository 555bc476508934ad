"""Shopkeeper accounts and the shop dashboard."""

import logging
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from dependencies import get_current_shopkeeper, get_shopkeeper_shop
from errors import (
    AlreadyExists, BusinessRuleViolation, ComplaintNotFound, Forbidden,
    InvalidCredentials, OrderNotFound, ShopkeeperNotFound, ShopNotFound,
)
from models.complaint import Complaint
from models.order import Order
from models.shop import Shop
from models.shopkeeper import Shopkeeper
from models.subscription import Subscription
from schemas import (
    ComplaintResponse, ComplaintStatus, ComplaintStatusUpdate, DeliveryCreate, DeliveryRecord,
    DeliveryResponse, EmailVerification, OrderResponse, OrderStats, OrderStatus, OrderStatusUpdate,
    ResendVerification, ShopkeeperAuthResponse, ShopkeeperLogin, ShopkeeperRegister,
    ShopkeeperResponse, ShopOrdersResponse, ShopResponse, ShopUpdate, SubscriptionCounters,
)
from services import accrual, repository
from services.auth import (
    check_verification_code, create_access_token, hash_password,
    issue_verification_code, verify_password,
)
from services.orders import set_order_status

router = APIRouter()
logger = logging.getLogger(__name__)


# ── Account ────────────────────────────────────────────────

@router.post("/register", response_model=ShopkeeperAuthResponse, status_code=201)
async def register(data: ShopkeeperRegister, db: AsyncSession = Depends(get_db)):
    """Create the shopkeeper and their shop, then log them straight in."""
    email = data.email.lower()

    existing = (await db.execute(
        select(Shopkeeper.id).where(or_(Shopkeeper.email == email, Shopkeeper.phone_number == data.phone_number))
    )).first()
    if existing:
        raise AlreadyExists("Shopkeeper already exists with this email or phone number")

    existing_shop = (await db.execute(
        select(Shop.id).where(or_(Shop.gst_number == data.gst_number, Shop.phone_number == data.phone_number))
    )).first()
    if existing_shop:
        raise AlreadyExists("Shop already exists with this GST number or phone number")

    shopkeeper = Shopkeeper(
        email=email,
        password_hash=hash_password(data.password),
        owner_name=data.owner_name,
        phone_number=data.phone_number,
        is_verified=True,
        is_active=True,
    )
    issue_verification_code(shopkeeper)
    db.add(shopkeeper)
    await db.flush()

    shop = Shop(
        shopkeeper_id=shopkeeper.id,
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
        price_per_jar=data.price_per_jar,
        is_active=True,
        is_verified=True,
    )
    db.add(shop)
    shopkeeper.last_login = datetime.utcnow()
    await db.commit()
    logger.info("Shopkeeper %s registered shop %s", shopkeeper.id, shop.id)

    return ShopkeeperAuthResponse(
        message="Shopkeeper and shop registered successfully! You are now logged in.",
        token=create_access_token(shopkeeper.id, "shopkeeper"),
        shopkeeper=ShopkeeperResponse.model_validate(shopkeeper),
        shop=ShopResponse.model_validate(shop),
    )


@router.post("/login", response_model=ShopkeeperAuthResponse)
async def login(data: ShopkeeperLogin, db: AsyncSession = Depends(get_db)):
    """
    Email/password login.

    Shops created before shopkeeper accounts existed are migrated on first
    login: the account is created from the shop record with the given password.
    """
    email = data.email.strip().lower()
    shopkeeper = (await db.execute(
        select(Shopkeeper).where(Shopkeeper.email == email)
    )).scalar_one_or_none()
    created_from_shop = False

    if not shopkeeper:
        legacy_shop = (await db.execute(select(Shop).where(Shop.email == email))).scalar_one_or_none()
        if legacy_shop:
            shopkeeper = Shopkeeper(
                email=email,
                password_hash=hash_password(data.password),
                owner_name=legacy_shop.owner_name or legacy_shop.shop_name or "Owner",
                phone_number=legacy_shop.phone_number,
                is_verified=True,
                is_active=True,
            )
            db.add(shopkeeper)
            await db.flush()
            legacy_shop.shopkeeper_id = shopkeeper.id
            created_from_shop = True
            logger.info("Migrated legacy shop %s to shopkeeper %s", legacy_shop.id, shopkeeper.id)

    if not shopkeeper:
        raise ShopkeeperNotFound("No account found with this email address")
    if not shopkeeper.is_active:
        raise Forbidden("Account is deactivated. Please contact support.")
    if not created_from_shop and not verify_password(data.password, shopkeeper.password_hash):
        raise InvalidCredentials("Invalid email or password")

    shopkeeper.is_verified = True
    shopkeeper.last_login = datetime.utcnow()

    shop = (await db.execute(select(Shop).where(Shop.shopkeeper_id == shopkeeper.id))).scalar_one_or_none()
    if not shop:
        shop = (await db.execute(select(Shop).where(Shop.email == email))).scalar_one_or_none()
        if shop and not shop.shopkeeper_id:
            shop.shopkeeper_id = shopkeeper.id
    await db.commit()

    if not shop:
        raise ShopNotFound("Shop details not found. Please contact support.")

    return ShopkeeperAuthResponse(
        message="Login successful",
        token=create_access_token(shopkeeper.id, "shopkeeper"),
        shopkeeper=ShopkeeperResponse.model_validate(shopkeeper),
        shop=ShopResponse.model_validate(shop),
    )


@router.post("/verify-email")
async def verify_email(data: EmailVerification, db: AsyncSession = Depends(get_db)):
    shopkeeper = (await db.execute(
        select(Shopkeeper).where(Shopkeeper.email == data.email.lower())
    )).scalar_one_or_none()
    if not shopkeeper:
        raise ShopkeeperNotFound()
    if shopkeeper.is_verified:
        raise BusinessRuleViolation("Email is already verified")

    valid = check_verification_code(shopkeeper, data.verification_code)
    if valid:
        shop = (await db.execute(select(Shop).where(Shop.shopkeeper_id == shopkeeper.id))).scalar_one_or_none()
        if shop:
            shop.is_verified = True
    await db.commit()

    if not valid:
        raise InvalidCredentials("Invalid or expired verification code")
    return {"success": True, "message": "Email verified successfully! You can now login.", "email": shopkeeper.email}


@router.post("/resend-verification")
async def resend_verification(data: ResendVerification, db: AsyncSession = Depends(get_db)):
    shopkeeper = (await db.execute(
        select(Shopkeeper).where(Shopkeeper.email == data.email.lower())
    )).scalar_one_or_none()
    if not shopkeeper:
        raise ShopkeeperNotFound()
    if shopkeeper.is_verified:
        raise BusinessRuleViolation("Email is already verified")

    code = issue_verification_code(shopkeeper)
    await db.commit()
    # No email provider yet; the code is only logged
    logger.info("Verification code for %s: %s", shopkeeper.email, code)
    return {"success": True, "message": "Verification code sent successfully", "email": shopkeeper.email}


@router.get("/profile")
async def profile(
    shopkeeper: Shopkeeper = Depends(get_current_shopkeeper),
    shop: Shop = Depends(get_shopkeeper_shop),
):
    return {
        "success": True,
        "shopkeeper": ShopkeeperResponse.model_validate(shopkeeper),
        "shop": ShopResponse.model_validate(shop),
        "total_orders": shop.total_orders,
        "monthly_revenue": shop.monthly_revenue,
    }


@router.put("/update-shop", response_model=ShopResponse)
async def update_shop(
    data: ShopUpdate,
    shopkeeper: Shopkeeper = Depends(get_current_shopkeeper),
    shop: Shop = Depends(get_shopkeeper_shop),
    db: AsyncSession = Depends(get_db),
):
    """Edit shop details. Existing subscriptions keep their snapshotted price."""
    if data.contact_number:
        taken = (await db.execute(
            select(Shop.id).where(Shop.phone_number == data.contact_number, Shop.id != shop.id)
        )).first() or (await db.execute(
            select(Shopkeeper.id).where(
                Shopkeeper.phone_number == data.contact_number, Shopkeeper.id != shopkeeper.id,
            )
        )).first()
        if taken:
            raise AlreadyExists("Phone number already registered to another shop")

    shop.shop_name = data.shop_name
    shop.price_per_jar = data.price_per_jar
    for field in ("photo_url", "address", "city", "pincode", "state"):
        value = getattr(data, field)
        if value is not None:
            setattr(shop, field, value)
    if data.contact_number:
        shop.phone_number = data.contact_number
        shopkeeper.phone_number = data.contact_number
    await db.commit()
    logger.info("Shop %s updated by shopkeeper %s", shop.id, shopkeeper.id)
    return shop


# ── Orders ─────────────────────────────────────────────────

@router.get("/orders", response_model=ShopOrdersResponse)
async def shop_orders(
    status: OrderStatus | None = None,
    limit: int = Query(100, ge=1, le=500),
    shop: Shop = Depends(get_shopkeeper_shop),
    db: AsyncSession = Depends(get_db),
):
    return ShopOrdersResponse(
        orders=await repository.shop_orders(db, shop.id, status=status.value if status else None, limit=limit),
        subscriptions=await repository.shop_subscriptions(db, shop.id),
    )


@router.get("/orders/stats", response_model=OrderStats)
async def order_stats(
    shop: Shop = Depends(get_shopkeeper_shop),
    db: AsyncSession = Depends(get_db),
):
    counts = dict((await db.execute(
        select(Order.status, func.count(Order.id)).where(Order.shop_id == shop.id).group_by(Order.status)
    )).all())
    today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    today_orders = (await db.execute(
        select(func.count(Order.id)).where(Order.shop_id == shop.id, Order.created_at >= today)
    )).scalar() or 0
    revenue = (await db.execute(
        select(func.coalesce(func.sum(Order.total_amount), 0))
        .where(Order.shop_id == shop.id, Order.status == "delivered")
    )).scalar()
    active_subs = (await db.execute(
        select(func.count(Subscription.id)).where(Subscription.shop_id == shop.id, Subscription.status == "active")
    )).scalar() or 0

    return OrderStats(
        total_orders=sum(counts.values()),
        pending_orders=counts.get("pending", 0),
        confirmed_orders=counts.get("confirmed", 0),
        delivered_orders=counts.get("delivered", 0),
        today_orders=today_orders,
        total_revenue=revenue or 0,
        active_subscriptions=active_subs,
    )


@router.put("/orders/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    data: OrderStatusUpdate,
    shopkeeper: Shopkeeper = Depends(get_current_shopkeeper),
    shop: Shop = Depends(get_shopkeeper_shop),
    db: AsyncSession = Depends(get_db),
):
    order = (await db.execute(
        select(Order).where(Order.id == order_id, Order.shop_id == shop.id)
    )).scalar_one_or_none()
    if not order:
        raise OrderNotFound()
    return await set_order_status(
        db, order, data.status.value, actor_type="SHOPKEEPER", actor_id=shopkeeper.id, notes=data.notes,
    )


# ── Subscriptions ──────────────────────────────────────────

@router.post("/subscriptions/{subscription_id}/deliver", response_model=DeliveryResponse)
async def record_subscription_delivery(
    subscription_id: uuid.UUID,
    data: DeliveryCreate,
    shop: Shop = Depends(get_shopkeeper_shop),
    db: AsyncSession = Depends(get_db),
):
    result = await accrual.record_delivery(db, shop.id, subscription_id, data.quantity, data.notes)
    sub = result.subscription
    return DeliveryResponse(
        message="Delivery recorded successfully",
        subscription=SubscriptionCounters(
            jars_per_month=sub.jars_per_month,
            jars_ordered_this_month=sub.jars_ordered_this_month,
            jars_delivered_this_month=sub.jars_delivered_this_month,
            current_month_bill=sub.current_month_bill,
            remaining_jars=result.remaining_jars,
        ),
        last_delivery=DeliveryRecord.model_validate(result.delivery),
    )


# ── Complaints ─────────────────────────────────────────────

@router.get("/complaints", response_model=list[ComplaintResponse])
async def list_complaints(
    status: ComplaintStatus | None = None,
    shop: Shop = Depends(get_shopkeeper_shop),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Complaint).where(Complaint.shop_id == shop.id)
    if status:
        stmt = stmt.where(Complaint.status == status.value)
    result = await db.execute(stmt.order_by(Complaint.created_at.desc()))
    return result.scalars().all()


@router.patch("/complaints/{complaint_id}", response_model=ComplaintResponse)
async def update_complaint(
    complaint_id: uuid.UUID,
    data: ComplaintStatusUpdate,
    shop: Shop = Depends(get_shopkeeper_shop),
    db: AsyncSession = Depends(get_db),
):
    complaint = (await db.execute(
        select(Complaint).where(Complaint.id == complaint_id, Complaint.shop_id == shop.id)
    )).scalar_one_or_none()
    if not complaint:
        raise ComplaintNotFound()
    complaint.status = data.status.value
    await db.commit()
    return complaint
