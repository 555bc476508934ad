"""Live delivery tracking."""

import logging
import math
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from dependencies import get_current_shop, get_current_user
from errors import OrderNotFound
from models.order import Order
from models.shop import Shop
from models.user import User
from schemas import AssignDeliveryRequest, LocationUpdate, TrackingResponse
from services.accrual import as_utc_naive
from services.maps import estimate_delivery_minutes, haversine_distance
from services.notifications import send_notification
from services.orders import set_order_status

router = APIRouter()
logger = logging.getLogger(__name__)

ASSIGNABLE_STATUSES = ("confirmed", "preparing")
TRACKABLE_STATUSES = ("confirmed", "preparing", "out-for-delivery")


async def _shop_order(db: AsyncSession, order_id: uuid.UUID, shop_id: uuid.UUID, statuses: tuple) -> Order:
    order = (await db.execute(
        select(Order).where(Order.id == order_id, Order.shop_id == shop_id, Order.status.in_(statuses))
    )).scalar_one_or_none()
    if not order:
        raise OrderNotFound("Order not found or not eligible for tracking")
    return order


@router.get("/order/{order_id}", response_model=TrackingResponse)
async def delivery_status(
    order_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Delivery status for the customer.

    ETA is the live distance estimate while the boy is on the road,
    otherwise the minutes left until the promised delivery time.
    """
    order = (await db.execute(
        select(Order).where(Order.id == order_id, Order.user_id == user.id)
    )).scalar_one_or_none()
    if not order:
        raise OrderNotFound()

    location = None
    distance_km = None
    eta_minutes = None
    has_fix = order.delivery_boy_lat is not None and order.delivery_boy_lng is not None

    if order.status == "out-for-delivery" and has_fix:
        location = {"latitude": float(order.delivery_boy_lat), "longitude": float(order.delivery_boy_lng)}
        dest = order.delivery_address or {}
        if dest.get("latitude") is not None and dest.get("longitude") is not None:
            distance_km = haversine_distance(
                order.delivery_boy_lat, order.delivery_boy_lng, dest["latitude"], dest["longitude"],
            )
            eta_minutes = estimate_delivery_minutes(distance_km)

    if eta_minutes is None and order.estimated_delivery_time and order.status != "delivered":
        remaining = (as_utc_naive(order.estimated_delivery_time) - datetime.utcnow()).total_seconds()
        eta_minutes = max(0, math.ceil(remaining / 60))

    return TrackingResponse(
        order_number=order.order_number,
        status=order.status,
        delivery_boy_name=order.delivery_boy_name,
        delivery_boy_phone=order.delivery_boy_phone,
        delivery_boy_location=location,
        estimated_delivery_time=order.estimated_delivery_time,
        eta_minutes=eta_minutes,
        distance_km=distance_km,
    )


@router.post("/assign")
async def assign_delivery_boy(
    data: AssignDeliveryRequest,
    shop: Shop = Depends(get_current_shop),
    db: AsyncSession = Depends(get_db),
):
    order = await _shop_order(db, data.order_id, shop.id, ASSIGNABLE_STATUSES)
    order.delivery_boy_name = data.delivery_boy_name
    order.delivery_boy_phone = data.delivery_boy_phone
    order.delivery_boy_lat = None
    order.delivery_boy_lng = None

    if order.status != "preparing":
        await set_order_status(db, order, "preparing", actor_type="SHOP", actor_id=shop.id)
    else:
        await db.commit()

    await send_notification(
        db, type="delivery_assigned", user_id=order.user_id, order_number=order.order_number,
        message=f"Delivery boy {data.delivery_boy_name} assigned to your order #{order.order_number}",
    )
    return {
        "success": True,
        "message": "Delivery boy assigned successfully",
        "order_id": order.id,
        "delivery_boy": {"name": order.delivery_boy_name, "phone": order.delivery_boy_phone},
        "status": order.status,
    }


@router.post("/location")
async def update_location(
    data: LocationUpdate,
    shop: Shop = Depends(get_current_shop),
    db: AsyncSession = Depends(get_db),
):
    """Record the delivery boy's position; the first fix moves the order out for delivery."""
    order = await _shop_order(db, data.order_id, shop.id, TRACKABLE_STATUSES)
    order.delivery_boy_lat = data.latitude
    order.delivery_boy_lng = data.longitude

    if order.status != "out-for-delivery":
        await set_order_status(db, order, "out-for-delivery", actor_type="SHOP", actor_id=shop.id)
    else:
        await db.commit()

    return {
        "success": True,
        "message": "Location updated successfully",
        "order_id": order.id,
        "current_location": {"latitude": data.latitude, "longitude": data.longitude},
        "status": order.status,
    }
