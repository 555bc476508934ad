"""
Notification Service — WhatsApp and SMS messages to customers and shops.

Providers are plain HTTP endpoints. When no provider URL is configured the
message is only logged, which is how local and test runs behave.
"""

import logging
import uuid

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.shop import Shop
from models.user import User

logger = logging.getLogger(__name__)

# Types that also go to the shop's WhatsApp
SHOP_FACING_TYPES = {"order_placed", "new_order", "payment_success"}


async def _post(url: str, payload: dict) -> bool:
    headers = {}
    if settings.NOTIFICATION_API_KEY:
        headers["Authorization"] = f"Bearer {settings.NOTIFICATION_API_KEY}"
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(url, json=payload, headers=headers)
            return resp.status_code < 300
    except httpx.HTTPError as e:
        logger.warning("Notification provider error (%s): %s", url, e)
        return False


async def send_whatsapp(phone: str, text: str) -> bool:
    """Send a WhatsApp message (logged only when no provider is configured)."""
    if not settings.WHATSAPP_API_URL:
        logger.info("WhatsApp (mock) to %s: %s", phone, text)
        return True
    return await _post(settings.WHATSAPP_API_URL, {"to": phone, "text": text})


async def send_sms(phone: str, text: str) -> bool:
    """Send an SMS (logged only when no provider is configured)."""
    if not settings.SMS_API_URL:
        logger.info("SMS (mock) to %s: %s", phone, text)
        return True
    return await _post(settings.SMS_API_URL, {"to": phone, "message": text})


def render_message(
    type: str,
    user: User | None = None,
    shop: Shop | None = None,
    amount=None,
    order_number: str | None = None,
    message: str | None = None,
) -> dict:
    """Build the whatsapp / sms / shop texts for a notification type."""
    name = (user.name if user and user.name else None) or "Customer"
    shop_name = shop.shop_name if shop else "your shop"
    order_ref = f" #{order_number}" if order_number else ""
    customer = user.phone_number if user else "N/A"

    templates = {
        "order_placed": {
            "whatsapp": (
                f"🚰 *Order Confirmed!*\n\nHi {name},\n\n"
                f"Your water jar order{order_ref} has been placed.\n"
                f"• Shop: {shop_name}\n• Amount: ₹{amount}\n\n"
                "We'll notify you once it is out for delivery. 💧"
            ),
            "sms": f"AquaFlow: Your order{order_ref} of ₹{amount} from {shop_name} is confirmed.",
            "shop": (
                f"🔔 *New Order Alert!*\n\n• Order{order_ref}\n• Amount: ₹{amount}\n"
                f"• Customer: {customer}\n\nPlease update the status in your dashboard."
            ),
        },
        "new_order": {
            "whatsapp": f"📦 Jars requested from {shop_name}{order_ref}. Amount: ₹{amount}.",
            "sms": f"AquaFlow: Subscription jars requested{order_ref}.",
            "shop": (
                f"🔔 *Subscription Jars Requested*\n\n• Order{order_ref}\n"
                f"• Amount: ₹{amount}\n• Customer: {customer}"
            ),
        },
        "subscription_created": {
            "whatsapp": (
                f"🔄 *Subscription Activated!*\n\nHi {name},\n\n"
                f"Your subscription with {shop_name} is active.\n💰 Monthly amount: ₹{amount}"
            ),
            "sms": f"AquaFlow: Your subscription is active. Monthly amount: ₹{amount}.",
        },
        "payment_success": {
            "whatsapp": f"✅ *Payment Successful!*\n\nHi {name}, your payment of ₹{amount} was received.",
            "sms": f"AquaFlow: Payment of ₹{amount} successful.",
            "shop": f"💰 Payment of ₹{amount} received{order_ref}.",
        },
        "payment_failed": {
            "whatsapp": f"⚠️ *Payment Failed*\n\nHi {name}, your payment of ₹{amount} could not be processed.",
            "sms": f"AquaFlow: Payment of ₹{amount} failed. Please retry in the app.",
        },
        "monthly_payment_success": {
            "whatsapp": (
                f"💳 *Monthly Payment Processed*\n\nHi {name},\n\n"
                f"Your monthly subscription payment of ₹{amount} has been processed."
            ),
            "sms": f"AquaFlow: Monthly payment of ₹{amount} processed successfully.",
        },
        "monthly_payment_failed": {
            "whatsapp": (
                f"⚠️ *Payment Failed*\n\nHi {name},\n\n"
                f"Your monthly subscription payment of ₹{amount} could not be processed. "
                "Please update your payment method in the app."
            ),
            "sms": f"AquaFlow: Monthly payment of ₹{amount} failed. Please update payment method in app.",
        },
        "delivery_assigned": {
            "whatsapp": f"🚴 A delivery partner has been assigned to your order{order_ref}.",
            "sms": f"AquaFlow: Delivery partner assigned{order_ref}.",
        },
        "out_for_delivery": {
            "whatsapp": (
                f"🚚 *Out for Delivery!*\n\nHi {name},\n\nYour water jars{order_ref} are on the way. "
                "Track the delivery live in the app."
            ),
            "sms": f"AquaFlow: Your order{order_ref} is out for delivery.",
        },
        "delivered": {
            "whatsapp": f"🎉 *Order Delivered!*\n\nHi {name}, your water jars{order_ref} have been delivered.",
            "sms": f"AquaFlow: Your order{order_ref} has been delivered.",
        },
        "order_status": {
            "whatsapp": message or f"📋 Your order{order_ref} was updated.",
            "sms": message or f"AquaFlow: Order{order_ref} updated.",
        },
    }
    return templates.get(type) or {
        "whatsapp": message or "You have a new notification from AquaFlow",
        "sms": message or "AquaFlow notification",
    }


async def send_notification(
    db: AsyncSession,
    *,
    type: str,
    user_id: uuid.UUID | None = None,
    shop_id: uuid.UUID | None = None,
    order_number: str | None = None,
    amount=None,
    message: str | None = None,
) -> bool:
    """
    Fire-and-forget notification.

    Loads the recipients, renders the template for `type` and sends
    WhatsApp then SMS to the user, plus WhatsApp to the shop for
    shop-facing types. Never raises.
    """
    try:
        user = await db.get(User, user_id) if user_id else None
        shop = await db.get(Shop, shop_id) if shop_id else None
        content = render_message(type, user, shop, amount, order_number, message)

        if user and user.phone_number and type != "new_order":
            await send_whatsapp(user.phone_number, content["whatsapp"])
            await send_sms(user.phone_number, content["sms"])

        if shop and shop.phone_number and type in SHOP_FACING_TYPES and "shop" in content:
            await send_whatsapp(shop.phone_number, content["shop"])

        logger.info(
            "Notification sent: %s to %s",
            type,
            (user.phone_number if user else None) or (shop.phone_number if shop else None),
        )
        return True
    except Exception:
        logger.exception("Notification sending error: %s", type)
        return False
