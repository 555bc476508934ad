"""Invoice generation. Mock storage: URLs only, no PDF rendering."""

import logging
import random
import string
import time
from datetime import datetime

from config import settings
from models.payment import Payment
from models.subscription import Subscription

logger = logging.getLogger(__name__)


def _invoice_number(prefix: str) -> str:
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"{prefix}{int(time.time() * 1000)}{suffix}"


def generate_invoice(payment: Payment) -> dict:
    """Invoice for a single successful payment."""
    number = _invoice_number("INV")
    invoice = {
        "invoice_number": number,
        "payment_id": payment.payment_id,
        "amount": payment.amount,
        "date": datetime.utcnow(),
        "invoice_url": f"{settings.INVOICE_BASE_URL}/{number}.pdf",
    }
    logger.info("Invoice generated: %s for ₹%s", number, payment.amount)
    return invoice


def generate_monthly_invoice(subscription: Subscription, payment: Payment, now: datetime) -> dict:
    """
    Invoice covering one subscription billing period.

    The period runs from the previous payment (or the start date for the
    first cycle) to `now`. Must be called before the delivered counter is
    reset so `jars_delivered` reflects the closing period.
    """
    number = _invoice_number("MINV")
    invoice = {
        "invoice_number": number,
        "subscription_id": subscription.id,
        "payment_id": payment.payment_id,
        "amount": payment.amount,
        "period": {
            "from": subscription.last_payment_date or subscription.start_date,
            "to": now,
        },
        "jars_delivered": subscription.jars_delivered_this_month,
        "invoice_url": f"{settings.INVOICE_BASE_URL}/{number}.pdf",
    }
    logger.info("Monthly invoice generated: %s for subscription %s", number, subscription.id)
    return invoice
