"""
Mock payment gateway with a configurable success rate.

Interactive payments (UPI / card / wallet) succeed with
PAYMENT_SUCCESS_RATE, subscription auto-debits with AUTO_DEBIT_SUCCESS_RATE.
Provider failures are returned as results, never raised, so callers that
already committed their own state can report a partial success.
"""

import logging
import random
import string
import time
import uuid
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.payment import Payment
from services.invoices import generate_invoice

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Normalise ints, floats and Decimals to a 2-place Decimal."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class PaymentResult:
    success: bool
    payment_id: str | None = None
    status: str = "failed"
    transaction_id: str | None = None
    invoice_url: str | None = None
    error: str | None = None
    record: Payment | None = field(default=None, repr=False)


def _token(prefix: str, k: int = 6) -> str:
    rand_part = "".join(random.choices(string.ascii_uppercase + string.digits, k=k))
    return f"{prefix}{int(time.time() * 1000)}{rand_part}"


def generate_payment_id() -> str:
    return _token("PAY")


def charge(amount, payment_method: str, success_rate: float | None = None) -> dict:
    """
    Simulated gateway call.

    Returns:
        {"success": True, "transaction_id", "gateway_order_id", "signature"}
        or {"success": False, "error": "..."}
    """
    rate = settings.PAYMENT_SUCCESS_RATE if success_rate is None else success_rate
    logger.info("Mock gateway charge: ₹%s via %s", amount, payment_method)
    if random.random() < rate:
        return {
            "success": True,
            "transaction_id": _token("TXN"),
            "gateway_order_id": _token("GW"),
            "signature": uuid.uuid4().hex,
        }
    return {"success": False, "error": "Payment declined by gateway"}


async def initiate_payment(
    db: AsyncSession,
    *,
    amount,
    payment_method: str,
    user_id: uuid.UUID,
    shop_id: uuid.UUID,
    order_id: uuid.UUID | None = None,
    subscription_id: uuid.UUID | None = None,
    success_rate: float | None = None,
) -> PaymentResult:
    """
    Record a Payment, charge it and settle the record.

    Commits the Payment row whatever the outcome. An invoice is attached
    on success.
    """
    payment = Payment(
        payment_id=generate_payment_id(),
        order_id=order_id,
        subscription_id=subscription_id,
        user_id=user_id,
        shop_id=shop_id,
        amount=to_money(amount),
        payment_method=payment_method,
        status="pending",
    )
    db.add(payment)
    await db.flush()

    outcome = charge(payment.amount, payment_method, success_rate)
    if outcome["success"]:
        payment.status = "success"
        payment.gateway_response = {
            "transaction_id": outcome["transaction_id"],
            "gateway_order_id": outcome["gateway_order_id"],
            "signature": outcome["signature"],
        }
        invoice = generate_invoice(payment)
        payment.invoice_number = invoice["invoice_number"]
        payment.invoice_url = invoice["invoice_url"]
    else:
        payment.status = "failed"
        payment.gateway_response = {"error": outcome["error"]}

    await db.commit()
    logger.info("Payment %s %s (₹%s)", payment.payment_id, payment.status, payment.amount)

    return PaymentResult(
        success=outcome["success"],
        payment_id=payment.payment_id,
        status=payment.status,
        transaction_id=outcome.get("transaction_id"),
        invoice_url=payment.invoice_url,
        error=outcome.get("error"),
        record=payment,
    )
