"""Payment ORM model: mock gateway charges and invoices."""

import uuid
from datetime import datetime
from sqlalchemy import String, Numeric, DateTime, ForeignKey, JSON, Enum as PgEnum
from sqlalchemy.orm import Mapped, mapped_column
from db.database import Base


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    payment_id: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    order_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("orders.id"))
    subscription_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("subscriptions.id"))
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    shop_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("shops.id"), nullable=False, index=True)
    amount: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(
        PgEnum("upi", "card", "wallet", "cash", "auto", name="payment_method"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        PgEnum("pending", "success", "failed", "refunded", name="payment_status"),
        default="pending",
    )
    # {"transaction_id": ..., "gateway_order_id": ..., "signature": ...}
    gateway_response: Mapped[dict | None] = mapped_column(JSON)
    invoice_number: Mapped[str | None] = mapped_column(String(40))
    invoice_url: Mapped[str | None] = mapped_column(String)
    refund_amount: Mapped[float] = mapped_column(Numeric(10, 2), default=0)
    refund_reason: Mapped[str | None] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)
