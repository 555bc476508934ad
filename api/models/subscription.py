"""Subscription ORM model: monthly jar plans and their accrual counters."""

import uuid
from datetime import datetime
from sqlalchemy import String, Integer, Numeric, Boolean, DateTime, ForeignKey, Text, JSON, Enum as PgEnum
from sqlalchemy.orm import Mapped, mapped_column
from db.database import Base

SUBSCRIPTION_PLANS = ("5-jars", "8-jars", "10-jars", "15-jars", "30-jars", "45-jars")


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    shop_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("shops.id"), nullable=False, index=True)

    # Plan (frozen at creation)
    plan: Mapped[str] = mapped_column(
        PgEnum(*SUBSCRIPTION_PLANS, name="subscription_plan"),
        nullable=False,
    )
    jars_per_month: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_jar: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    monthly_amount: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    delivery_address: Mapped[dict] = mapped_column(JSON, nullable=False)
    delivery_frequency: Mapped[str] = mapped_column(
        PgEnum("weekly", "bi-weekly", "monthly", name="delivery_frequency"),
        default="weekly",
    )
    status: Mapped[str] = mapped_column(
        PgEnum("active", "paused", "cancelled", name="subscription_status"),
        default="active",
        index=True,
    )

    # Monthly accrual counters
    jars_ordered_this_month: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    jars_delivered_this_month: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_month_bill: Mapped[float] = mapped_column(Numeric(10, 2), default=0, nullable=False)

    # Cycle dates
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    next_delivery_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    next_payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    auto_renewal: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)


class SubscriptionDelivery(Base):
    """One shopkeeper-recorded delivery against a subscription (append-only)."""

    __tablename__ = "subscription_deliveries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    subscription_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("subscriptions.id"), nullable=False, index=True)
    delivered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
