"""Order and OrderEvent ORM models: one-time and subscription jar orders."""

import uuid
from datetime import datetime
from sqlalchemy import (
    String, Integer, Numeric, DateTime, ForeignKey, Text, JSON,
    Enum as PgEnum,
)
from sqlalchemy.orm import Mapped, mapped_column
from db.database import Base
from models.subscription import SUBSCRIPTION_PLANS

ORDER_STATUSES = ("pending", "confirmed", "preparing", "out-for-delivery", "delivered", "cancelled")


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    shop_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("shops.id"), nullable=False, index=True)

    order_type: Mapped[str] = mapped_column(
        PgEnum("one-time", "subscription", name="order_type"),
        nullable=False,
    )
    subscription_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("subscriptions.id"))
    subscription_plan: Mapped[str | None] = mapped_column(
        PgEnum(*SUBSCRIPTION_PLANS, name="subscription_plan"),
    )

    # Pricing (snapshotted at placement)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_jar: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    total_amount: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    delivery_address: Mapped[dict] = mapped_column(JSON, nullable=False)

    # Status and payment
    status: Mapped[str] = mapped_column(
        PgEnum(*ORDER_STATUSES, name="order_status"),
        default="pending",
        index=True,
    )
    payment_status: Mapped[str] = mapped_column(
        PgEnum("pending", "paid", "failed", "refunded", name="order_payment_status"),
        default="pending",
    )
    payment_method: Mapped[str] = mapped_column(
        PgEnum("upi", "card", "wallet", "cash", "subscription", name="order_payment_method"),
        nullable=False,
    )
    payment_id: Mapped[str | None] = mapped_column(String(40))

    # Delivery boy (live tracking)
    delivery_boy_name: Mapped[str | None] = mapped_column(String(100))
    delivery_boy_phone: Mapped[str | None] = mapped_column(String(20))
    delivery_boy_lat: Mapped[float | None] = mapped_column(Numeric(10, 7))
    delivery_boy_lng: Mapped[float | None] = mapped_column(Numeric(10, 7))

    estimated_delivery_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    actual_delivery_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)
    rating: Mapped[int | None] = mapped_column(Integer)
    review: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)


class OrderEvent(Base):
    """Audit trail of order status overwrites."""

    __tablename__ = "order_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    from_status: Mapped[str | None] = mapped_column(String(20))
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False)  # USER, SHOP, SHOPKEEPER, SYSTEM
    actor_id: Mapped[uuid.UUID | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
