"""Shop ORM model."""

import uuid
from datetime import datetime
from sqlalchemy import String, Integer, Numeric, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from db.database import Base


class Shop(Base):
    __tablename__ = "shops"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    shopkeeper_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("shopkeepers.id"), index=True)
    phone_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True)
    shop_name: Mapped[str] = mapped_column(String(100), nullable=False)
    owner_name: Mapped[str] = mapped_column(String(100), nullable=False)
    address: Mapped[str] = mapped_column(String, nullable=False)
    city: Mapped[str | None] = mapped_column(String(100))
    state: Mapped[str | None] = mapped_column(String(100))
    pincode: Mapped[str] = mapped_column(String(6), nullable=False, index=True)
    latitude: Mapped[float] = mapped_column(Numeric(10, 7), nullable=False)
    longitude: Mapped[float] = mapped_column(Numeric(10, 7), nullable=False)
    gst_number: Mapped[str] = mapped_column(String(15), nullable=False)
    photo_url: Mapped[str | None] = mapped_column(String)
    price_per_jar: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    rating: Mapped[float] = mapped_column(Numeric(3, 2), default=0)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    open_time: Mapped[str] = mapped_column(String(5), default="06:00")
    close_time: Mapped[str] = mapped_column(String(5), default="22:00")
    delivery_radius_km: Mapped[float] = mapped_column(Numeric(5, 2), default=5)
    total_orders: Mapped[int] = mapped_column(Integer, default=0)
    monthly_revenue: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    def is_open(self, now: datetime | None = None) -> bool:
        """Whether the shop is inside its operating hours (HH:MM string compare)."""
        now = now or datetime.now()
        current = now.strftime("%H:%M")
        return (self.open_time or "06:00") <= current <= (self.close_time or "22:00")
