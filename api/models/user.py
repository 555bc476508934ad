"""User ORM model: phone-authenticated customers."""

import uuid
from datetime import datetime
from sqlalchemy import String, Integer, Boolean, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column
from db.database import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    phone_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(100))
    email: Mapped[str | None] = mapped_column(String(255))
    pincode: Mapped[str] = mapped_column(String(6), nullable=False, default="000000", index=True)
    # [{"type": "home", "address": "...", "landmark": ..., "coordinates": {...}, "is_default": bool}]
    addresses: Mapped[list] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Login throttling
    otp_attempts: Mapped[int] = mapped_column(Integer, default=0)
    otp_blocked_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    def default_address(self) -> dict | None:
        """Default delivery address, else the first saved one."""
        addresses = self.addresses or []
        for entry in addresses:
            if entry.get("is_default"):
                return entry
        return addresses[0] if addresses else None
