"""Pydantic schemas for API request/response models."""

from __future__ import annotations
import uuid
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, EmailStr, Field

PHONE_PATTERN = r"^[+]?[1-9]\d{1,14}$"
PINCODE_PATTERN = r"^\d{6}$"
GST_PATTERN = r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z]{1}[1-9A-Z]{1}Z[0-9A-Z]{1}$"
CODE_PATTERN = r"^\d{6}$"


# ── Enums ──────────────────────────────────────────────────

class SubscriptionPlan(str, Enum):
    JARS_5 = "5-jars"
    JARS_8 = "8-jars"
    JARS_10 = "10-jars"
    JARS_15 = "15-jars"
    JARS_30 = "30-jars"
    JARS_45 = "45-jars"


class DeliveryFrequency(str, Enum):
    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    MONTHLY = "monthly"


class PaymentMethod(str, Enum):
    UPI = "upi"
    CARD = "card"
    WALLET = "wallet"
    CASH = "cash"


class OnlinePaymentMethod(str, Enum):
    UPI = "upi"
    CARD = "card"
    WALLET = "wallet"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out-for-delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderType(str, Enum):
    ONE_TIME = "one-time"
    SUBSCRIPTION = "subscription"


class ComplaintPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ComplaintStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"


# ── Shared ─────────────────────────────────────────────────

class DeliveryAddress(BaseModel):
    address: str = Field(..., min_length=1)
    landmark: str | None = None
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)


class PaymentOutcome(BaseModel):
    """Result of a charge attempted after the primary record was saved."""
    success: bool
    payment_id: str | None = None
    status: str | None = None
    transaction_id: str | None = None
    invoice_url: str | None = None
    error: str | None = None

    class Config:
        from_attributes = True


# ── User auth ──────────────────────────────────────────────

class SendOTPRequest(BaseModel):
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    pincode: str | None = Field(None, pattern=PINCODE_PATTERN)


class VerifyOTPRequest(BaseModel):
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    otp: str = Field(..., pattern=CODE_PATTERN)


class PhoneRequest(BaseModel):
    phone_number: str = Field(..., pattern=PHONE_PATTERN)


class UserResponse(BaseModel):
    id: uuid.UUID
    phone_number: str
    name: str | None
    email: str | None
    pincode: str
    addresses: list[dict] = []
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    success: bool = True
    token: str
    user: UserResponse


# ── Shops ──────────────────────────────────────────────────

class ShopResponse(BaseModel):
    id: uuid.UUID
    shop_name: str
    owner_name: str
    phone_number: str
    address: str
    city: str | None
    state: str | None
    pincode: str
    latitude: float
    longitude: float
    photo_url: str | None
    price_per_jar: float
    rating: float
    total_reviews: int
    is_active: bool
    is_verified: bool
    open_time: str
    close_time: str
    delivery_radius_km: float

    class Config:
        from_attributes = True


class NearbyShop(ShopResponse):
    distance_km: float | None = None
    is_open: bool = True


# ── Orders ─────────────────────────────────────────────────

class OneTimeOrderCreate(BaseModel):
    shop_id: uuid.UUID
    quantity: int = Field(..., ge=1, le=50)
    delivery_address: DeliveryAddress
    payment_method: PaymentMethod
    notes: str | None = Field(None, max_length=500)


class SubscriptionCreate(BaseModel):
    shop_id: uuid.UUID
    plan: SubscriptionPlan
    delivery_address: DeliveryAddress
    delivery_frequency: DeliveryFrequency = DeliveryFrequency.WEEKLY
    payment_method: OnlinePaymentMethod


class OrderJarsRequest(BaseModel):
    subscription_id: uuid.UUID
    # Range is checked by the accrual engine so the cap message is exact
    quantity: int


class SubscriptionStatusUpdate(BaseModel):
    status: SubscriptionStatus


class OrderResponse(BaseModel):
    id: uuid.UUID
    order_number: str
    user_id: uuid.UUID
    shop_id: uuid.UUID
    order_type: str
    subscription_id: uuid.UUID | None
    subscription_plan: str | None
    quantity: int
    price_per_jar: float
    total_amount: float
    delivery_address: dict
    status: str
    payment_status: str
    payment_method: str
    payment_id: str | None
    delivery_boy_name: str | None = None
    delivery_boy_phone: str | None = None
    estimated_delivery_time: datetime | None
    actual_delivery_time: datetime | None = None
    notes: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class SubscriptionResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    shop_id: uuid.UUID
    plan: str
    jars_per_month: int
    price_per_jar: float
    monthly_amount: float
    delivery_address: dict
    delivery_frequency: str
    status: str
    jars_ordered_this_month: int
    jars_delivered_this_month: int
    current_month_bill: float
    start_date: datetime
    next_delivery_date: datetime
    last_payment_date: datetime | None
    next_payment_date: datetime | None
    auto_renewal: bool

    class Config:
        from_attributes = True


class DeliveryRecord(BaseModel):
    delivered_at: datetime
    quantity: int
    amount: float
    notes: str | None

    class Config:
        from_attributes = True


class OneTimeOrderResponse(BaseModel):
    success: bool = True
    message: str
    order: OrderResponse
    payment_required: bool
    payment: PaymentOutcome | None = None


class SubscriptionCreateResponse(BaseModel):
    success: bool = True
    message: str
    subscription: SubscriptionResponse
    payment: PaymentOutcome


class SubscriptionCounters(BaseModel):
    jars_per_month: int
    jars_ordered_this_month: int
    jars_delivered_this_month: int
    current_month_bill: float
    remaining_jars: int


class OrderJarsResponse(BaseModel):
    success: bool = True
    message: str
    order: OrderResponse
    subscription: SubscriptionCounters


class SubscriptionDetailResponse(BaseModel):
    success: bool = True
    subscription: SubscriptionResponse
    shop: ShopSummary | None
    delivery_history: list[DeliveryRecord]
    remaining_to_order: int
    remaining_to_deliver: int


class Pagination(BaseModel):
    current: int
    total: int
    has_next: bool


class ShopSummary(BaseModel):
    id: uuid.UUID
    shop_name: str
    address: str
    photo_url: str | None = None

    class Config:
        from_attributes = True


class CustomerSummary(BaseModel):
    id: uuid.UUID
    name: str | None
    phone_number: str
    email: str | None = None

    class Config:
        from_attributes = True


class OrderView(OrderResponse):
    shop: ShopSummary | None = None
    customer: CustomerSummary | None = None


class SubscriptionView(SubscriptionResponse):
    shop: ShopSummary | None = None
    customer: CustomerSummary | None = None


class OrderHistoryResponse(BaseModel):
    success: bool = True
    orders: list[OrderView]
    subscriptions: list[SubscriptionView]
    pagination: Pagination


# ── Payments ───────────────────────────────────────────────

class PaymentInitiateRequest(BaseModel):
    order_id: uuid.UUID | None = None
    subscription_id: uuid.UUID | None = None
    payment_method: OnlinePaymentMethod


class MonthlyPaymentRequest(BaseModel):
    subscription_id: uuid.UUID


class PaymentResponse(BaseModel):
    id: uuid.UUID
    payment_id: str
    order_id: uuid.UUID | None
    subscription_id: uuid.UUID | None
    shop_id: uuid.UUID
    amount: float
    payment_method: str
    status: str
    invoice_number: str | None
    invoice_url: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class MonthlyPaymentResponse(BaseModel):
    success: bool
    message: str
    payment: PaymentOutcome
    next_payment_date: datetime | None
    invoice: dict | None = None


# ── Shopkeeper ─────────────────────────────────────────────

class ShopkeeperRegister(BaseModel):
    owner_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    shop_name: str = Field(..., min_length=1, max_length=100)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., pattern=PINCODE_PATTERN)
    gst_number: str = Field(..., pattern=GST_PATTERN)
    price_per_jar: float = Field(..., ge=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class ShopkeeperLogin(BaseModel):
    email: EmailStr
    password: str


class EmailVerification(BaseModel):
    email: EmailStr
    verification_code: str = Field(..., pattern=CODE_PATTERN)


class ResendVerification(BaseModel):
    email: EmailStr


class ShopkeeperResponse(BaseModel):
    id: uuid.UUID
    email: str
    owner_name: str
    phone_number: str
    is_verified: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ShopkeeperAuthResponse(BaseModel):
    success: bool = True
    message: str
    token: str
    shopkeeper: ShopkeeperResponse
    shop: ShopResponse | None = None


class ShopUpdate(BaseModel):
    shop_name: str = Field(..., min_length=1, max_length=100)
    price_per_jar: float = Field(..., ge=1, le=200)
    photo_url: str | None = None
    contact_number: str | None = Field(None, pattern=PHONE_PATTERN)
    address: str | None = None
    city: str | None = None
    pincode: str | None = Field(None, pattern=PINCODE_PATTERN)
    state: str | None = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    notes: str | None = None


class DeliveryCreate(BaseModel):
    quantity: int
    notes: str | None = None


class DeliveryResponse(BaseModel):
    success: bool = True
    message: str
    subscription: SubscriptionCounters
    last_delivery: DeliveryRecord | None


class OrderStats(BaseModel):
    total_orders: int
    pending_orders: int
    confirmed_orders: int
    delivered_orders: int
    today_orders: int
    total_revenue: float
    active_subscriptions: int


class ShopOrdersResponse(BaseModel):
    success: bool = True
    orders: list[OrderView]
    subscriptions: list[SubscriptionView]


# ── Shop (phone login) ─────────────────────────────────────

class ShopSignup(BaseModel):
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    email: EmailStr | None = None
    shop_name: str = Field(..., min_length=1, max_length=100)
    owner_name: str = Field(..., min_length=1, max_length=100)
    address: str = Field(..., min_length=1)
    city: str | None = None
    state: str | None = None
    pincode: str = Field(..., pattern=PINCODE_PATTERN)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    gst_number: str = Field(..., pattern=GST_PATTERN)
    photo_url: str | None = None
    price_per_jar: float = Field(..., ge=1)


class ShopSignupResponse(BaseModel):
    success: bool = True
    message: str
    shop_id: uuid.UUID
    shop_name: str
    phone_number: str


class ShopLoginResponse(BaseModel):
    success: bool = True
    token: str
    shop: ShopResponse


# ── Complaints ─────────────────────────────────────────────

class ComplaintCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    order_id: uuid.UUID | None = None
    shop_id: uuid.UUID | None = None
    priority: ComplaintPriority = ComplaintPriority.MEDIUM


class ComplaintStatusUpdate(BaseModel):
    status: ComplaintStatus


class ComplaintResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    order_id: uuid.UUID | None
    shop_id: uuid.UUID
    subject: str
    description: str
    priority: str
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


# ── Tracking ───────────────────────────────────────────────

class AssignDeliveryRequest(BaseModel):
    order_id: uuid.UUID
    delivery_boy_name: str = Field(..., min_length=1, max_length=100)
    delivery_boy_phone: str = Field(..., pattern=PHONE_PATTERN)


class LocationUpdate(BaseModel):
    order_id: uuid.UUID
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class TrackingResponse(BaseModel):
    success: bool = True
    order_number: str
    status: str
    delivery_boy_name: str | None
    delivery_boy_phone: str | None
    delivery_boy_location: dict | None
    estimated_delivery_time: datetime | None
    eta_minutes: int | None
    distance_km: float | None


SubscriptionDetailResponse.model_rebuild()
