"""
Application error taxonomy.

Every error carries a kind tag and a message that is safe to show to
clients. Raw exception detail stays in the server log.
"""

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    VALIDATION = "validation_error"
    BUSINESS_RULE = "business_rule_violation"
    UPSTREAM = "upstream_failure"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    UNHANDLED = "unhandled"


SAFE_MESSAGES = {
    ErrorKind.NOT_FOUND: "Resource not found",
    ErrorKind.VALIDATION: "Validation failed",
    ErrorKind.BUSINESS_RULE: "Request not allowed",
    ErrorKind.UPSTREAM: "An external service is unavailable. Please try again.",
    ErrorKind.UNAUTHORIZED: "Authentication required",
    ErrorKind.FORBIDDEN: "Access denied",
    ErrorKind.UNHANDLED: "Something went wrong. Please try again later.",
}


class AppError(Exception):
    kind: ErrorKind = ErrorKind.UNHANDLED
    status_code: int = 500
    message: str | None = None

    def __init__(self, message: str | None = None):
        self.message = message or self.message or SAFE_MESSAGES[self.kind]
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.kind.value, "message": self.message}


# ── Not found ──────────────────────────────────────────────

class NotFound(AppError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class ShopNotFound(NotFound):
    message = "Shop not found or inactive"


class SubscriptionNotFound(NotFound):
    message = "Active subscription not found"


class OrderNotFound(NotFound):
    message = "Order not found"


class UserNotFound(NotFound):
    message = "User not found"


class ShopkeeperNotFound(NotFound):
    message = "Shopkeeper not found"


class PaymentNotFound(NotFound):
    message = "Payment not found"


class ComplaintNotFound(NotFound):
    message = "Complaint not found"


# ── Validation ─────────────────────────────────────────────

class ValidationFailed(AppError):
    kind = ErrorKind.VALIDATION
    status_code = 400


class InvalidQuantity(ValidationFailed):
    message = "Quantity must be a positive number of jars"


# ── Business rules ─────────────────────────────────────────

class BusinessRuleViolation(AppError):
    kind = ErrorKind.BUSINESS_RULE
    status_code = 400


class DuplicateActiveSubscription(BusinessRuleViolation):
    status_code = 409
    message = "You already have an active subscription with this shop"


class MonthlyCapExceeded(BusinessRuleViolation):
    def __init__(self, remaining: int, message: str | None = None):
        self.remaining = max(remaining, 0)
        super().__init__(message or f"Only {self.remaining} jars remaining for this month")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "remaining": self.remaining}


class PaymentNotDue(BusinessRuleViolation):
    message = "Payment not due yet"


class InvalidStatusTransition(BusinessRuleViolation):
    message = "Status change not allowed"


class OrderAlreadyPaid(BusinessRuleViolation):
    message = "Order is already paid"


class AlreadyExists(BusinessRuleViolation):
    status_code = 409
    message = "Record already exists"


class InvalidCredentials(BusinessRuleViolation):
    message = "Invalid credentials"


class TooManyAttempts(BusinessRuleViolation):
    status_code = 429
    message = "Too many failed attempts. Please try again later."


# ── Upstream / auth ────────────────────────────────────────

class UpstreamFailure(AppError):
    kind = ErrorKind.UPSTREAM
    status_code = 502


class Unauthorized(AppError):
    kind = ErrorKind.UNAUTHORIZED
    status_code = 401


class Forbidden(AppError):
    kind = ErrorKind.FORBIDDEN
    status_code = 403
