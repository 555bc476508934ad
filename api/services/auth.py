"""
Password hashing and JWT access tokens for the three principal types.

Principal types carried in the token:
  user        → phone/OTP customer
  shopkeeper  → email/password shop owner
  shop        → shop phone/OTP login
"""

import secrets
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from config import settings
from errors import Unauthorized

PRINCIPAL_TYPES = ("user", "shopkeeper", "shop")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(subject: uuid.UUID | str, principal_type: str) -> str:
    """Sign a token for the given principal."""
    if principal_type not in PRINCIPAL_TYPES:
        raise ValueError(f"Unknown principal type: {principal_type}")
    expires = datetime.utcnow() + timedelta(days=settings.JWT_EXPIRE_DAYS)
    payload = {"sub": str(subject), "type": principal_type, "exp": expires}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry; raise Unauthorized on anything wrong."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise Unauthorized("Invalid or expired token")

    if payload.get("type") not in PRINCIPAL_TYPES or not payload.get("sub"):
        raise Unauthorized("Invalid token")
    try:
        payload["sub"] = uuid.UUID(payload["sub"])
    except ValueError:
        raise Unauthorized("Invalid token")
    return payload


# ── Shopkeeper email verification ──────────────────────────

VERIFICATION_TTL_MINUTES = 10
VERIFICATION_MAX_ATTEMPTS = 3


def issue_verification_code(shopkeeper, now: datetime | None = None) -> str:
    """Store a fresh 6-digit code on the shopkeeper and return it."""
    now = now or datetime.utcnow()
    code = f"{secrets.randbelow(900000) + 100000}"
    shopkeeper.verification_code = code
    shopkeeper.verification_expires_at = now + timedelta(minutes=VERIFICATION_TTL_MINUTES)
    shopkeeper.verification_attempts = 0
    return code


def _clear_verification(shopkeeper) -> None:
    shopkeeper.verification_code = None
    shopkeeper.verification_expires_at = None
    shopkeeper.verification_attempts = 0


def check_verification_code(shopkeeper, code: str, now: datetime | None = None) -> bool:
    """
    Mark the shopkeeper verified when the code matches.

    Expired or exhausted codes are discarded; a wrong code counts an attempt.
    """
    now = now or datetime.utcnow()
    if not shopkeeper.verification_code:
        return False

    expires_at = shopkeeper.verification_expires_at
    if expires_at is not None and expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
    if expires_at is None or now > expires_at:
        _clear_verification(shopkeeper)
        return False

    if (shopkeeper.verification_attempts or 0) >= VERIFICATION_MAX_ATTEMPTS:
        _clear_verification(shopkeeper)
        return False

    if not secrets.compare_digest(shopkeeper.verification_code, code):
        shopkeeper.verification_attempts = (shopkeeper.verification_attempts or 0) + 1
        return False

    shopkeeper.is_verified = True
    _clear_verification(shopkeeper)
    return True
