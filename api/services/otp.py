"""
OTP Service — phone login codes.

Security:
  - 6-digit numeric codes (fixed code while the SMS provider is mocked)
  - Hashed with bcrypt before storage
  - Max 3 verification attempts
  - 5-minute expiry, 60-second resend cooldown

Codes live in an OTPStore keyed by phone number. Redis is the production
backend; the in-memory store is for local runs without Redis.
"""

import logging
import secrets
import time
from typing import Protocol

import bcrypt
import redis.asyncio as aioredis

from config import settings
from services.notifications import send_sms

logger = logging.getLogger(__name__)


class OTPStore(Protocol):
    async def get(self, phone: str) -> dict | None: ...

    async def set(self, phone: str, record: dict, ttl_seconds: int) -> None: ...

    async def delete(self, phone: str) -> None: ...


class RedisOTPStore:
    """Records stored as Redis hashes under otp:<phone> with a TTL."""

    def __init__(self, client: aioredis.Redis | None = None):
        self._client = client

    async def _redis(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
        return self._client

    @staticmethod
    def _key(phone: str) -> str:
        return f"otp:{phone}"

    async def get(self, phone: str) -> dict | None:
        r = await self._redis()
        data = await r.hgetall(self._key(phone))
        if not data:
            return None
        return {
            "hash": data["hash"],
            "attempts": int(data.get("attempts", 0)),
            "expires_at": float(data.get("expires_at", 0)),
            "sent_at": float(data.get("sent_at", 0)),
        }

    async def set(self, phone: str, record: dict, ttl_seconds: int) -> None:
        r = await self._redis()
        key = self._key(phone)
        await r.hset(key, mapping={k: str(v) for k, v in record.items()})
        await r.expire(key, max(int(ttl_seconds), 1))

    async def delete(self, phone: str) -> None:
        r = await self._redis()
        await r.delete(self._key(phone))


class InMemoryOTPStore:
    """Process-local store with the same expiry semantics."""

    def __init__(self):
        self._records: dict[str, tuple[dict, float]] = {}

    async def get(self, phone: str) -> dict | None:
        entry = self._records.get(phone)
        if entry is None:
            return None
        record, evict_at = entry
        if time.time() >= evict_at:
            self._records.pop(phone, None)
            return None
        return dict(record)

    async def set(self, phone: str, record: dict, ttl_seconds: int) -> None:
        self._records[phone] = (dict(record), time.time() + max(ttl_seconds, 1))

    async def delete(self, phone: str) -> None:
        self._records.pop(phone, None)


_store: OTPStore | None = None


def get_otp_store() -> OTPStore:
    """Singleton store for the configured backend (also a FastAPI dependency)."""
    global _store
    if _store is None:
        _store = InMemoryOTPStore() if settings.OTP_BACKEND == "memory" else RedisOTPStore()
    return _store


def _new_code() -> str:
    if settings.OTP_FIXED_CODE:
        return settings.OTP_FIXED_CODE
    return f"{secrets.randbelow(1000000):06d}"


async def send_otp(phone: str, store: OTPStore | None = None) -> bool:
    """
    Issue a fresh code for a phone number and text it.

    Returns:
        True once the code is stored and handed to the SMS provider,
        False if the store is unreachable.
    """
    store = store or get_otp_store()
    code = _new_code()
    now = time.time()
    record = {
        "hash": bcrypt.hashpw(code.encode(), bcrypt.gensalt()).decode(),
        "attempts": 0,
        "expires_at": now + settings.OTP_TTL_SECONDS,
        "sent_at": now,
    }
    try:
        await store.set(phone, record, settings.OTP_TTL_SECONDS)
    except Exception:
        logger.exception("OTP store write failed for %s", phone)
        return False

    await send_sms(
        phone,
        f"Your AquaFlow OTP is: {code}. Valid for {settings.OTP_TTL_SECONDS // 60} minutes. "
        "Do not share with anyone.",
    )
    logger.info("OTP sent to %s", phone)
    return True


async def verify_otp(phone: str, provided_otp: str, store: OTPStore | None = None) -> dict:
    """
    Verify a code against the stored hash.

    Returns:
        {"valid": True} on success
        {"valid": False, "error": "...", "remaining": N} on failure
    """
    store = store or get_otp_store()
    data = await store.get(phone)
    if not data:
        return {"valid": False, "error": "OTP expired. Please request a new one.", "remaining": 0}

    now = time.time()
    if now > data["expires_at"]:
        await store.delete(phone)
        return {"valid": False, "error": "OTP expired. Please request a new one.", "remaining": 0}

    attempts = data["attempts"]
    if attempts >= settings.OTP_MAX_ATTEMPTS:
        await store.delete(phone)
        return {"valid": False, "error": "Too many attempts. Request a new OTP.", "remaining": 0}

    if bcrypt.checkpw(provided_otp.encode(), data["hash"].encode()):
        await store.delete(phone)  # Invalidate on success
        logger.info("OTP verified for %s", phone)
        return {"valid": True}

    data["attempts"] = attempts + 1
    await store.set(phone, data, int(data["expires_at"] - now))

    remaining = max(settings.OTP_MAX_ATTEMPTS - data["attempts"], 0)
    return {
        "valid": False,
        "error": f"Incorrect OTP. {remaining} attempts remaining.",
        "remaining": remaining,
    }


async def resend_otp(phone: str, store: OTPStore | None = None) -> bool:
    """Send a new code unless the previous one went out within the cooldown."""
    store = store or get_otp_store()
    existing = await store.get(phone)
    if existing and time.time() - existing["sent_at"] < settings.OTP_RESEND_COOLDOWN_SECONDS:
        return False
    return await send_otp(phone, store)
