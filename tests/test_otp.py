"""Tests for the OTP service (in-memory store and mocked Redis)."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import time
import pytest
from unittest.mock import AsyncMock, patch

from config import settings
from services.otp import InMemoryOTPStore, RedisOTPStore, resend_otp, send_otp, verify_otp

PHONE = "+919812345678"


@pytest.fixture
def store():
    return InMemoryOTPStore()


@pytest.mark.asyncio
async def test_send_stores_hash_not_code(store):
    assert await send_otp(PHONE, store) is True

    record = await store.get(PHONE)
    assert record["attempts"] == 0
    assert record["hash"] != settings.OTP_FIXED_CODE
    assert record["hash"].startswith("$2")


@pytest.mark.asyncio
async def test_random_code_when_fixed_code_disabled(store):
    with patch.object(settings, "OTP_FIXED_CODE", ""), \
            patch("services.otp.send_sms", new_callable=AsyncMock) as mock_sms:
        await send_otp(PHONE, store)

    text = mock_sms.await_args.args[1]
    code = text.split("OTP is: ")[1][:6]
    assert code.isdigit()
    assert (await verify_otp(PHONE, code, store))["valid"] is True


@pytest.mark.asyncio
async def test_correct_otp_verifies_once(store):
    await send_otp(PHONE, store)

    assert await verify_otp(PHONE, settings.OTP_FIXED_CODE, store) == {"valid": True}
    # Invalidated on success
    second = await verify_otp(PHONE, settings.OTP_FIXED_CODE, store)
    assert second["valid"] is False
    assert "expired" in second["error"]


@pytest.mark.asyncio
async def test_wrong_otp_counts_attempts(store):
    await send_otp(PHONE, store)

    first = await verify_otp(PHONE, "000000", store)
    assert first == {"valid": False, "error": "Incorrect OTP. 2 attempts remaining.", "remaining": 2}

    await verify_otp(PHONE, "000000", store)
    third = await verify_otp(PHONE, "000000", store)
    assert third["remaining"] == 0

    # Even the right code is refused once attempts are used up
    locked = await verify_otp(PHONE, settings.OTP_FIXED_CODE, store)
    assert locked["valid"] is False
    assert "Too many attempts" in locked["error"]
    assert await store.get(PHONE) is None


@pytest.mark.asyncio
async def test_expired_otp(store):
    await send_otp(PHONE, store)
    record = await store.get(PHONE)
    record["expires_at"] = time.time() - 1
    await store.set(PHONE, record, 60)

    result = await verify_otp(PHONE, settings.OTP_FIXED_CODE, store)
    assert result["valid"] is False
    assert "expired" in result["error"]


@pytest.mark.asyncio
async def test_resend_cooldown(store):
    await send_otp(PHONE, store)
    assert await resend_otp(PHONE, store) is False

    record = await store.get(PHONE)
    record["sent_at"] = time.time() - settings.OTP_RESEND_COOLDOWN_SECONDS - 1
    await store.set(PHONE, record, 60)
    assert await resend_otp(PHONE, store) is True


@pytest.mark.asyncio
async def test_send_fails_when_store_unreachable():
    broken = AsyncMock()
    broken.set.side_effect = ConnectionError("redis down")

    assert await send_otp(PHONE, broken) is False


@pytest.mark.asyncio
async def test_otp_stored_in_redis():
    """OTP hash should be stored via Redis hset with TTL."""
    mock_conn = AsyncMock()
    store = RedisOTPStore(client=mock_conn)

    await send_otp(PHONE, store)

    mock_conn.hset.assert_called_once()
    key = mock_conn.hset.call_args.args[0]
    assert key == f"otp:{PHONE}"
    mapping = mock_conn.hset.call_args.kwargs["mapping"]
    assert set(mapping) == {"hash", "attempts", "expires_at", "sent_at"}
    mock_conn.expire.assert_called_once_with(key, settings.OTP_TTL_SECONDS)


@pytest.mark.asyncio
async def test_redis_record_parsed():
    mock_conn = AsyncMock()
    mock_conn.hgetall.return_value = {
        "hash": "$2b$12$abc", "attempts": "2", "expires_at": "1700000300.5", "sent_at": "1700000000.5",
    }
    store = RedisOTPStore(client=mock_conn)

    record = await store.get(PHONE)
    assert record == {"hash": "$2b$12$abc", "attempts": 2, "expires_at": 1700000300.5, "sent_at": 1700000000.5}


@pytest.mark.asyncio
async def test_redis_missing_record():
    mock_conn = AsyncMock()
    mock_conn.hgetall.return_value = {}
    store = RedisOTPStore(client=mock_conn)

    result = await verify_otp(PHONE, "123456", store)
    assert result["valid"] is False
    mock_conn.hset.assert_not_called()
