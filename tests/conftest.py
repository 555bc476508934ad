"""Shared fixtures: a throwaway SQLite database and an API client bound to it."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OTP_BACKEND", "memory")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from db.database import get_db, init_models
from models.shop import Shop
from models.shopkeeper import Shopkeeper
from models.user import User
from services.auth import create_access_token, hash_password
from services.otp import InMemoryOTPStore, get_otp_store

ADDRESS = {"address": "12 Lake Road, Koramangala", "latitude": 12.9352, "longitude": 77.6245}


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'aquaflow.db'}")
    await init_models(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def create_user(db, phone="+919800000001", **fields) -> User:
    user = User(phone_number=phone, name=fields.pop("name", "Asha"), pincode="560034", **fields)
    db.add(user)
    await db.commit()
    return user


async def create_shop(db, phone="+919900000001", gst="29ABCDE1234F1Z5", **fields) -> Shop:
    values = dict(
        phone_number=phone,
        shop_name="Blue Drop Waters",
        owner_name="Ravi",
        address="4 Market Street, Koramangala",
        city="Bengaluru",
        state="Karnataka",
        pincode="560034",
        latitude=12.9340,
        longitude=77.6220,
        gst_number=gst,
        price_per_jar=45,
        is_active=True,
        is_verified=True,
    )
    values.update(fields)
    shop = Shop(**values)
    db.add(shop)
    await db.commit()
    return shop


@pytest_asyncio.fixture
async def user(db):
    return await create_user(db)


@pytest_asyncio.fixture
async def shop(db):
    return await create_shop(db)


@pytest.fixture
def user_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, 'user')}"}


@pytest.fixture
def shop_headers(shop):
    return {"Authorization": f"Bearer {create_access_token(shop.id, 'shop')}"}


@pytest.fixture
def otp_store():
    return InMemoryOTPStore()


@pytest_asyncio.fixture
async def client(session_factory, otp_store):
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_otp_store] = lambda: otp_store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def shopkeeper_headers(db, shop):
    """A shopkeeper account owning the `shop` fixture."""
    shopkeeper = Shopkeeper(
        email="ravi@bluedrop.in",
        password_hash=hash_password("jar-secret"),
        owner_name="Ravi",
        phone_number=shop.phone_number,
        is_verified=True,
    )
    db.add(shopkeeper)
    await db.flush()
    shop.shopkeeper_id = shopkeeper.id
    await db.commit()
    return {"Authorization": f"Bearer {create_access_token(shopkeeper.id, 'shopkeeper')}"}
