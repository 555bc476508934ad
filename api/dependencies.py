"""FastAPI dependencies resolving the bearer token to the calling principal."""

import uuid

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from errors import Forbidden, ShopNotFound, Unauthorized
from models.shop import Shop
from models.shopkeeper import Shopkeeper
from models.user import User
from services.auth import decode_access_token

bearer = HTTPBearer(auto_error=False)


async def get_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> dict:
    """Decoded token claims: {"sub": UUID, "type": "user" | "shopkeeper" | "shop"}."""
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Access token required")
    return decode_access_token(credentials.credentials)


def _require_type(principal: dict, *allowed: str) -> uuid.UUID:
    if principal["type"] not in allowed:
        raise Forbidden()
    return principal["sub"]


async def get_current_user(
    principal: dict = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> User:
    user_id = _require_type(principal, "user")
    user = await db.get(User, user_id)
    if not user or not user.is_active:
        raise Unauthorized("Invalid token or user inactive")
    return user


async def get_current_shopkeeper(
    principal: dict = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> Shopkeeper:
    shopkeeper_id = _require_type(principal, "shopkeeper")
    shopkeeper = await db.get(Shopkeeper, shopkeeper_id)
    if not shopkeeper or not shopkeeper.is_active:
        raise Unauthorized("Invalid token or shopkeeper inactive")
    return shopkeeper


async def get_shopkeeper_shop(
    shopkeeper: Shopkeeper = Depends(get_current_shopkeeper),
    db: AsyncSession = Depends(get_db),
) -> Shop:
    """The shop owned by the calling shopkeeper."""
    shop = (await db.execute(
        select(Shop).where(Shop.shopkeeper_id == shopkeeper.id)
    )).scalar_one_or_none()
    if not shop:
        raise ShopNotFound("Shop not found")
    return shop


async def get_current_shop(
    principal: dict = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> Shop:
    """A shop logged in by phone, or the shop of a logged-in shopkeeper."""
    subject = _require_type(principal, "shop", "shopkeeper")
    if principal["type"] == "shop":
        shop = await db.get(Shop, subject)
        if not shop or not shop.is_active:
            raise Unauthorized("Invalid token or shop inactive")
        return shop

    shopkeeper = await db.get(Shopkeeper, subject)
    if not shopkeeper or not shopkeeper.is_active:
        raise Unauthorized("Invalid token or shopkeeper inactive")
    shop = (await db.execute(
        select(Shop).where(Shop.shopkeeper_id == shopkeeper.id)
    )).scalar_one_or_none()
    if not shop:
        raise ShopNotFound("Shop not found")
    return shop
