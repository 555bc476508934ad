"""
AquaFlow — FastAPI Backend
Water-jar delivery marketplace: shops, one-time orders and monthly subscriptions.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from db.database import engine, init_models
from errors import SAFE_MESSAGES, AppError, ErrorKind
from routers import orders, payments, shop, shopkeeper, tracking, users

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    await init_models()
    logger.info("AquaFlow API starting...")
    yield
    await engine.dispose()
    logger.info("AquaFlow API shut down.")


app = FastAPI(
    title="AquaFlow API",
    description="Water-jar delivery marketplace backend",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ───────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error envelopes ────────────────────────────────────────

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.kind == ErrorKind.UPSTREAM:
        logger.warning("%s %s → %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": ErrorKind.VALIDATION.value,
            "message": SAFE_MESSAGES[ErrorKind.VALIDATION],
            "errors": errors,
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": ErrorKind.UNHANDLED.value,
            "message": SAFE_MESSAGES[ErrorKind.UNHANDLED],
        },
    )


# ── Routers ────────────────────────────────────────────────
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(payments.router, prefix="/api/payment", tags=["Payments"])
app.include_router(shopkeeper.router, prefix="/api/shopkeeper", tags=["Shopkeeper"])
app.include_router(shop.router, prefix="/api/shop", tags=["Shop"])
app.include_router(tracking.router, prefix="/api/tracking", tags=["Tracking"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "AquaFlow API"}
