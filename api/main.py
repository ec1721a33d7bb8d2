"""
Tumble — FastAPI Backend
Laundry pickup orders, subscription allowances and plan-change proration
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from db.database import engine, Base, async_session
from db.seed import seed_catalog
from routers import orders, subscriptions, service_catalog
from services.errors import (
    BillingError, NotFound, NoActivePeriod, InvalidOrderItems,
    EntitlementExhausted, PaymentMethodRequired, PlanChangeRejected, QuoteExpired,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFound: 404,
    NoActivePeriod: 409,
    InvalidOrderItems: 422,
    EntitlementExhausted: 409,
    PaymentMethodRequired: 402,
    PlanChangeRejected: 400,
    QuoteExpired: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with async_session() as session:
        await seed_catalog(session)
    logger.info("Tumble API starting...")
    yield
    # Shutdown
    await engine.dispose()
    logger.info("Tumble API shut down.")


app = FastAPI(
    title="Tumble API",
    description="Laundry pickup orders and subscription billing",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ───────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Errors ─────────────────────────────────────────────────
@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "detail": exc.message, **{k: str(v) for k, v in exc.details.items()}},
    )


# ── Routers ────────────────────────────────────────────────
app.include_router(service_catalog.router, prefix="/api/services", tags=["Services"])
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(subscriptions.router, prefix="/api/subscriptions", tags=["Subscriptions"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "Tumble API"}
