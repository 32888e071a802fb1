import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.core.config import APP_NAME, CORS_ORIGINS
from app.core.logging import setup_logging
from app.core.database import engine, Base
from app.core.exceptions import BillingError
from app.core.middleware import request_id_middleware
from app.core.rate_limit import limiter
from app.api.v1.router import api_v1_router

# Register every model on Base.metadata before create_all runs
from app.models import (  # noqa: F401
    user,
    subscription_plan,
    feature,
    promo_code,
    checkout_session,
    user_subscription,
)

setup_logging()
logger = logging.getLogger(__name__)


# --- Lifespan events (startup / shutdown) ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context.

    On startup:
      - Ensure all database tables exist (create if missing).
    """
    logger.info("[STARTUP] Starting %s", APP_NAME)

    async with engine.begin() as conn:
        # Create tables automatically if they do not exist
        await conn.run_sync(Base.metadata.create_all)

    yield

    logger.info("[SHUTDOWN] Shutting down %s", APP_NAME)
    await engine.dispose()


# --- FastAPI application instance ---
app = FastAPI(
    title=APP_NAME,
    version="1.0.0",
    lifespan=lifespan,
    description="""
    Membership checkout and entitlement API.

    ## Authentication

    Sign in through Supabase and send the JWT in the header:
    `Authorization: Bearer <token>`

    ## Checkout flow

    1. `POST /api/v1/checkout/sessions` with a plan (and optional promo code)
    2. Optionally apply or remove a promo code on the session
    3. `POST /api/v1/checkout/sessions/{id}/complete` with billing details and a payment method

    Sessions expire 30 minutes after creation.

    ## Errors

    Business errors are returned as
    `{"error": {"code": "...", "message": "...", "details": {...}}}`.
    """
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# --- CORS configuration ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(request_id_middleware)


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    """Render service errors as a JSON error body with their HTTP status."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# --- Root health / welcome endpoint ---
@app.get("/")
async def root():
    """
    Simple health/welcome endpoint.

    Can be used by uptime checks or to verify that the API is running.
    """
    return {
        "message": f"Welcome to the {APP_NAME}",
        "status": "OK",
        "docs": "/docs",
    }


# --- Mount versioned API routers ---
# All versioned routes are exposed under /api/v1.
app.include_router(api_v1_router, prefix="/api/v1")
