"""
Application configuration.

All settings are read from environment variables (optionally loaded from a
.env file) and exposed as module-level constants.
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ============================================
# APPLICATION
# ============================================
APP_NAME = os.getenv("APP_NAME", "Membership Checkout API")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Allowed origins for browser-based clients, comma-separated
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]


# ============================================
# DATABASE CONFIGURATION
# ============================================
DATABASE_URL = os.getenv("DATABASE_URL")


# ============================================
# AUTHENTICATION (Supabase)
# ============================================
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")


# ============================================
# RATE LIMITING
# ============================================
REDIS_URL = os.getenv("REDIS_URL", "memory://")
RATE_LIMIT_ENABLED = _get_bool("RATE_LIMIT_ENABLED", True)


# ============================================
# CHECKOUT
# ============================================
# Lifetime of a checkout session, counted from creation
CHECKOUT_SESSION_TTL_MINUTES = int(os.getenv("CHECKOUT_SESSION_TTL_MINUTES", "30"))


# ============================================
# PAYMENTS
# ============================================
# 'mock' or 'stripe'
PAYMENT_GATEWAY = os.getenv("PAYMENT_GATEWAY", "mock").lower()
PAYMENT_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_TIMEOUT_SECONDS", "15"))
MOCK_PAYMENT_DELAY_SECONDS = float(os.getenv("MOCK_PAYMENT_DELAY_SECONDS", "0"))
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
