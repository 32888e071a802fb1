"""
Rate limiting configuration and utilities.
"""
import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from app.core.config import RATE_LIMIT_ENABLED, REDIS_URL

logger = logging.getLogger(__name__)

# Per-minute limits for the endpoints that write
CHECKOUT_SESSION_LIMIT = "30/minute"
PROMO_CODE_LIMIT = "20/minute"
CHECKOUT_COMPLETE_LIMIT = "10/minute"


def get_rate_limit_key(request: Request) -> str:
    """
    Custom key function for rate limiting.

    Priority:
    1. User ID from JWT (if authenticated)
    2. IP address (fallback)

    Returns:
        str: Unique identifier for rate limiting
    """
    user = getattr(request.state, "user", None)
    if user is not None:
        return f"user:{user.id}"

    return f"ip:{get_remote_address(request)}"


if REDIS_URL == "memory://":
    logger.warning(
        "[RATE LIMIT] REDIS_URL not configured, using in-memory storage "
        "(not recommended for production)"
    )

limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=["100/hour"],
    storage_uri=REDIS_URL,
    strategy="fixed-window",
    headers_enabled=True,
    enabled=RATE_LIMIT_ENABLED,
)
