"""
Custom middleware for request tracking.
"""
import logging
import time
import uuid

from fastapi import Request

logger = logging.getLogger(__name__)


async def request_id_middleware(request: Request, call_next):
    """
    Middleware to add unique request ID to each request.

    The request ID is:
    - Taken from an incoming X-Request-ID header, or generated
    - Stored in request.state.request_id
    - Added to response headers as X-Request-ID
    - Logged with the method, path, status and duration
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = int((time.perf_counter() - start_time) * 1000)

    response.headers["X-Request-ID"] = request_id

    logger.info(
        "[REQUEST] %s %s -> %s (%sms) id=%s",
        request.method, request.url.path, response.status_code, elapsed_ms, request_id
    )

    return response
