"""
Rate limiting using SlowAPI

Guards the endpoints that take seat holds or create orders.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from sorykpass.core.config import settings

RESERVE_LIMIT = "30/minute"
CHECKOUT_LIMIT = "10/minute"


def get_identifier(request: Request) -> str:
    """Rate limit per buyer when identified, per client IP otherwise"""
    user_id = request.headers.get("X-User-Id")
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=get_identifier,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.RATE_LIMIT_ENABLED,
    strategy="fixed-window",
)
