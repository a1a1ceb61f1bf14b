"""Rate limiting for the club's public and payment endpoints.

Uses slowapi with Redis storage so limits hold across service instances.
"""

from functools import lru_cache
from typing import Callable

from fastapi import FastAPI, Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from libs.common.config import get_settings
from libs.common.logging import get_request_id


def _get_client_ip(request: Request) -> str:
    """Client IP, preferring the first hop of X-Forwarded-For."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


def _get_user_or_ip(request: Request) -> str:
    """
    Rate limit by user ID if authenticated, otherwise by IP.
    """
    user = getattr(request.state, "user", None)
    if user is not None:
        return f"user:{user.user_id}"
    return f"ip:{_get_client_ip(request)}"


@lru_cache
def get_limiter() -> Limiter:
    """
    Create and return a cached Limiter instance.

    Falls back to in-memory counters while Redis is unreachable.
    """
    settings = get_settings()

    return Limiter(
        key_func=_get_user_or_ip,
        default_limits=["100/minute"],
        storage_uri=settings.REDIS_URL,
        strategy="fixed-window",
        in_memory_fallback_enabled=True,
        enabled=settings.RATE_LIMIT_ENABLED,
    )


limiter = get_limiter()


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """JSON 429 with a Retry-After header."""
    retry_after = exc.detail.split("per")[0].strip() if exc.detail else "1 minute"

    return JSONResponse(
        status_code=429,
        content={
            "detail": f"Rate limit exceeded. Try again in {retry_after}.",
            "code": "RATE_LIMIT_EXCEEDED",
            "request_id": get_request_id(),
        },
        headers={
            "Retry-After": str(getattr(exc, "retry_after", 60)),
        },
    )


def add_rate_limiting(app: FastAPI) -> None:
    """Attach the shared limiter and its 429 handler to an app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


# Decorator shortcuts for common rate limit tiers
def auth_limit(func: Callable) -> Callable:
    """Strict limit for intake and credential checks (5/minute)."""
    return limiter.limit("5/minute")(func)


def payment_limit(func: Callable) -> Callable:
    """Strict limit for payment endpoints (3/minute)."""
    return limiter.limit("3/minute")(func)


def admin_limit(func: Callable) -> Callable:
    """Relaxed limit for admin endpoints (200/minute)."""
    return limiter.limit("200/minute")(func)
