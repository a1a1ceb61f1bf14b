"""Domain error type and FastAPI exception handlers.

Coded domain violations (``U0001``..``U0011``, ``PERM1``, ``NOTFOUND1``) are
raised as ``DomainError`` and rendered as::

    {"detail": "...", "code": "U0009", "request_id": "..."}
"""

from enum import Enum
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from libs.common.logging import get_logger, get_request_id
from libs.common.stripe_client import StripeServiceError

logger = get_logger(__name__)


class ErrorCode(str, Enum):
    USER_NOT_FOUND = "U0001"
    WAITLIST_ENTRY_NOT_FOUND = "U0002"
    USER_BANNED = "U0003"
    ALREADY_MEMBER = "U0004"
    ALREADY_ACTIVE = "U0005"
    INVITATION_CREATE_FAILED = "U0006"
    WAITLIST_NOT_ELIGIBLE = "U0007"
    PROFILE_NOT_FOUND = "U0008"
    INVITATION_EXPIRED = "U0009"
    INVALID_STATUS_TRANSITION = "U0010"
    INVITATION_NOT_FOUND = "U0011"
    PERMISSION_DENIED = "PERM1"
    NOT_FOUND = "NOTFOUND1"


_DEFAULT_STATUS = {
    ErrorCode.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.WAITLIST_ENTRY_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.USER_BANNED: status.HTTP_403_FORBIDDEN,
    ErrorCode.ALREADY_MEMBER: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_ACTIVE: status.HTTP_409_CONFLICT,
    ErrorCode.INVITATION_CREATE_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.WAITLIST_NOT_ELIGIBLE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.PROFILE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVITATION_EXPIRED: status.HTTP_410_GONE,
    ErrorCode.INVALID_STATUS_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.INVITATION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


class DomainError(Exception):
    """A business rule violation carrying a stable error code."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code or _DEFAULT_STATUS.get(
            code, status.HTTP_400_BAD_REQUEST
        )
        super().__init__(message)


def _error_body(detail, code: Optional[str]) -> dict:
    return {"detail": detail, "code": code, "request_id": get_request_id()}


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.info(
        f"Domain error {exc.code.value}: {exc.message}",
        extra={"extra_fields": {"code": exc.code.value}},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, exc.code.value),
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.detail, None),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(jsonable_encoder(exc.errors()), "VALIDATION_ERROR"),
    )


async def stripe_error_handler(request: Request, exc: StripeServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=_error_body(f"Payment provider error: {exc.message}", "STRIPE_ERROR"),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("Internal server error", "INTERNAL_ERROR"),
    )


def add_exception_handlers(app: FastAPI) -> None:
    """Register the shared exception handlers on an app."""
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StripeServiceError, stripe_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
