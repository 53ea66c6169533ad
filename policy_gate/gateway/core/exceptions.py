"""
Custom exception classes.

Represent errors raised while authorizing and forwarding requests.
"""

import logging
from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PolicyGateError(Exception):
    """Base exception class for the gate."""

    pass


class GateConfigError(PolicyGateError):
    """Raised when the gate configuration file cannot be used."""

    def __init__(self, path: str, detail: str):
        self.path = path
        self.detail = detail
        super().__init__(f"Invalid gate config {path}: {detail}")


class DecisionUnavailableError(PolicyGateError):
    """
    Raised when no decision could be obtained.

    Covers transport failures, timeouts, non-2xx answers and bodies that
    are not ``{"result": {...}}``.
    """

    def __init__(self, detail: str, status_code: Optional[int] = None, cause: Optional[Exception] = None):
        self.detail = detail
        self.status_code = status_code
        self.cause = cause
        super().__init__(f"Decision unavailable: {detail}")


class BodyEncodingError(PolicyGateError):
    """Raised when a denial body cannot be encoded."""

    pass


class UnsupportedContentTypeError(BodyEncodingError):
    """Raised when the content type has no known encoding."""

    def __init__(self, content_type: str):
        self.content_type = content_type
        super().__init__(f"unsupported content type: {content_type}")


class UpstreamUnavailableError(PolicyGateError):
    """Failed to reach the upstream service."""

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Upstream unreachable: {cause}")


# ===========================================
# Exception Handlers
# ===========================================


async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler for unhandled exceptions.
    """
    logger.error(
        f"Global exception handler caught: {exc}",
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal Server Error", "detail": str(exc)},
    )


async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailableError):
    logger.warning(
        "Upstream request failed: %s",
        exc.cause,
        extra={"path": request.url.path, "method": request.method},
    )
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"message": "Bad Gateway", "detail": str(exc)},
    )
