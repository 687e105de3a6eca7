"""
Domain error taxonomy.

Services raise these; the exception handler registered in main.py turns them
into JSON responses so routes stay thin. Contested claims are not errors:
the claim protocol returns them as outcomes.
"""
from __future__ import annotations

from fastapi import Request, status
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger("giftlist.errors")

MSG_TRY_AGAIN = "Please try again"


class GiftListError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Internal server error"

    def __init__(self, detail: str | None = None) -> None:
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class ValidationError(GiftListError):
    """Malformed input. Not retryable."""

    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid request body"


class NotFoundError(GiftListError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Gift not found"


class StorageError(GiftListError):
    """Persistence failure. Retryable by the caller; the detail stays generic."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = MSG_TRY_AGAIN

    def __init__(self, detail: str | None = None) -> None:
        # internal detail is for logs only
        super().__init__(None)
        self.internal_detail = detail


class ClaimWriteConflict(Exception):
    """A ledger write lost to a concurrent writer (constraint violation)."""


async def giftlist_error_handler(request: Request, exc: GiftListError) -> JSONResponse:
    if isinstance(exc, StorageError):
        logger.error(
            "Storage failure on %s %s: %s",
            request.method,
            request.url.path,
            exc.internal_detail,
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
