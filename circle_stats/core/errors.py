"""
Custom exception hierarchy for the circle stats API.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.

The services themselves never raise for missing data: an unknown circle or
a member without an alignment record is a zero value. These classes exist
for the HTTP layer.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class CircleStatsException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class CircleNotFoundError(CircleStatsException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "CIRCLE_NOT_FOUND"

    def __init__(self, circle_id: str):
        super().__init__(
            message=f"Circle {circle_id} does not exist.",
            details={"circle_id": circle_id},
        )


class StatsUnavailableError(CircleStatsException):
    """
    A store read failed while computing an aggregate.

    No partial result is returned in this case: an average over the members
    we managed to read would be silently wrong.
    """
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "STATS_UNAVAILABLE"

    def __init__(self, circle_id: str, operation: str):
        super().__init__(
            message="Circle stats are temporarily unavailable. Try again.",
            details={"circle_id": circle_id, "operation": operation},
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def circle_stats_exception_handler(
    request: Request, exc: CircleStatsException
) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
