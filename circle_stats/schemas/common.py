"""
Error envelope schemas, referenced from route `responses` for the OpenAPI docs.
"""
from typing import Any, Optional
from pydantic import BaseModel, Field


class FieldError(BaseModel):
    """One rejected query or path parameter."""
    field: str = Field(examples=["query.limit"])
    message: str
    type: str


class ErrorResponse(BaseModel):
    """`{code, message, details}` envelope of every 4xx/5xx response."""
    code: str = Field(examples=["CIRCLE_NOT_FOUND"])
    message: str
    details: Optional[dict[str, Any]] = None


class ValidationErrorResponse(ErrorResponse):
    details: dict[str, list[FieldError]] = Field(
        description='Field errors under "errors".'
    )


NOT_FOUND_RESPONSE = {"model": ErrorResponse, "description": "Circle does not exist."}
UNAVAILABLE_RESPONSE = {
    "model": ErrorResponse,
    "description": "Alignment data could not be read.",
}
VALIDATION_RESPONSE = {
    "model": ValidationErrorResponse,
    "description": "Invalid query parameters.",
}
