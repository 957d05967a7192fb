"""Pydantic schemas for request/response validation."""

from app.schemas.common import ApiResponse, ErrorBody, ErrorResponse

__all__ = [
    "ApiResponse",
    "ErrorBody",
    "ErrorResponse",
]
