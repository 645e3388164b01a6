"""Pydantic models for request/response schemas."""

from .schemas import (
    FieldResult,
    VerificationResponse,
    LogEntryRequest,
    LogWriteResponse,
    LogListResponse,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    "FieldResult",
    "VerificationResponse",
    "LogEntryRequest",
    "LogWriteResponse",
    "LogListResponse",
    "ErrorResponse",
    "HealthResponse",
]
