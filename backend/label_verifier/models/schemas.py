"""Pydantic schemas for API requests and responses."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class FieldResult(BaseModel):
    """Result for a single field verification."""
    field: str
    input: str
    found: bool
    confidence: float = Field(ge=0.0, le=1.0)
    best_match: Optional[str] = None
    
    class Config:
        json_schema_extra = {
            "example": {
                "field": "netContents",
                "input": "750 ML",
                "found": True,
                "confidence": 1.0,
                "best_match": "750 ml"
            }
        }


class VerificationResponse(BaseModel):
    """Response for single label verification."""
    success: bool
    image_name: Optional[str] = None
    ocr_text: Optional[str] = None
    ocr_confidence: Optional[float] = None
    configuration: Optional[str] = None
    results: list[FieldResult] = []
    report: Optional[str] = None
    processing_time_ms: Optional[int] = None
    error: Optional[str] = None


class LogEntryRequest(BaseModel):
    """A verification record posted by a client."""
    imageName: str = ""
    fields: dict[str, Any] = {}
    ocrText: str = ""
    results: list[dict[str, Any]] = []
    timestamp: Optional[str] = None
    
    class Config:
        extra = "allow"


class LogWriteResponse(BaseModel):
    """Response for log writes and clears."""
    success: bool
    message: str


class LogListResponse(BaseModel):
    """All stored verification records."""
    success: bool
    logs: list[dict[str, Any]]


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None
    
    class Config:
        json_schema_extra = {
            "example": {
                "success": False,
                "error": "Invalid image format",
                "detail": "Allowed formats: BMP, GIF, JPEG, JPG, PNG, TIF, TIFF, WEBP"
            }
        }


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    ocr_ready: bool
