"""Common schemas and error responses."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response schema (RFC 7807 inspired)."""

    error: str = Field(..., description="Error code", examples=["INSUFFICIENT_HOLDING"])
    message: str = Field(..., description="Human-readable error message")
    status: int = Field(..., description="HTTP status code")
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Additional error details"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "error": "INSUFFICIENT_HOLDING",
                "message": "Cannot sell 10. You hold 5.",
                "status": 400,
                "details": {"held": 5, "requested": 10},
            }
        }
    }


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Overall health status", examples=["healthy", "unhealthy"])
    version: str = Field(..., description="Application version")
    timestamp: datetime
    checks: Dict[str, bool] = Field(default_factory=dict, description="Individual service health checks")
