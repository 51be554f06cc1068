# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ErrorResponse(BaseModel):
    """ Standard error response. """
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Detailed error message")
    details: dict = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_now)
    request_id: Optional[str] = Field(None, description="Request ID for tracking")


class SuccessResponse(BaseModel):
    """ Standard success response. """
    success: bool = True
    message: str
    data: Optional[dict] = None
    timestamp: datetime = Field(default_factory=_now)


class HealthResponse(BaseModel):
    """ Health check response. """
    status: str = Field(..., description="Service status (healthy, degraded, unhealthy)")
    timestamp: datetime = Field(default_factory=_now)
    version: Optional[str] = Field(None, description="Application version")
    monitoring: Optional[bool] = Field(None, description="Whether deployment monitoring is running")
