"""
Summarify Backend — Shared Schemas
====================================

Error envelope, pagination block and health response used across routes.
"""

from typing import Optional

from pydantic import BaseModel, Field


class Pagination(BaseModel):
    """
    Offset pagination metadata.

    Example:
        {"total": 42, "page": 2, "limit": 20, "total_pages": 3}
    """
    total: int = Field(description="Total number of items")
    page: int = Field(description="Current page (1-based)")
    limit: int = Field(description="Items per page")
    total_pages: int = Field(description="Number of pages at this limit")


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Fields:
        error: Machine-readable error code (e.g., "insufficient_credits", "not_found")
        message: Human-readable description for display to users
        details: Structured context (balance, required amount, identifiers)
        request_id: Correlation ID for tracing this error in server logs

    Example:
        {
            "error": "insufficient_credits",
            "message": "Insufficient credits: 1 required, 0 available",
            "details": {"current": 0, "required": 1, "shortfall": 1},
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    Health check response showing service and dependency status.

    Returned by GET /health for monitoring and load balancer probes.
    """
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    gemini: str = Field(description="Gemini API status: available, unavailable, circuit_open")
    active_jobs: int = Field(description="Summary jobs running in this process")
    uptime_seconds: float = Field(description="Seconds since service started")
