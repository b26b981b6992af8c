"""
API Models

Pydantic models for API requests and responses:
- JobListResponse: For the job listing endpoint
- RetryRequest/RetryResponse: For operator-triggered retries
- SubmissionRequest/SubmissionResponse: For batch submissions by resource handlers
- StatusResponse: For monitoring endpoint
- ErrorResponse: For error handling
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .job import Job, JobStatus, RetryOutcome


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobListResponse(BaseModel):
    total: int = Field(..., description="Jobs returned")
    pending: int = Field(0, description="Returned jobs in pending state")
    failed: int = Field(0, description="Returned jobs in failed state")
    success: int = Field(0, description="Returned jobs in success state")
    jobs: List[Job] = Field(default_factory=list)


class RetryRequest(BaseModel):
    """Retry one job by id, or every eligible failed job when status is 'failed'."""

    id: Optional[str] = Field(None, description="Job id to retry")
    status: Optional[JobStatus] = Field(None, description="Set to 'failed' to retry all eligible failed jobs")
    limit: Optional[int] = Field(None, gt=0, description="Maximum jobs to retry (defaults to config)")


class RetryResponse(BaseModel):
    retried: int
    succeeded: int
    still_failed: int
    details: List[RetryOutcome]


class SubmissionItem(BaseModel):
    key: str = Field(..., min_length=1, description="Idempotency key for this record")
    resource: Dict[str, Any] = Field(..., description="FHIR document built by the resource handler")


class SubmissionRequest(BaseModel):
    items: List[SubmissionItem] = Field(..., min_length=1)


class SubmissionResponse(BaseModel):
    resource_type: str
    sent: int
    skipped: int
    failed: int
    details: List[Dict[str, Any]]


class StatusResponse(BaseModel):
    """Response model for status/monitoring endpoint."""

    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    environment: str = Field(..., description="Deployment environment")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")

    total_jobs: int = Field(..., description="Jobs in the ledger")
    pending_jobs: int = Field(..., description="Jobs registered but not yet resolved")
    success_jobs: int = Field(..., description="Jobs delivered to the exchange")
    failed_jobs: int = Field(..., description="Jobs whose last attempt failed")

    token_cached: bool = Field(..., description="Whether a valid exchange token is cached")
    last_activity: Optional[datetime] = Field(None, description="Timestamp of last activity")


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    request_id: Optional[str] = Field(None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
