"""
Job Ledger Models

Pydantic models for the integration job ledger:
- JobStatus: pending -> success (terminal) | failed -> failed | success
- Job: one persisted submission attempt per (resource_type, idempotency_key)
- JobFilter: operator listing filters
- SubmitResult / RetryOutcome: per-record results returned to callers
"""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class Job(BaseModel):
    """A persisted job row."""

    id: str = Field(..., description="Surrogate key (stringified ObjectId)")
    resource_type: str = Field(..., description="Ledger tag, see ResourceType")
    idempotency_key: str = Field(..., description="Caller-supplied key, stable across retries")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Snapshot of the document sent")
    status: JobStatus = JobStatus.PENDING
    external_id: str = Field("", description="Id assigned by the exchange on success")
    error_message: str = ""
    retry_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = Field(None, description="Set while a retrier holds the job")

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Job":
        data = {k: v for k, v in doc.items() if k != "_id"}
        data["id"] = str(doc["_id"])
        data["external_id"] = data.get("external_id") or ""
        data["error_message"] = data.get("error_message") or ""
        return cls(**data)


class JobFilter(BaseModel):
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    status: Optional[JobStatus] = None
    resource_type: Optional[str] = None
    limit: int = Field(100, gt=0)


class SubmitResult(BaseModel):
    status: Literal["success", "skipped", "failed"]
    job_id: Optional[str] = None
    external_id: str = ""
    error: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"


class RetryOutcome(BaseModel):
    id: str
    status: Literal["success", "failed", "skipped", "error"]
    reason: Optional[str] = None
    error: Optional[str] = None
    external_id: Optional[str] = None
    retry_count: Optional[int] = None
