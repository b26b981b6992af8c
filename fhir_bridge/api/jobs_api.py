"""
Jobs API

FastAPI router for operator inspection and recovery of the job ledger:
- GET /jobs: List jobs with date range / status / resource type filters
- POST /jobs/retry: Retry one job by id, or every eligible failed job
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..core.config import get_settings
from ..core.logging import bind_context
from ..models.api_models import JobListResponse, RetryRequest, RetryResponse
from ..models.job import JobFilter, JobStatus
from ..services.job_ledger import JobLedger
from ..services.retry_engine import RetryEngine

router = APIRouter()
logger = logging.getLogger(__name__)


def get_job_ledger(request: Request) -> JobLedger:
    """Dependency to get the job ledger from app state."""
    return request.app.state.job_ledger


def get_retry_engine(request: Request) -> RetryEngine:
    """Dependency to get the retry engine from app state."""
    return request.app.state.retry_engine


@router.get("/jobs", response_model=JobListResponse)
async def list_jobs(
    date_from: Optional[date] = Query(None, description="Created on or after (YYYY-MM-DD)"),
    date_to: Optional[date] = Query(None, description="Created on or before (YYYY-MM-DD)"),
    status: Optional[JobStatus] = Query(None),
    resource_type: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, gt=0),
    ledger: JobLedger = Depends(get_job_ledger),
) -> JobListResponse:
    """List ledger jobs, newest first, with per-status totals of the returned page."""
    filters = JobFilter(
        date_from=date_from,
        date_to=date_to,
        status=status,
        resource_type=resource_type,
        limit=limit or get_settings().jobs.list_default_limit,
    )
    jobs = await ledger.list_jobs(filters)

    return JobListResponse(
        total=len(jobs),
        pending=sum(1 for j in jobs if j.status == JobStatus.PENDING),
        failed=sum(1 for j in jobs if j.status == JobStatus.FAILED),
        success=sum(1 for j in jobs if j.status == JobStatus.SUCCESS),
        jobs=jobs,
    )


@router.post("/jobs/retry", response_model=RetryResponse)
async def retry_jobs(
    body: RetryRequest,
    req: Request,
    engine: RetryEngine = Depends(get_retry_engine),
) -> RetryResponse:
    """Retry failed jobs synchronously and report per-job outcomes.

    Jobs at the retry cap are reported as skipped and never re-sent.
    """
    request_id = getattr(req.state, "request_id", None)

    with bind_context(logger, request_id=request_id) as log:
        if body.id:
            log.info("retry_one_requested", extra={"job_id": body.id})
            outcomes = [await engine.retry_one(body.id)]
        elif body.status == JobStatus.FAILED:
            limit = body.limit or get_settings().jobs.retry_batch_limit
            log.info("retry_failed_requested", extra={"limit": limit})
            outcomes = await engine.retry_failed(limit)
        else:
            raise HTTPException(status_code=400, detail="provide 'id' or 'status':'failed'")

    return RetryResponse(**engine.summarize(outcomes))
