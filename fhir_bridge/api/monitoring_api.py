"""
Monitoring API

FastAPI router for monitoring endpoints:
- GET /status: Returns job ledger metrics, token cache state and service health
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from .. import __version__
from ..core.config import get_settings
from ..models.api_models import StatusResponse

router = APIRouter()
logger = logging.getLogger(__name__)

_start_time = time.time()


@router.get("/status", response_model=StatusResponse)
async def status_endpoint(request: Request) -> StatusResponse:
    """Return service status and job ledger metrics."""
    settings = get_settings()
    ledger = request.app.state.job_ledger
    token_provider = request.app.state.token_provider

    counts = await ledger.count_by_status()
    now = datetime.now(timezone.utc)
    cached = token_provider.cached

    response = StatusResponse(
        service=settings.APP_NAME,
        version=__version__,
        environment=settings.ENV,
        uptime_seconds=time.time() - _start_time,
        total_jobs=counts.get("total", 0),
        pending_jobs=counts.get("pending", 0),
        success_jobs=counts.get("success", 0),
        failed_jobs=counts.get("failed", 0),
        token_cached=cached is not None and cached.is_valid(now),
        last_activity=now,
    )

    logger.info("status_requested", extra={"environment": settings.ENV})
    return response
