"""
Submissions API

FastAPI router used by resource handlers once they have built their documents:
- POST /submissions/{resource_type}: submit a batch through the job ledger

Every item is validated into its typed document, submitted once per
idempotency key, and reported individually; one failing item never aborts
the batch.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Tuple

from fastapi import APIRouter, Depends, Request

from ..core.errors import PayloadCorruptionError
from ..core.logging import bind_context
from ..models.api_models import SubmissionRequest, SubmissionResponse
from ..models.fhir_resources import FhirResource, FhirResourceKind, ResourceType, parse_document
from ..services.fhir_client import SendFn
from ..services.submitter import Submitter

router = APIRouter()
logger = logging.getLogger(__name__)


def get_submitter(request: Request) -> Submitter:
    return request.app.state.submitter


def get_senders(request: Request) -> Mapping[FhirResourceKind, SendFn]:
    return request.app.state.senders


@router.post("/submissions/{resource_type}", response_model=SubmissionResponse)
async def submit_resources(
    resource_type: ResourceType,
    body: SubmissionRequest,
    req: Request,
    submitter: Submitter = Depends(get_submitter),
    senders: Mapping[FhirResourceKind, SendFn] = Depends(get_senders),
) -> SubmissionResponse:
    """Submit a batch of documents of one resource type. Sends run sequentially within the request."""
    request_id = getattr(req.state, "request_id", None)
    valid: List[Tuple[str, FhirResource]] = []
    rejected: List[Dict[str, Any]] = []

    for item in body.items:
        try:
            valid.append((item.key, parse_document(resource_type, item.resource)))
        except PayloadCorruptionError as e:
            rejected.append({"key": item.key, "status": "failed", "error": e.message})

    with bind_context(logger, request_id=request_id, resource_type=resource_type.value) as log:
        log.info("submission_batch_started", extra={"items": len(body.items), "rejected": len(rejected)})
        report = await submitter.submit_batch(resource_type, valid, senders[resource_type.kind])
        log.info(
            "submission_batch_completed",
            extra={"sent": report["sent"], "skipped": report["skipped"], "failed": report["failed"] + len(rejected)},
        )

    return SubmissionResponse(
        resource_type=resource_type.value,
        sent=report["sent"],
        skipped=report["skipped"],
        failed=report["failed"] + len(rejected),
        details=rejected + report["details"],
    )
