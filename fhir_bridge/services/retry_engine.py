"""
Retry Engine

Re-drives failed ledger entries on operator request. Each job is re-sent
from its stored payload through the sender bound to its resource kind, and
the outcome is written back to the same row. Jobs that reached the retry cap
are left for manual intervention.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping

from ..core.errors import PayloadCorruptionError
from ..models.fhir_resources import FhirResourceKind, ResourceType, parse_document
from ..models.job import JobStatus, RetryOutcome
from .fhir_client import SendFn
from .job_ledger import JobLedger
from .submitter import SEND_INTERRUPTED

logger = logging.getLogger(__name__)


class RetryEngine:
    def __init__(self, ledger: JobLedger, senders: Mapping[FhirResourceKind, SendFn], max_retries: int = 3):
        self.ledger = ledger
        self.senders = senders
        self.max_retries = max_retries

    async def retry_one(self, job_id: str) -> RetryOutcome:
        job = await self.ledger.get_job(job_id)
        if job is None:
            return RetryOutcome(id=job_id, status="error", error="job not found")
        if job.status == JobStatus.SUCCESS:
            return RetryOutcome(id=job_id, status="skipped", reason="already success", external_id=job.external_id)
        if job.retry_count >= self.max_retries:
            return RetryOutcome(
                id=job_id,
                status="skipped",
                reason="max retries reached",
                retry_count=job.retry_count,
            )

        try:
            resource_type = ResourceType(job.resource_type)
            document = parse_document(resource_type, job.payload)
        except ValueError:
            logger.error("retry_unknown_resource_type", extra={"job_id": job_id, "resource_type": job.resource_type})
            return RetryOutcome(id=job_id, status="error", error=f"unknown resource type {job.resource_type}")
        except PayloadCorruptionError as e:
            logger.error("retry_invalid_payload", extra={"job_id": job_id, "error": str(e)})
            return RetryOutcome(id=job_id, status="error", error="invalid payload")

        claimed = await self.ledger.claim_for_retry(job_id, self.max_retries)
        if claimed is None:
            return RetryOutcome(id=job_id, status="skipped", reason="job in progress", retry_count=job.retry_count)

        send_fn = self.senders[resource_type.kind]
        try:
            external_id = await send_fn(document)
        except Exception as e:
            await self.ledger.fail_job(job_id, str(e))
            logger.warning("retry_failed", extra={"job_id": job_id, "error": str(e)})
            return RetryOutcome(id=job_id, status="failed", error=str(e), retry_count=claimed.retry_count + 1)
        except BaseException:
            # Cancelled mid-send: count the attempt and drop the lease
            await self.ledger.fail_job(job_id, SEND_INTERRUPTED)
            logger.warning("retry_interrupted", extra={"job_id": job_id})
            raise

        await self.ledger.complete_job(job_id, external_id)
        logger.info("retry_success", extra={"job_id": job_id, "external_id": external_id})
        return RetryOutcome(id=job_id, status="success", external_id=external_id)

    async def retry_failed(self, limit: int = 100) -> List[RetryOutcome]:
        """Retry eligible failed jobs, oldest first."""
        candidates = await self.ledger.list_failed_under_cap(limit, self.max_retries)
        return [await self.retry_one(job.id) for job in candidates]

    @staticmethod
    def summarize(outcomes: Iterable[RetryOutcome]) -> Dict[str, Any]:
        details = list(outcomes)
        return {
            "retried": len(details),
            "succeeded": sum(1 for o in details if o.status == "success"),
            "still_failed": sum(1 for o in details if o.status == "failed"),
            "details": [o.model_dump(exclude_none=True) for o in details],
        }
