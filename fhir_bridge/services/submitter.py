"""
Submitter

The single code path every resource handler uses to deliver a document:
register intent in the job ledger, call the sender, record the outcome.
A duplicate registration means the record was already handled and is
skipped without any external call.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Tuple

from ..core.errors import JobLedgerError
from ..models.fhir_resources import FhirResource, ResourceType
from ..models.job import SubmitResult
from .fhir_client import SendFn
from .job_ledger import JobLedger

logger = logging.getLogger(__name__)

SEND_INTERRUPTED = "send interrupted"


class Submitter:
    def __init__(self, ledger: JobLedger):
        self.ledger = ledger

    async def submit(
        self,
        resource_type: ResourceType,
        idempotency_key: str,
        document: FhirResource,
        send_fn: SendFn,
    ) -> SubmitResult:
        log_extra = {"resource_type": resource_type.value, "idempotency_key": idempotency_key}

        try:
            job_id = await self.ledger.create_job(resource_type.value, idempotency_key, document.to_wire())
        except JobLedgerError as e:
            # Nothing registered, so nothing is sent
            logger.error("submit_ledger_error", extra={**log_extra, "error": str(e)})
            return SubmitResult(status="failed", error=str(e))

        if job_id is None:
            return SubmitResult(status="skipped")

        try:
            external_id = await send_fn(document)
        except Exception as e:
            logger.warning("submit_send_failed", extra={**log_extra, "job_id": job_id, "error": str(e)})
            await self.ledger.fail_job(job_id, str(e))
            return SubmitResult(status="failed", job_id=job_id, error=str(e))
        except BaseException:
            # Cancelled mid-send: leave a failed row for the retry engine, not a pending one
            await self.ledger.fail_job(job_id, SEND_INTERRUPTED)
            logger.warning("submit_send_interrupted", extra={**log_extra, "job_id": job_id})
            raise

        await self.ledger.complete_job(job_id, external_id)
        logger.info("submit_success", extra={**log_extra, "job_id": job_id, "external_id": external_id})
        return SubmitResult(status="success", job_id=job_id, external_id=external_id)

    async def submit_batch(
        self,
        resource_type: ResourceType,
        items: Iterable[Tuple[str, FhirResource]],
        send_fn: SendFn,
    ) -> Dict[str, Any]:
        """Submit (idempotency_key, document) pairs one after another; failures never abort the batch."""
        details: List[Dict[str, Any]] = []
        counts = {"sent": 0, "skipped": 0, "failed": 0}

        for key, document in items:
            result = await self.submit(resource_type, key, document, send_fn)
            if result.status == "success":
                counts["sent"] += 1
            elif result.status == "skipped":
                counts["skipped"] += 1
            else:
                counts["failed"] += 1
            details.append({"key": key, **result.model_dump()})

        return {**counts, "details": details}
