"""
Job Ledger

Persists one job per (resource_type, idempotency_key) in MongoDB and is the
single source of truth for "has this record already been sent":
- create_job relies on the unique index; a DuplicateKeyError means another
  request (or process) already registered the record
- complete_job / fail_job record send outcomes on the existing row
- claim_for_retry leases a failed job to one retrier; the row stays failed,
  and a lease left behind by a dead process expires after claim_lease_seconds
- read-only listings for operators and for retry candidate selection
"""
from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..core.errors import JobLedgerError
from ..models.job import Job, JobFilter, JobStatus

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _object_id(job_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(job_id)
    except (InvalidId, TypeError):
        return None


class JobLedger:
    """Service for job ledger operations on the jobs collection."""

    def __init__(
        self,
        collection: Collection,
        claim_lease_seconds: float = 300.0,
        clock: Callable[[], datetime] = _now,
    ):
        self.jobs = collection
        self.claim_lease = timedelta(seconds=claim_lease_seconds)
        self._clock = clock

    def _unclaimed(self) -> Dict[str, Any]:
        """Filter for rows with no claim, or a claim older than the lease."""
        return {"$or": [
            {"claimed_at": None},
            {"claimed_at": {"$lt": self._clock() - self.claim_lease}},
        ]}

    async def create_job(self, resource_type: str, idempotency_key: str, payload: Dict[str, Any]) -> Optional[str]:
        """Register a job. Returns the new job id, or None when the key is already registered."""
        now = self._clock()
        doc = {
            "resource_type": resource_type,
            "idempotency_key": idempotency_key,
            "payload": payload,
            "status": JobStatus.PENDING.value,
            "external_id": "",
            "error_message": "",
            "retry_count": 0,
            "created_at": now,
            "updated_at": now,
        }

        try:
            result = self.jobs.insert_one(doc)
        except DuplicateKeyError:
            logger.info("job_duplicate", extra={"resource_type": resource_type, "idempotency_key": idempotency_key})
            return None
        except PyMongoError as e:
            logger.error("job_create_error", extra={"error": str(e), "resource_type": resource_type})
            raise JobLedgerError(f"create job: {e}") from e

        job_id = str(result.inserted_id)
        logger.info("job_created", extra={"job_id": job_id, "resource_type": resource_type})
        return job_id

    async def complete_job(self, job_id: str, external_id: str) -> bool:
        """Mark a job as success. A job already in success keeps its external_id."""
        oid = _object_id(job_id)
        if oid is None:
            return False
        try:
            result = self.jobs.update_one(
                {"_id": oid, "status": {"$ne": JobStatus.SUCCESS.value}},
                {
                    "$set": {
                        "status": JobStatus.SUCCESS.value,
                        "external_id": external_id,
                        "error_message": "",
                        "updated_at": self._clock(),
                    },
                    "$unset": {"claimed_at": ""},
                },
            )
        except PyMongoError as e:
            logger.error("job_complete_error", extra={"error": str(e), "job_id": job_id})
            return False
        if result.modified_count == 0:
            logger.warning("job_complete_noop", extra={"job_id": job_id})
        return result.modified_count > 0

    async def fail_job(self, job_id: str, error_message: str) -> bool:
        """Mark a job as failed and increment retry_count. Never touches a success row."""
        oid = _object_id(job_id)
        if oid is None:
            return False
        try:
            result = self.jobs.update_one(
                {"_id": oid, "status": {"$ne": JobStatus.SUCCESS.value}},
                {
                    "$set": {
                        "status": JobStatus.FAILED.value,
                        "error_message": error_message,
                        "updated_at": self._clock(),
                    },
                    "$inc": {"retry_count": 1},
                    "$unset": {"claimed_at": ""},
                },
            )
        except PyMongoError as e:
            logger.error("job_fail_error", extra={"error": str(e), "job_id": job_id})
            return False
        return result.modified_count > 0

    async def claim_for_retry(self, job_id: str, max_retries: int) -> Optional[Job]:
        """Lease a failed job under the cap for one retry. None if another caller holds a live lease.

        The status stays failed; fail_job / complete_job clear the lease.
        """
        oid = _object_id(job_id)
        if oid is None:
            return None
        try:
            doc = self.jobs.find_one_and_update(
                {
                    "_id": oid,
                    "status": JobStatus.FAILED.value,
                    "retry_count": {"$lt": max_retries},
                    **self._unclaimed(),
                },
                {"$set": {"claimed_at": self._clock()}},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error("job_claim_error", extra={"error": str(e), "job_id": job_id})
            return None
        return Job.from_document(doc) if doc else None

    async def get_job(self, job_id: str) -> Optional[Job]:
        oid = _object_id(job_id)
        if oid is None:
            return None
        doc = self.jobs.find_one({"_id": oid})
        return Job.from_document(doc) if doc else None

    async def list_jobs(self, filters: JobFilter) -> List[Job]:
        """Jobs matching the filters, newest first."""
        query: Dict[str, Any] = {}
        if filters.date_from and filters.date_to:
            query["created_at"] = {
                "$gte": datetime.combine(filters.date_from, time.min, tzinfo=timezone.utc),
                "$lte": datetime.combine(filters.date_to, time.max, tzinfo=timezone.utc),
            }
        if filters.status:
            query["status"] = filters.status.value
        if filters.resource_type:
            query["resource_type"] = filters.resource_type

        cursor = self.jobs.find(query).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(filters.limit)
        return [Job.from_document(doc) for doc in cursor]

    async def list_failed_under_cap(self, limit: int, max_retries: int) -> List[Job]:
        """Retry candidates: failed, unclaimed, retry_count below the cap, oldest first."""
        cursor = (
            self.jobs.find({
                "status": JobStatus.FAILED.value,
                "retry_count": {"$lt": max_retries},
                **self._unclaimed(),
            })
            .sort([("created_at", ASCENDING), ("_id", ASCENDING)])
            .limit(limit)
        )
        return [Job.from_document(doc) for doc in cursor]

    async def count_by_status(self) -> Dict[str, int]:
        """Job counts per status for monitoring."""
        counts = {status.value: 0 for status in JobStatus}
        try:
            for status in JobStatus:
                counts[status.value] = self.jobs.count_documents({"status": status.value})
        except PyMongoError as e:
            logger.error("job_stats_error", extra={"error": str(e)})
        counts["total"] = sum(counts[status.value] for status in JobStatus)
        return counts
