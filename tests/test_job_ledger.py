import asyncio
from datetime import date, datetime, timezone

import pytest
from bson import ObjectId

from fhir_bridge.models.job import JobFilter, JobStatus
from fhir_bridge.services.job_ledger import JobLedger


@pytest.mark.asyncio
async def test_create_job_registers_pending_row(ledger, jobs_collection):
    job_id = await ledger.create_job("Encounter", "R1", {"resourceType": "Encounter"})

    doc = jobs_collection.find_one({"_id": ObjectId(job_id)})
    assert doc["status"] == "pending"
    assert doc["retry_count"] == 0
    assert doc["external_id"] == ""
    assert doc["payload"] == {"resourceType": "Encounter"}


@pytest.mark.asyncio
async def test_duplicate_key_returns_none(ledger, jobs_collection):
    first = await ledger.create_job("Encounter", "R1", {"v": 1})
    second = await ledger.create_job("Encounter", "R1", {"v": 2})

    assert first is not None
    assert second is None
    assert jobs_collection.count_documents({"resource_type": "Encounter", "idempotency_key": "R1"}) == 1
    # The first snapshot is the one kept
    assert jobs_collection.find_one({"idempotency_key": "R1"})["payload"] == {"v": 1}


@pytest.mark.asyncio
async def test_same_key_under_other_resource_type_is_distinct(ledger, jobs_collection):
    assert await ledger.create_job("Encounter", "R1", {}) is not None
    assert await ledger.create_job("Condition", "R1", {}) is not None
    assert jobs_collection.count_documents({}) == 2


@pytest.mark.asyncio
async def test_repeated_create_for_same_key_has_one_winner(ledger, jobs_collection):
    # create_job never yields, so these inserts run back to back
    results = await asyncio.gather(*(ledger.create_job("Encounter", "R1", {}) for _ in range(10)))

    assert len([r for r in results if r is not None]) == 1
    assert jobs_collection.count_documents({}) == 1


@pytest.mark.asyncio
async def test_complete_job_sets_success(ledger):
    job_id = await ledger.create_job("Condition", "C1", {})
    await ledger.fail_job(job_id, "timeout")

    assert await ledger.complete_job(job_id, "cond-1") is True

    job = await ledger.get_job(job_id)
    assert job.status == JobStatus.SUCCESS
    assert job.external_id == "cond-1"
    assert job.error_message == ""


@pytest.mark.asyncio
async def test_complete_job_never_overwrites_external_id(ledger):
    job_id = await ledger.create_job("Condition", "C1", {})
    await ledger.complete_job(job_id, "cond-1")

    assert await ledger.complete_job(job_id, "cond-2") is False
    assert (await ledger.get_job(job_id)).external_id == "cond-1"


@pytest.mark.asyncio
async def test_fail_job_increments_retry_count(ledger):
    job_id = await ledger.create_job("Procedure", "P1", {})

    await ledger.fail_job(job_id, "502 bad gateway")
    await ledger.fail_job(job_id, "503 unavailable")

    job = await ledger.get_job(job_id)
    assert job.status == JobStatus.FAILED
    assert job.retry_count == 2
    assert job.error_message == "503 unavailable"


@pytest.mark.asyncio
async def test_fail_job_does_not_touch_success(ledger):
    job_id = await ledger.create_job("Procedure", "P1", {})
    await ledger.complete_job(job_id, "proc-1")

    assert await ledger.fail_job(job_id, "late failure") is False

    job = await ledger.get_job(job_id)
    assert job.status == JobStatus.SUCCESS
    assert job.retry_count == 0


@pytest.mark.asyncio
async def test_claim_for_retry_is_exclusive(ledger):
    job_id = await ledger.create_job("Observation_Lab", "L1", {})
    await ledger.fail_job(job_id, "boom")

    first = await ledger.claim_for_retry(job_id, 3)
    second = await ledger.claim_for_retry(job_id, 3)

    assert first is not None
    assert first.status == JobStatus.FAILED
    assert first.claimed_at is not None
    assert second is None


@pytest.mark.asyncio
async def test_claimed_job_is_hidden_until_lease_expires(jobs_collection, clock):
    ledger = JobLedger(jobs_collection, claim_lease_seconds=300, clock=clock)
    job_id = await ledger.create_job("Encounter", "R1", {})
    await ledger.fail_job(job_id, "boom")
    await ledger.claim_for_retry(job_id, 3)

    # A retrier that died mid-send holds the lease
    clock.advance(299)
    assert await ledger.list_failed_under_cap(limit=10, max_retries=3) == []
    assert await ledger.claim_for_retry(job_id, 3) is None

    clock.advance(2)
    assert [job.id for job in await ledger.list_failed_under_cap(limit=10, max_retries=3)] == [job_id]
    reclaimed = await ledger.claim_for_retry(job_id, 3)
    assert reclaimed is not None
    assert reclaimed.retry_count == 1


@pytest.mark.asyncio
async def test_fail_job_releases_claim(ledger):
    job_id = await ledger.create_job("Encounter", "R1", {})
    await ledger.fail_job(job_id, "boom")
    await ledger.claim_for_retry(job_id, 3)

    await ledger.fail_job(job_id, "still down")

    job = await ledger.get_job(job_id)
    assert (job.status, job.retry_count, job.claimed_at) == (JobStatus.FAILED, 2, None)
    assert await ledger.claim_for_retry(job_id, 3) is not None



@pytest.mark.asyncio
async def test_claim_for_retry_respects_cap(ledger):
    job_id = await ledger.create_job("Observation_Lab", "L1", {})
    for _ in range(3):
        await ledger.fail_job(job_id, "boom")

    assert await ledger.claim_for_retry(job_id, 3) is None


@pytest.mark.asyncio
async def test_list_failed_under_cap_oldest_first(ledger, jobs_collection):
    ids = {}
    for i, key in enumerate(["old", "mid", "new", "capped", "ok"]):
        ids[key] = await ledger.create_job("Encounter", key, {})
        jobs_collection.update_one(
            {"_id": ObjectId(ids[key])},
            {"$set": {"created_at": datetime(2026, 1, 10 + i, tzinfo=timezone.utc)}},
        )
    for key in ("new", "mid", "old", "capped"):
        await ledger.fail_job(ids[key], "err")
    for _ in range(2):
        await ledger.fail_job(ids["capped"], "err")
    await ledger.complete_job(ids["ok"], "enc-ok")

    candidates = await ledger.list_failed_under_cap(limit=10, max_retries=3)
    assert [job.idempotency_key for job in candidates] == ["old", "mid", "new"]

    limited = await ledger.list_failed_under_cap(limit=2, max_retries=3)
    assert [job.idempotency_key for job in limited] == ["old", "mid"]


@pytest.mark.asyncio
async def test_list_jobs_filters(ledger, jobs_collection):
    a = await ledger.create_job("Encounter", "A", {})
    b = await ledger.create_job("Condition", "B", {})
    c = await ledger.create_job("Condition", "C", {})
    jobs_collection.update_one({"_id": ObjectId(a)}, {"$set": {"created_at": datetime(2026, 1, 1, 9, tzinfo=timezone.utc)}})
    jobs_collection.update_one({"_id": ObjectId(b)}, {"$set": {"created_at": datetime(2026, 1, 2, 9, tzinfo=timezone.utc)}})
    jobs_collection.update_one({"_id": ObjectId(c)}, {"$set": {"created_at": datetime(2026, 1, 3, 9, tzinfo=timezone.utc)}})
    await ledger.fail_job(c, "err")

    newest_first = await ledger.list_jobs(JobFilter())
    assert [j.idempotency_key for j in newest_first] == ["C", "B", "A"]

    failed = await ledger.list_jobs(JobFilter(status=JobStatus.FAILED))
    assert [j.idempotency_key for j in failed] == ["C"]

    conditions = await ledger.list_jobs(JobFilter(resource_type="Condition"))
    assert {j.idempotency_key for j in conditions} == {"B", "C"}

    ranged = await ledger.list_jobs(JobFilter(date_from=date(2026, 1, 1), date_to=date(2026, 1, 2)))
    assert [j.idempotency_key for j in ranged] == ["B", "A"]

    assert len(await ledger.list_jobs(JobFilter(limit=1))) == 1


@pytest.mark.asyncio
async def test_count_by_status(ledger):
    a = await ledger.create_job("Encounter", "A", {})
    b = await ledger.create_job("Encounter", "B", {})
    await ledger.create_job("Encounter", "C", {})
    await ledger.complete_job(a, "enc-a")
    await ledger.fail_job(b, "err")

    counts = await ledger.count_by_status()

    assert counts == {"pending": 1, "success": 1, "failed": 1, "total": 3}


@pytest.mark.asyncio
async def test_unknown_or_malformed_job_id(ledger):
    assert await ledger.get_job("not-an-object-id") is None
    assert await ledger.get_job(str(ObjectId())) is None
    assert await ledger.complete_job("bogus", "x") is False
    assert await ledger.fail_job("bogus", "x") is False
