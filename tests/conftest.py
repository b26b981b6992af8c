from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import mongomock
import pytest

from fhir_bridge.core.config import ExchangeSettings, JobSettings, Settings
from fhir_bridge.core.mongo import ensure_indexes
from fhir_bridge.models.fhir_resources import Condition, Encounter, FhirResourceKind, Observation
from fhir_bridge.services.job_ledger import JobLedger


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def settings():
    return Settings(
        ENV="test",
        exchange=ExchangeSettings(
            client_id="client-123",
            client_secret="s3cret",
            auth_url="https://auth.example.test/oauth2/v1",
            fhir_url="https://fhir.example.test/fhir-r4/v1",
            org_id="org-1",
            timeout_seconds=5,
            backoff_base=0,
            backoff_max=0,
        ),
        jobs=JobSettings(max_retries=3),
    )


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 15, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def jobs_collection():
    collection = mongomock.MongoClient()["fhir_bridge_test"]["integration_jobs"]
    ensure_indexes(collection)
    return collection


@pytest.fixture
def ledger(jobs_collection):
    return JobLedger(jobs_collection)


@pytest.fixture
def senders():
    return {kind: AsyncMock(return_value=f"{kind.value.lower()}-ext-1") for kind in FhirResourceKind}


def make_encounter(no_rawat: str = "2026/01/15/000001") -> Encounter:
    return Encounter.model_validate({
        "resourceType": "Encounter",
        "status": "arrived",
        "class": {
            "system": "http://terminology.hl7.org/CodeSystem/v3-ActCode",
            "code": "AMB",
            "display": "ambulatory",
        },
        "subject": {"reference": "Patient/P0001", "display": "Budi Santoso"},
        "participant": [{"individual": {"reference": "Practitioner/N1001", "display": "dr. Sari"}}],
        "period": {"start": "2026-01-15T08:00:00+07:00"},
        "serviceProvider": {"reference": "Organization/org-1"},
        "identifier": [{"system": "http://sys-ids.kemkes.go.id/encounter/org-1", "value": no_rawat}],
    })


def make_condition(code: str = "J06.9") -> Condition:
    return Condition.model_validate({
        "resourceType": "Condition",
        "clinicalStatus": {"coding": [{"code": "active"}]},
        "code": {"coding": [{"system": "http://hl7.org/fhir/sid/icd-10", "code": code}]},
        "subject": {"reference": "Patient/P0001"},
        "encounter": {"reference": "Encounter/E0001"},
    })


def make_observation(code: str = "8867-4") -> Observation:
    return Observation.model_validate({
        "resourceType": "Observation",
        "status": "final",
        "code": {"coding": [{"system": "http://loinc.org", "code": code}]},
        "subject": {"reference": "Patient/P0001"},
        "encounter": {"reference": "Encounter/E0001"},
        "valueQuantity": {"value": 80, "unit": "beats/minute"},
    })


@pytest.fixture
def encounter():
    return make_encounter()


@pytest.fixture
def condition():
    return make_condition()


@pytest.fixture
def observation():
    return make_observation()
