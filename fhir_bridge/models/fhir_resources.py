"""
FHIR Resource Models

Closed set of resource kinds accepted by the exchange, the ledger tags that
map onto them, and typed documents per kind:
- FhirResourceKind: wire resourceType / REST endpoint
- ResourceType: ledger tag (a kind may have several tags, e.g. inpatient encounters)
- Encounter, Condition, Observation, Procedure, MedicationRequest, MedicationDispense

Documents keep every field the builders produce (extra="allow"); only the
fields the exchange rejects when missing are declared and validated.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from ..core.errors import PayloadCorruptionError


class FhirResourceKind(str, Enum):
    ENCOUNTER = "Encounter"
    CONDITION = "Condition"
    OBSERVATION = "Observation"
    PROCEDURE = "Procedure"
    MEDICATION_REQUEST = "MedicationRequest"
    MEDICATION_DISPENSE = "MedicationDispense"

    @property
    def endpoint(self) -> str:
        return f"/{self.value}"


class ResourceType(str, Enum):
    """Ledger tag stored in the job row; each tag is bound to exactly one kind."""

    ENCOUNTER = "Encounter"
    ENCOUNTER_INPATIENT = "EncounterRanap"
    CONDITION = "Condition"
    OBSERVATION = "Observation"
    OBSERVATION_VITALS = "Observation_TTV"
    OBSERVATION_LAB = "Observation_Lab"
    OBSERVATION_RADIOLOGY = "Observation_Rad"
    PROCEDURE = "Procedure"
    MEDICATION_REQUEST = "MedicationRequest"
    MEDICATION_DISPENSE = "MedicationDispense"

    @property
    def kind(self) -> FhirResourceKind:
        return _KIND_BY_TYPE[self]


_KIND_BY_TYPE: Dict[ResourceType, FhirResourceKind] = {
    ResourceType.ENCOUNTER: FhirResourceKind.ENCOUNTER,
    ResourceType.ENCOUNTER_INPATIENT: FhirResourceKind.ENCOUNTER,
    ResourceType.CONDITION: FhirResourceKind.CONDITION,
    ResourceType.OBSERVATION: FhirResourceKind.OBSERVATION,
    ResourceType.OBSERVATION_VITALS: FhirResourceKind.OBSERVATION,
    ResourceType.OBSERVATION_LAB: FhirResourceKind.OBSERVATION,
    ResourceType.OBSERVATION_RADIOLOGY: FhirResourceKind.OBSERVATION,
    ResourceType.PROCEDURE: FhirResourceKind.PROCEDURE,
    ResourceType.MEDICATION_REQUEST: FhirResourceKind.MEDICATION_REQUEST,
    ResourceType.MEDICATION_DISPENSE: FhirResourceKind.MEDICATION_DISPENSE,
}


class Reference(BaseModel):
    model_config = ConfigDict(extra="allow")

    reference: str = Field(..., min_length=1, description="Relative reference, e.g. Patient/123")
    display: Optional[str] = None


class FhirResource(BaseModel):
    """Base for typed documents. Serialized only at the store and wire boundaries."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    resourceType: str
    status: Optional[str] = None
    identifier: Optional[List[Dict[str, Any]]] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True, by_alias=True)


class Encounter(FhirResource):
    resourceType: Literal["Encounter"] = "Encounter"
    status: str = "arrived"
    subject: Reference
    class_: Dict[str, Any] = Field(..., alias="class")
    serviceProvider: Optional[Reference] = None


class Condition(FhirResource):
    resourceType: Literal["Condition"] = "Condition"
    subject: Reference
    encounter: Reference
    code: Dict[str, Any]


class Observation(FhirResource):
    resourceType: Literal["Observation"] = "Observation"
    status: str = "final"
    subject: Reference
    code: Dict[str, Any]
    encounter: Optional[Reference] = None


class Procedure(FhirResource):
    resourceType: Literal["Procedure"] = "Procedure"
    status: str = "completed"
    subject: Reference
    encounter: Reference
    code: Dict[str, Any]


class MedicationRequest(FhirResource):
    resourceType: Literal["MedicationRequest"] = "MedicationRequest"
    status: str = "completed"
    intent: str = "order"
    subject: Reference
    medicationReference: Reference


class MedicationDispense(FhirResource):
    resourceType: Literal["MedicationDispense"] = "MedicationDispense"
    status: str = "completed"
    subject: Reference
    medicationReference: Reference
    authorizingPrescription: Optional[List[Reference]] = None


_DOCUMENT_MODELS: Dict[FhirResourceKind, Type[FhirResource]] = {
    FhirResourceKind.ENCOUNTER: Encounter,
    FhirResourceKind.CONDITION: Condition,
    FhirResourceKind.OBSERVATION: Observation,
    FhirResourceKind.PROCEDURE: Procedure,
    FhirResourceKind.MEDICATION_REQUEST: MedicationRequest,
    FhirResourceKind.MEDICATION_DISPENSE: MedicationDispense,
}


def document_model(kind: FhirResourceKind) -> Type[FhirResource]:
    return _DOCUMENT_MODELS[kind]


def parse_document(resource_type: ResourceType, raw: Any) -> FhirResource:
    """Deserialize a generic document (stored payload or request body) into its typed model.

    Raises PayloadCorruptionError when the document does not fit the kind.
    """
    model = document_model(resource_type.kind)
    if not isinstance(raw, dict):
        raise PayloadCorruptionError(f"{resource_type.value} payload is not an object")
    try:
        return model.model_validate(raw)
    except ValueError as e:
        # pydantic.ValidationError subclasses ValueError
        raise PayloadCorruptionError(f"{resource_type.value} payload invalid: {e}") from e


def idempotency_key(*parts: str) -> str:
    """Build a composite idempotency key, e.g. idempotency_key(no_rawat, kd_penyakit)."""
    return "|".join(parts)
