"""
Error hierarchy for the submission pipeline.

Duplicate submissions and exhausted retries are not errors; they surface as
skipped outcomes. Everything here is recorded per job and returned to the
immediate caller.
"""
from __future__ import annotations

from typing import Any, Optional


class BridgeError(Exception):
    """Base exception for all bridge failures."""

    code = "bridge_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_response(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details or None}


class TokenAcquisitionError(BridgeError):
    """The OAuth2 client-credentials exchange failed. Not retried internally."""

    code = "token_acquisition_failed"


class FhirSendError(BridgeError):
    """A resource send failed; retryable through the job ledger."""

    code = "fhir_send_failed"

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[dict[str, Any]] = None):
        super().__init__(message, details)
        self.status_code = status_code


class ResourceNotFoundError(BridgeError):
    code = "resource_not_found"


class PayloadCorruptionError(BridgeError):
    """A stored payload no longer deserializes into its typed document."""

    code = "payload_corrupted"


class JobLedgerError(BridgeError):
    code = "job_ledger_error"
