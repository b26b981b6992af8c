"""
FHIR Exchange Client

Handles communication with the national health-data exchange:
- Bearer authentication through the injected TokenProvider
- Connection-level retries with backoff (only when nothing reached the server)
- One sender per resource kind, each returning the exchange-assigned id
- Patient / Practitioner id lookup by national identity number (NIK)
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.config import Settings
from ..core.errors import FhirSendError, ResourceNotFoundError
from ..core.logging import hash_identifier
from ..models.fhir_resources import FhirResource, FhirResourceKind
from .token_provider import TokenProvider

logger = logging.getLogger(__name__)

NIK_SYSTEM = "https://fhir.kemkes.go.id/id/nik"

SendFn = Callable[[FhirResource], Awaitable[str]]


class FhirClient:
    """Client for the exchange's FHIR REST API."""

    def __init__(self, settings: Settings, token_provider: TokenProvider, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.base_url = settings.exchange.fhir_url
        self.tokens = token_provider
        self.connect_retries = settings.exchange.connect_retries
        self.backoff_base = settings.exchange.backoff_base
        self.backoff_max = settings.exchange.backoff_max

        # HTTP client with connection pooling
        self.client = http_client or httpx.AsyncClient(
            timeout=settings.exchange.timeout_seconds,
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Make an authenticated request. TokenAcquisitionError propagates unchanged."""
        if not self.base_url:
            raise FhirSendError("exchange fhir_url not configured")

        token = await self.tokens.get_token()
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {token}"
        if method.upper() in ("POST", "PUT", "PATCH"):
            headers["Content-Type"] = "application/json"

        url = f"{self.base_url}{path}"
        try:
            # ConnectError means the request never left this host, so resending cannot duplicate it
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.connect_retries),
                wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
                retry=retry_if_exception_type(httpx.ConnectError),
                reraise=True,
            ):
                with attempt:
                    return await self.client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error("fhir_request_error", extra={"error": str(e), "path": path})
            raise FhirSendError(f"request failed: {e}") from e
        raise FhirSendError("request failed: no attempt made")  # pragma: no cover

    async def _send(self, kind: FhirResourceKind, document: FhirResource) -> str:
        body = document.to_wire()
        logger.debug("fhir_send", extra={"resource": kind.value})
        response = await self._request("POST", kind.endpoint, json=body)

        try:
            result: Dict[str, Any] = response.json() if response.content else {}
        except ValueError:
            result = {}

        if response.status_code >= 400:
            logger.error(
                "fhir_http_error",
                extra={"status_code": response.status_code, "resource": kind.value, "response": response.text},
            )
            raise FhirSendError(
                f"{kind.value} send failed ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        resource_id = result.get("id") if isinstance(result, dict) else None
        if not isinstance(resource_id, str) or not resource_id:
            raise FhirSendError(f"{kind.value} send failed: {result}", status_code=response.status_code)

        logger.info("fhir_resource_created", extra={"resource": kind.value, "external_id": resource_id})
        return resource_id

    async def send_encounter(self, document: FhirResource) -> str:
        return await self._send(FhirResourceKind.ENCOUNTER, document)

    async def send_condition(self, document: FhirResource) -> str:
        return await self._send(FhirResourceKind.CONDITION, document)

    async def send_observation(self, document: FhirResource) -> str:
        return await self._send(FhirResourceKind.OBSERVATION, document)

    async def send_procedure(self, document: FhirResource) -> str:
        return await self._send(FhirResourceKind.PROCEDURE, document)

    async def send_medication_request(self, document: FhirResource) -> str:
        return await self._send(FhirResourceKind.MEDICATION_REQUEST, document)

    async def send_medication_dispense(self, document: FhirResource) -> str:
        return await self._send(FhirResourceKind.MEDICATION_DISPENSE, document)

    async def lookup_patient(self, nik: str) -> str:
        """Return the exchange Patient id for a NIK.

        For the document builders that fill Encounter.subject and similar references;
        those builders read the hospital database and are not part of this service.
        """
        return await self._lookup("Patient", nik)

    async def lookup_practitioner(self, nik: str) -> str:
        """Return the exchange Practitioner id for a NIK, for participant references."""
        return await self._lookup("Practitioner", nik)

    async def _lookup(self, resource: str, nik: str) -> str:
        response = await self._request("GET", f"/{resource}", params={"identifier": f"{NIK_SYSTEM}|{nik}"})
        if response.status_code >= 400:
            raise FhirSendError(
                f"{resource} lookup failed ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        try:
            bundle = response.json()
        except ValueError as e:
            raise FhirSendError(f"{resource} lookup returned invalid JSON") from e

        entries = bundle.get("entry") if isinstance(bundle, dict) else None
        if not isinstance(bundle, dict) or not bundle.get("total") or not entries:
            logger.warning(
                "fhir_lookup_not_found",
                extra={"resource": resource, "nik_hash": hash_identifier(nik, self.settings.ID_HASH_SALT)},
            )
            raise ResourceNotFoundError(f"{resource.lower()} NIK not found")

        try:
            return entries[0]["resource"]["id"]
        except (KeyError, TypeError, IndexError) as e:
            raise FhirSendError(f"{resource} lookup returned malformed bundle") from e


def build_sender_table(client: FhirClient) -> Dict[FhirResourceKind, SendFn]:
    """Bind every resource kind to its sender. Built once at startup."""
    table: Dict[FhirResourceKind, SendFn] = {
        FhirResourceKind.ENCOUNTER: client.send_encounter,
        FhirResourceKind.CONDITION: client.send_condition,
        FhirResourceKind.OBSERVATION: client.send_observation,
        FhirResourceKind.PROCEDURE: client.send_procedure,
        FhirResourceKind.MEDICATION_REQUEST: client.send_medication_request,
        FhirResourceKind.MEDICATION_DISPENSE: client.send_medication_dispense,
    }
    missing = set(FhirResourceKind) - set(table)
    if missing:
        raise RuntimeError(f"No sender registered for: {sorted(k.value for k in missing)}")
    return table
