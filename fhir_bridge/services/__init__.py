"""
Services Package

Contains the submission pipeline:
- token_provider: OAuth2 client-credentials token cache with single-flight refresh
- fhir_client: exchange REST client, per-resource senders and NIK lookups
- job_ledger: MongoDB job ledger keyed by (resource_type, idempotency_key)
- submitter: register -> send -> record outcome, once per logical record
- retry_engine: operator-triggered re-drive of failed jobs
"""
__all__ = ["token_provider", "fhir_client", "job_ledger", "submitter", "retry_engine"]
