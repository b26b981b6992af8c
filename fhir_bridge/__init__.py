"""
FHIR Bridge Package

Idempotent submission pipeline between a hospital information database and
the national health-data exchange:
- core: Configuration, logging, errors and MongoDB infrastructure
- services: Token provider, FHIR client, job ledger, submitter and retry engine
- models: Pydantic models for FHIR documents, ledger jobs and API schemas
- api: FastAPI routers for submissions, job recovery and monitoring
"""

__version__ = "1.0.0"
__all__ = ["core", "services", "models", "api"]
