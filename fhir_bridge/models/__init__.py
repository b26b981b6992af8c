"""
Models Package

Contains Pydantic data models for:
- fhir_resources: resource kinds, ledger tags and typed FHIR documents
- job: job ledger rows, filters and per-record outcomes
- api_models: API request/response models
"""

__all__ = ["fhir_resources", "job", "api_models"]
