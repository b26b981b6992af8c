"""
API Package

Contains FastAPI routers for:
- jobs_api: /jobs listing and /jobs/retry recovery endpoints
- submissions_api: /submissions/{resource_type} batch submission endpoint
- monitoring_api: /status endpoint for ledger metrics
"""

__all__ = ["jobs_api", "submissions_api", "monitoring_api"]
