"""
FHIR Bridge - FastAPI Application Entrypoint

This is the main entrypoint for the FHIR bridge service. It sets up:
- FastAPI application with CORS middleware
- Structured JSON logging with contextual fields
- MongoDB client initialization with the job ledger indexes
- Service dependencies (TokenProvider, FhirClient, JobLedger, Submitter, RetryEngine)
- API routers for submissions, job recovery and monitoring
- Request ID middleware for tracing
- Health check endpoint

The service delivers clinical resources to the national health-data exchange
at most once per idempotency key and lets operators re-drive failed jobs.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fhir_bridge import __version__
from fhir_bridge.api.jobs_api import router as jobs_router
from fhir_bridge.api.monitoring_api import router as monitoring_router
from fhir_bridge.api.submissions_api import router as submissions_router
from fhir_bridge.core.config import get_settings
from fhir_bridge.core.errors import BridgeError, TokenAcquisitionError
from fhir_bridge.core.logging import bind_context, configure_logging
from fhir_bridge.core.mongo import Mongo
from fhir_bridge.models.api_models import ErrorResponse
from fhir_bridge.services.fhir_client import FhirClient, build_sender_table
from fhir_bridge.services.job_ledger import JobLedger
from fhir_bridge.services.retry_engine import RetryEngine
from fhir_bridge.services.submitter import Submitter
from fhir_bridge.services.token_provider import TokenProvider

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan context manager for startup and shutdown."""
    settings = get_settings()

    # Startup
    configure_logging(settings.LOG_LEVEL)

    with bind_context(logger, service=settings.APP_NAME, env=settings.ENV) as log:
        log.info("service_startup")

    # The unique index must exist before any job is registered
    try:
        Mongo.init(settings)
    except Exception:
        logger.exception("mongo_init_failed")
        raise

    # Initialize services
    token_provider = TokenProvider(settings)
    fhir_client = FhirClient(settings, token_provider)
    senders = build_sender_table(fhir_client)
    job_ledger = JobLedger(Mongo.collection(settings, "jobs"), settings.jobs.claim_lease_seconds)

    # Attach to app state
    app.state.settings = settings
    app.state.token_provider = token_provider
    app.state.fhir_client = fhir_client
    app.state.senders = senders
    app.state.job_ledger = job_ledger
    app.state.submitter = Submitter(job_ledger)
    app.state.retry_engine = RetryEngine(job_ledger, senders, settings.jobs.max_retries)

    # Warm the token cache; a failure here must not prevent startup
    try:
        token = await token_provider.get_token()
        logger.info("token_ok", extra={"length": len(token)})
    except TokenAcquisitionError as e:
        logger.warning("initial_token_fetch_failed", extra={"error": e.message})

    logger.info("startup_complete")

    yield

    # Shutdown
    logger.info("service_shutdown")
    await fhir_client.close()
    await token_provider.close()
    Mongo.close()


# Create FastAPI app
app = FastAPI(
    title="FHIR Bridge",
    description="Idempotent submission of hospital clinical records to the national health-data exchange",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Middleware to add request ID and timing to all requests."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.perf_counter()

    try:
        response = await call_next(request)
    except Exception as exc:
        duration_ms = (time.perf_counter() - start_time) * 1000
        with bind_context(logger, request_id=request_id, path=request.url.path, method=request.method, duration_ms=round(duration_ms, 2)) as log:
            log.exception("unhandled_exception", exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error", "request_id": request_id})

    duration_ms = (time.perf_counter() - start_time) * 1000
    if get_settings().ENABLE_ACCESS_LOG:
        with bind_context(logger, request_id=request_id, path=request.url.path, method=request.method, status_code=response.status_code, duration_ms=round(duration_ms, 2)) as log:
            log.info("request_complete")

    # Add request ID to response headers
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(BridgeError)
async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    body = ErrorResponse(
        error=exc.code,
        message=exc.message,
        details=exc.details or None,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=502, content=body.model_dump(mode="json"))


# Include API routers
app.include_router(submissions_router, prefix="/api/v1", tags=["submissions"])
app.include_router(jobs_router, prefix="/api/v1", tags=["jobs"])
app.include_router(monitoring_router, prefix="/api/v1", tags=["monitoring"])


@app.get("/", tags=["root"])
async def root():
    """Root endpoint."""
    return {"message": "Welcome to FHIR Bridge", "docs": "/docs"}


@app.get("/health", tags=["health"])
async def health_check():
    """Simple health check endpoint."""
    return {"status": "healthy", "service": "fhir-bridge"}


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8089,
        reload=settings.is_dev,
        log_level=settings.LOG_LEVEL.lower(),
    )
