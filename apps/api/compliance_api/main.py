"""Compliance Ledger API - Main FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from compliance_api.errors import ChainIntegrityError, ExtractionError, StorageError, ValidationError
from compliance_api.middleware.correlation import CorrelationIDMiddleware
from compliance_api.routes import audit, events, predictions, summary
from compliance_api.settings import get_settings

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}',
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting Compliance Ledger API...")
    try:
        settings.validate_production_settings()
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise
    yield
    logger.info("Shutting down Compliance Ledger API...")


app = FastAPI(
    title="Compliance Ledger API",
    description="Compliance event ledger, audit hash chain and risk prediction",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)
app.add_middleware(CorrelationIDMiddleware)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

app.include_router(events.router)
app.include_router(summary.router)
app.include_router(predictions.router)
app.include_router(audit.router)


def _correlation_id(request: Request):
    return getattr(request.state, "correlation_id", None)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.info(f"Rejected payload: {exc.message}", extra={"correlation_id": _correlation_id(request)})
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=exc.to_dict())


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"Storage failure: {exc}", extra={"correlation_id": _correlation_id(request)})
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"success": False, "error": str(exc)},
        headers={"Retry-After": "5"},
    )


@app.exception_handler(ExtractionError)
async def extraction_error_handler(request: Request, exc: ExtractionError):
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"success": False, "error": str(exc)})


@app.exception_handler(ChainIntegrityError)
async def chain_integrity_error_handler(request: Request, exc: ChainIntegrityError):
    logger.error(f"Audit chain integrity failure: {exc.message}", extra={"record_id": exc.record_id})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": exc.message, "record": exc.to_dict()},
    )


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "compliance-api",
        "version": "0.1.0",
    }


@app.get("/ready")
def readiness_check():
    """Readiness check endpoint (verifies dependencies)."""
    import redis
    from sqlalchemy import text

    from compliance_api.db.session import SessionLocal

    checks = {"database": False, "redis": False, "object_storage": None}

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database check failed: {e}")
    finally:
        db.close()

    try:
        redis.from_url(settings.redis_url).ping()
        checks["redis"] = True
    except Exception as e:
        logger.error(f"Redis check failed: {e}")

    if settings.audit_export_enabled:
        try:
            from compliance_api.storage.s3 import S3Storage

            storage = S3Storage()
            checks["object_storage"] = storage.client.bucket_exists(storage.bucket)
        except Exception as e:
            logger.error(f"Object storage check failed: {e}")
            checks["object_storage"] = False

    all_ready = all(value is not False for value in checks.values())
    return JSONResponse(
        content={"status": "ready" if all_ready else "not_ready", "checks": checks},
        status_code=200 if all_ready else 503,
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Compliance Ledger API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
