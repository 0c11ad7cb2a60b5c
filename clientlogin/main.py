import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .audit import audit_listener
from .auth_providers.client_session import client_session_store
from .core.config import settings
from .db.session import check_db_health, init_db
from .dependencies import get_registry, notifier
from .events import ClientLoginEvents
from .exceptions import ClientLoginError
from .jobs.cleanup import get_job_status, start_background_jobs, stop_background_jobs
from .middleware.error_handler import (
    client_login_exception_handler,
    database_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from .routers import auth

logger = logging.getLogger(__name__)


app = FastAPI(
    title="Client Login",
    description="Visitor login through OAuth providers or a local password, with persistent sessions",
    version="0.1.0",
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(ClientLoginError, client_login_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(ValidationError, validation_exception_handler)
app.add_exception_handler(SQLAlchemyError, database_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.include_router(auth.router)


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    logger.info("Starting Client Login API...")

    if settings.ENV == "production":
        logger.info("Production mode detected - validating configuration...")
        settings.validate_production_config()
        logger.info("Production configuration validated")

    # Fails fast on a broken provider configuration
    registry = get_registry()
    logger.info(f"Enabled providers: {[config.name for config in registry.available()]}")

    await init_db()
    await client_session_store.connect()

    for event_type in ClientLoginEvents:
        notifier.add_listener(event_type, audit_listener)

    start_background_jobs()


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Shutting down Client Login API...")

    stop_background_jobs()
    await client_session_store.disconnect()
    await get_registry().aclose()

    for event_type in ClientLoginEvents:
        notifier.remove_listener(event_type, audit_listener)


@app.get("/health")
async def health():
    """Health check endpoint."""
    db_ok, latency_ms, error = await check_db_health()
    return {
        "status": "ok" if db_ok else "degraded",
        "env": settings.ENV,
        "database": {"healthy": db_ok, "latency_ms": round(latency_ms, 2), "error": error if settings.DEBUG else None},
        "client_sessions": client_session_store.backend,
    }


@app.get("/admin/jobs")
async def get_jobs():
    """Get status of background jobs."""
    return {"jobs": get_job_status()}
