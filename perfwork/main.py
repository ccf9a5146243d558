"""
Performance Workflow Engine - FastAPI Application

- /docs and /openapi.json at root level, API prefix only on routers
- Middleware order: CorrelationId -> Logging
- init_db() runs once in the lifespan
- Every error renders as {"success": false, "errors": [...]}
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Union

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

import perfwork.models  # noqa: F401  registers models with SQLAlchemy
from perfwork.core.config import settings
from perfwork.core.exceptions import AppException
from perfwork.core.logging import setup_logging
from perfwork.core.middleware import CorrelationIdMiddleware, LoggingMiddleware
from perfwork.database import SessionLocal, init_db
from perfwork.routers.api_router import api_router

# ============================================================================
# LOGGING SETUP
# ============================================================================
setup_logging()
logger = logging.getLogger(__name__)


# ============================================================================
# LIFESPAN MANAGEMENT
# ============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name} v{settings.version} ({settings.environment})")
    try:
        init_db()
        logger.info("✓ Database initialized successfully")
    except Exception as e:
        logger.error(f"✗ Database initialization failed: {e}")
        raise

    yield

    logger.info("Gracefully shutting down...")


# ============================================================================
# FASTAPI INSTANCE
# ============================================================================
app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Performance plans and appraisals: supervision hierarchy, approval workflow and weekly counts",
    docs_url="/docs",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# ============================================================================
# MIDDLEWARE STACK (last added runs first)
# ============================================================================
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle FastAPI validation errors (422) with structured format."""
    errors = []
    for error in exc.errors():
        # loc is usually ('body', 'field_name')
        field = error["loc"][-1] if len(error["loc"]) > 0 else "unknown"
        errors.append({
            "field": str(field),
            "msg": error["msg"]
        })

    logger.warning(f"Validation Error: {errors}")
    return JSONResponse(
        status_code=422,
        content={"success": False, "errors": errors}
    )


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """Handle domain-specific application exceptions."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"AppException: {exc.message}", extra={"code": exc.error_code})
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "errors": [{"msg": exc.message, "code": exc.error_code, "details": exc.details}],
            "retryable": exc.retryable,
        }
    )


@app.exception_handler(StarletteHTTPException)
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: Union[HTTPException, StarletteHTTPException]):
    """Handle standard HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "errors": [{"msg": exc.detail if isinstance(exc.detail, str) else "Request failed"}]
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Fallback handler for unhandled server errors."""
    logger.exception("Unhandled server error", extra={"path": request.url.path})
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "errors": [{"msg": "An unexpected server error occurred."}]
        }
    )


# ============================================================================
# ROUTER INCLUSION
# ============================================================================
app.include_router(api_router, prefix=settings.api_prefix)


# ============================================================================
# OPERATIONAL ENDPOINTS (at root level)
# ============================================================================
@app.get("/health", tags=["Health"])
def health_check():
    """Liveness check for load balancers and orchestrators."""
    return {
        "status": "up",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.version,
        "environment": settings.environment,
    }


@app.get("/readiness", tags=["Health"])
def readiness_check():
    """Readiness check: verifies database connectivity."""
    try:
        with SessionLocal() as session:
            session.execute(text("SELECT 1"))
        return {
            "status": "ready",
            "components": {"database": "connected"},
        }
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service not ready")
