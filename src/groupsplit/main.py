"""Main FastAPI application for GroupSplit."""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .api import auth, balances, expenses, groups, invitations, members, settlements
from .api.middleware import (
    ProblemDetailsMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
    configure_cors,
    register_problem_handlers,
)
from .config import get_config, validate_startup_security
from .db.database import SessionLocal
from .utils.dates import to_iso, utc_now
from .utils.logging_config import get_logger, initialize_logging

config = get_config()
logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Set up logging and refuse to start with an unsafe configuration."""
    initialize_logging()
    validate_startup_security()
    logger.info(f"{config.app.app_name} {__version__} started")
    yield
    logger.info(f"{config.app.app_name} shutting down")


# Create FastAPI app
app = FastAPI(
    title=config.app.app_name,
    description=config.app.description,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

register_problem_handlers(app)

# Add custom middleware in correct order (innermost first)
app.add_middleware(RequestSizeLimitMiddleware)
app.add_middleware(ProblemDetailsMiddleware)
app.add_middleware(SecurityHeadersMiddleware, include_hsts=config.app.cookie_secure)
configure_cors(app, config.app.frontend_url)

# Register API routers
app.include_router(auth.router)
app.include_router(auth.user_router)
app.include_router(groups.router)
app.include_router(members.router)
app.include_router(expenses.router)
app.include_router(balances.router)
app.include_router(settlements.router)
app.include_router(invitations.group_router)
app.include_router(invitations.router)


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "app": config.app.app_name,
        "version": __version__,
        "timestamp": to_iso(utc_now()),
    }


@app.get("/api/ready")
async def readiness_check():
    """Readiness check endpoint that validates database connectivity."""
    start_time = time.time()
    checks = {"database": False}
    errors = []

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except SQLAlchemyError as e:
        errors.append(f"Database check failed: {e}")
        logger.error(f"Readiness check failed: {e}")
    finally:
        db.close()

    all_ready = all(checks.values())
    response = {
        "status": "ready" if all_ready else "not_ready",
        "version": __version__,
        "checks": checks,
        "response_time_ms": round((time.time() - start_time) * 1000, 2),
    }
    if errors:
        response["errors"] = errors

    return JSONResponse(content=response, status_code=200 if all_ready else 503)
