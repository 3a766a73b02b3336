"""Main FastAPI application for the Custody Tracker."""

import time

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import __version__
from .api import movements
from .api.middleware import (
    ProblemDetailsMiddleware,
    RequestSizeLimitMiddleware,
    register_exception_handlers,
)
from .config import config_manager, get_config
from .db.database import get_db
from .utils.logging_config import get_logger

logger = get_logger("main")
config = get_config()

# Create FastAPI app
app = FastAPI(
    title=config.app.app_name,
    description=config.app.description,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

register_exception_handlers(app)

# Add custom middleware in correct order (innermost first)
app.add_middleware(ProblemDetailsMiddleware)
app.add_middleware(RequestSizeLimitMiddleware, max_request_bytes=config.app.max_request_bytes)

if config.app.enable_cors:
    allowed_origins = list(config.app.allowed_origins)

    # In development mode, allow additional localhost ports
    if config.server.debug:
        allowed_origins.extend([
            "http://127.0.0.1:3000",  # Development frontend
            "http://localhost:3000",
        ])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Accept-Language", "Origin", "X-User-Id"],
    )

# Register API routers
app.include_router(movements.router)


@app.get("/", include_in_schema=False)
async def root():
    """Redirect to the API docs."""
    return RedirectResponse(url="/docs")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "custody-tracker", "version": __version__}


@app.get("/ready")
async def readiness_check(db: Session = Depends(get_db)):
    """Readiness check endpoint that validates database connectivity."""
    start_time = time.time()
    checks = {"database": False, "config": False}
    errors = []

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except SQLAlchemyError as e:
        logger.error(f"Readiness database check failed: {e}")
        errors.append(f"Database check failed: {e}")

    issues = config_manager.validate_config()
    checks["config"] = not issues
    errors.extend(issues)

    all_ready = all(checks.values())
    response = {
        "status": "ready" if all_ready else "not_ready",
        "service": "custody-tracker",
        "version": __version__,
        "checks": checks,
        "response_time_ms": round((time.time() - start_time) * 1000, 2),
    }
    if errors:
        response["errors"] = errors

    return JSONResponse(content=response, status_code=200 if all_ready else 503)
