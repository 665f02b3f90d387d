"""
Main Application - Clinic Reporting Service

FastAPI application exposing the clinic reporting engine: branch ledgers,
statistics, and custom statistic definitions. Storage is created once in the
lifespan and shared through app_state; every report is recomputed per request.
"""

# ============================================================================
# IMPORTS
# ============================================================================

import logging
from datetime import datetime, timezone
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from .config import config, setup_logging
from .database import get_database_manager
from .storage import ClinicStorage
from .reports import reports_router, ReportError

# Global state
app_state = {
    "db_manager": None,
    "storage": None
}

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: open storage on startup, release it on shutdown"""
    setup_logging()

    # Startup
    app_state["db_manager"] = get_database_manager()
    app_state["storage"] = ClinicStorage(app_state["db_manager"])
    logger.info(f"Clinic reporting service started ({config.environment.value})")
    logger.debug(f"Configuration: {config.to_dict()}")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    if app_state.get("db_manager"):
        app_state["db_manager"].close()
    app_state["db_manager"] = None
    app_state["storage"] = None


app = FastAPI(
    title="Clinic Reporting Service",
    description="Branch ledgers, statistics and custom statistics for a multi-branch clinic",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.web.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReportError)
async def report_error_handler(request: Request, exc: ReportError):
    """Map report errors to their status code with a JSON error body"""
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {type(exc).__name__}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/health")
async def health_check():
    """Liveness plus database reachability"""
    db_manager = app_state.get("db_manager")
    db_healthy = db_manager.ping() if db_manager else False
    result = {
        "status": "healthy" if db_healthy else "unhealthy",
        "database": "connected" if db_healthy else "disconnected",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
    if db_healthy:
        result["tables"] = {
            name: stats["row_count"] for name, stats in db_manager.get_table_stats().items()
        }
        result["pool"] = db_manager.pool.get_pool_stats()
    return result


# ============================================================================
# REPORTS & STATISTICS API
# ============================================================================

app.include_router(reports_router)
