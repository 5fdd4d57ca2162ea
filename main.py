# ============================================================================
# SPILL MONITOR - MAIN APPLICATION
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core - FastAPI application entry point
# PURPOSE: Main application hosting the incident monitor session
# CREATED: 19 OCT 2026
# ============================================================================
"""
Spill Monitor Main Application

FastAPI application that:
1. Runs the incident monitor (refresh loop + push stream) in the background
2. Serves read-only snapshots and calculation requests over HTTP

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from __version__ import __version__, BUILD_DATE, EPOCH
from api.routes import router, set_services
from core.config import get_defaults
from orchestrator import IncidentMonitor

# Configure logging using our structured logging system
from core.logging import configure_logging, get_logger

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__)

# Global instance
_monitor: IncidentMonitor = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Starts the monitor on startup, stops it on shutdown.
    """
    global _monitor

    defaults = get_defaults()
    logger.info(f"Starting Spill Monitor v{__version__} (Epoch {EPOCH}, Build {BUILD_DATE})")
    logger.info(f"Backend: {defaults.api.base_url}")

    _monitor = IncidentMonitor(
        defaults=defaults,
        enable_stream=os.environ.get("SPILL_STREAM_ENABLED", "true").lower() == "true",
    )
    set_services(_monitor)

    await _monitor.start()
    logger.info("Incident monitor started")

    try:
        yield
    finally:
        logger.info("Shutting down Spill Monitor...")
        await _monitor.stop()
        set_services(None)
        logger.info("Spill Monitor stopped")


# Create FastAPI app
app = FastAPI(
    title="Spill Monitor",
    description=f"Epoch {EPOCH} chemical spill incident synchronization",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api/v1")


# Kubernetes probes
@app.get("/livez", tags=["Health"])
async def livez():
    """Process alive."""
    return {"status": "alive"}


@app.get("/readyz", tags=["Health"])
async def readyz():
    """Ready once the monitor's background tasks are running."""
    ready = _monitor is not None and _monitor.is_running
    return {"status": "ready" if ready else "starting", "ready": ready}


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Spill Monitor",
        "version": __version__,
        "epoch": EPOCH,
        "build_date": BUILD_DATE,
        "status": "running",
        "docs": "/docs",
    }


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
