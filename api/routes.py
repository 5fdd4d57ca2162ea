# ============================================================================
# API ROUTES
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core - FastAPI route definitions
# PURPOSE: HTTP endpoints exposing monitor snapshots and user actions
# CREATED: 19 OCT 2026
# ============================================================================
"""
API Routes

FastAPI routes for the spill monitor. Reads serve the monitor's snapshot;
select/calculate schedule work on the calculation orchestrator.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException, Query

from __version__ import __version__
from core.errors import StatusRegressionError, TransientNetworkError, ValidationError
from services.emergency_evaluator import is_critical
from .schemas import (
    CalculationResponse,
    EmergencyResponse,
    ErrorResponse,
    IncidentDetailResponse,
    IncidentListResponse,
    StatusChangeRequest,
    StatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================
# Set by the main app at startup

_monitor = None


def set_services(monitor):
    """Set service instances for dependency injection."""
    global _monitor
    _monitor = monitor


def get_monitor():
    if _monitor is None:
        raise HTTPException(500, "Monitor not initialized")
    return _monitor


def _ticket_state(monitor, incident_id: str):
    ticket = monitor.orchestrator.ticket(incident_id)
    return ticket.state if ticket else None


# ============================================================================
# STATUS
# ============================================================================

@router.get("/status", response_model=StatusResponse, tags=["Monitor"])
async def get_status():
    """
    Get monitor status and statistics.

    Includes refresh counters, stream state, calculation tickets,
    reconciler counters and environment cache stats.
    """
    monitor = get_monitor()
    return StatusResponse(
        version=__version__,
        status="running" if monitor.is_running else "stopped",
        stats=monitor.stats,
    )


@router.get("/snapshot", tags=["Monitor"])
async def get_snapshot() -> Dict[str, Any]:
    """Full read-only session snapshot."""
    return get_monitor().snapshot().to_dict()


@router.get("/emergency", response_model=EmergencyResponse, tags=["Monitor"])
async def get_emergency():
    """Current critical-incident count and alert message."""
    state = get_monitor().evaluator.state
    return EmergencyResponse(
        critical_count=state.critical_count,
        previous_count=state.previous_count,
        critical_ids=state.critical_ids,
        message=state.message,
        should_alert=state.should_alert,
        active_count=state.active_count,
        total_count=state.total_count,
        total_volume=state.total_volume,
        evaluated_at=state.evaluated_at,
    )


# ============================================================================
# INCIDENTS
# ============================================================================

@router.get("/incidents", response_model=IncidentListResponse, tags=["Incidents"])
async def list_incidents(
    active: bool = Query(False, description="Only ACTIVE incidents"),
    hours_back: Optional[float] = Query(None, gt=0, description="Active incidents spilled in the last N hours"),
):
    """
    List incidents.

    Optionally restrict to active or recent incidents.
    """
    store = get_monitor().store
    if hours_back is not None:
        incidents = store.list_recent(hours_back)
    elif active:
        incidents = store.list_active()
    else:
        incidents = store.list()
    return IncidentListResponse(incidents=incidents, total=len(incidents))


@router.post(
    "/incidents",
    status_code=201,
    tags=["Incidents"],
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def create_incident(payload: Dict[str, Any] = Body(...)):
    """Report a new incident (forwarded to the backend)."""
    monitor = get_monitor()
    try:
        incident = await monitor.create_incident(payload)
    except ValidationError as e:
        raise HTTPException(400, str(e))
    except TransientNetworkError as e:
        raise HTTPException(502, str(e))
    return incident.model_dump(mode="json", by_alias=True)


@router.get(
    "/incidents/{incident_id}",
    response_model=IncidentDetailResponse,
    tags=["Incidents"],
    responses={404: {"model": ErrorResponse}},
)
async def get_incident(incident_id: str):
    """Get an incident with its estimate and calculation state."""
    monitor = get_monitor()
    incident = monitor.store.get(incident_id)
    if incident is None:
        raise HTTPException(404, f"Incident not found: {incident_id}")

    return IncidentDetailResponse(
        incident=incident,
        estimate=incident.dispersion_estimate,
        ticket_state=_ticket_state(monitor, incident_id),
        calculating=monitor.orchestrator.is_calculating(incident_id),
        critical=incident_id in monitor.evaluator.state.critical_ids or is_critical(incident),
    )


@router.put(
    "/incidents/{incident_id}/status",
    tags=["Incidents"],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def update_incident_status(incident_id: str, request: StatusChangeRequest):
    """Change an incident's status (backwards moves need correction=true)."""
    monitor = get_monitor()
    if incident_id not in monitor.store:
        raise HTTPException(404, f"Incident not found: {incident_id}")
    try:
        incident = await monitor.update_status(incident_id, request.status, correction=request.correction)
    except StatusRegressionError as e:
        raise HTTPException(409, str(e))
    except ValidationError as e:
        raise HTTPException(400, str(e))
    except TransientNetworkError as e:
        raise HTTPException(502, str(e))
    return incident.model_dump(mode="json", by_alias=True)


# ============================================================================
# CALCULATION
# ============================================================================

@router.post(
    "/incidents/{incident_id}/select",
    response_model=CalculationResponse,
    tags=["Calculation"],
    responses={404: {"model": ErrorResponse}},
)
async def select_incident(incident_id: str):
    """Select an incident; a calculation is requested if none is current."""
    monitor = get_monitor()
    if not monitor.select(incident_id):
        raise HTTPException(404, f"Incident not found: {incident_id}")
    return CalculationResponse(
        incident_id=incident_id,
        accepted=monitor.orchestrator.is_calculating(incident_id),
        ticket_state=_ticket_state(monitor, incident_id),
        selected_id=monitor.selected_id,
    )


@router.post(
    "/incidents/{incident_id}/calculate",
    response_model=CalculationResponse,
    tags=["Calculation"],
    responses={404: {"model": ErrorResponse}},
)
async def calculate_incident(incident_id: str):
    """Force a recompute of the incident's dispersion estimate."""
    monitor = get_monitor()
    if incident_id not in monitor.store:
        raise HTTPException(404, f"Incident not found: {incident_id}")
    accepted = monitor.recalculate(incident_id)
    logger.info(f"Recalculate {incident_id}: accepted={accepted}")
    return CalculationResponse(
        incident_id=incident_id,
        accepted=accepted,
        ticket_state=_ticket_state(monitor, incident_id),
        selected_id=monitor.selected_id,
    )
