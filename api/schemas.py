# ============================================================================
# API SCHEMAS
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core - Request/Response schemas
# PURPOSE: Pydantic models for API validation
# CREATED: 19 OCT 2026
# ============================================================================
"""
API Schemas

Request and response models for the monitor's HTTP surface. Incident and
estimate bodies reuse the core models directly.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.contracts import IncidentStatus, TicketState
from core.models import DispersionEstimate, Incident


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class StatusChangeRequest(BaseModel):
    """Request to move an incident to a new status."""
    status: IncidentStatus
    correction: bool = Field(
        default=False,
        description="Allow a backwards move (data correction)",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [{"status": "CONTAINED"}]
        }
    }


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class IncidentListResponse(BaseModel):
    """List of incidents."""
    incidents: List[Incident]
    total: int


class IncidentDetailResponse(BaseModel):
    """Incident with its calculation state."""
    incident: Incident
    estimate: Optional[DispersionEstimate] = None
    ticket_state: Optional[TicketState] = None
    calculating: bool = False
    critical: bool = False


class EmergencyResponse(BaseModel):
    """Current emergency evaluation."""
    critical_count: int
    previous_count: int
    critical_ids: List[str]
    message: Optional[str] = None
    should_alert: bool = False
    active_count: int = 0
    total_count: int = 0
    total_volume: float = 0.0
    evaluated_at: datetime


class CalculationResponse(BaseModel):
    """Outcome of a select/calculate request."""
    incident_id: str
    accepted: bool
    ticket_state: Optional[TicketState] = None
    selected_id: Optional[str] = None


class StatusResponse(BaseModel):
    """Monitor status and statistics."""
    version: str
    status: str
    stats: Dict[str, Any]


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: Optional[str] = None
