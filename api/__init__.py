# ============================================================================
# API MODULE
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core - FastAPI routes
# PURPOSE: HTTP surface over the incident monitor
# CREATED: 19 OCT 2026
# ============================================================================
"""
API Module

FastAPI routes for the spill monitor.
"""

from .routes import router, set_services
from .schemas import (
    CalculationResponse,
    EmergencyResponse,
    IncidentDetailResponse,
    IncidentListResponse,
    StatusChangeRequest,
)

__all__ = [
    "router",
    "set_services",
    "CalculationResponse",
    "EmergencyResponse",
    "IncidentDetailResponse",
    "IncidentListResponse",
    "StatusChangeRequest",
]
