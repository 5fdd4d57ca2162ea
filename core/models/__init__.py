# ============================================================================
# MODELS MODULE
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

All Pydantic models for the spill monitor core.
"""

from core.models.dispersion import DispersionEstimate, DispersionResult, PlumeContour
from core.models.environment import EnvironmentalSnapshot
from core.models.incident import TEMP_ID_PREFIX, Incident, IncidentPatch, new_temp_id
from core.models.ticket import CalculationTicket
from core.models.update import IncidentUpdate

__all__ = [
    # Incident
    "Incident",
    "IncidentPatch",
    "new_temp_id",
    "TEMP_ID_PREFIX",
    # Environment
    "EnvironmentalSnapshot",
    # Dispersion
    "DispersionEstimate",
    "DispersionResult",
    "PlumeContour",
    # Ticket
    "CalculationTicket",
    # Updates
    "IncidentUpdate",
]
