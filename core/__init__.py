# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core module initialization
# PURPOSE: Export core contracts, models and errors
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================

from core.contracts import (
    ChemicalCategory,
    GeoLocation,
    IncidentPriority,
    IncidentStatus,
    TicketState,
    UpdateType,
)
from core.errors import (
    ComputeFailure,
    MonitorError,
    NumericDegeneracy,
    StatusRegressionError,
    TransientNetworkError,
    ValidationError,
)
from core.models import (
    CalculationTicket,
    DispersionEstimate,
    DispersionResult,
    EnvironmentalSnapshot,
    Incident,
    IncidentPatch,
    IncidentUpdate,
)

__all__ = [
    # Enums
    "ChemicalCategory",
    "IncidentPriority",
    "IncidentStatus",
    "TicketState",
    "UpdateType",
    # Value types
    "GeoLocation",
    # Models
    "CalculationTicket",
    "DispersionEstimate",
    "DispersionResult",
    "EnvironmentalSnapshot",
    "Incident",
    "IncidentPatch",
    "IncidentUpdate",
    # Errors
    "MonitorError",
    "TransientNetworkError",
    "ValidationError",
    "ComputeFailure",
    "NumericDegeneracy",
    "StatusRegressionError",
]
