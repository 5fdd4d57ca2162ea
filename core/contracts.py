# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Foundation - Core enums and base contracts
# PURPOSE: Define status enums and base data contracts for the spill monitor
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: IncidentStatus, IncidentPriority, TicketState, ChemicalCategory,
#          UpdateType, GeoLocation, WireModel
# DEPENDENCIES: enum, pydantic
# ============================================================================
"""
Base contracts for the spill monitor core.

These define the small value types that cross boundaries:
- HTTP (backend listing / compute / push stream, camelCase JSON)
- Python (internal processing, snake_case attributes)

Boundary-specific models inherit from WireModel so both spellings parse.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ============================================================================
# STATUS ENUMS
# ============================================================================

class IncidentStatus(str, Enum):
    """
    Incident lifecycle states.

    State transitions (normal direction only):
        ACTIVE -> CONTAINED -> CLEANED_UP -> ARCHIVED

    Moving backwards is a data correction and must be requested explicitly.
    """
    ACTIVE = "ACTIVE"
    CONTAINED = "CONTAINED"
    CLEANED_UP = "CLEANED_UP"
    ARCHIVED = "ARCHIVED"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    def is_regression_to(self, new_status: "IncidentStatus") -> bool:
        """Check if moving to new_status would go backwards."""
        return new_status.rank < self.rank

    @classmethod
    def parse(cls, value) -> "IncidentStatus":
        """Parse a status, accepting the backend's CLEANED spelling."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().upper()
        if text == "CLEANED":
            return cls.CLEANED_UP
        return cls(text)


_STATUS_ORDER = [
    IncidentStatus.ACTIVE,
    IncidentStatus.CONTAINED,
    IncidentStatus.CLEANED_UP,
    IncidentStatus.ARCHIVED,
]


class IncidentPriority(str, Enum):
    """Responder-assigned priority."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class TicketState(str, Enum):
    """
    Calculation ticket states (one ticket per incident).

    State transitions:
        IDLE -> IN_FLIGHT -> DONE
                          -> FAILED -> IDLE (demoted immediately)
        DONE -> IDLE (forced recompute or input invalidation)
    """
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    DONE = "done"
    FAILED = "failed"

    def accepts_request(self, force: bool = False) -> bool:
        """Check if a new calculation request may start from this state."""
        if self == TicketState.IDLE:
            return True
        if force:
            return self in (TicketState.DONE, TicketState.FAILED)
        return False


class ChemicalCategory(str, Enum):
    """Coarse chemical families used by the dispersion estimate."""
    OIL = "oil"
    ACID_TOXIC = "acid_toxic"
    GAS = "gas"
    OTHER = "other"


class UpdateType(str, Enum):
    """Types of incident updates funnelled through the reconciler."""
    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    EMERGENCY = "emergency"
    SNAPSHOT = "snapshot"          # Full listing (poll result / stream initial frame)


# ============================================================================
# BASE DATA CONTRACTS
# ============================================================================

class WireModel(BaseModel):
    """
    Base for models that cross the HTTP boundary.

    Serializes camelCase, accepts both camelCase and snake_case.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class GeoLocation(WireModel):
    """A point on the earth's surface in decimal degrees."""
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    def rounded(self, precision: int = 2) -> tuple:
        """Cache key with float jitter removed."""
        return (round(self.latitude, precision), round(self.longitude, precision))


class ConcentrationPoint(WireModel):
    """A sampled concentration from the external solver."""
    latitude: float
    longitude: float
    concentration: float
    unit: Optional[str] = None
