# ============================================================================
# DISPERSION MODELS
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core model - Derived estimate and external solver payload
# PURPOSE: Bounded visual/physical footprint and the compute result it merges
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: DispersionEstimate, DispersionResult, PlumeContour
# DEPENDENCIES: pydantic
# ============================================================================
"""
Dispersion Models

DispersionEstimate is a pure function result of (Incident, Snapshot[, Result]).
It is never hand-edited; the store replaces it atomically.

DispersionResult is the external solver payload returned by
POST /dispersion/spills/{id}/calculate. Only its summary fields feed the
estimate; the grid and contours are carried through for callers.
"""

import math
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from core.contracts import ConcentrationPoint, WireModel

# Hard bounds on the estimate
MIN_RADIUS_METERS = 100.0
MAX_RADIUS_METERS = 10000.0
MIN_OPACITY = 0.1
MAX_OPACITY = 0.8


class DispersionEstimate(WireModel):
    """
    Bounded estimate of a spill's spread footprint.

    Invariant: every numeric field is finite and inside its bound.
    """

    spill_id: str
    radius_meters: float = Field(..., ge=MIN_RADIUS_METERS, le=MAX_RADIUS_METERS)
    spread_direction_deg: float = Field(..., ge=0.0, lt=360.0)
    opacity: float = Field(..., ge=MIN_OPACITY, le=MAX_OPACITY)
    color_class: str
    affected_area_km2: Optional[float] = Field(default=None, ge=0)
    max_concentration: Optional[float] = Field(default=None, ge=0)
    calculated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Audit flags
    degenerate: bool = False
    synthetic_environment: bool = False


class PlumeContour(WireModel):
    """Contour of equal concentration from the external solver."""
    concentration_level: Any = None
    contour_points: List[Any] = Field(default_factory=list)


class DispersionResult(WireModel):
    """
    External solver payload.

    Unknown fields are tolerated so solver upgrades do not break parsing.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="allow",
    )

    spill_id: Optional[str] = None
    status: Optional[str] = None
    affected_area_km2: Optional[float] = None
    max_concentration: Optional[float] = None
    simulation_hours: Optional[int] = None
    concentration_points: List[ConcentrationPoint] = Field(default_factory=list)
    plume_contours: List[PlumeContour] = Field(default_factory=list)

    @field_validator("spill_id", mode="before")
    @classmethod
    def _id_as_string(cls, value):
        return str(value) if value is not None else value

    @field_validator("affected_area_km2", "max_concentration", mode="before")
    @classmethod
    def _finite_or_none(cls, value):
        # Degenerate solver summaries are dropped, not propagated
        if value is None:
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(number) or number < 0:
            return None
        return number


__all__ = [
    "DispersionEstimate",
    "DispersionResult",
    "PlumeContour",
    "MIN_RADIUS_METERS",
    "MAX_RADIUS_METERS",
    "MIN_OPACITY",
    "MAX_OPACITY",
]
