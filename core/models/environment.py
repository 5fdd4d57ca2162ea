# ============================================================================
# ENVIRONMENTAL SNAPSHOT MODEL
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core model - Point-in-time weather/tide reading
# PURPOSE: Inputs for the dispersion estimate
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: EnvironmentalSnapshot
# DEPENDENCIES: pydantic
# ============================================================================
"""
Environmental Snapshot Model

A snapshot is replaced wholesale on each fetch, never partially merged.
Synthetic snapshots (upstream unavailable) carry synthetic=True so callers
can audit them; numeric fields are not range-checked here because the
estimator owns degenerate-input handling.
"""

from datetime import datetime, timezone

from pydantic import Field

from core.contracts import GeoLocation, WireModel


class EnvironmentalSnapshot(WireModel):
    """Weather and tide conditions at a location."""

    location: GeoLocation
    wind_speed: float = Field(..., description="m/s")
    wind_direction: float = Field(..., description="Degrees")
    temperature: float = Field(..., description="Celsius")
    current_speed: float = Field(..., description="m/s")
    current_direction: float = Field(..., description="Degrees")
    tide_height: float = Field(default=0.0, description="Meters")
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    synthetic: bool = False


__all__ = ["EnvironmentalSnapshot"]
