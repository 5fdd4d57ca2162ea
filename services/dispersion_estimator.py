# ============================================================================
# DISPERSION ESTIMATOR
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Service - Pure estimate computation
# PURPOSE: Turn an incident + environmental snapshot into a bounded footprint
# CREATED: 19 OCT 2026
# ============================================================================
"""
Dispersion Estimator

Pure functions: the same (incident, snapshot, result) always yields the same
estimate, apart from calculated_at.

Algorithm:
    base_radius     = max(100, sqrt(volume) * 2)
    wind_effect     = clamp(wind_speed / 10,        0.1, 2.0)
    current_effect  = clamp(current_speed * 100,    0.1, 1.5)
    temp_effect     = clamp((temperature - 15) / 20, 0.5, 1.5)
    radius          = clamp(base_radius * (1 + wind + current + temp)
                            * chemical_factor, 100, 10000)
    spread          = mean(wind_direction, current_direction) mod 360
    opacity         = clamp(0.3 + volume / 10000, 0.1, 0.8)

The spread direction is a plain arithmetic mean of two bearings. Near the
0/360 wrap it is wrong (350 and 10 average to 180, not 0). Kept as a known
approximation.

Any non-finite intermediate substitutes the safe default
(radius 500, direction 0, opacity 0.5); the estimator never returns a
non-finite or out-of-bound field.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Optional, Tuple

from core.contracts import ChemicalCategory, IncidentPriority
from core.errors import NumericDegeneracy
from core.models import DispersionEstimate, DispersionResult, EnvironmentalSnapshot, Incident
from core.models.dispersion import MAX_OPACITY, MAX_RADIUS_METERS, MIN_OPACITY, MIN_RADIUS_METERS

logger = logging.getLogger(__name__)

# First matching category wins, in this order
CHEMICAL_KEYWORDS: Tuple[Tuple[ChemicalCategory, Tuple[str, ...]], ...] = (
    (ChemicalCategory.OIL, ("oil", "petroleum", "crude", "diesel", "gasoline", "fuel")),
    (ChemicalCategory.ACID_TOXIC, ("acid", "toxic", "cyanide", "chlorine")),
    (ChemicalCategory.GAS, ("gas", "volatile", "vapor", "benzene", "methane", "propane")),
)

CHEMICAL_FACTORS = {
    ChemicalCategory.OIL: 1.5,
    ChemicalCategory.ACID_TOXIC: 0.8,
    ChemicalCategory.GAS: 2.0,
    ChemicalCategory.OTHER: 1.0,
}

PRIORITY_COLORS = {
    IncidentPriority.CRITICAL: "red",
    IncidentPriority.HIGH: "orange",
}

CATEGORY_COLORS = {
    ChemicalCategory.OIL: "brown",
    ChemicalCategory.ACID_TOXIC: "purple",
    ChemicalCategory.GAS: "yellow",
}

DEFAULT_COLOR = "blue"

SAFE_RADIUS_METERS = 500.0
SAFE_DIRECTION_DEG = 0.0
SAFE_OPACITY = 0.5


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def classify_chemical(chemical_type: Optional[str]) -> ChemicalCategory:
    """Case-insensitive substring match; first category wins."""
    text = (chemical_type or "").lower()
    for category, keywords in CHEMICAL_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return ChemicalCategory.OTHER


def chemical_factor(chemical_type: Optional[str]) -> float:
    return CHEMICAL_FACTORS[classify_chemical(chemical_type)]


def color_class(incident: Incident) -> str:
    """Priority first (CRITICAL red, HIGH orange), then chemical category."""
    if incident.priority in PRIORITY_COLORS:
        return PRIORITY_COLORS[incident.priority]
    return CATEGORY_COLORS.get(classify_chemical(incident.chemical_type), DEFAULT_COLOR)


def _finite(name: str, value: float) -> float:
    if not math.isfinite(value):
        raise NumericDegeneracy(f"Non-finite {name}: {value}", quantity=name)
    return value


def compute_geometry(incident: Incident, snapshot: EnvironmentalSnapshot) -> Tuple[float, float, float]:
    """
    Core arithmetic: (radius_meters, spread_direction_deg, opacity).

    Raises:
        NumericDegeneracy: on any NaN/Infinity intermediate
    """
    volume = _finite("volume", float(incident.volume))

    base_radius = _finite("base_radius", max(MIN_RADIUS_METERS, math.sqrt(volume) * 2))

    wind_effect = clamp(_finite("wind_speed", snapshot.wind_speed) / 10, 0.1, 2.0)
    current_effect = clamp(_finite("current_speed", snapshot.current_speed) * 100, 0.1, 1.5)
    temp_effect = clamp((_finite("temperature", snapshot.temperature) - 15) / 20, 0.5, 1.5)

    multiplier = 1 + wind_effect + current_effect + temp_effect
    raw_radius = _finite("radius", base_radius * multiplier * chemical_factor(incident.chemical_type))
    radius = clamp(raw_radius, MIN_RADIUS_METERS, MAX_RADIUS_METERS)

    wind_dir = _finite("wind_direction", snapshot.wind_direction)
    current_dir = _finite("current_direction", snapshot.current_direction)
    direction = ((wind_dir + current_dir) / 2) % 360.0
    if direction >= 360.0:  # float rounding of tiny negatives
        direction = 0.0

    opacity = clamp(0.3 + volume / 10000, MIN_OPACITY, MAX_OPACITY)

    return radius, direction, opacity


def estimate(
    incident: Incident,
    snapshot: EnvironmentalSnapshot,
    result: Optional[DispersionResult] = None,
    calculated_at: Optional[datetime] = None,
) -> DispersionEstimate:
    """
    Build the dispersion estimate for an incident.

    Args:
        incident: Incident to estimate
        snapshot: Environmental conditions at the incident
        result: Optional external solver result (summary fields merged)
        calculated_at: Timestamp override (tests)

    Returns:
        DispersionEstimate with every field finite and in bounds
    """
    degenerate = False
    try:
        radius, direction, opacity = compute_geometry(incident, snapshot)
    except NumericDegeneracy as e:
        logger.warning(
            f"Degenerate dispersion inputs for incident {incident.id} "
            f"({e.quantity}); substituting safe default"
        )
        radius, direction, opacity = SAFE_RADIUS_METERS, SAFE_DIRECTION_DEG, SAFE_OPACITY
        degenerate = True

    return DispersionEstimate(
        spill_id=incident.id,
        radius_meters=radius,
        spread_direction_deg=direction,
        opacity=opacity,
        color_class=color_class(incident),
        affected_area_km2=result.affected_area_km2 if result else None,
        max_concentration=result.max_concentration if result else None,
        calculated_at=calculated_at or datetime.now(timezone.utc),
        degenerate=degenerate,
        synthetic_environment=snapshot.synthetic,
    )


class DispersionEstimator:
    """Injectable wrapper around estimate() for the orchestrator."""

    def estimate(
        self,
        incident: Incident,
        snapshot: EnvironmentalSnapshot,
        result: Optional[DispersionResult] = None,
    ) -> DispersionEstimate:
        return estimate(incident, snapshot, result)


__all__ = [
    "DispersionEstimator",
    "estimate",
    "compute_geometry",
    "classify_chemical",
    "chemical_factor",
    "color_class",
    "clamp",
    "SAFE_RADIUS_METERS",
    "SAFE_DIRECTION_DEG",
    "SAFE_OPACITY",
]
