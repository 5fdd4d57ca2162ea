# ============================================================================
# DISPERSION ESTIMATOR TESTS
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Tests - Pure estimate computation
# PURPOSE: Verify radius/direction/opacity arithmetic, bounds, safe defaults
# CREATED: 19 OCT 2026
# ============================================================================
"""
Dispersion Estimator Tests

Run with:
    pytest tests/test_dispersion_estimator.py -v
"""

import itertools
import math

import pytest

from core.contracts import ChemicalCategory, GeoLocation
from core.models import DispersionResult, EnvironmentalSnapshot, Incident
from services.dispersion_estimator import (
    SAFE_DIRECTION_DEG,
    SAFE_OPACITY,
    SAFE_RADIUS_METERS,
    classify_chemical,
    color_class,
    estimate,
)


def _incident(**overrides):
    data = {
        "id": "s1",
        "name": "Dock 4",
        "chemicalType": "Crude Oil",
        "volume": 5000,
        "latitude": 29.76,
        "longitude": -95.37,
        "priority": "HIGH",
    }
    data.update(overrides)
    return Incident.from_payload(data)


def _snapshot(**overrides):
    data = {
        "location": GeoLocation(latitude=29.76, longitude=-95.37),
        "wind_speed": 5.0,
        "wind_direction": 200.0,
        "temperature": 30.0,
        "current_speed": 0.003,
        "current_direction": 250.0,
    }
    data.update(overrides)
    return EnvironmentalSnapshot(**data)


class TestGeometry:

    def test_reference_scenario(self):
        # wind 0.5, current 0.3, temperature 0.75, oil factor 1.5
        result = estimate(_incident(), _snapshot())
        assert result.radius_meters == pytest.approx(540.9, abs=0.1)
        assert result.opacity == pytest.approx(0.8)
        assert result.color_class == "orange"
        assert result.spread_direction_deg == pytest.approx(225.0)
        assert not result.degenerate

    def test_small_spill_floors_base_radius(self):
        result = estimate(
            _incident(volume=1, chemicalType="Water"),
            _snapshot(wind_speed=0, current_speed=0, temperature=0),
        )
        # base 100 * (1 + 0.1 + 0.1 + 0.5) * 1.0
        assert result.radius_meters == pytest.approx(170.0)

    def test_radius_clamped_to_max(self):
        result = estimate(
            _incident(volume=5_000_000, chemicalType="Methane gas"),
            _snapshot(wind_speed=100, current_speed=10, temperature=60),
        )
        assert result.radius_meters == 10000.0

    def test_opacity_bounds(self):
        assert estimate(_incident(volume=100), _snapshot()).opacity == pytest.approx(0.31)
        assert estimate(_incident(volume=50000), _snapshot()).opacity == 0.8

    def test_naive_direction_mean_near_wrap(self):
        result = estimate(_incident(), _snapshot(wind_direction=350, current_direction=10))
        assert result.spread_direction_deg == pytest.approx(180.0)

    def test_direction_wraps_past_360(self):
        result = estimate(_incident(), _snapshot(wind_direction=700, current_direction=100))
        assert 0.0 <= result.spread_direction_deg < 360.0
        assert result.spread_direction_deg == pytest.approx(40.0)


class TestDegenerateInputs:

    @pytest.mark.parametrize("field", [
        "wind_speed", "temperature", "current_speed", "wind_direction", "current_direction",
    ])
    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
    def test_non_finite_input_uses_safe_default(self, field, value):
        result = estimate(_incident(), _snapshot(**{field: value}))
        assert result.radius_meters == SAFE_RADIUS_METERS
        assert result.spread_direction_deg == SAFE_DIRECTION_DEG
        assert result.opacity == SAFE_OPACITY
        assert result.degenerate

    def test_all_fields_finite(self):
        result = estimate(_incident(), _snapshot(temperature=math.nan))
        for value in (result.radius_meters, result.spread_direction_deg, result.opacity):
            assert math.isfinite(value)

    def test_extreme_finite_inputs_stay_in_bounds(self):
        volumes = [1e-6, 1, 5000, 1e6, 1e12, 1e300]
        speeds = [0.0, -5.0, 1e-9, 3.0, 1e6, 1e300]
        temperatures = [-1e6, -40.0, 15.0, 60.0, 1e6]
        bearings = [-1e9, -720.0, -90.0, 0.0, 359.999, 1e9]

        for volume, speed, temperature, bearing in itertools.product(
            volumes, speeds, temperatures, bearings
        ):
            result = estimate(
                _incident(volume=volume),
                _snapshot(
                    wind_speed=speed,
                    current_speed=speed,
                    temperature=temperature,
                    wind_direction=bearing,
                    current_direction=-bearing / 3,
                ),
            )
            case = (volume, speed, temperature, bearing)
            assert 100.0 <= result.radius_meters <= 10000.0, case
            assert 0.0 <= result.spread_direction_deg < 360.0, case
            assert 0.1 <= result.opacity <= 0.8, case
            assert not result.degenerate, case


class TestClassification:

    @pytest.mark.parametrize("chemical,expected", [
        ("Crude Oil", ChemicalCategory.OIL),
        ("DIESEL", ChemicalCategory.OIL),
        ("Sulfuric Acid", ChemicalCategory.ACID_TOXIC),
        ("Chlorine", ChemicalCategory.ACID_TOXIC),
        ("Benzene", ChemicalCategory.GAS),
        ("Propane", ChemicalCategory.GAS),
        ("Milk", ChemicalCategory.OTHER),
        # First match wins: "gas" appears later than "oil" keywords
        ("Gasoline", ChemicalCategory.OIL),
    ])
    def test_classify(self, chemical, expected):
        assert classify_chemical(chemical) == expected

    @pytest.mark.parametrize("priority,chemical,expected", [
        ("CRITICAL", "Crude Oil", "red"),
        ("HIGH", "Benzene", "orange"),
        ("MEDIUM", "Crude Oil", "brown"),
        ("LOW", "Hydrochloric Acid", "purple"),
        ("MEDIUM", "Benzene", "yellow"),
        ("LOW", "Milk", "blue"),
    ])
    def test_color(self, priority, chemical, expected):
        assert color_class(_incident(priority=priority, chemicalType=chemical)) == expected


class TestSolverMerge:

    def test_summary_fields_merged(self):
        result = DispersionResult.model_validate({"spillId": "s1", "affectedAreaKm2": 2.5, "maxConcentration": 12.0})
        merged = estimate(_incident(), _snapshot(), result)
        assert merged.affected_area_km2 == 2.5
        assert merged.max_concentration == 12.0

    def test_non_finite_summary_dropped(self):
        result = DispersionResult.model_validate({"affectedAreaKm2": "NaN", "maxConcentration": math.inf})
        merged = estimate(_incident(), _snapshot(), result)
        assert merged.affected_area_km2 is None
        assert merged.max_concentration is None

    def test_synthetic_flag_propagates(self):
        merged = estimate(_incident(), _snapshot(synthetic=True))
        assert merged.synthetic_environment
