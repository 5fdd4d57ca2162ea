# ============================================================================
# EMERGENCY EVALUATOR TESTS
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Tests - Critical-incident signal
# PURPOSE: Verify critical criteria, counts and the alert edge
# CREATED: 19 OCT 2026
# ============================================================================
"""
Emergency Evaluator Tests

Run with:
    pytest tests/test_emergency_evaluator.py -v
"""

import pytest

from core.models import Incident
from services.emergency_evaluator import EmergencyEvaluator, is_critical


def _incident(incident_id="s1", **overrides):
    data = {
        "id": incident_id,
        "name": "Dock 4",
        "chemicalType": "Crude Oil",
        "volume": 5000,
        "latitude": 29.76,
        "longitude": -95.37,
        "priority": "MEDIUM",
    }
    data.update(overrides)
    return Incident.from_payload(data)


class TestCriticalRule:

    def test_large_benzene_spill(self):
        evaluator = EmergencyEvaluator()
        state = evaluator.evaluate([_incident(volume=15000, chemicalType="Benzene")])
        assert state.critical_count == 1
        assert state.message == "1 emergency level spill(s) detected"

    @pytest.mark.parametrize("overrides", [
        {"volume": 10001},
        {"priority": "CRITICAL"},
        {"chemicalType": "Toxic sludge"},
        {"hazardClass": "Class 6 Hazard"},
        {"chemicalType": "Hazardous waste"},
    ])
    def test_each_criterion(self, overrides):
        assert is_critical(_incident(**overrides))

    def test_ordinary_spill_not_critical(self):
        assert not is_critical(_incident())

    def test_volume_boundary_is_exclusive(self):
        assert not is_critical(_incident(volume=10000))

    def test_hazard_class_takes_precedence_over_chemical(self):
        assert not is_critical(_incident(chemicalType="Hazardous waste", hazardClass="Class 3"))


class TestAlertEdge:

    def test_alert_only_on_zero_to_nonzero(self):
        evaluator = EmergencyEvaluator()
        critical = _incident("c1", volume=20000)

        assert not evaluator.evaluate([_incident()]).should_alert
        assert evaluator.evaluate([_incident(), critical]).should_alert

        second = evaluator.evaluate([_incident(), critical, _incident("c2", priority="CRITICAL")])
        assert not second.should_alert
        assert second.critical_count == 2
        assert second.previous_count == 1

    def test_realert_after_clearing(self):
        evaluator = EmergencyEvaluator()
        critical = _incident("c1", volume=20000)
        evaluator.evaluate([critical])
        cleared = evaluator.evaluate([])
        assert cleared.message is None
        assert evaluator.evaluate([critical]).should_alert

    def test_counts(self):
        evaluator = EmergencyEvaluator()
        state = evaluator.evaluate([
            _incident("a", volume=1000),
            _incident("b", volume=2000, status="CONTAINED"),
        ])
        assert state.total_count == 2
        assert state.active_count == 1
        assert state.total_volume == 3000


class TestFlags:

    def test_flagged_incident_is_critical(self):
        evaluator = EmergencyEvaluator()
        evaluator.flag("s1")
        assert evaluator.evaluate([_incident()]).critical_ids == ["s1"]

    def test_unflag(self):
        evaluator = EmergencyEvaluator()
        evaluator.flag("s1")
        evaluator.unflag("s1")
        assert evaluator.evaluate([_incident()]).critical_count == 0

    def test_flag_for_absent_incident_not_counted(self):
        evaluator = EmergencyEvaluator()
        evaluator.flag("ghost")
        assert evaluator.evaluate([_incident()]).critical_count == 0
        assert "ghost" in evaluator.flagged

    def test_to_dict(self):
        evaluator = EmergencyEvaluator()
        data = evaluator.evaluate([_incident(volume=20000)]).to_dict()
        assert data["critical_count"] == 1
        assert data["should_alert"] is True
