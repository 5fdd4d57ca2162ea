# ============================================================================
# UPDATE RECONCILER TESTS
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Tests - Single mutation entry point
# PURPOSE: Verify frame parsing, out-of-order convergence, parking, rejection
# CREATED: 19 OCT 2026
# ============================================================================
"""
Update Reconciler Tests

Covers:
1. Frame parsing (listing, typed envelopes, bare records, aliases)
2. Out-of-order messages converge to the same state
3. Partial updates for unknown ids are parked and replayed
4. Invalid payloads are rejected and never reach the store
5. Snapshot pruning (poll) vs additive listing (stream)
6. Emergency flagging

Run with:
    pytest tests/test_reconciler.py -v
"""

import pytest

from core.contracts import IncidentStatus, UpdateType
from core.errors import ValidationError
from core.models import IncidentUpdate, new_temp_id
from orchestrator import UpdateReconciler
from repositories import IncidentStore
from services import EmergencyEvaluator


def _record(incident_id="s1", **overrides):
    data = {
        "id": incident_id,
        "name": "Dock 4",
        "chemicalType": "Crude Oil",
        "volume": 5000,
        "latitude": 29.76,
        "longitude": -95.37,
        "status": "ACTIVE",
    }
    data.update(overrides)
    return data


def _reconciler(*records, max_parked=256):
    store = IncidentStore()
    evaluator = EmergencyEvaluator()
    reconciler = UpdateReconciler(store, evaluator, max_parked=max_parked)
    for record in records:
        store.upsert(record)
    return reconciler, store, evaluator


def _status_frame(incident_id, status, **extra):
    return {"type": "status_changed", "id": incident_id, "status": status, **extra}


def _update_frame(incident_id, **fields):
    return {"type": "updated", "spill": {"id": incident_id, **fields}}


# ============================================================================
# PARSING
# ============================================================================

class TestParse:

    def test_list_is_snapshot(self):
        reconciler, _, _ = _reconciler()
        update = reconciler.parse([_record()])
        assert update.update_type == UpdateType.SNAPSHOT
        assert len(update.incidents) == 1

    def test_status_frame(self):
        reconciler, _, _ = _reconciler()
        update = reconciler.parse(_status_frame("s1", "CLEANED"))
        assert update.update_type == UpdateType.STATUS_CHANGED
        assert update.incident_id == "s1"
        assert update.status == IncidentStatus.CLEANED_UP
        assert update.payload == {}

    def test_status_inside_nested_payload(self):
        reconciler, _, _ = _reconciler()
        update = reconciler.parse({"type": "status_changed", "spill": {"id": "s1", "status": "CONTAINED"}})
        assert update.incident_id == "s1"
        assert update.status == IncidentStatus.CONTAINED

    def test_bare_record_is_update(self):
        reconciler, _, _ = _reconciler()
        update = reconciler.parse({"id": "s1", "name": "X"})
        assert update.update_type == UpdateType.UPDATED
        assert update.target_id() == "s1"

    @pytest.mark.parametrize("raw_type,expected", [
        ("CREATED", UpdateType.CREATED),
        ("status-change", UpdateType.STATUS_CHANGED),
        ("alert", UpdateType.EMERGENCY),
        ("initial", UpdateType.SNAPSHOT),
    ])
    def test_type_aliases(self, raw_type, expected):
        reconciler, _, _ = _reconciler()
        assert reconciler.parse({"type": raw_type, "id": "s1", "status": "ACTIVE"}).update_type == expected

    def test_unknown_type_rejected(self):
        reconciler, _, _ = _reconciler()
        with pytest.raises(ValidationError):
            reconciler.parse({"type": "teleported", "id": "s1"})

    def test_untyped_frame_without_id_rejected(self):
        reconciler, _, _ = _reconciler()
        with pytest.raises(ValidationError):
            reconciler.parse({"name": "orphan"})

    def test_bad_status_rejected(self):
        reconciler, _, _ = _reconciler()
        with pytest.raises(ValidationError):
            reconciler.parse(_status_frame("s1", "LEAKING"))


# ============================================================================
# CONVERGENCE
# ============================================================================

class TestConvergence:

    def test_out_of_order_messages_converge(self):
        frames = [_status_frame("s1", "CONTAINED"), _update_frame("s1", name="X")]

        final_states = []
        for ordering in (frames, list(reversed(frames))):
            reconciler, store, _ = _reconciler(_record())
            for frame in ordering:
                assert reconciler.handle_frame(frame)
            incident = store.get("s1")
            final_states.append((incident.status, incident.name))

        assert final_states[0] == final_states[1] == (IncidentStatus.CONTAINED, "X")

    def test_reapplying_same_frame_is_idempotent(self):
        reconciler, store, _ = _reconciler(_record())
        frame = _update_frame("s1", name="X")
        reconciler.handle_frame(frame)
        first = store.get("s1")
        reconciler.handle_frame(frame)
        assert store.get("s1") == first

    def test_stale_status_regression_ignored(self):
        reconciler, store, _ = _reconciler(_record(status="CLEANED"))
        reconciler.handle_frame(_status_frame("s1", "ACTIVE"))
        assert store.get("s1").status == IncidentStatus.CLEANED_UP

    def test_correction_allows_regression(self):
        reconciler, store, _ = _reconciler(_record(status="CLEANED"))
        reconciler.handle_frame(_status_frame("s1", "ACTIVE", correction=True))
        assert store.get("s1").status == IncidentStatus.ACTIVE


# ============================================================================
# PARKING
# ============================================================================

class TestParking:

    def test_partial_update_for_unknown_id_parked_then_replayed(self):
        reconciler, store, _ = _reconciler()

        reconciler.handle_frame(_status_frame("s2", "CONTAINED"))
        reconciler.handle_frame(_update_frame("s2", name="Early name"))
        assert "s2" not in store
        assert reconciler.parked_ids() == ["s2"]

        reconciler.handle_frame({"type": "created", "spill": _record("s2")})

        incident = store.get("s2")
        assert incident.status == IncidentStatus.CONTAINED
        assert incident.name == "Early name"
        assert reconciler.parked_ids() == []
        assert reconciler.stats["replayed"] == 1

    def test_complete_update_for_unknown_id_inserts(self):
        reconciler, store, _ = _reconciler()
        reconciler.handle_frame({"type": "updated", "spill": _record("s3")})
        assert "s3" in store

    def test_oldest_parked_evicted(self):
        reconciler, _, _ = _reconciler(max_parked=2)
        for incident_id in ("a", "b", "c"):
            reconciler.handle_frame(_update_frame(incident_id, name="n"))
        assert reconciler.parked_ids() == ["b", "c"]
        assert reconciler.stats["evicted"] == 1


# ============================================================================
# REJECTION
# ============================================================================

class TestRejection:

    def test_invalid_field_rejected(self):
        reconciler, store, _ = _reconciler(_record())
        assert not reconciler.handle_frame(_update_frame("s1", volume=-10))
        assert store.get("s1").volume == 5000
        assert reconciler.stats["rejected"] == 1

    def test_incomplete_create_rejected(self):
        reconciler, store, _ = _reconciler()
        assert not reconciler.handle_frame({"type": "created", "spill": {"id": "s4", "name": "No geometry"}})
        assert "s4" not in store
        assert reconciler.parked_ids() == []

    def test_non_dict_frame_rejected(self):
        reconciler, _, _ = _reconciler()
        assert not reconciler.handle_frame("hello")


# ============================================================================
# SNAPSHOTS
# ============================================================================

class TestSnapshot:

    def test_invalid_entries_skipped(self):
        reconciler, store, _ = _reconciler()
        applied = reconciler.apply(IncidentUpdate(
            update_type=UpdateType.SNAPSHOT,
            incidents=[_record("a"), {"id": "b", "name": "broken"}, _record("c")],
        ))
        assert applied
        assert [i.id for i in store.list()] == ["a", "c"]
        assert reconciler.stats["rejected"] == 1

    def test_poll_snapshot_prunes_missing(self):
        temp_id = new_temp_id()
        reconciler, store, _ = _reconciler(_record("a"), _record("gone"), _record(temp_id))
        reconciler.apply(IncidentUpdate(
            update_type=UpdateType.SNAPSHOT,
            incidents=[_record("a")],
            source="poll",
        ))
        assert "gone" not in store
        assert temp_id in store

    def test_stream_snapshot_is_additive(self):
        reconciler, store, _ = _reconciler(_record("a"), _record("b"))
        reconciler.handle_frame([_record("a")])
        assert "b" in store

    def test_non_object_entries_skipped_individually(self):
        reconciler, store, _ = _reconciler()
        applied = reconciler.handle_frame([_record("a"), None, "b", 7, _record("c")])
        assert applied
        assert [i.id for i in store.list()] == ["a", "c"]
        assert reconciler.stats["rejected"] == 3

    def test_poll_snapshot_with_null_entry_still_prunes(self):
        reconciler, store, _ = _reconciler(_record("a"), _record("gone"))
        assert reconciler.apply(IncidentUpdate(
            update_type=UpdateType.SNAPSHOT,
            incidents=[_record("a"), None],
            source="poll",
        ))
        assert [i.id for i in store.list()] == ["a"]

    def test_typed_snapshot_with_non_list_listing_rejected(self):
        reconciler, store, _ = _reconciler()
        assert not reconciler.handle_frame({"type": "snapshot", "spills": {"id": "a"}})
        assert len(store) == 0


# ============================================================================
# EMERGENCY
# ============================================================================

class TestEmergencyFrames:

    def test_emergency_frame_flags_incident(self):
        reconciler, store, evaluator = _reconciler(_record())
        reconciler.handle_frame({"type": "emergency", "id": "s1", "message": "Evacuate"})
        assert "s1" in evaluator.flagged
        assert evaluator.evaluate(store.list()).critical_ids == ["s1"]

    def test_emergency_for_unknown_id_counts_once_inserted(self):
        reconciler, store, evaluator = _reconciler()
        reconciler.handle_frame({"type": "emergency", "id": "ghost", "message": "Evacuate"})
        assert reconciler.parked_ids() == ["ghost"]

        store.upsert(_record("ghost"))
        assert evaluator.evaluate(store.list()).critical_ids == ["ghost"]

    def test_evicted_emergency_flag_cleared(self):
        reconciler, _, evaluator = _reconciler(max_parked=1)
        reconciler.handle_frame({"type": "emergency", "id": "ghost"})
        assert "ghost" in evaluator.flagged

        reconciler.handle_frame(_update_frame("other", volume=10))

        assert reconciler.parked_ids() == ["other"]
        assert evaluator.flagged == set()
