# ============================================================================
# INCIDENT STORE TESTS
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Tests - Canonical incident collection
# PURPOSE: Verify upsert merge rules, estimate invalidation, temp-id confirm
# CREATED: 19 OCT 2026
# ============================================================================
"""
Incident Store Tests

Covers:
1. Insert / idempotent re-apply / shallow merge
2. Validation at the boundary (missing id, incomplete insert)
3. Estimate invalidation on location, volume, chemical changes
4. Status regression guard and explicit correction
5. Subscriber notification and listener isolation
6. Temporary id confirmation

Run with:
    pytest tests/test_incident_store.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from core.contracts import IncidentStatus
from core.errors import ValidationError
from core.models import DispersionEstimate, IncidentPatch, new_temp_id
from repositories import ChangeKind, IncidentStore


def _payload(incident_id="s1", **overrides):
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


def _estimate(incident_id="s1", radius=540.0):
    return DispersionEstimate(
        spill_id=incident_id,
        radius_meters=radius,
        spread_direction_deg=225.0,
        opacity=0.8,
        color_class="orange",
    )


def _store_with(*payloads):
    store = IncidentStore()
    for payload in payloads:
        store.upsert(payload)
    return store


# ============================================================================
# INSERT / MERGE
# ============================================================================

class TestUpsert:

    def test_insert(self):
        store = IncidentStore()
        incident = store.upsert(_payload())
        assert incident.id == "s1"
        assert "s1" in store
        assert len(store) == 1

    def test_reapply_is_idempotent(self):
        store = _store_with(_payload())
        before = store.get("s1")
        after = store.upsert(_payload())
        assert after == before
        assert len(store) == 1

    def test_merge_preserves_absent_fields(self):
        store = _store_with(_payload())
        merged = store.upsert({"id": "s1", "name": "Renamed"})
        assert merged.name == "Renamed"
        assert merged.volume == 5000
        assert merged.chemical_type == "Crude Oil"

    def test_insertion_order(self):
        store = _store_with(_payload("a"), _payload("b"), _payload("c"))
        store.upsert({"id": "a", "name": "Moved?"})
        assert [i.id for i in store.list()] == ["a", "b", "c"]

    def test_missing_id_rejected(self):
        store = IncidentStore()
        data = _payload()
        del data["id"]
        with pytest.raises(ValidationError):
            store.upsert(data)
        assert len(store) == 0

    def test_incomplete_insert_rejected(self):
        store = IncidentStore()
        with pytest.raises(ValidationError):
            store.upsert({"id": "s9", "name": "Only a name"})
        assert "s9" not in store

    def test_invalid_latitude_rejected(self):
        store = IncidentStore()
        with pytest.raises(ValidationError):
            store.upsert(_payload(latitude=120))
        assert len(store) == 0

    def test_patch_object_accepted(self):
        store = _store_with(_payload())
        merged = store.upsert(IncidentPatch(id="s1", volume=7000))
        assert merged.volume == 7000

    def test_version_increments_per_mutation(self):
        store = IncidentStore()
        store.upsert(_payload())
        store.upsert({"id": "s1", "name": "B"})
        assert store.version == 2


# ============================================================================
# ESTIMATE INVALIDATION
# ============================================================================

class TestEstimateInvalidation:

    def test_attach_estimate(self):
        store = _store_with(_payload())
        updated = store.attach_estimate("s1", _estimate())
        assert updated.dispersion_estimate.radius_meters == 540.0
        assert updated.last_calculated_at == updated.dispersion_estimate.calculated_at

    def test_attach_to_unknown_is_ignored(self):
        store = IncidentStore()
        assert store.attach_estimate("ghost", _estimate("ghost")) is None

    def test_status_change_keeps_estimate(self):
        store = _store_with(_payload())
        store.attach_estimate("s1", _estimate())
        merged = store.upsert({"id": "s1", "status": "CONTAINED"})
        assert merged.dispersion_estimate is not None

    def test_volume_change_clears_estimate(self):
        store = _store_with(_payload())
        store.attach_estimate("s1", _estimate())
        changes = []
        store.subscribe(changes.append)

        merged = store.upsert({"id": "s1", "volume": 9000})

        assert merged.dispersion_estimate is None
        assert merged.last_calculated_at is None
        assert changes[-1].estimate_invalidated

    def test_location_change_clears_estimate(self):
        store = _store_with(_payload())
        store.attach_estimate("s1", _estimate())
        merged = store.upsert({"id": "s1", "latitude": 30.0, "longitude": -95.0})
        assert merged.dispersion_estimate is None

    def test_input_change_without_estimate_still_flags(self):
        store = _store_with(_payload())
        changes = []
        store.subscribe(changes.append)
        store.upsert({"id": "s1", "chemicalType": "Benzene"})
        assert changes[-1].estimate_invalidated

    def test_payload_estimate_never_accepted(self):
        store = _store_with(_payload())
        merged = store.upsert(_payload(dispersionEstimate={"radiusMeters": 1}))
        assert merged.dispersion_estimate is None


# ============================================================================
# STATUS ORDERING
# ============================================================================

class TestStatusRegression:

    def test_forward_move_applied(self):
        store = _store_with(_payload())
        assert store.upsert({"id": "s1", "status": "CONTAINED"}).status == IncidentStatus.CONTAINED

    def test_regression_dropped_other_fields_applied(self):
        store = _store_with(_payload(status="CONTAINED"))
        merged = store.upsert({"id": "s1", "status": "ACTIVE", "name": "Renamed"})
        assert merged.status == IncidentStatus.CONTAINED
        assert merged.name == "Renamed"

    def test_correction_allows_regression(self):
        store = _store_with(_payload(status="ARCHIVED"))
        merged = store.upsert({"id": "s1", "status": "CONTAINED"}, allow_regression=True)
        assert merged.status == IncidentStatus.CONTAINED


# ============================================================================
# REMOVAL / SUBSCRIPTION
# ============================================================================

class TestSubscription:

    def test_remove_notifies(self):
        store = _store_with(_payload())
        changes = []
        store.subscribe(changes.append)

        removed = store.remove("s1")

        assert removed.id == "s1"
        assert "s1" not in store
        assert changes[-1].kind == ChangeKind.REMOVED

    def test_remove_unknown(self):
        assert IncidentStore().remove("nope") is None

    def test_unsubscribe(self):
        store = IncidentStore()
        changes = []
        unsubscribe = store.subscribe(changes.append)
        unsubscribe()
        store.upsert(_payload())
        assert changes == []

    def test_failing_listener_does_not_block_mutation(self):
        store = IncidentStore()
        seen = []

        def broken(change):
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        store.subscribe(seen.append)
        store.upsert(_payload())

        assert "s1" in store
        assert seen[0].kind == ChangeKind.INSERTED


# ============================================================================
# TEMPORARY ID CONFIRMATION
# ============================================================================

class TestConfirm:

    def test_confirm_keeps_position(self):
        temp_id = new_temp_id()
        store = _store_with(_payload("a"), _payload(temp_id), _payload("c"))
        changes = []
        store.subscribe(changes.append)

        store.confirm(temp_id, _payload("server-1"))

        assert [i.id for i in store.list()] == ["a", "server-1", "c"]
        assert temp_id not in store
        assert changes[-1].replaced_id == temp_id

    def test_confirm_when_server_id_already_present(self):
        temp_id = new_temp_id()
        store = _store_with(_payload(temp_id))
        # Push stream delivered the server record first
        store.upsert(_payload("server-1"))

        store.confirm(temp_id, _payload("server-1", name="Server name"))

        assert [i.id for i in store.list()] == ["server-1"]
        assert store.get("server-1").name == "Server name"

    def test_confirm_missing_temp_inserts(self):
        store = IncidentStore()
        store.confirm(new_temp_id(), _payload("server-2"))
        assert "server-2" in store


# ============================================================================
# QUERIES
# ============================================================================

class TestQueries:

    def test_list_active(self):
        store = _store_with(_payload("a"), _payload("b", status="CONTAINED"))
        assert [i.id for i in store.list_active()] == ["a"]

    def test_list_recent(self):
        now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        store = _store_with(
            _payload("new", spillTime=(now - timedelta(hours=2)).isoformat()),
            _payload("old", spillTime=(now - timedelta(hours=48)).isoformat()),
        )
        assert [i.id for i in store.list_recent(24, now=now)] == ["new"]

    def test_list_in_area(self):
        store = _store_with(
            _payload("in", latitude=29.5, longitude=-95.0),
            _payload("out", latitude=40.0, longitude=-70.0),
        )
        found = store.list_in_area(29.0, 30.0, -96.0, -94.0)
        assert [i.id for i in found] == ["in"]
