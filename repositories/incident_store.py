# ============================================================================
# INCIDENT STORE
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Repository - Canonical incident collection
# PURPOSE: Single source of truth for incidents, keyed by id
# CREATED: 19 OCT 2026
# ============================================================================
"""
Incident Store

Holds the canonical ordered collection of incidents. Exclusively owns the
Incident records: other components read snapshots or go through this API.

Mutation contract:
- upsert() inserts unseen ids (full validation) or merges shallowly
  (present fields overwrite, absent fields preserve). Idempotent.
- A merge that changes location, volume or chemical_type clears the
  attached estimate on the new version; status-only changes keep it.
- A backwards status move is dropped from the merge unless the caller
  passes allow_regression=True.
- Every successful mutation notifies subscribers with a StoreChange.

No method awaits, so each mutation is atomic with respect to other
coroutines on the event loop.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from core.contracts import IncidentStatus
from core.errors import ValidationError
from core.models import DispersionEstimate, Incident, IncidentPatch
from core.models.incident import ESTIMATE_INPUT_FIELDS

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    REMOVED = "removed"
    ESTIMATE = "estimate"


@dataclass(frozen=True)
class StoreChange:
    """Notification sent to subscribers after each mutation."""
    kind: ChangeKind
    incident_id: str
    previous: Optional[Incident] = None
    current: Optional[Incident] = None
    estimate_invalidated: bool = False
    replaced_id: Optional[str] = None   # temp id swapped out by confirm()


StoreListener = Callable[[StoreChange], None]


class IncidentStore:
    """In-memory, insertion-ordered incident collection."""

    def __init__(self):
        self._incidents: Dict[str, Incident] = {}
        self._listeners: List[StoreListener] = []
        self._version = 0

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, change: StoreChange) -> None:
        self._version += 1
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                # Listener failures never undo or block a committed mutation
                logger.exception(
                    f"Store listener failed for {change.kind.value} "
                    f"incident={change.incident_id}: {e}"
                )

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, incident_id: str) -> Optional[Incident]:
        return self._incidents.get(incident_id)

    def list(self) -> List[Incident]:
        """All incidents in insertion order."""
        return list(self._incidents.values())

    def list_active(self) -> List[Incident]:
        return [i for i in self._incidents.values() if i.status == IncidentStatus.ACTIVE]

    def list_in_area(
        self,
        min_lat: float,
        max_lat: float,
        min_lon: float,
        max_lon: float,
    ) -> List[Incident]:
        """Incidents inside a lat/lon bounding box (inclusive)."""
        return [
            i for i in self._incidents.values()
            if min_lat <= i.location.latitude <= max_lat
            and min_lon <= i.location.longitude <= max_lon
        ]

    def list_recent(self, hours_back: float, now: Optional[datetime] = None) -> List[Incident]:
        """Active incidents whose spill time falls in the last hours_back hours."""
        since = (now or datetime.now(timezone.utc)) - timedelta(hours=hours_back)
        return [i for i in self.list_active() if i.spill_time >= since]

    def __contains__(self, incident_id: object) -> bool:
        return incident_id in self._incidents

    def __len__(self) -> int:
        return len(self._incidents)

    @property
    def version(self) -> int:
        """Monotonic mutation counter."""
        return self._version

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def upsert(
        self,
        incident: Union[Incident, IncidentPatch, Mapping[str, Any]],
        allow_regression: bool = False,
    ) -> Incident:
        """
        Insert or merge an incident.

        Args:
            incident: Full Incident, partial IncidentPatch, or a wire payload
            allow_regression: Accept a backwards status move (data correction)

        Returns:
            The stored Incident after the operation

        Raises:
            ValidationError: id missing, or insert payload incomplete/invalid
        """
        patch = self._as_patch(incident)
        incident_id = patch.id
        if not incident_id:
            raise ValidationError("Incident payload has no id", field="id")

        existing = self._incidents.get(incident_id)
        if existing is None:
            return self._insert(incident, patch)
        return self._merge(existing, patch, allow_regression)

    def remove(self, incident_id: str) -> Optional[Incident]:
        """Remove an incident. Returns the removed record, or None if absent."""
        removed = self._incidents.pop(incident_id, None)
        if removed is None:
            return None
        logger.info(f"Removed incident {incident_id}")
        self._notify(StoreChange(
            kind=ChangeKind.REMOVED,
            incident_id=incident_id,
            previous=removed,
        ))
        return removed

    def attach_estimate(
        self,
        incident_id: str,
        estimate: DispersionEstimate,
    ) -> Optional[Incident]:
        """
        Replace the incident's estimate atomically.

        Unknown ids are ignored: the incident was removed while its
        calculation was in flight.
        """
        existing = self._incidents.get(incident_id)
        if existing is None:
            logger.info(f"Dropping estimate for unknown incident {incident_id}")
            return None

        updated = existing.with_estimate(estimate)
        self._incidents[incident_id] = updated
        self._notify(StoreChange(
            kind=ChangeKind.ESTIMATE,
            incident_id=incident_id,
            previous=existing,
            current=updated,
        ))
        return updated

    def confirm(
        self,
        temp_id: str,
        incident: Union[Incident, Mapping[str, Any]],
    ) -> Incident:
        """
        Swap a client-temporary id for the server-authoritative record.

        Keeps the temporary entry's list position. If the server id is
        already present (the push stream delivered it first) the temporary
        entry is dropped and the server payload merged, so no duplicate
        ever exists.
        """
        confirmed = incident if isinstance(incident, Incident) else Incident.from_payload(dict(incident))
        temp = self._incidents.get(temp_id)

        if temp is None or temp_id == confirmed.id:
            return self.upsert(confirmed)

        if confirmed.id in self._incidents:
            del self._incidents[temp_id]
            self._notify(StoreChange(
                kind=ChangeKind.REMOVED,
                incident_id=temp_id,
                previous=temp,
            ))
            return self.upsert(confirmed)

        # Rebuild preserving order with the new key in the temp slot
        if temp.dispersion_estimate is not None and not _inputs_changed(temp, confirmed):
            confirmed = confirmed.with_estimate(
                temp.dispersion_estimate.model_copy(update={"spill_id": confirmed.id})
            )
        self._incidents = {
            (confirmed.id if key == temp_id else key): (confirmed if key == temp_id else value)
            for key, value in self._incidents.items()
        }
        logger.info(f"Confirmed incident {temp_id} as {confirmed.id}")
        self._notify(StoreChange(
            kind=ChangeKind.INSERTED,
            incident_id=confirmed.id,
            previous=temp,
            current=confirmed,
            replaced_id=temp_id,
        ))
        return confirmed

    # =========================================================================
    # INTERNALS
    # =========================================================================

    @staticmethod
    def _as_patch(incident: Union[Incident, IncidentPatch, Mapping[str, Any]]) -> IncidentPatch:
        if isinstance(incident, IncidentPatch):
            return incident
        if isinstance(incident, Incident):
            return IncidentPatch.model_validate(
                incident.model_dump(exclude={"dispersion_estimate", "last_calculated_at"})
            )
        return IncidentPatch.from_payload(dict(incident))

    def _insert(
        self,
        incident: Union[Incident, IncidentPatch, Mapping[str, Any]],
        patch: IncidentPatch,
    ) -> Incident:
        if isinstance(incident, Incident):
            record = incident.with_estimate(None)
        else:
            record = Incident.from_payload(patch.present_fields(), incident_id=patch.id)

        self._incidents[record.id] = record
        logger.info(f"Inserted incident {record.id} ({record.chemical_type}, {record.status.value})")
        self._notify(StoreChange(
            kind=ChangeKind.INSERTED,
            incident_id=record.id,
            current=record,
        ))
        return record

    def _merge(
        self,
        existing: Incident,
        patch: IncidentPatch,
        allow_regression: bool,
    ) -> Incident:
        fields = patch.present_fields()

        new_status = fields.get("status")
        if new_status is not None and existing.status.is_regression_to(new_status):
            if not allow_regression:
                logger.warning(
                    f"Ignoring status regression {existing.status.value} -> "
                    f"{new_status.value} for incident {existing.id} (no correction flag)"
                )
                fields.pop("status")
            else:
                logger.info(
                    f"Status correction {existing.status.value} -> {new_status.value} "
                    f"for incident {existing.id}"
                )

        changed = {k: v for k, v in fields.items() if getattr(existing, k) != v}
        if not changed:
            # Idempotent re-apply: state unchanged, evaluators still refresh
            self._notify(StoreChange(
                kind=ChangeKind.UPDATED,
                incident_id=existing.id,
                previous=existing,
                current=existing,
            ))
            return existing

        invalidated = (
            existing.dispersion_estimate is not None
            and bool(ESTIMATE_INPUT_FIELDS & changed.keys())
        )
        if invalidated:
            changed["dispersion_estimate"] = None
            changed["last_calculated_at"] = None

        try:
            merged = Incident.model_validate({**existing.model_dump(), **changed})
        except Exception as e:
            raise ValidationError(
                f"Merge produced an invalid incident: {e}",
                incident_id=existing.id,
            ) from e

        self._incidents[existing.id] = merged
        logger.debug(f"Merged incident {existing.id}: {sorted(changed)}")
        self._notify(StoreChange(
            kind=ChangeKind.UPDATED,
            incident_id=existing.id,
            previous=existing,
            current=merged,
            estimate_invalidated=bool(ESTIMATE_INPUT_FIELDS & changed.keys()),
        ))
        return merged


def _inputs_changed(before: Incident, after: Incident) -> bool:
    return any(getattr(before, name) != getattr(after, name) for name in ESTIMATE_INPUT_FIELDS)


__all__ = ["IncidentStore", "StoreChange", "ChangeKind", "StoreListener"]
