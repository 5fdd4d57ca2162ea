# ============================================================================
# UPDATE RECONCILER
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core - Single mutation entry point
# PURPOSE: Funnel poll results, push frames and user actions into the store
# CREATED: 19 OCT 2026
# ============================================================================
"""
Update Reconciler

Every mutation path produces an IncidentUpdate and calls apply():

    created         full insert (or merge if already known)
    updated         merge present fields
    status_changed  merge {status}; backwards moves need correction=True
    emergency       merge present fields, flag the incident critical
    snapshot        upsert each listed incident; invalid entries skipped.
                    Poll snapshots also drop incidents the backend no
                    longer lists (temporary ids excepted).

Partial updates for ids the store has not seen yet are parked (merged per
id, bounded, oldest evicted) and replayed when the incident is inserted, so
out-of-order arrival converges to the same state.

Payloads failing validation are rejected, logged and counted; they never
reach the store.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from core.contracts import UpdateType
from core.errors import ValidationError
from core.logging import ComponentType, log_context
from core.models import IncidentPatch, IncidentUpdate
from repositories import ChangeKind, IncidentStore, StoreChange
from services import EmergencyEvaluator

logger = logging.getLogger(__name__)

DEFAULT_MAX_PARKED = 256

# Envelope keys that are not incident fields
_ENVELOPE_KEYS = {"type", "spill", "incident", "payload", "correction", "message", "spillId", "incidentId"}

_PAYLOAD_KEYS = ("spill", "incident", "payload")

_TYPE_ALIASES = {
    "create": UpdateType.CREATED,
    "new": UpdateType.CREATED,
    "update": UpdateType.UPDATED,
    "status": UpdateType.STATUS_CHANGED,
    "status_change": UpdateType.STATUS_CHANGED,
    "statuschanged": UpdateType.STATUS_CHANGED,
    "alert": UpdateType.EMERGENCY,
    "initial": UpdateType.SNAPSHOT,
}


class UpdateReconciler:
    """Applies IncidentUpdates to the store."""

    def __init__(
        self,
        store: IncidentStore,
        evaluator: Optional[EmergencyEvaluator] = None,
        max_parked: int = DEFAULT_MAX_PARKED,
    ):
        self._store = store
        self._evaluator = evaluator
        self._max_parked = max_parked

        # incident_id -> (merged patch, allow_regression)
        self._parked: "OrderedDict[str, Tuple[IncidentPatch, bool]]" = OrderedDict()

        self._applied = 0
        self._rejected = 0
        self._parked_total = 0
        self._evicted = 0
        self._replayed = 0

        self._unsubscribe = store.subscribe(self._on_store_change)

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def apply(self, update: IncidentUpdate) -> bool:
        """
        Reconcile one update into the store.

        Returns:
            True if applied (or parked), False if rejected
        """
        with log_context(
            update_type=update.update_type.value,
            incident_id=update.target_id(),
            component=ComponentType.RECONCILER.value,
            operation="reconcile",
        ):
            try:
                if update.update_type == UpdateType.SNAPSHOT:
                    self._apply_snapshot(update)
                else:
                    self._apply_single(update)
            except ValidationError as e:
                self._rejected += 1
                logger.warning(f"Rejected {update.update_type.value} update from {update.source}: {e}")
                return False

            self._applied += 1
            return True

    def handle_frame(self, raw: Any) -> bool:
        """Parse and apply a raw push-stream frame."""
        try:
            update = self.parse(raw)
        except ValidationError as e:
            self._rejected += 1
            logger.warning(f"Rejected malformed stream frame: {e}")
            return False
        return self.apply(update)

    def parse(self, raw: Any, source: str = "stream") -> IncidentUpdate:
        """
        Turn a raw stream frame into an IncidentUpdate.

        A list is a full listing (the initial frame). A dict either carries
        a "type" envelope or is a bare incident record (treated as updated).

        Raises:
            ValidationError: frame has an unknown shape or type
        """
        if isinstance(raw, list):
            return IncidentUpdate(update_type=UpdateType.SNAPSHOT, incidents=raw, source=source)
        if not isinstance(raw, dict):
            raise ValidationError(f"Unsupported frame type {type(raw).__name__}", value=raw)

        if "type" not in raw:
            if raw.get("id") is None:
                raise ValidationError("Frame has neither a type nor an id", value=raw)
            return IncidentUpdate(update_type=UpdateType.UPDATED, payload=raw, source=source)

        update_type = _parse_type(raw["type"])

        if update_type == UpdateType.SNAPSHOT:
            listing = raw.get("spills") or raw.get("incidents") or []
            if not isinstance(listing, list):
                raise ValidationError("Snapshot frame listing is not a list", field="spills", value=listing)
            return IncidentUpdate(update_type=update_type, incidents=listing, source=source)

        payload = next((raw[k] for k in _PAYLOAD_KEYS if isinstance(raw.get(k), dict)), None)
        if payload is None:
            payload = {k: v for k, v in raw.items() if k not in _ENVELOPE_KEYS}
        incident_id = raw.get("id") or raw.get("spillId") or raw.get("incidentId") or payload.get("id")

        status = None
        if update_type == UpdateType.STATUS_CHANGED:
            status = raw.get("status") or payload.get("status")
            payload = {k: v for k, v in payload.items() if k not in ("id", "status")}

        try:
            return IncidentUpdate(
                update_type=update_type,
                incident_id=str(incident_id) if incident_id is not None else None,
                payload=payload,
                status=status,
                correction=bool(raw.get("correction", False)),
                message=raw.get("message"),
                source=source,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Malformed {update_type.value} frame: {e}", value=raw) from e

    # =========================================================================
    # APPLY
    # =========================================================================

    def _apply_single(self, update: IncidentUpdate) -> None:
        incident_id = update.target_id()
        if not incident_id:
            raise ValidationError(f"{update.update_type.value} update has no incident id", field="id")

        allow_regression = update.correction
        if update.update_type == UpdateType.STATUS_CHANGED:
            if update.status is None:
                raise ValidationError("status_changed update has no status", field="status", incident_id=incident_id)
            patch = IncidentPatch(id=incident_id, status=update.status)
        else:
            patch = IncidentPatch.from_payload({**update.payload, "id": incident_id})

        # Flag before the upsert so the change notification already counts it
        newly_flagged = False
        if update.update_type == UpdateType.EMERGENCY and self._evaluator is not None:
            newly_flagged = incident_id not in self._evaluator.flagged
            self._evaluator.flag(incident_id)
            if update.message:
                logger.warning(f"Emergency for incident {incident_id}: {update.message}")

        try:
            self._upsert_or_park(update, patch, allow_regression)
        except ValidationError:
            if newly_flagged:
                self._evaluator.unflag(incident_id)
            raise

    def _upsert_or_park(self, update: IncidentUpdate, patch: IncidentPatch, allow_regression: bool) -> None:
        incident_id = patch.id
        if incident_id in self._store:
            self._store.upsert(patch, allow_regression=allow_regression)
            return

        if update.update_type == UpdateType.CREATED:
            self._store.upsert(patch)
            return

        # Unknown id: insert if the payload is complete, otherwise park
        try:
            self._store.upsert(patch)
        except ValidationError:
            self._park(patch, allow_regression)

    def _apply_snapshot(self, update: IncidentUpdate) -> None:
        seen = set()
        for entry in update.incidents:
            if not isinstance(entry, Mapping):
                self._rejected += 1
                logger.warning(f"Skipping non-object snapshot entry: {entry!r}")
                continue
            try:
                record = self._store.upsert(entry)
                seen.add(record.id)
            except ValidationError as e:
                self._rejected += 1
                logger.warning(f"Skipping invalid incident in snapshot: {e}")
            except (TypeError, ValueError) as e:
                self._rejected += 1
                logger.warning(f"Skipping malformed snapshot entry: {e!r}")

        if update.source == "poll":
            for incident in self._store.list():
                if incident.id not in seen and not incident.is_temporary:
                    self._store.remove(incident.id)

        logger.debug(f"Snapshot applied: {len(seen)}/{len(update.incidents)} incident(s)")

    # =========================================================================
    # PARKING
    # =========================================================================

    def _park(self, patch: IncidentPatch, allow_regression: bool) -> None:
        incident_id = patch.id
        existing = self._parked.pop(incident_id, None)
        if existing is not None:
            patch = existing[0].merge_into(patch)
            allow_regression = allow_regression or existing[1]
        self._parked[incident_id] = (patch, allow_regression)
        self._parked_total += 1

        while len(self._parked) > self._max_parked:
            evicted_id, _ = self._parked.popitem(last=False)
            self._evicted += 1
            if self._evaluator is not None:
                self._evaluator.unflag(evicted_id)
            logger.warning(f"Evicted parked update for unknown incident {evicted_id}")

        logger.debug(f"Parked partial update for unknown incident {incident_id}")

    def _on_store_change(self, change: StoreChange) -> None:
        if change.kind != ChangeKind.INSERTED:
            return
        parked = self._parked.pop(change.incident_id, None)
        if parked is None:
            return
        patch, allow_regression = parked
        self._replayed += 1
        logger.info(f"Replaying parked update for incident {change.incident_id}")
        self._store.upsert(patch, allow_regression=allow_regression)

    def parked_ids(self):
        return list(self._parked)

    def close(self) -> None:
        self._unsubscribe()

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "applied": self._applied,
            "rejected": self._rejected,
            "parked": len(self._parked),
            "parked_total": self._parked_total,
            "evicted": self._evicted,
            "replayed": self._replayed,
        }


def _parse_type(value: Any) -> UpdateType:
    text = str(value).strip().lower().replace("-", "_")
    try:
        return UpdateType(text)
    except ValueError:
        pass
    if text in _TYPE_ALIASES:
        return _TYPE_ALIASES[text]
    raise ValidationError(f"Unknown update type {value!r}", field="type", value=value)


__all__ = ["UpdateReconciler", "DEFAULT_MAX_PARKED"]
