# ============================================================================
# EMERGENCY EVALUATOR
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Service - Critical-incident signal
# PURPOSE: Count critical incidents and expose the zero -> non-zero alert edge
# CREATED: 19 OCT 2026
# ============================================================================
"""
Emergency Evaluator

An incident is critical iff:
    volume > 10000
    OR priority == CRITICAL
    OR chemical_type contains "toxic" (case-insensitive)
    OR hazard_class contains "hazard" (chemical_type when no hazard_class)
    OR it was flagged by an emergency push message

evaluate() runs over the full incident list on every store mutation and
keeps the previous count, so callers can debounce: only the transition from
zero critical to non-zero critical sets should_alert.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

from core.contracts import IncidentPriority, IncidentStatus
from core.logging import log_checkpoint
from core.models import Incident

logger = logging.getLogger(__name__)

CRITICAL_VOLUME_LITERS = 10000.0


def is_critical(incident: Incident) -> bool:
    """Pure critical-incident rule."""
    if incident.volume > CRITICAL_VOLUME_LITERS:
        return True
    if incident.priority == IncidentPriority.CRITICAL:
        return True
    chemical = (incident.chemical_type or "").lower()
    if "toxic" in chemical:
        return True
    hazard = (incident.hazard_class or incident.chemical_type or "").lower()
    return "hazard" in hazard


def alert_message(count: int) -> Optional[str]:
    if count <= 0:
        return None
    return f"{count} emergency level spill(s) detected"


@dataclass(frozen=True)
class EmergencyState:
    """Result of one evaluation."""
    critical_count: int = 0
    previous_count: int = 0
    critical_ids: List[str] = field(default_factory=list)
    active_count: int = 0
    total_count: int = 0
    total_volume: float = 0.0
    evaluated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def message(self) -> Optional[str]:
        return alert_message(self.critical_count)

    @property
    def should_alert(self) -> bool:
        """True only on the zero -> non-zero transition."""
        return self.previous_count == 0 and self.critical_count > 0

    @property
    def is_emergency(self) -> bool:
        return self.critical_count > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "critical_count": self.critical_count,
            "previous_count": self.previous_count,
            "critical_ids": list(self.critical_ids),
            "active_count": self.active_count,
            "total_count": self.total_count,
            "total_volume": self.total_volume,
            "message": self.message,
            "should_alert": self.should_alert,
            "evaluated_at": self.evaluated_at.isoformat(),
        }


class EmergencyEvaluator:
    """Stateful wrapper that remembers the last count and flagged ids."""

    def __init__(self):
        self._state = EmergencyState()
        self._flagged: Set[str] = set()

    @property
    def state(self) -> EmergencyState:
        return self._state

    @property
    def flagged(self) -> Set[str]:
        return set(self._flagged)

    def flag(self, incident_id: str) -> None:
        """Mark an incident critical (emergency push message)."""
        self._flagged.add(incident_id)

    def unflag(self, incident_id: str) -> None:
        """Clear a flag (incident removed from the store)."""
        self._flagged.discard(incident_id)

    def evaluate(self, incidents: Iterable[Incident]) -> EmergencyState:
        incidents = list(incidents)
        critical_ids = [
            i.id for i in incidents
            if i.id in self._flagged or is_critical(i)
        ]
        state = EmergencyState(
            critical_count=len(critical_ids),
            previous_count=self._state.critical_count,
            critical_ids=critical_ids,
            active_count=sum(1 for i in incidents if i.status == IncidentStatus.ACTIVE),
            total_count=len(incidents),
            total_volume=sum(i.volume for i in incidents),
        )
        self._state = state

        if state.should_alert:
            logger.warning(state.message)
            log_checkpoint("emergency_alert", {
                "critical_count": state.critical_count,
                "critical_ids": critical_ids,
            })
        elif state.critical_count != state.previous_count:
            logger.info(
                f"Critical incident count {state.previous_count} -> {state.critical_count}"
            )
        return state


__all__ = [
    "EmergencyEvaluator",
    "EmergencyState",
    "is_critical",
    "alert_message",
    "CRITICAL_VOLUME_LITERS",
]
