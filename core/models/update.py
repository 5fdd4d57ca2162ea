# ============================================================================
# INCIDENT UPDATE MODEL
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core model - Unified mutation message
# PURPOSE: One message type for poll results, push frames and user actions
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: IncidentUpdate
# DEPENDENCIES: pydantic, enum
# ============================================================================
"""
Incident Update Model

Every mutation path (periodic refresh, push stream, user action) produces an
IncidentUpdate and hands it to the UpdateReconciler, so all of them funnel
through the same idempotent store upsert.

Push-stream frames look like:
    {"type": "status_changed", "id": "...", "status": "CONTAINED"}
    {"type": "updated", "spill": {...partial fields...}}
    [ {...}, {...} ]          # initial frame: full listing
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from core.contracts import IncidentStatus, UpdateType


class IncidentUpdate(BaseModel):
    """A single incident-related event awaiting reconciliation."""

    update_type: UpdateType
    incident_id: Optional[str] = Field(default=None, max_length=128)

    # Fields to merge (created / updated / emergency)
    payload: Dict[str, Any] = Field(default_factory=dict)

    # Full listing (snapshot)
    incidents: List[Any] = Field(default_factory=list)

    # status_changed
    status: Optional[IncidentStatus] = None
    correction: bool = Field(
        default=False,
        description="Explicit data correction - allows a backwards status move",
    )

    # emergency
    message: Optional[str] = None

    source: str = Field(default="stream", description="stream | poll | user")
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value):
        if value is None:
            return value
        try:
            return IncidentStatus.parse(value)
        except ValueError:
            return value  # let pydantic report it

    def target_id(self) -> Optional[str]:
        """Incident id from the envelope or, failing that, the payload."""
        if self.incident_id:
            return self.incident_id
        raw = self.payload.get("id")
        return str(raw) if raw is not None else None


__all__ = ["IncidentUpdate"]
