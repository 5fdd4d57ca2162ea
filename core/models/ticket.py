# ============================================================================
# CALCULATION TICKET MODEL
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core model - Per-incident calculation bookkeeping
# PURPOSE: Single state machine behind the at-most-one-in-flight guarantee
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: CalculationTicket
# DEPENDENCIES: pydantic
# ============================================================================
"""
Calculation Ticket Model

One ticket per incident id, owned exclusively by the CalculationOrchestrator.

Lifecycle:
    1. Created IDLE on first request
    2. IN_FLIGHT while the snapshot fetch and solver call are outstanding
    3. DONE on success; FAILED on error, then demoted straight back to IDLE
    4. DONE -> IDLE on forced recompute or when the incident's inputs change
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from core.contracts import TicketState


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CalculationTicket(BaseModel):
    """Runtime calculation state for one incident."""

    spill_id: str = Field(..., min_length=1)
    state: TicketState = Field(default=TicketState.IDLE)

    requested_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = Field(default=None, max_length=2000)

    attempts: int = Field(default=0, ge=0)

    # Inputs changed while IN_FLIGHT - finish as IDLE so the next trigger recomputes
    stale: bool = False

    model_config = {"frozen": False}

    @computed_field
    @property
    def is_in_flight(self) -> bool:
        return self.state == TicketState.IN_FLIGHT

    @computed_field
    @property
    def duration_seconds(self) -> Optional[float]:
        """Elapsed time of the current or last attempt."""
        if not self.requested_at:
            return None
        end_time = self.completed_at or _utcnow()
        return (end_time - self.requested_at).total_seconds()

    def can_transition_to(self, new_state: TicketState) -> bool:
        """
        Validate if a state transition is allowed.

        Valid transitions:
            IDLE -> IN_FLIGHT
            IN_FLIGHT -> DONE, FAILED, IDLE (cancelled)
            DONE -> IDLE
            FAILED -> IDLE
        """
        if self.state == new_state:
            return new_state != TicketState.IN_FLIGHT

        allowed = {
            TicketState.IDLE: {TicketState.IN_FLIGHT},
            TicketState.IN_FLIGHT: {TicketState.DONE, TicketState.FAILED, TicketState.IDLE},
            TicketState.DONE: {TicketState.IDLE},
            TicketState.FAILED: {TicketState.IDLE},
        }
        return new_state in allowed.get(self.state, set())

    def mark_in_flight(self) -> None:
        """Claim the ticket for a calculation."""
        if not self.can_transition_to(TicketState.IN_FLIGHT):
            raise ValueError(f"Cannot transition from {self.state} to IN_FLIGHT")
        self.state = TicketState.IN_FLIGHT
        self.requested_at = _utcnow()
        self.completed_at = None
        self.error_message = None
        self.stale = False
        self.attempts += 1

    def mark_done(self) -> None:
        """Calculation applied. A stale ticket goes straight back to IDLE."""
        if not self.can_transition_to(TicketState.DONE):
            raise ValueError(f"Cannot transition from {self.state} to DONE")
        self.completed_at = _utcnow()
        if self.stale:
            self.state = TicketState.IDLE
            self.stale = False
        else:
            self.state = TicketState.DONE

    def mark_failed(self, error_message: str) -> None:
        """Record the failure and demote to IDLE so the next trigger retries."""
        if not self.can_transition_to(TicketState.FAILED):
            raise ValueError(f"Cannot transition from {self.state} to FAILED")
        self.state = TicketState.FAILED
        self.error_message = error_message[:2000]
        self.completed_at = _utcnow()
        self.reset()

    def reset(self) -> None:
        """Return to IDLE from DONE/FAILED; flag stale if IN_FLIGHT."""
        if self.state == TicketState.IN_FLIGHT:
            self.stale = True
            return
        self.state = TicketState.IDLE
        self.stale = False

    def release(self) -> None:
        """Drop an in-flight claim without a result (cancelled)."""
        if self.state == TicketState.IN_FLIGHT:
            self.state = TicketState.IDLE
            self.stale = False
            self.completed_at = _utcnow()


__all__ = ["CalculationTicket"]
