# ============================================================================
# CALCULATION ORCHESTRATOR
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core - Per-incident calculation driver
# PURPOSE: At most one dispersion calculation in flight per incident
# CREATED: 19 OCT 2026
# ============================================================================
"""
Calculation Orchestrator

Owns one CalculationTicket per incident id and drives:

    1. Claim ticket (IDLE -> IN_FLIGHT), synchronously, before any await
    2. Fetch the environmental snapshot (cache, never raises)
    3. Call the external solver, bounded by asyncio.wait_for
    4. Build the local estimate, merging the solver's summary fields
    5. Attach the estimate to the store
    6. Ticket DONE (or IDLE if the inputs changed meanwhile)

Any TransientNetworkError, ComputeFailure or timeout marks the ticket FAILED
and demotes it to IDLE so the next trigger retries. The incident's existing
estimate is left untouched.

Requests while a ticket is IN_FLIGHT are dropped. Requests on a DONE ticket
are dropped unless force=True. Selection changes never cancel in-flight work.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol

from core.config import ComputeDefaults
from core.contracts import TicketState
from core.errors import ComputeFailure, MonitorError
from core.logging import ComponentType, log_checkpoint, log_context
from core.models import TEMP_ID_PREFIX, CalculationTicket, DispersionEstimate, DispersionResult
from repositories import IncidentStore
from services import DispersionEstimator, EnvironmentalDataCache

logger = logging.getLogger(__name__)


class ComputeService(Protocol):
    """External dispersion solver."""

    async def calculate_dispersion(
        self, incident_id: str, hours: Optional[int] = None
    ) -> DispersionResult:
        ...


class CalculationOrchestrator:
    """
    Calculation ticket owner.

    Only this class creates or mutates tickets; other components call
    request()/calculate()/invalidate() or read copies via ticket().
    """

    def __init__(
        self,
        store: IncidentStore,
        environment: EnvironmentalDataCache,
        compute: ComputeService,
        estimator: Optional[DispersionEstimator] = None,
        defaults: Optional[ComputeDefaults] = None,
        on_discarded: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            store: Incident store (estimates are attached here)
            environment: Environmental snapshot cache
            compute: External solver (the backend API client)
            estimator: Local estimate builder
            defaults: Solver timeout and simulation hours
            on_discarded: Called with the id when a stale result is dropped
        """
        self._store = store
        self._environment = environment
        self._compute = compute
        self._estimator = estimator or DispersionEstimator()
        self._defaults = defaults or ComputeDefaults()
        self._on_discarded = on_discarded

        self._tickets: Dict[str, CalculationTicket] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._closed = False

        # Metrics
        self._accepted = 0
        self._dropped = 0
        self._completed = 0
        self._failed = 0
        self._timeouts = 0
        self._last_completed_at: Optional[datetime] = None

    # =========================================================================
    # READS
    # =========================================================================

    def ticket(self, incident_id: str) -> Optional[CalculationTicket]:
        """Read-only copy of an incident's ticket."""
        ticket = self._tickets.get(incident_id)
        return ticket.model_copy() if ticket else None

    def is_calculating(self, incident_id: str) -> bool:
        ticket = self._tickets.get(incident_id)
        return ticket is not None and ticket.state == TicketState.IN_FLIGHT

    def in_flight(self) -> List[str]:
        """Ids with a calculation currently outstanding."""
        return [
            spill_id for spill_id, ticket in self._tickets.items()
            if ticket.state == TicketState.IN_FLIGHT
        ]

    # =========================================================================
    # REQUESTS
    # =========================================================================

    async def calculate(self, incident_id: str, force: bool = False) -> Optional[DispersionEstimate]:
        """
        Run a calculation and wait for it.

        Returns:
            The attached estimate, or None if the request was dropped,
            failed, or its inputs changed while in flight
        """
        ticket = self._claim(incident_id, force)
        if ticket is None:
            return None
        return await self._run(ticket)

    def request(self, incident_id: str, force: bool = False) -> bool:
        """
        Schedule a calculation in the background.

        Returns:
            True if accepted, False if dropped
        """
        if self._closed:
            logger.debug(f"Orchestrator closed; request for {incident_id} dropped")
            return False
        ticket = self._claim(incident_id, force)
        if ticket is None:
            return False

        task = asyncio.create_task(
            self._run(ticket),
            name=f"calculate-{incident_id}",
        )
        self._tasks[incident_id] = task
        task.add_done_callback(lambda t, spill_id=incident_id: self._task_done(spill_id, t))
        return True

    def invalidate(self, incident_id: str) -> None:
        """
        Inputs changed: DONE/FAILED -> IDLE, IN_FLIGHT -> stale (ends IDLE).
        """
        ticket = self._tickets.get(incident_id)
        if ticket is None:
            return
        ticket.reset()
        logger.debug(f"Invalidated ticket for {incident_id} (state={ticket.state.value}, stale={ticket.stale})")

    def forget(self, incident_id: str) -> None:
        """
        Drop the ticket of a removed incident.

        An IN_FLIGHT ticket is kept (marked stale) until its run ends, so a
        re-inserted incident with the same id cannot start a second solver
        call. The run discards its result and drops the ticket if the
        incident is still gone.
        """
        ticket = self._tickets.get(incident_id)
        if ticket is None:
            return
        if ticket.state == TicketState.IN_FLIGHT:
            ticket.reset()
            return
        del self._tickets[incident_id]

    async def close(self) -> None:
        """Cancel outstanding background calculations."""
        self._closed = True
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Calculation task ended with error during close: {e}")
        self._tasks.clear()
        # Tasks cancelled before their first step never reach release()
        for ticket in self._tickets.values():
            ticket.release()
        logger.info(f"Calculation orchestrator closed ({len(tasks)} task(s) cancelled)")

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _claim(self, incident_id: str, force: bool) -> Optional[CalculationTicket]:
        """Check-and-set, no await between the check and IN_FLIGHT."""
        if incident_id not in self._store:
            logger.debug(f"Calculation request for unknown incident {incident_id} dropped")
            self._dropped += 1
            return None
        if incident_id.startswith(TEMP_ID_PREFIX):
            # The backend has no record under a client-temporary id yet
            logger.debug(f"Calculation request for unconfirmed incident {incident_id} dropped")
            self._dropped += 1
            return None

        ticket = self._tickets.get(incident_id)
        if ticket is None:
            ticket = CalculationTicket(spill_id=incident_id)
            self._tickets[incident_id] = ticket

        if not ticket.state.accepts_request(force):
            logger.debug(
                f"Calculation request for {incident_id} dropped "
                f"(state={ticket.state.value}, force={force})"
            )
            self._dropped += 1
            return None

        if ticket.state != TicketState.IDLE:
            ticket.reset()
        ticket.mark_in_flight()
        self._accepted += 1
        return ticket

    async def _run(self, ticket: CalculationTicket) -> Optional[DispersionEstimate]:
        incident_id = ticket.spill_id
        with log_context(
            incident_id=incident_id,
            ticket_state=ticket.state.value,
            component=ComponentType.ORCHESTRATOR.value,
            operation="calculate",
        ):
            log_checkpoint("calculation_accepted", {"attempt": ticket.attempts}, logger)
            try:
                return self._apply_result(ticket, await self._compute_estimate(incident_id))
            except asyncio.CancelledError:
                ticket.release()
                logger.info(f"Calculation for {incident_id} cancelled")
                raise
            except asyncio.TimeoutError:
                self._timeouts += 1
                self._fail(ticket, f"Solver timed out after {self._defaults.timeout_seconds:.0f}s")
                return None
            except MonitorError as e:
                self._fail(ticket, str(e))
                return None
            except Exception as e:
                self._fail(ticket, f"Unexpected error: {e}")
                raise
            finally:
                self._drop_if_removed(ticket)

    def _apply_result(
        self, ticket: CalculationTicket, estimate: DispersionEstimate
    ) -> Optional[DispersionEstimate]:
        incident_id = ticket.spill_id
        if ticket.stale:
            # Inputs changed (or the incident was removed) mid-flight
            ticket.mark_done()
            logger.info(f"Discarding stale estimate for {incident_id}")
            if self._on_discarded is not None:
                self._on_discarded(incident_id)
            return None

        self._store.attach_estimate(incident_id, estimate)
        ticket.mark_done()
        self._completed += 1
        self._last_completed_at = datetime.now(timezone.utc)
        log_checkpoint("calculation_completed", {
            "radius_meters": estimate.radius_meters,
            "synthetic_environment": estimate.synthetic_environment,
            "degenerate": estimate.degenerate,
        }, logger)
        return estimate

    def _drop_if_removed(self, ticket: CalculationTicket) -> None:
        incident_id = ticket.spill_id
        if (
            incident_id not in self._store
            and self._tickets.get(incident_id) is ticket
            and ticket.state != TicketState.IN_FLIGHT
        ):
            del self._tickets[incident_id]

    async def _compute_estimate(self, incident_id: str) -> DispersionEstimate:
        incident = self._store.get(incident_id)
        if incident is None:
            raise ComputeFailure("Incident removed before calculation", incident_id=incident_id)

        snapshot = await self._environment.fetch(incident.location)
        result = await asyncio.wait_for(
            self._compute.calculate_dispersion(incident_id, self._defaults.simulation_hours),
            timeout=self._defaults.timeout_seconds,
        )

        # Estimate against the latest version of the incident
        current = self._store.get(incident_id) or incident
        return self._estimator.estimate(current, snapshot, result)

    def _fail(self, ticket: CalculationTicket, message: str) -> None:
        self._failed += 1
        ticket.mark_failed(message)
        logger.warning(f"Calculation for {ticket.spill_id} failed: {message}")
        log_checkpoint("calculation_failed", {"error": message}, logger)

    def _task_done(self, incident_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(incident_id) is task:
            del self._tasks[incident_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background calculation for {incident_id} raised: {task.exception()!r}")

    @property
    def stats(self) -> Dict[str, Any]:
        """Get orchestrator statistics."""
        by_state: Dict[str, int] = {state.value: 0 for state in TicketState}
        for ticket in self._tickets.values():
            by_state[ticket.state.value] += 1

        return {
            "tickets": len(self._tickets),
            "by_state": by_state,
            "background_tasks": len(self._tasks),
            "accepted": self._accepted,
            "dropped": self._dropped,
            "completed": self._completed,
            "failed": self._failed,
            "timeouts": self._timeouts,
            "timeout_seconds": self._defaults.timeout_seconds,
            "last_completed_at": self._last_completed_at.isoformat() if self._last_completed_at else None,
        }


__all__ = ["CalculationOrchestrator", "ComputeService"]
