# ============================================================================
# INCIDENT MONITOR
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core - Composition root and session lifecycle
# PURPOSE: Build and wire the store, cache, orchestrator and reconciler;
#          own the refresh timer and the push-stream subscription
# CREATED: 19 OCT 2026
# ============================================================================
"""
Incident Monitor

One monitor per dashboard session. It constructs every component, injects
the store into the orchestrator and reconciler, and routes store change
notifications:

    any change              -> emergency evaluator recomputes
    inputs changed          -> orchestrator invalidates the ticket, and the
                               selected incident is recalculated
    incident removed        -> ticket forgotten, emergency flag cleared

Lifecycle:
    start()  initial refresh, then the refresh loop and stream tasks
    stop()   cancels both tasks, closes the orchestrator and HTTP client;
             runs on every exit path when used as `async with monitor:`
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from core.config import Defaults, get_defaults
from core.contracts import IncidentStatus, UpdateType
from core.errors import StatusRegressionError, TransientNetworkError, ValidationError
from core.models import DispersionEstimate, Incident, IncidentUpdate, new_temp_id
from infrastructure import DispersionApiClient, UpdateStream
from orchestrator.calculation import CalculationOrchestrator
from orchestrator.reconciler import UpdateReconciler
from repositories import ChangeKind, IncidentStore, StoreChange
from services import DispersionEstimator, EmergencyEvaluator, EmergencyState, EnvironmentalDataCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonitorSnapshot:
    """Read-only view of the session state."""
    incidents: List[Incident]
    estimates: Dict[str, DispersionEstimate]
    emergency: EmergencyState
    calculating: List[str]
    selected_id: Optional[str] = None
    version: int = 0
    taken_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "incidents": [i.model_dump(mode="json", by_alias=True) for i in self.incidents],
            "estimates": {k: v.model_dump(mode="json", by_alias=True) for k, v in self.estimates.items()},
            "emergency": self.emergency.to_dict(),
            "calculating": list(self.calculating),
            "selected_id": self.selected_id,
            "version": self.version,
            "taken_at": self.taken_at.isoformat(),
        }


def create_request_payload(incident: Incident) -> Dict[str, Any]:
    """Backend create body: flat coordinates, naive UTC spill time."""
    spill_time = incident.spill_time.astimezone(timezone.utc).replace(tzinfo=None)
    payload: Dict[str, Any] = {
        "name": incident.name,
        "chemicalType": incident.chemical_type,
        "volume": incident.volume,
        "latitude": incident.location.latitude,
        "longitude": incident.location.longitude,
        "spillTime": spill_time.isoformat(),
    }
    if incident.water_depth is not None:
        payload["waterDepth"] = incident.water_depth
    if incident.source:
        payload["reportedBy"] = incident.source
    return payload


class IncidentMonitor:
    """
    Dashboard session: composition root plus background tasks.
    """

    def __init__(
        self,
        api: Optional[DispersionApiClient] = None,
        defaults: Optional[Defaults] = None,
        enable_stream: bool = True,
    ):
        """
        Initialize monitor.

        Args:
            api: Backend client (built from defaults when omitted)
            defaults: Configuration (environment-derived when omitted)
            enable_stream: Subscribe to the push-update stream on start()
        """
        self._defaults = defaults or get_defaults()

        self.api = api or DispersionApiClient(self._defaults.api, self._defaults.compute)
        self.store = IncidentStore()
        self.evaluator = EmergencyEvaluator()
        self.environment = EnvironmentalDataCache(self.api, self._defaults.environment)
        self.estimator = DispersionEstimator()
        self.orchestrator = CalculationOrchestrator(
            self.store,
            self.environment,
            self.api,
            estimator=self.estimator,
            defaults=self._defaults.compute,
            on_discarded=self._on_estimate_discarded,
        )
        self.reconciler = UpdateReconciler(
            self.store,
            evaluator=self.evaluator,
            max_parked=self._defaults.monitor.max_parked_updates,
        )
        self.stream: Optional[UpdateStream] = None
        if enable_stream:
            self.stream = UpdateStream(
                self.api.http,
                self.reconciler.handle_frame,
                defaults=self._defaults.monitor,
            )

        self._unsubscribe = self.store.subscribe(self._on_store_change)
        self._selected_id: Optional[str] = None

        # State
        self._running = False
        self._stop_event = asyncio.Event()

        # Background tasks
        self._refresh_task: Optional[asyncio.Task] = None
        self._stream_task: Optional[asyncio.Task] = None

        # Metrics
        self._started_at: Optional[datetime] = None
        self._refreshes = 0
        self._refresh_errors = 0
        self._last_refresh_at: Optional[datetime] = None

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Initial refresh, then start the refresh loop and stream tasks."""
        if self._running:
            logger.warning("Monitor already running")
            return

        logger.info("Starting incident monitor")
        self._running = True
        self._stop_event.clear()
        self._started_at = datetime.now(timezone.utc)

        try:
            await self.refresh()
        except (Exception, asyncio.CancelledError):
            await self.stop()
            raise

        self._refresh_task = asyncio.create_task(self._refresh_loop(), name="monitor-refresh")
        if self.stream is not None:
            self._stream_task = asyncio.create_task(self.stream.run(), name="monitor-stream")

        logger.info(
            f"Incident monitor started ({len(self.store)} incident(s), "
            f"refresh every {self._defaults.monitor.refresh_interval_seconds:.0f}s, "
            f"stream={'on' if self.stream else 'off'})"
        )

    async def stop(self) -> None:
        """
        Stop background work and release resources.

        Safe to call more than once and after a failed start().
        """
        self._running = False
        self._stop_event.set()

        for task in (self._refresh_task, self._stream_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.warning(f"Monitor task ended with error: {e}")
        self._refresh_task = None
        self._stream_task = None

        try:
            await self.orchestrator.close()
        finally:
            await self.api.close()

        logger.info(
            f"Incident monitor stopped (refreshes={self._refreshes}, "
            f"refresh_errors={self._refresh_errors})"
        )

    async def __aenter__(self) -> "IncidentMonitor":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # =========================================================================
    # REFRESH
    # =========================================================================

    async def refresh(self) -> bool:
        """
        Pull the full listing and reconcile it.

        Returns:
            True if the listing was applied; False if the backend was
            unreachable (the current store is kept)
        """
        try:
            listing = await self.api.list_all()
        except TransientNetworkError as e:
            self._refresh_errors += 1
            logger.warning(f"Refresh failed, keeping {len(self.store)} cached incident(s): {e}")
            return False

        self.reconciler.apply(IncidentUpdate(
            update_type=UpdateType.SNAPSHOT,
            incidents=listing,
            source="poll",
        ))
        self._refreshes += 1
        self._last_refresh_at = datetime.now(timezone.utc)

        selected = self.selected
        if selected is not None and selected.dispersion_estimate is None:
            self.orchestrator.request(selected.id)
        return True

    async def _refresh_loop(self) -> None:
        interval = self._defaults.monitor.refresh_interval_seconds
        logger.info(f"Starting refresh loop (interval={interval}s)")

        while self._running and not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                break  # Stop event was set
            except asyncio.TimeoutError:
                pass

            try:
                await self.refresh()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._refresh_errors += 1
                logger.exception(f"Error in refresh cycle: {e}")

        logger.info("Refresh loop stopped")

    # =========================================================================
    # USER ACTIONS
    # =========================================================================

    @property
    def selected_id(self) -> Optional[str]:
        return self._selected_id

    @property
    def selected(self) -> Optional[Incident]:
        return self.store.get(self._selected_id) if self._selected_id else None

    def select(self, incident_id: Optional[str]) -> bool:
        """
        Select an incident and request its calculation.

        Passing None clears the selection. In-flight work for the previously
        selected incident is not cancelled.

        Returns:
            False if the incident is unknown
        """
        if incident_id is None:
            self._selected_id = None
            return True
        if incident_id not in self.store:
            return False
        self._selected_id = incident_id
        self.orchestrator.request(incident_id)
        return True

    def recalculate(self, incident_id: str) -> bool:
        """User-initiated forced recompute."""
        return self.orchestrator.request(incident_id, force=True)

    async def create_incident(self, payload: Mapping[str, Any]) -> Incident:
        """
        Report a new incident.

        Inserted locally under a temporary id, posted to the backend, then
        swapped for the server-authoritative record.

        Raises:
            ValidationError: payload invalid (nothing inserted) or backend
                rejected it (temporary entry removed)
            TransientNetworkError: backend unreachable (temporary entry removed)
        """
        data = {k: v for k, v in payload.items() if k != "id"}
        temp_id = new_temp_id()
        incident = Incident.from_payload(data, incident_id=temp_id)
        self.store.upsert(incident)
        was_selected = False

        try:
            created = await self.api.create(create_request_payload(incident))
            was_selected = self._selected_id == temp_id
            confirmed = self.store.confirm(temp_id, created)
        except (Exception, asyncio.CancelledError):
            self.store.remove(temp_id)
            logger.warning(f"Create failed; removed temporary incident {temp_id}")
            raise

        if was_selected:
            self._selected_id = confirmed.id
        logger.info(f"Created incident {confirmed.id} ({confirmed.chemical_type})")
        return confirmed

    async def update_status(
        self,
        incident_id: str,
        status: Union[IncidentStatus, str],
        correction: bool = False,
    ) -> Incident:
        """
        Change an incident's status locally and on the backend.

        The local change is reverted if the backend call fails.

        Raises:
            ValidationError: unknown incident or status
            StatusRegressionError: backwards move without correction=True
        """
        current = self.store.get(incident_id)
        if current is None:
            raise ValidationError(f"Unknown incident {incident_id}", field="id", incident_id=incident_id)
        try:
            new_status = IncidentStatus.parse(status)
        except ValueError as e:
            raise ValidationError(f"Unknown status {status!r}", field="status", value=status) from e

        if current.status.is_regression_to(new_status) and not correction:
            raise StatusRegressionError(
                f"Status {current.status.value} -> {new_status.value} requires correction",
                field="status", value=new_status.value, incident_id=incident_id,
            )

        self.reconciler.apply(IncidentUpdate(
            update_type=UpdateType.STATUS_CHANGED,
            incident_id=incident_id,
            status=new_status,
            correction=correction,
            source="user",
        ))
        try:
            await self.api.update_status(incident_id, new_status)
        except (Exception, asyncio.CancelledError):
            self.reconciler.apply(IncidentUpdate(
                update_type=UpdateType.STATUS_CHANGED,
                incident_id=incident_id,
                status=current.status,
                correction=True,
                source="user",
            ))
            raise
        return self.store.get(incident_id)

    # =========================================================================
    # READS
    # =========================================================================

    def snapshot(self) -> MonitorSnapshot:
        incidents = self.store.list()
        return MonitorSnapshot(
            incidents=incidents,
            estimates={
                i.id: i.dispersion_estimate
                for i in incidents
                if i.dispersion_estimate is not None
            },
            emergency=self.evaluator.state,
            calculating=self.orchestrator.in_flight(),
            selected_id=self._selected_id,
            version=self.store.version,
        )

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> Dict[str, Any]:
        """Get monitor statistics."""
        uptime_seconds = None
        if self._started_at:
            uptime_seconds = (datetime.now(timezone.utc) - self._started_at).total_seconds()

        return {
            "running": self._running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "uptime_seconds": uptime_seconds,
            "refresh_interval": self._defaults.monitor.refresh_interval_seconds,
            "refreshes": self._refreshes,
            "refresh_errors": self._refresh_errors,
            "last_refresh_at": self._last_refresh_at.isoformat() if self._last_refresh_at else None,
            "incidents": len(self.store),
            "selected_id": self._selected_id,
            "stream": {
                "enabled": self.stream is not None,
                "connected": self.stream.connected if self.stream else False,
                "frames_received": self.stream.frames_received if self.stream else 0,
                "reconnects": self.stream.reconnects if self.stream else 0,
            },
            "orchestrator": self.orchestrator.stats,
            "reconciler": self.reconciler.stats,
            "environment": self.environment.stats,
        }

    # =========================================================================
    # STORE WIRING
    # =========================================================================

    def _on_store_change(self, change: StoreChange) -> None:
        self.evaluator.evaluate(self.store.list())

        if change.kind == ChangeKind.REMOVED:
            self.orchestrator.forget(change.incident_id)
            self.evaluator.unflag(change.incident_id)
            if self._selected_id == change.incident_id:
                self._selected_id = None
            return

        if change.replaced_id:
            self.orchestrator.forget(change.replaced_id)
            self.evaluator.unflag(change.replaced_id)
            if self._selected_id == change.replaced_id:
                self._selected_id = change.incident_id
                self._request_in_loop(change.incident_id)

        if change.estimate_invalidated:
            self.orchestrator.invalidate(change.incident_id)
            if change.incident_id == self._selected_id:
                self._request_in_loop(change.incident_id)

    def _on_estimate_discarded(self, incident_id: str) -> None:
        if incident_id == self._selected_id:
            self._request_in_loop(incident_id)

    def _request_in_loop(self, incident_id: str) -> None:
        # Store mutations may happen outside the event loop (sync callers)
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self.orchestrator.request(incident_id)


__all__ = ["IncidentMonitor", "MonitorSnapshot", "create_request_payload"]
