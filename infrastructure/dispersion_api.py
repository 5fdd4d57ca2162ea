# ============================================================================
# DISPERSION BACKEND HTTP CLIENT
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Infrastructure - Async httpx client for the dispersion backend
# PURPOSE: Incident listing/create/status, solver calls, weather and tides
# CREATED: 19 OCT 2026
# ============================================================================
"""
Dispersion Backend HTTP Client

Async httpx client for the spill backend:

    GET  /dispersion/spills/all                       full listing
    GET  /dispersion/spills                           active listing
    POST /dispersion/spills                           create
    PUT  /dispersion/spills/{id}/status?status=       status change
    POST /dispersion/spills/{id}/calculate            solver run
    GET  /weather/current?latitude&longitude
    GET  /tides/forecast?latitude&longitude&hours

Idempotent GETs retry with exponential backoff (attempts and initial delay
from ApiDefaults, delay doubling). Mutations are sent once.

Error mapping:
    transport error / timeout / 5xx      -> TransientNetworkError
    400 / 422 on a mutation              -> ValidationError
    any failure of the solver endpoint   -> ComputeFailure
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from core.config import ApiDefaults, ComputeDefaults
from core.contracts import IncidentStatus
from core.errors import ComputeFailure, TransientNetworkError, ValidationError
from core.models import DispersionResult

logger = logging.getLogger(__name__)

# Backend spelling of CLEANED_UP
_STATUS_WIRE_NAMES = {IncidentStatus.CLEANED_UP: "CLEANED"}

_VALIDATION_STATUS_CODES = {400, 422}


def status_wire_name(status: IncidentStatus) -> str:
    return _STATUS_WIRE_NAMES.get(status, status.value)


class DispersionApiClient:
    """Async HTTP client for the dispersion backend."""

    def __init__(
        self,
        defaults: Optional[ApiDefaults] = None,
        compute_defaults: Optional[ComputeDefaults] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize client.

        Args:
            defaults: Base URL, timeout, retry policy
            compute_defaults: Solver simulation hours
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Backoff sleep (injectable for tests)
        """
        self._defaults = defaults or ApiDefaults()
        self._compute = compute_defaults or ComputeDefaults()
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=self._defaults.base_url.rstrip("/"),
            timeout=self._defaults.request_timeout_seconds,
            transport=transport,
        )

    @property
    def http(self) -> httpx.AsyncClient:
        """Underlying client, shared with the update stream."""
        return self._client

    async def close(self) -> None:
        await self._client.aclose()

    # =========================================================================
    # REQUEST CORE
    # =========================================================================

    async def _send(
        self,
        method: str,
        path: str,
        operation: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        incident_id: Optional[str] = None,
    ) -> httpx.Response:
        """Single request; maps transport and 5xx failures."""
        try:
            resp = await self._client.request(method, path, params=params, json=json_body)
        except httpx.TimeoutException as e:
            raise TransientNetworkError(
                f"Timeout calling {method} {path}: {e}",
                operation=operation, incident_id=incident_id,
            ) from e
        except httpx.HTTPError as e:
            raise TransientNetworkError(
                f"Cannot reach backend for {method} {path}: {e}",
                operation=operation, incident_id=incident_id,
            ) from e

        if resp.status_code >= 500:
            raise TransientNetworkError(
                f"Backend error {resp.status_code} for {method} {path}",
                operation=operation, incident_id=incident_id,
                status_code=resp.status_code,
            )
        if resp.status_code in _VALIDATION_STATUS_CODES:
            raise ValidationError(
                f"Backend rejected {method} {path}: {resp.text[:200]}",
                incident_id=incident_id,
            )
        if resp.status_code >= 400:
            raise TransientNetworkError(
                f"Backend returned {resp.status_code} for {method} {path}",
                operation=operation, incident_id=incident_id,
                status_code=resp.status_code,
            )
        return resp

    async def _get(self, path: str, operation: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET with retry and exponential backoff."""
        attempts = max(1, self._defaults.max_retries)
        last_error: Optional[TransientNetworkError] = None

        for attempt in range(attempts):
            try:
                resp = await self._send("GET", path, operation, params=params)
                return _json(resp, operation)
            except TransientNetworkError as e:
                last_error = e
                if attempt == attempts - 1:
                    break
                delay = self._defaults.retry_initial_delay * (2 ** attempt)
                logger.warning(
                    f"Retrying {operation} ({attempt + 1}/{attempts}) in {delay:.1f}s: {e}"
                )
                await self._sleep(delay)

        raise last_error

    # =========================================================================
    # INCIDENTS
    # =========================================================================

    async def list_all(self) -> List[Dict[str, Any]]:
        """GET /dispersion/spills/all"""
        return _as_list(await self._get("/dispersion/spills/all", "list_all"), "list_all")

    async def list_active(self) -> List[Dict[str, Any]]:
        """GET /dispersion/spills"""
        return _as_list(await self._get("/dispersion/spills", "list_active"), "list_active")

    async def create(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an incident on the backend.

        POST /dispersion/spills

        Returns:
            Server record including the authoritative id
        """
        resp = await self._send("POST", "/dispersion/spills", "create", json_body=payload)
        body = _json(resp, "create")
        if not isinstance(body, dict) or body.get("id") is None:
            raise TransientNetworkError("Create response carried no id", operation="create")
        return body

    async def update_status(self, incident_id: str, status: IncidentStatus) -> Dict[str, Any]:
        """PUT /dispersion/spills/{id}/status?status="""
        resp = await self._send(
            "PUT",
            f"/dispersion/spills/{incident_id}/status",
            "update_status",
            params={"status": status_wire_name(status)},
            incident_id=incident_id,
        )
        return _json(resp, "update_status")

    # =========================================================================
    # SOLVER
    # =========================================================================

    async def calculate_dispersion(
        self,
        incident_id: str,
        hours: Optional[int] = None,
    ) -> DispersionResult:
        """
        Run the backend solver for an incident.

        POST /dispersion/spills/{id}/calculate?simulationHours=N

        Raises:
            TransientNetworkError: backend unreachable or 5xx
            ComputeFailure: solver rejected the run or returned garbage
        """
        hours = hours or self._compute.simulation_hours
        try:
            resp = await self._send(
                "POST",
                f"/dispersion/spills/{incident_id}/calculate",
                "calculate",
                params={"simulationHours": hours},
                incident_id=incident_id,
            )
        except ValidationError as e:
            raise ComputeFailure(str(e), operation="calculate", incident_id=incident_id) from e
        except TransientNetworkError as e:
            if e.status_code is not None and e.status_code < 500:
                raise ComputeFailure(str(e), operation="calculate", incident_id=incident_id) from e
            raise

        try:
            return DispersionResult.model_validate(resp.json())
        except ValueError as e:
            raise ComputeFailure(
                f"Malformed solver result for {incident_id}: {e}",
                operation="calculate", incident_id=incident_id,
            ) from e

    # =========================================================================
    # ENVIRONMENT
    # =========================================================================

    async def get_current_weather(self, latitude: float, longitude: float) -> Dict[str, Any]:
        """GET /weather/current"""
        body = await self._get(
            "/weather/current", "weather",
            params={"latitude": latitude, "longitude": longitude},
        )
        if not isinstance(body, dict):
            raise TransientNetworkError("Weather response is not an object", operation="weather")
        return body

    async def get_tide_forecast(
        self,
        latitude: float,
        longitude: float,
        hours: int = 1,
    ) -> List[Dict[str, Any]]:
        """GET /tides/forecast"""
        body = await self._get(
            "/tides/forecast", "tides",
            params={"latitude": latitude, "longitude": longitude, "hours": hours},
        )
        return _as_list(body, "tides")


def _json(resp: httpx.Response, operation: str) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise TransientNetworkError(
            f"Non-JSON response for {operation}: {resp.text[:200]}",
            operation=operation, status_code=resp.status_code,
        ) from e


def _as_list(body: Any, operation: str) -> List[Dict[str, Any]]:
    if not isinstance(body, list):
        raise TransientNetworkError(f"Expected a list for {operation}", operation=operation)
    return body


__all__ = ["DispersionApiClient", "status_wire_name"]
