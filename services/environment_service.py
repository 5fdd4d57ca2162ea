# ============================================================================
# ENVIRONMENTAL DATA CACHE
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Service - Weather/tide snapshot fetcher with fallback synthesis
# PURPOSE: Provide an EnvironmentalSnapshot for any location, never blocking
# CREATED: 19 OCT 2026
# ============================================================================
"""
Environmental Data Cache

fetch(location) returns a snapshot for the location:
- Key = (lat, lon) rounded to a fixed precision, so float jitter between
  calls for the same spill hits the same entry.
- Entries expire after a TTL in minutes.
- Each fetch replaces the entry wholesale.
- Concurrent fetches for the same key share one upstream round trip.
- If the weather or tide upstream errors or times out, the missing half is
  synthesized from a latitude-based seasonal model and a semi-diurnal tide
  model, and the snapshot is flagged synthetic=True. Synthetic entries use
  a short TTL so a recovering upstream is picked up soon.
"""

import asyncio
import logging
import math
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from core.config import EnvironmentDefaults
from core.contracts import GeoLocation
from core.errors import TransientNetworkError
from core.models import EnvironmentalSnapshot

logger = logging.getLogger(__name__)

# Fallback weather (the backend's own default reading)
DEFAULT_WIND_SPEED = 5.0          # m/s
DEFAULT_WIND_DIRECTION = 270.0    # from the west

# Tide defaults when a reading omits currents
DEFAULT_CURRENT_SPEED = 0.5
DEFAULT_CURRENT_DIRECTION = 180.0

SEMI_DIURNAL_PERIOD_HOURS = 12.42


class EnvironmentSource(Protocol):
    """Upstream weather and tide endpoints."""

    async def get_current_weather(self, latitude: float, longitude: float) -> Dict[str, Any]:
        ...

    async def get_tide_forecast(
        self, latitude: float, longitude: float, hours: int
    ) -> List[Dict[str, Any]]:
        ...


# ============================================================================
# SYNTHESIS
# ============================================================================

def seasonal_temperature(latitude: float, when: datetime) -> float:
    """
    Latitude-based seasonal surface temperature (Celsius).

    Warmer toward the equator, larger seasonal swing toward the poles,
    summer peak around day 200 in the north and half a year later in the south.
    """
    abs_lat = abs(latitude)
    base = 28.0 - 0.35 * abs_lat
    amplitude = 0.15 * abs_lat
    peak_day = 200.0 if latitude >= 0 else 200.0 - 365.25 / 2
    day = when.timetuple().tm_yday
    return base + amplitude * math.cos(2 * math.pi * (day - peak_day) / 365.25)


def synthetic_tide(when: datetime) -> Dict[str, float]:
    """Semi-diurnal tide and tidal current at a point in time."""
    hours = when.timestamp() / 3600.0
    phase = 2 * math.pi * hours / SEMI_DIURNAL_PERIOD_HOURS
    return {
        "tide_height": 2.0 * math.sin(phase),
        "current_speed": 0.5 + 0.3 * abs(math.cos(phase)),
        "current_direction": (180.0 + 45.0 * math.sin(phase)) % 360.0,
    }


def synthetic_weather(location: GeoLocation, when: datetime) -> Dict[str, float]:
    return {
        "temperature": seasonal_temperature(location.latitude, when),
        "wind_speed": DEFAULT_WIND_SPEED,
        "wind_direction": DEFAULT_WIND_DIRECTION,
    }


def synthesize_snapshot(location: GeoLocation, when: Optional[datetime] = None) -> EnvironmentalSnapshot:
    """Fully synthetic snapshot, flagged for audit."""
    when = when or datetime.now(timezone.utc)
    return EnvironmentalSnapshot(
        location=location,
        captured_at=when,
        synthetic=True,
        **synthetic_weather(location, when),
        **synthetic_tide(when),
    )


# ============================================================================
# UPSTREAM PARSING
# ============================================================================

def _number(data: Dict[str, Any], *keys: str, default: Optional[float] = None) -> float:
    if not isinstance(data, dict):
        raise TypeError(f"Expected an object, got {type(data).__name__}")
    for key in keys:
        value = data.get(key)
        if value is not None:
            return float(value)
    if default is None:
        raise KeyError(keys[0])
    return default


def parse_weather(data: Dict[str, Any]) -> Dict[str, float]:
    """Pick the estimator's inputs out of a weather reading."""
    return {
        "temperature": _number(data, "temperature"),
        "wind_speed": _number(data, "windSpeed", "wind_speed"),
        "wind_direction": _number(data, "windDirection", "wind_direction"),
    }


def parse_tide(readings: List[Dict[str, Any]]) -> Dict[str, float]:
    """Use the first (nearest-in-time) tide reading."""
    if not isinstance(readings, list):
        raise TypeError(f"Expected a list of readings, got {type(readings).__name__}")
    if not readings:
        raise ValueError("Empty tide forecast")
    first = readings[0]
    return {
        "tide_height": _number(first, "tideHeight", "tide_height", "waterLevel", default=0.0),
        "current_speed": _number(first, "currentSpeed", "current_speed", default=DEFAULT_CURRENT_SPEED),
        "current_direction": _number(
            first, "currentDirection", "current_direction", default=DEFAULT_CURRENT_DIRECTION
        ),
    }


# ============================================================================
# CACHE
# ============================================================================

class EnvironmentalDataCache:
    """TTL cache of environmental snapshots keyed by rounded location."""

    def __init__(
        self,
        source: EnvironmentSource,
        defaults: Optional[EnvironmentDefaults] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize cache.

        Args:
            source: Weather/tide upstream (the backend API client)
            defaults: TTLs, key precision, fetch timeout
            clock: Monotonic clock (injectable for tests)
        """
        self._source = source
        self._defaults = defaults or EnvironmentDefaults()
        self._clock = clock
        self._entries: Dict[Tuple[float, float], Tuple[EnvironmentalSnapshot, float]] = {}
        self._pending: Dict[Tuple[float, float], "asyncio.Task[EnvironmentalSnapshot]"] = {}

        # Stats
        self._hits = 0
        self._misses = 0
        self._synthetic = 0

    def key_for(self, location: GeoLocation) -> Tuple[float, float]:
        return location.rounded(self._defaults.location_precision)

    def peek(self, location: GeoLocation) -> Optional[EnvironmentalSnapshot]:
        """Cached snapshot if present and fresh, without fetching."""
        entry = self._entries.get(self.key_for(location))
        if entry and entry[1] > self._clock():
            return entry[0]
        return None

    async def fetch(self, location: GeoLocation) -> EnvironmentalSnapshot:
        """
        Snapshot for a location. Never raises for upstream failures.
        """
        key = self.key_for(location)
        cached = self.peek(location)
        if cached is not None:
            self._hits += 1
            return cached

        pending = self._pending.get(key)
        if pending is None:
            self._misses += 1
            pending = asyncio.ensure_future(self._load(key))
            self._pending[key] = pending
            pending.add_done_callback(lambda _t, k=key: self._pending.pop(k, None))
        return await asyncio.shield(pending)

    def invalidate(self, location: Optional[GeoLocation] = None) -> None:
        """Drop one entry, or all entries when location is None."""
        if location is None:
            self._entries.clear()
        else:
            self._entries.pop(self.key_for(location), None)

    async def _load(self, key: Tuple[float, float]) -> EnvironmentalSnapshot:
        lat, lon = key
        location = GeoLocation(latitude=lat, longitude=lon)
        now = datetime.now(timezone.utc)

        weather, tide = await asyncio.gather(
            self._fetch_part("weather", self._fetch_weather(lat, lon)),
            self._fetch_part("tide", self._fetch_tide(lat, lon)),
        )

        synthetic = weather is None or tide is None
        snapshot = EnvironmentalSnapshot(
            location=location,
            captured_at=now,
            synthetic=synthetic,
            **(weather or synthetic_weather(location, now)),
            **(tide or synthetic_tide(now)),
        )

        if synthetic:
            self._synthetic += 1
            ttl = self._defaults.synthetic_ttl_seconds
            logger.info(f"Using synthetic environmental snapshot for {key}")
        else:
            ttl = self._defaults.snapshot_ttl_seconds

        self._entries[key] = (snapshot, self._clock() + ttl)
        return snapshot

    async def _fetch_weather(self, lat: float, lon: float) -> Dict[str, float]:
        return parse_weather(await self._source.get_current_weather(lat, lon))

    async def _fetch_tide(self, lat: float, lon: float) -> Dict[str, float]:
        return parse_tide(
            await self._source.get_tide_forecast(lat, lon, self._defaults.tide_hours_ahead)
        )

    async def _fetch_part(self, name: str, coro) -> Optional[Dict[str, float]]:
        """Run one upstream fetch; None means "synthesize this half"."""
        try:
            return await asyncio.wait_for(coro, timeout=self._defaults.fetch_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Environmental {name} fetch timed out")
        except TransientNetworkError as e:
            logger.warning(f"Environmental {name} upstream unavailable: {e}")
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Environmental {name} payload malformed: {e!r}")
        return None

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._entries),
            "pending": len(self._pending),
            "hits": self._hits,
            "misses": self._misses,
            "synthetic": self._synthetic,
            "ttl_minutes": self._defaults.snapshot_ttl_minutes,
        }


__all__ = [
    "EnvironmentalDataCache",
    "EnvironmentSource",
    "synthesize_snapshot",
    "seasonal_temperature",
    "synthetic_tide",
    "parse_weather",
    "parse_tide",
]
