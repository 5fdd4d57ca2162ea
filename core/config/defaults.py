# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for refresh cadence, caching, compute, HTTP
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides sensible defaults for the monitor's timers, caches and upstream calls.
These can be overridden via environment variables (prefix SPILL_).

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class MonitorDefaults:
    """
    Defaults for the monitor session.

    Controls the periodic refresh and push-stream reconnects.
    """
    refresh_interval_seconds: float = 60.0

    # Stream reconnect backoff (seconds)
    stream_reconnect_initial: float = 1.0
    stream_reconnect_max: float = 30.0

    # Partial updates held for incidents not yet seen
    max_parked_updates: int = 256

    @classmethod
    def from_env(cls) -> "MonitorDefaults":
        """Create from environment variables."""
        return cls(
            refresh_interval_seconds=float(os.getenv("SPILL_REFRESH_INTERVAL_SEC", 60.0)),
            stream_reconnect_initial=float(os.getenv("SPILL_STREAM_RECONNECT_SEC", 1.0)),
            stream_reconnect_max=float(os.getenv("SPILL_STREAM_RECONNECT_MAX_SEC", 30.0)),
            max_parked_updates=int(os.getenv("SPILL_MAX_PARKED_UPDATES", 256)),
        )


@dataclass(frozen=True)
class EnvironmentDefaults:
    """
    Defaults for the environmental snapshot cache.

    Conditions change slowly relative to incident response, so the TTL
    is measured in minutes.
    """
    snapshot_ttl_minutes: float = 15.0
    synthetic_ttl_minutes: float = 1.0   # Retry a recovering upstream soon
    location_precision: int = 2          # Decimal degrees in the cache key
    fetch_timeout_seconds: float = 10.0
    tide_hours_ahead: int = 1

    @property
    def snapshot_ttl_seconds(self) -> float:
        return self.snapshot_ttl_minutes * 60.0

    @property
    def synthetic_ttl_seconds(self) -> float:
        return self.synthetic_ttl_minutes * 60.0

    @classmethod
    def from_env(cls) -> "EnvironmentDefaults":
        """Create from environment variables."""
        return cls(
            snapshot_ttl_minutes=float(os.getenv("SPILL_SNAPSHOT_TTL_MIN", 15.0)),
            synthetic_ttl_minutes=float(os.getenv("SPILL_SYNTHETIC_TTL_MIN", 1.0)),
            location_precision=int(os.getenv("SPILL_LOCATION_PRECISION", 2)),
            fetch_timeout_seconds=float(os.getenv("SPILL_ENV_FETCH_TIMEOUT_SEC", 10.0)),
        )


@dataclass(frozen=True)
class ComputeDefaults:
    """
    Defaults for the external dispersion solver.

    The timeout must cover the solver's expected worst case.
    """
    timeout_seconds: float = 60.0
    simulation_hours: int = 24

    @classmethod
    def from_env(cls) -> "ComputeDefaults":
        """Create from environment variables."""
        return cls(
            timeout_seconds=float(os.getenv("SPILL_COMPUTE_TIMEOUT_SEC", 60.0)),
            simulation_hours=int(os.getenv("SPILL_SIMULATION_HOURS", 24)),
        )


@dataclass(frozen=True)
class ApiDefaults:
    """
    Defaults for the backend HTTP client.
    """
    base_url: str = "http://localhost:8080/api"
    request_timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_initial_delay: float = 1.0     # Doubles per attempt

    @classmethod
    def from_env(cls) -> "ApiDefaults":
        """Create from environment variables."""
        return cls(
            base_url=os.getenv("SPILL_API_BASE_URL", "http://localhost:8080/api"),
            request_timeout_seconds=float(os.getenv("SPILL_API_TIMEOUT_SEC", 30.0)),
            max_retries=int(os.getenv("SPILL_API_MAX_RETRIES", 3)),
            retry_initial_delay=float(os.getenv("SPILL_API_RETRY_DELAY_SEC", 1.0)),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    monitor: MonitorDefaults = field(default_factory=MonitorDefaults)
    environment: EnvironmentDefaults = field(default_factory=EnvironmentDefaults)
    compute: ComputeDefaults = field(default_factory=ComputeDefaults)
    api: ApiDefaults = field(default_factory=ApiDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            monitor=MonitorDefaults.from_env(),
            environment=EnvironmentDefaults.from_env(),
            compute=ComputeDefaults.from_env(),
            api=ApiDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "MonitorDefaults",
    "EnvironmentDefaults",
    "ComputeDefaults",
    "ApiDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
