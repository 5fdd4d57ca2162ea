# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the spill monitor.
"""

from core.config.defaults import (
    MonitorDefaults,
    EnvironmentDefaults,
    ComputeDefaults,
    ApiDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "MonitorDefaults",
    "EnvironmentDefaults",
    "ComputeDefaults",
    "ApiDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
