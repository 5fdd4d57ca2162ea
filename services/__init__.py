# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core - Domain logic layer
# PURPOSE: Environmental data, dispersion estimate and emergency evaluation
# CREATED: 19 OCT 2026
# ============================================================================
"""
Services Module

Domain logic used by the orchestrator. Services never mutate the incident
store; they compute values that the orchestrator attaches.

Usage:
    from services import DispersionEstimator, EnvironmentalDataCache

    cache = EnvironmentalDataCache(api_client)
    snapshot = await cache.fetch(incident.location)
    estimate = DispersionEstimator().estimate(incident, snapshot)
"""

from .dispersion_estimator import DispersionEstimator
from .emergency_evaluator import EmergencyEvaluator, EmergencyState, is_critical
from .environment_service import EnvironmentalDataCache, EnvironmentSource

__all__ = [
    "DispersionEstimator",
    "EmergencyEvaluator",
    "EmergencyState",
    "is_critical",
    "EnvironmentalDataCache",
    "EnvironmentSource",
]
