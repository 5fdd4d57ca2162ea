# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core - Calculation driver, reconciliation and session lifecycle
# PURPOSE: Coordinate incident updates and dispersion calculations
# CREATED: 19 OCT 2026
# ============================================================================
"""
Orchestrator Module

Usage:
    from orchestrator import IncidentMonitor

    async with IncidentMonitor() as monitor:
        monitor.select(incident_id)
        snapshot = monitor.snapshot()
"""

from .calculation import CalculationOrchestrator, ComputeService
from .monitor import IncidentMonitor, MonitorSnapshot
from .reconciler import UpdateReconciler

__all__ = [
    "CalculationOrchestrator",
    "ComputeService",
    "IncidentMonitor",
    "MonitorSnapshot",
    "UpdateReconciler",
]
