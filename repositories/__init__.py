# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core - State ownership layer
# PURPOSE: Canonical incident collection
# CREATED: 19 OCT 2026
# ============================================================================
"""
Repositories Module

Owns the incident records. Persistence is the backend's concern; this layer
holds the in-memory canonical collection the dashboard renders from.

Usage:
    from repositories import IncidentStore

    store = IncidentStore()
    store.upsert({"id": "s1", "name": "Dock 4", ...})
"""

from .incident_store import ChangeKind, IncidentStore, StoreChange, StoreListener

__all__ = [
    "IncidentStore",
    "StoreChange",
    "ChangeKind",
    "StoreListener",
]
