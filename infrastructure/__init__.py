# ============================================================================
# INFRASTRUCTURE MODULE
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Infrastructure - Backend HTTP access
# PURPOSE: Dispersion backend client and push-update stream
# CREATED: 19 OCT 2026
# ============================================================================
"""
Infrastructure module for the spill monitor.

Provides:
- DispersionApiClient: incident listing/mutation, solver, weather and tides
- UpdateStream: reconnecting server-sent events subscriber

Usage:
    from infrastructure import DispersionApiClient, UpdateStream

    api = DispersionApiClient()
    spills = await api.list_all()

    stream = UpdateStream(api.http, on_frame=print)
    task = asyncio.create_task(stream.run())
"""

from infrastructure.dispersion_api import DispersionApiClient, status_wire_name
from infrastructure.update_stream import UpdateStream, parse_event_lines

__all__ = [
    "DispersionApiClient",
    "status_wire_name",
    "UpdateStream",
    "parse_event_lines",
]
