# ============================================================================
# VERSION - SPILL MONITOR CORE
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# ============================================================================
"""
Version information for the Spill Monitor core.

This is the single source of truth for the application version.
Updated manually for each release.
"""
# Version format: major.minor.patch.build
# Criteria for 0.2 - push stream reconciliation and ticketed calculations
__version__ = "0.2.0.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Build metadata
BUILD_DATE = "2026-10-19"

EPOCH = 1
CODENAME = "Spill Monitor"
