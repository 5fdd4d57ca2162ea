# ============================================================================
# ERROR TAXONOMY
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Foundation - Exception hierarchy
# PURPOSE: Name the failure classes each component recovers from
# CREATED: 19 OCT 2026
# ============================================================================
"""
Error Taxonomy

None of these are fatal to the process. Each is raised where a collaborator
fails and handled by the component that owns recovery:

- TransientNetworkError: listing fetch, compute call, environmental fetch.
  Recovered by falling back to cached/synthetic data or demoting a ticket.
- ValidationError: malformed incident payload. Rejected at the boundary,
  never inserted into the store.
- ComputeFailure: external solver error or timeout. Ticket FAILED -> IDLE,
  existing estimate kept.
- NumericDegeneracy: non-finite intermediate in the estimator. Substituted
  with the safe default and logged.
- StatusRegressionError: a backwards status move without a correction flag.
"""

from typing import Any, Optional


class MonitorError(Exception):
    """Base exception for spill monitor operations."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        incident_id: Optional[str] = None,
    ):
        self.operation = operation
        self.incident_id = incident_id
        super().__init__(message)


class TransientNetworkError(MonitorError):
    """Raised when an upstream HTTP collaborator is unreachable or errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        incident_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.status_code = status_code
        super().__init__(message, operation=operation, incident_id=incident_id)


class ValidationError(MonitorError):
    """Raised when an incident payload is missing or has invalid fields."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        incident_id: Optional[str] = None,
    ):
        self.field = field
        self.value = value
        super().__init__(message, operation="validate", incident_id=incident_id)


class ComputeFailure(MonitorError):
    """Raised when the external dispersion solver fails or times out."""


class NumericDegeneracy(MonitorError):
    """Raised inside the estimator when an intermediate is NaN or infinite."""

    def __init__(self, message: str, quantity: Optional[str] = None):
        self.quantity = quantity
        super().__init__(message, operation="estimate")


class StatusRegressionError(ValidationError):
    """Raised when a status would move backwards without a correction flag."""


__all__ = [
    "MonitorError",
    "TransientNetworkError",
    "ValidationError",
    "ComputeFailure",
    "NumericDegeneracy",
    "StatusRegressionError",
]
