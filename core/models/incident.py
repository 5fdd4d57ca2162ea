# ============================================================================
# INCIDENT MODEL
# ============================================================================
# EPOCH: 1 - INCIDENT SYNCHRONIZATION
# STATUS: Core model - Aggregate root
# PURPOSE: Canonical incident record and the partial patch applied on merge
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: Incident, IncidentPatch, TEMP_ID_PREFIX, new_temp_id
# DEPENDENCIES: pydantic
# ============================================================================
"""
Incident Model

Incident is the aggregate root: a reported chemical spill with location,
chemical, volume, and lifecycle status.

Key concept:
- Incident = FULL record (what the store holds, frozen, replaced atomically)
- IncidentPatch = PARTIAL record (what a merge carries; absent fields
  preserve the existing value)

Wire payloads from the backend carry flat latitude/longitude fields and the
CLEANED status spelling; both are normalized here. Estimate fields are never
taken from wire payloads - they are attached by the store only.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from pydantic import Field, ValidationError as PydanticValidationError, field_validator, model_validator

from core.contracts import GeoLocation, IncidentPriority, IncidentStatus, WireModel
from core.errors import ValidationError
from core.models.dispersion import DispersionEstimate

TEMP_ID_PREFIX = "tmp-"

# Changes to these fields make an attached estimate stale
ESTIMATE_INPUT_FIELDS: Set[str] = {"location", "volume", "chemical_type"}

# Never accepted from outside the store
_DERIVED_FIELDS = {
    "dispersion_estimate", "dispersionEstimate",
    "last_calculated_at", "lastCalculatedAt",
}


def new_temp_id() -> str:
    """Client-temporary id used until the server confirms an authoritative one."""
    return f"{TEMP_ID_PREFIX}{uuid.uuid4()}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _lift_flat_location(data: Any) -> Any:
    """Fold flat latitude/longitude fields into a nested location."""
    if not isinstance(data, dict):
        return data
    data = dict(data)
    if data.get("location") is None and ("latitude" in data or "longitude" in data):
        lat = data.pop("latitude", None)
        lon = data.pop("longitude", None)
        if lat is not None or lon is not None:
            data["location"] = {"latitude": lat, "longitude": lon}
    return data


def _normalize_status(value):
    if value is None:
        return value
    try:
        return IncidentStatus.parse(value)
    except ValueError:
        return value  # let pydantic report it


def _normalize_priority(value):
    if isinstance(value, str):
        return value.strip().upper()
    return value


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Backend timestamps are naive UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Incident(WireModel):
    """
    A reported chemical spill.

    Lifecycle:
        1. Inserted with status=ACTIVE (client-temporary id while the
           backend create is outstanding)
        2. Merged by poll results, push-stream messages and user actions
        3. Status advances ACTIVE -> CONTAINED -> CLEANED_UP -> ARCHIVED
        4. Estimate attached/replaced by the calculation orchestrator
    """

    id: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=1)
    chemical_type: str = Field(..., min_length=1)
    cas_number: Optional[str] = None
    source: Optional[str] = None
    priority: IncidentPriority = Field(default=IncidentPriority.MEDIUM)
    status: IncidentStatus = Field(default=IncidentStatus.ACTIVE)
    hazard_class: Optional[str] = None

    volume: float = Field(..., gt=0, description="Liters")
    volume_estimated: bool = False

    location: GeoLocation
    water_depth: Optional[float] = Field(default=None, ge=0, description="Meters")

    spill_time: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    # Derived - attached by the store only
    dispersion_estimate: Optional[DispersionEstimate] = None
    last_calculated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_wire_shape(cls, data: Any) -> Any:
        return _lift_flat_location(data)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value):
        return _normalize_status(value)

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value):
        return _normalize_priority(value)

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_string(cls, value):
        # Backend ids are UUIDs
        return str(value) if value is not None else value

    @field_validator("spill_time", "updated_at", "last_calculated_at")
    @classmethod
    def _utc(cls, value):
        return _as_utc(value)

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], incident_id: Optional[str] = None) -> "Incident":
        """
        Validate a full wire payload.

        Raises:
            ValidationError: if required geometry/volume fields are missing
                or out of range
        """
        data = {k: v for k, v in payload.items() if k not in _DERIVED_FIELDS}
        if incident_id is not None:
            data.setdefault("id", incident_id)
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            field_name = ".".join(str(p) for p in first.get("loc", ()))
            raise ValidationError(
                f"Invalid incident payload: {first.get('msg', str(e))}",
                field=field_name or None,
                value=first.get("input"),
                incident_id=str(data.get("id")) if data.get("id") is not None else None,
            ) from e

    def with_estimate(self, estimate: Optional[DispersionEstimate]) -> "Incident":
        """Copy with the estimate replaced atomically."""
        return self.model_copy(update={
            "dispersion_estimate": estimate,
            "last_calculated_at": estimate.calculated_at if estimate else None,
        })


class IncidentPatch(WireModel):
    """
    Partial incident carried by a merge.

    Every field is optional; None means "not present, keep existing".
    """

    id: Optional[str] = None
    name: Optional[str] = Field(default=None, min_length=1)
    chemical_type: Optional[str] = Field(default=None, min_length=1)
    cas_number: Optional[str] = None
    source: Optional[str] = None
    priority: Optional[IncidentPriority] = None
    status: Optional[IncidentStatus] = None
    hazard_class: Optional[str] = None
    volume: Optional[float] = Field(default=None, gt=0)
    volume_estimated: Optional[bool] = None
    location: Optional[GeoLocation] = None
    water_depth: Optional[float] = Field(default=None, ge=0)
    spill_time: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_wire_shape(cls, data: Any) -> Any:
        return _lift_flat_location(data)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value):
        return _normalize_status(value)

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value):
        return _normalize_priority(value)

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_string(cls, value):
        return str(value) if value is not None else value

    @field_validator("spill_time", "updated_at")
    @classmethod
    def _utc(cls, value):
        return _as_utc(value)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "IncidentPatch":
        """
        Validate a partial wire payload.

        Raises:
            ValidationError: if a present field is malformed
        """
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            field_name = ".".join(str(p) for p in first.get("loc", ()))
            raise ValidationError(
                f"Invalid incident update: {first.get('msg', str(e))}",
                field=field_name or None,
                value=first.get("input"),
                incident_id=str(payload.get("id")) if payload.get("id") is not None else None,
            ) from e

    def present_fields(self) -> Dict[str, Any]:
        """Fields carried by this patch (non-None), excluding the id."""
        fields = {
            name: getattr(self, name)
            for name in type(self).model_fields
            if name != "id" and getattr(self, name) is not None
        }
        return fields

    def merge_into(self, patch: "IncidentPatch") -> "IncidentPatch":
        """Combine two patches; fields in `patch` win."""
        combined = self.present_fields()
        combined.update(patch.present_fields())
        return IncidentPatch(id=patch.id or self.id, **combined)


__all__ = [
    "Incident",
    "IncidentPatch",
    "TEMP_ID_PREFIX",
    "ESTIMATE_INPUT_FIELDS",
    "new_temp_id",
]
