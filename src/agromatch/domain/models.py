"""
Domain models (Pydantic).

These types are the stable "contract" between the matching core and its collaborators:
- inbound creation payloads (`NecessityRequestDraft`)
- stored records (`NecessityRequest`, `Message`)
- derived views (`Cluster`, `RankedRequest`)

Roles, statuses and urgencies are closed enums so an unknown value is rejected at the
boundary instead of silently falling through a string comparison.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from agromatch.core.geo import GeoPoint as CoreGeoPoint
from agromatch.core.time import ensure_tz


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FULFILLED = "fulfilled"


# Statuses in which `accepted_by` / `delivery_time` must be set.
COMMITTED_STATUSES = frozenset({RequestStatus.ACCEPTED, RequestStatus.FULFILLED})


class SenderType(str, Enum):
    CONSUMER = "consumer"
    FARMER = "farmer"


class ClusterPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"


class GeoPoint(BaseModel):
    """A geographic point in decimal degrees.

    Accepts either `{"lat": .., "lng": ..}` or a `[lat, lng]` pair.
    """

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(..., ge=-180, le=180, allow_inf_nan=False)

    @model_validator(mode="before")
    @classmethod
    def _from_pair(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            if len(data) != 2:
                raise ValueError("coordinates must be a [lat, lng] pair")
            return {"lat": data[0], "lng": data[1]}
        return data

    def to_point(self) -> CoreGeoPoint:
        return CoreGeoPoint(lat=self.lat, lng=self.lng)

    def as_pair(self) -> list[float]:
        return [self.lat, self.lng]


class Location(BaseModel):
    """A named place where the consumer needs the items."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    coordinates: GeoPoint


class RequestItem(BaseModel):
    """One requested item line."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    quantity: float = Field(..., gt=0, allow_inf_nan=False)
    unit: str = Field(..., min_length=1)

    @field_validator("name", "unit", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class NecessityRequestDraft(BaseModel):
    """Inbound creation payload (validated again by the core)."""

    model_config = ConfigDict(frozen=True)

    consumer_id: str = Field(..., min_length=1)
    consumer_name: str = Field(..., min_length=1)
    items: list[RequestItem] = Field(..., min_length=1)
    urgency: Urgency
    time_needed: str = Field(..., min_length=1)
    location: Location

    @field_validator("urgency", mode="before")
    @classmethod
    def _normalize_urgency(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class NecessityRequest(NecessityRequestDraft):
    """A stored necessity request."""

    id: str = Field(..., min_length=1)
    status: RequestStatus = RequestStatus.PENDING
    accepted_by: str | None = None
    delivery_time: str | None = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _aware_created_at(cls, value: datetime) -> datetime:
        # Naive timestamps from exports are taken as UTC so ordering never mixes naive/aware.
        return ensure_tz(value)

    @model_validator(mode="after")
    def _validate_commitment(self) -> "NecessityRequest":
        committed = self.status in COMMITTED_STATUSES
        if committed and not (self.accepted_by and self.delivery_time):
            raise ValueError(f"status={self.status.value} requires accepted_by and delivery_time")
        if not committed and (self.accepted_by is not None or self.delivery_time is not None):
            raise ValueError(f"status={self.status.value} must not carry accepted_by/delivery_time")
        return self

    @property
    def point(self) -> CoreGeoPoint:
        return self.location.coordinates.to_point()


class Message(BaseModel):
    """One entry in a request's conversation thread."""

    id: str
    request_id: str
    sender_id: str
    receiver_id: str
    sender_type: SenderType
    text: str = Field(..., min_length=1)
    created_at: datetime
    read: bool = False

    @field_validator("created_at")
    @classmethod
    def _aware_created_at(cls, value: datetime) -> datetime:
        return ensure_tz(value)


class Cluster(BaseModel):
    """A connected group of same-item requests, aggregated for prioritization."""

    item: str
    unit: str
    center: GeoPoint
    member_request_ids: list[str]
    member_count: int = Field(..., ge=1)
    total_demand: float = Field(..., ge=0)
    demand_by_unit: dict[str, float] = Field(default_factory=dict)
    priority: ClusterPriority
    distance_km: float | None = Field(default=None, ge=0)


class RankedRequest(BaseModel):
    """A request annotated with its distance from the viewer."""

    request: NecessityRequest
    distance_km: float = Field(..., ge=0)
