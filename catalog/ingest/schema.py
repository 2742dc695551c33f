"""Venue and event schema definitions."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

import pytz
from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class EventStatus(str, Enum):
    """Event lifecycle status."""

    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    POSTPONED = "postponed"
    LIVE = "live"


class CatalogModel(BaseModel):
    """Base model serialized with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _parse_utc(v):
    if v is None or v == "":
        return None
    try:
        if isinstance(v, str):
            v = date_parser.parse(v)
        if isinstance(v, datetime):
            # Naive timestamps from providers are UTC
            if v.tzinfo is None:
                return pytz.utc.localize(v)
            return v.astimezone(pytz.utc)
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Invalid datetime {v!r}: {e}") from e
    return v


class BoundingBox(CatalogModel):
    """Rectangular geographic query region."""

    min_lat: float = Field(..., ge=-90, le=90)
    min_lng: float = Field(..., ge=-180, le=180)
    max_lat: float = Field(..., ge=-90, le=90)
    max_lng: float = Field(..., ge=-180, le=180)

    @model_validator(mode="after")
    def check_order(self):
        """Reject inverted boxes."""
        if self.min_lat > self.max_lat or self.min_lng > self.max_lng:
            raise ValueError("Bounding box minimum exceeds maximum")
        return self

    @property
    def center(self) -> tuple[float, float]:
        """Centre point as (lat, lng)."""
        return (self.min_lat + self.max_lat) / 2, (self.min_lng + self.max_lng) / 2

    def radius_km(self, minimum: int = 10, maximum: int = 500) -> int:
        """Search radius in km that covers the box."""
        radius = max(
            abs(self.max_lat - self.min_lat) * 111,
            abs(self.max_lng - self.min_lng) * 85,
        ) / 2
        return int(min(max(round(radius), minimum), maximum))

    def contains(self, lat: float, lng: float) -> bool:
        """Check whether a point lies inside the box."""
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng


class TimeRange(CatalogModel):
    """Time window for event queries."""

    start_iso: Optional[datetime] = None
    end_iso: Optional[datetime] = None

    @field_validator("start_iso", "end_iso", mode="before")
    @classmethod
    def parse_datetime(cls, v):
        """Parse datetime and normalize to UTC."""
        return _parse_utc(v)

    @model_validator(mode="after")
    def check_order(self):
        """Reject ranges that end before they start."""
        if self.start_iso and self.end_iso and self.start_iso > self.end_iso:
            raise ValueError("Time range start is after its end")
        return self


class FetchParams(CatalogModel):
    """Parameters passed to every provider adapter."""

    bbox: Optional[BoundingBox] = None
    time_range: Optional[TimeRange] = None


class RawVenue(CatalogModel):
    """Venue exactly as reported by one provider."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    source: str = Field(..., min_length=1, description="Provider id")
    external_id: str = Field(..., min_length=1, description="Provider-local venue id")
    name: str = Field(..., min_length=1, description="Venue name")
    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None

    @field_validator("name", "external_id", mode="before")
    @classmethod
    def strip_required(cls, v):
        """Strip surrounding whitespace from required strings."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            v = str(v)
        return v.strip() if isinstance(v, str) else v

    @property
    def key(self) -> str:
        """Provenance key ``source:externalId``."""
        return f"{self.source}:{self.external_id}"


class RawEvent(CatalogModel):
    """Event exactly as reported by one provider."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    source: str = Field(..., min_length=1)
    external_id: str = Field(..., min_length=1)
    venue_external_id: Optional[str] = None
    title: str = Field(..., min_length=1)
    start_utc: datetime
    end_utc: Optional[datetime] = None
    status: EventStatus = EventStatus.SCHEDULED
    artists: List[str] = Field(default_factory=list)
    genres: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("title", "external_id", "venue_external_id", mode="before")
    @classmethod
    def strip_strings(cls, v):
        """Strip surrounding whitespace from identifiers and title."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            v = str(v)
        return v.strip() if isinstance(v, str) else v

    @field_validator("start_utc", "end_utc", mode="before")
    @classmethod
    def parse_datetime(cls, v):
        """Parse datetime and normalize to UTC."""
        return _parse_utc(v)

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, v):
        """Missing status means scheduled."""
        return v or EventStatus.SCHEDULED

    @field_validator("artists", "genres", mode="before")
    @classmethod
    def ensure_list(cls, v):
        """Ensure field is a list of non-empty strings."""
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [str(item).strip() for item in v if item and str(item).strip()]

    @property
    def venue_key(self) -> Optional[str]:
        """Provenance key of the referenced provider venue."""
        if not self.venue_external_id:
            return None
        return f"{self.source}:{self.venue_external_id}"


class VenueSource(CatalogModel):
    """Provenance entry of a canonical venue."""

    source: str
    external_id: str

    @property
    def key(self) -> str:
        return f"{self.source}:{self.external_id}"


class EventSource(CatalogModel):
    """Provenance entry of a canonical event."""

    source: str
    external_id: str
    venue_external_id: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.source}:{self.external_id}"


class CanonicalEvent(CatalogModel):
    """Deduplicated event attached to exactly one canonical venue."""

    id: str = Field(..., description="Deterministic event id")
    title: str
    start_utc: datetime
    end_utc: Optional[datetime] = None
    status: EventStatus = EventStatus.SCHEDULED
    artists: List[str] = Field(default_factory=list)
    genres: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    sources: List[EventSource] = Field(default_factory=list)
    venue_id: str = Field(..., description="Id of the owning canonical venue")

    def add_source(self, source: EventSource) -> bool:
        """Append provenance unless the key is already present."""
        if any(s.key == source.key for s in self.sources):
            return False
        self.sources.append(source)
        return True


class CanonicalVenue(CatalogModel):
    """Deduplicated venue with its events."""

    id: str = Field(..., description="Deterministic venue id")
    name: str
    lat: float
    lng: float
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    sources: List[VenueSource] = Field(default_factory=list)
    events: List[CanonicalEvent] = Field(default_factory=list)

    def add_source(self, source: VenueSource) -> bool:
        """Append provenance unless the key is already present."""
        if any(s.key == source.key for s in self.sources):
            return False
        self.sources.append(source)
        return True
