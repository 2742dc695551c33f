"""Field conflict resolution across providers."""

from typing import Iterable, List, Optional, Sequence
import logging

from ..ingest.schema import (
    CanonicalEvent,
    CanonicalVenue,
    EventSource,
    EventStatus,
    RawEvent,
    RawVenue,
    VenueSource,
)
from .similarity import normalize_title, strip_diacritics

logger = logging.getLogger(__name__)

# Most advanced lifecycle state first
STATUS_ORDER = {
    EventStatus.LIVE: 0,
    EventStatus.SCHEDULED: 1,
    EventStatus.POSTPONED: 2,
    EventStatus.CANCELLED: 3,
}

NAME_LENGTH_MARGIN = 5

VENUE_SCALAR_FIELDS = ("address", "city", "country", "postal_code", "phone", "category", "description")
VENUE_URL_FIELDS = ("website",)
EVENT_SCALAR_FIELDS = ("end_utc", "description")
EVENT_URL_FIELDS = ("url", "image_url")


def _is_empty(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_https(url: Optional[str]) -> bool:
    return bool(url) and url.strip().lower().startswith("https://")


def get_better_name(primary: str, secondary: str, margin: int = NAME_LENGTH_MARGIN) -> str:
    """Pick a display name, preferring a clearly longer one.

    Args:
        primary: Name from the higher-priority source
        secondary: Name from the lower-priority source
        margin: Characters the longer name must exceed the shorter by

    Returns:
        The longer name if it is more than ``margin`` characters longer,
        otherwise the primary name
    """
    if _is_empty(primary):
        return secondary
    if _is_empty(secondary):
        return primary
    if len(secondary) > len(primary) + margin:
        return secondary
    return primary


def prefer_scalar(primary, secondary):
    """Primary value wins unless empty."""
    return secondary if _is_empty(primary) else primary


def prefer_url(primary: Optional[str], secondary: Optional[str]) -> Optional[str]:
    """Prefer an HTTPS URL regardless of priority, then the primary one."""
    if _is_https(secondary) and not _is_https(primary):
        return secondary
    return prefer_scalar(primary, secondary)


def merge_unique(existing: Iterable[str], incoming: Iterable[str]) -> List[str]:
    """Union two name lists, comparing case and diacritic insensitively."""
    merged = []
    seen = set()
    for item in list(existing or []) + list(incoming or []):
        key = normalize_title(item)
        if not key:
            key = strip_diacritics(item.lower()).strip()
        if key in seen:
            continue
        seen.add(key)
        merged.append(item)
    return merged


def more_advanced_status(a: Optional[EventStatus], b: Optional[EventStatus]) -> EventStatus:
    """Return the status further along the lifecycle."""
    a = a or EventStatus.SCHEDULED
    b = b or EventStatus.SCHEDULED
    return a if STATUS_ORDER[a] <= STATUS_ORDER[b] else b


class SourcePriorityResolver:
    """Resolve field conflicts using a configured provider trust ranking."""

    def __init__(self, priority: Sequence[str]):
        """Initialize resolver.

        Args:
            priority: Provider ids, most trusted first. Providers not listed
                rank after every listed one.
        """
        self.priority = list(priority)
        self._ranks = {source: i for i, source in enumerate(self.priority)}

    def rank(self, source: str) -> int:
        """Rank of a provider; lower is more trusted."""
        return self._ranks.get(source, len(self.priority))

    def best_rank(self, sources: Iterable) -> int:
        """Best rank among provenance entries."""
        return min((self.rank(s.source) for s in sources), default=len(self.priority))

    def incoming_is_primary(self, existing_sources: Iterable, incoming_source: str) -> bool:
        """Whether the incoming record outranks the canonical entity so far."""
        return self.rank(incoming_source) < self.best_rank(existing_sources)

    def merge_venue(self, venue: CanonicalVenue, raw: RawVenue) -> None:
        """Fold a raw venue into a canonical venue in place.

        Args:
            venue: Canonical venue to update
            raw: Matching raw venue
        """
        raw_is_primary = self.incoming_is_primary(venue.sources, raw.source)

        if raw_is_primary:
            venue.name = get_better_name(raw.name, venue.name)
        else:
            venue.name = get_better_name(venue.name, raw.name)

        for field in VENUE_SCALAR_FIELDS:
            ours, theirs = getattr(venue, field), getattr(raw, field)
            primary, secondary = (theirs, ours) if raw_is_primary else (ours, theirs)
            setattr(venue, field, prefer_scalar(primary, secondary))

        for field in VENUE_URL_FIELDS:
            ours, theirs = getattr(venue, field), getattr(raw, field)
            primary, secondary = (theirs, ours) if raw_is_primary else (ours, theirs)
            setattr(venue, field, prefer_url(primary, secondary))

        venue.add_source(VenueSource(source=raw.source, external_id=raw.external_id))

    def merge_event(self, event: CanonicalEvent, raw: RawEvent) -> None:
        """Fold a raw event into a canonical event in place.

        Args:
            event: Canonical event to update
            raw: Matching raw event
        """
        raw_is_primary = self.incoming_is_primary(event.sources, raw.source)

        if raw_is_primary:
            event.title = prefer_scalar(raw.title, event.title)

        for field in EVENT_SCALAR_FIELDS:
            ours, theirs = getattr(event, field), getattr(raw, field)
            primary, secondary = (theirs, ours) if raw_is_primary else (ours, theirs)
            setattr(event, field, prefer_scalar(primary, secondary))

        for field in EVENT_URL_FIELDS:
            ours, theirs = getattr(event, field), getattr(raw, field)
            primary, secondary = (theirs, ours) if raw_is_primary else (ours, theirs)
            setattr(event, field, prefer_url(primary, secondary))

        event.status = more_advanced_status(event.status, raw.status)
        event.artists = merge_unique(event.artists, raw.artists)
        event.genres = merge_unique(event.genres, raw.genres)

        event.add_source(
            EventSource(
                source=raw.source,
                external_id=raw.external_id,
                venue_external_id=raw.venue_external_id,
            )
        )
