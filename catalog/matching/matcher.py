"""Entity matching rules for venues and events."""

from datetime import timedelta
from typing import Iterable, Optional, Protocol, Sequence
import logging

from .similarity import distance_meters, normalize_name, normalize_title, similarity, venue_name_key

logger = logging.getLogger(__name__)

# One physical building across providers' geocoding noise
VENUE_MAX_DISTANCE_METERS = 75.0
VENUE_NAME_THRESHOLD = 0.88

EVENT_MAX_START_DELTA = timedelta(minutes=10)
EVENT_TITLE_THRESHOLD = 0.90
ARTIST_NAME_THRESHOLD = 0.85


class VenueLike(Protocol):
    name: str
    lat: float
    lng: float
    city: Optional[str]


class EventLike(Protocol):
    title: str
    start_utc: object
    artists: Sequence[str]


def are_same_venue(
    v1: VenueLike,
    v2: VenueLike,
    max_distance: float = VENUE_MAX_DISTANCE_METERS,
    name_threshold: float = VENUE_NAME_THRESHOLD,
) -> bool:
    """Decide whether two venue records describe the same place.

    Args:
        v1: First venue (raw or canonical)
        v2: Second venue (raw or canonical)
        max_distance: Hard distance cutoff in meters
        name_threshold: Minimum normalized-name similarity

    Returns:
        True if distance, name and (when both known) city agree
    """
    distance = distance_meters(v1.lat, v1.lng, v2.lat, v2.lng)
    if distance > max_distance:
        return False

    name1 = venue_name_key(v1.name)
    name2 = venue_name_key(v2.name)
    if not name1 or not name2:
        return False

    name_similarity = similarity(name1, name2)
    if name_similarity < name_threshold:
        return False

    if v1.city and v2.city and normalize_name(v1.city) != normalize_name(v2.city):
        return False

    logger.debug(
        f"Venue match (distance={distance:.1f}m, similarity={name_similarity:.2f}): "
        f"{v1.name} ~ {v2.name}"
    )
    return True


def share_artist(
    artists1: Iterable[str], artists2: Iterable[str], threshold: float = ARTIST_NAME_THRESHOLD
) -> bool:
    """Check whether any artist of one list matches an artist of the other."""
    normalized2 = [n for n in (normalize_name(a) for a in artists2) if n]
    for artist in artists1:
        name = normalize_name(artist)
        if name and any(similarity(name, other) >= threshold for other in normalized2):
            return True
    return False


def are_same_event(
    e1: EventLike,
    e2: EventLike,
    max_start_delta: timedelta = EVENT_MAX_START_DELTA,
    title_threshold: float = EVENT_TITLE_THRESHOLD,
) -> bool:
    """Decide whether two events at the same canonical venue are one event.

    Callers only compare events already attached to the same venue.

    Args:
        e1: First event (raw or canonical)
        e2: Second event (raw or canonical)
        max_start_delta: Maximum start time difference
        title_threshold: Minimum normalized-title similarity

    Returns:
        True if start times agree and titles (or title plus artists) agree
    """
    if abs(e1.start_utc - e2.start_utc) > max_start_delta:
        return False

    title1 = normalize_title(e1.title)
    title2 = normalize_title(e2.title)
    if not title1 or not title2:
        # Punctuation-only titles
        return e1.title.strip().casefold() == e2.title.strip().casefold()

    if similarity(title1, title2) >= title_threshold:
        return True

    return title1 == title2 and share_artist(e1.artists or [], e2.artists or [])
