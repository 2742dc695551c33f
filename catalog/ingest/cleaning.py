"""Raw record cleaning and validation."""

import re
from html import unescape
from typing import Dict, Iterable, List, Mapping, Optional, Union
import logging

from pydantic import ValidationError

from .schema import RawEvent, RawVenue

logger = logging.getLogger(__name__)


def strip_html(text: Optional[str]) -> str:
    """Strip HTML tags and decode entities.

    Args:
        text: HTML text

    Returns:
        Plain text
    """
    if not text:
        return ""

    text = unescape(text)
    text = re.sub(r"<[^>]+>", " ", text)
    text = re.sub(r"\s+", " ", text)

    return text.strip()


def join_parts(*parts: Optional[str], sep: str = ", ") -> Optional[str]:
    """Join non-empty parts, returning None when nothing is left."""
    cleaned = [str(p).strip() for p in parts if p is not None and str(p).strip()]
    return sep.join(cleaned) or None


def _blank_to_none(record: Dict) -> Dict:
    return {k: (None if isinstance(v, str) and not v.strip() else v) for k, v in record.items()}


def clean_venue(record: Union[Dict, RawVenue], source: Optional[str] = None) -> Optional[RawVenue]:
    """Validate a raw venue record.

    Records without a name or with missing or non-finite coordinates
    never reach the matcher.

    Args:
        record: RawVenue or provider dict
        source: Provider id applied when the dict carries none

    Returns:
        RawVenue or None if invalid
    """
    if isinstance(record, RawVenue):
        return record
    if not isinstance(record, Mapping):
        logger.warning(f"Dropping non-object venue record from {source}: {type(record).__name__}")
        return None

    data = _blank_to_none(dict(record))
    if source and not data.get("source"):
        data["source"] = source

    try:
        return RawVenue.model_validate(data)
    except ValidationError as e:
        logger.warning(
            f"Dropping malformed venue {data.get('externalId') or data.get('external_id')} "
            f"from {data.get('source')}: {e.error_count()} validation error(s)"
        )
        return None


def clean_event(record: Union[Dict, RawEvent], source: Optional[str] = None) -> Optional[RawEvent]:
    """Validate a raw event record.

    Args:
        record: RawEvent or provider dict
        source: Provider id applied when the dict carries none

    Returns:
        RawEvent or None if invalid
    """
    if isinstance(record, RawEvent):
        return record
    if not isinstance(record, Mapping):
        logger.warning(f"Dropping non-object event record from {source}: {type(record).__name__}")
        return None

    data = _blank_to_none(dict(record))
    if source and not data.get("source"):
        data["source"] = source

    try:
        return RawEvent.model_validate(data)
    except (ValidationError, ValueError, OverflowError) as e:
        logger.warning(
            f"Dropping malformed event {data.get('externalId') or data.get('external_id')} "
            f"from {data.get('source')}: {e}"
        )
        return None


def clean_venues(records: Iterable[Union[Dict, RawVenue]], source: Optional[str] = None) -> List[RawVenue]:
    """Validate a batch of venues, dropping malformed ones."""
    records = list(records)
    venues = [v for v in (clean_venue(r, source) for r in records) if v is not None]

    dropped = len(records) - len(venues)
    if dropped:
        logger.warning(f"Dropped {dropped} malformed venue(s) from {source or 'input'}")

    return venues


def clean_events(records: Iterable[Union[Dict, RawEvent]], source: Optional[str] = None) -> List[RawEvent]:
    """Validate a batch of events, dropping malformed ones."""
    records = list(records)
    events = [e for e in (clean_event(r, source) for r in records) if e is not None]

    dropped = len(records) - len(events)
    if dropped:
        logger.warning(f"Dropped {dropped} malformed event(s) from {source or 'input'}")

    return events
