"""Event deduplication."""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional
import logging

from ..ingest.schema import CanonicalEvent, EventSource, RawEvent
from ..matching.matcher import are_same_event
from ..matching.resolver import SourcePriorityResolver
from ..matching.similarity import deterministic_hash, normalize_title
from .clustering import Clusterer, FirstMatchClusterer, unique_id

logger = logging.getLogger(__name__)


def floor_to_quarter_hour(dt: datetime) -> datetime:
    """Floor a timestamp to the enclosing 15-minute boundary."""
    return dt.replace(minute=dt.minute - dt.minute % 15, second=0, microsecond=0)


def event_id_for(raw: RawEvent, venue_id: str) -> str:
    """Deterministic canonical id from venue, floored start and normalized title."""
    start = floor_to_quarter_hour(raw.start_utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return deterministic_hash(f"{venue_id}-{start}-{normalize_title(raw.title)}")


@dataclass
class EventDedupResult:
    """Canonical events plus the events that could not be attached."""

    events: List[CanonicalEvent] = field(default_factory=list)
    dropped: List[RawEvent] = field(default_factory=list)


class EventDeduplicator:
    """Cluster raw events into canonical events, one venue at a time."""

    def __init__(
        self,
        resolver: SourcePriorityResolver,
        clusterer: Optional[Clusterer[CanonicalEvent, RawEvent]] = None,
    ):
        """Initialize deduplicator.

        Args:
            resolver: Field conflict resolver
            clusterer: Cluster assignment policy (first match by default)
        """
        self.resolver = resolver
        self.clusterer = clusterer or FirstMatchClusterer()

    def _new_event(self, raw: RawEvent, event_id: str, venue_id: str) -> CanonicalEvent:
        return CanonicalEvent(
            id=event_id,
            title=raw.title,
            start_utc=raw.start_utc,
            end_utc=raw.end_utc,
            status=raw.status,
            artists=list(raw.artists),
            genres=list(raw.genres),
            description=raw.description,
            url=raw.url,
            image_url=raw.image_url,
            sources=[
                EventSource(
                    source=raw.source,
                    external_id=raw.external_id,
                    venue_external_id=raw.venue_external_id,
                )
            ],
            venue_id=venue_id,
        )

    def deduplicate(
        self, raw_events: List[RawEvent], source_to_venue_id: Mapping[str, str]
    ) -> EventDedupResult:
        """Deduplicate events and attach them to canonical venues.

        Args:
            raw_events: Validated events from every provider
            source_to_venue_id: ``source:venueExternalId`` to canonical venue id

        Returns:
            EventDedupResult with canonical events and dropped raw events
        """
        result = EventDedupResult()
        by_venue: Dict[str, List[CanonicalEvent]] = defaultdict(list)
        taken_ids = set()

        for raw in raw_events:
            venue_id = source_to_venue_id.get(raw.venue_key) if raw.venue_key else None
            if venue_id is None:
                logger.debug(f"No venue found for event {raw.external_id} from {raw.source}")
                result.dropped.append(raw)
                continue

            # Only events at the same canonical venue are candidates
            candidates = by_venue[venue_id]
            match = self.clusterer.find_cluster(candidates, raw, are_same_event)

            if match is not None:
                self.resolver.merge_event(match, raw)
                continue

            event_id = unique_id(event_id_for(raw, venue_id), taken_ids)
            taken_ids.add(event_id)
            event = self._new_event(raw, event_id, venue_id)
            candidates.append(event)
            result.events.append(event)

        if result.dropped:
            logger.warning(
                f"Dropped {len(result.dropped)} events with unresolvable venue references"
            )

        logger.info(
            f"Deduplicated {len(raw_events) - len(result.dropped)} events to "
            f"{len(result.events)}"
        )

        return result
