"""Multi-provider aggregation pipeline."""

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
import logging

from ..dedupe.clustering import Clusterer
from ..dedupe.events import EventDeduplicator
from ..dedupe.venues import VenueDeduplicator
from ..ingest.cleaning import clean_events, clean_venues
from ..ingest.schema import CanonicalEvent, CanonicalVenue, FetchParams, RawEvent, RawVenue
from ..matching.resolver import SourcePriorityResolver
from ..providers.base import EventProvider
from .stats import count_by_source, dedup_efficiency, is_venue_in_bounds, venue_stats

logger = logging.getLogger(__name__)


@dataclass
class ProviderOutcome:
    """Result of one provider operation."""

    provider_id: str
    operation: str
    ok: bool
    count: int = 0
    error: Optional[str] = None


@dataclass
class AggregationResult:
    """Venues with events plus run diagnostics."""

    venues: List[CanonicalVenue] = field(default_factory=list)
    outcomes: List[ProviderOutcome] = field(default_factory=list)
    raw_venue_count: int = 0
    raw_event_count: int = 0
    canonical_venue_count: int = 0
    event_count: int = 0
    dropped_event_count: int = 0
    duration_seconds: float = 0.0

    @property
    def failed_providers(self) -> List[str]:
        """Providers with at least one failed operation."""
        return sorted({o.provider_id for o in self.outcomes if not o.ok})


class Aggregator:
    """Fetch from every provider concurrently and build the canonical catalog."""

    def __init__(
        self,
        providers: Sequence[EventProvider],
        resolver: SourcePriorityResolver,
        venue_clusterer: Optional[Clusterer] = None,
        event_clusterer: Optional[Clusterer] = None,
    ):
        """Initialize aggregator.

        Args:
            providers: Provider adapters to query
            resolver: Source-priority resolver shared by both deduplicators
            venue_clusterer: Optional venue cluster policy
            event_clusterer: Optional event cluster policy
        """
        self.providers = list(providers)
        self.resolver = resolver
        self.venue_deduplicator = VenueDeduplicator(resolver, venue_clusterer)
        self.event_deduplicator = EventDeduplicator(resolver, event_clusterer)

    async def _fetch_all(self, params: FetchParams):
        """Run every provider operation concurrently, capturing failures."""
        calls = []
        for provider in self.providers:
            logger.info(f"Fetching from {provider.provider_id}...")
            calls.append((provider, "venues", provider.fetch_venues(params)))
            calls.append((provider, "events", provider.fetch_events(params)))

        results = await asyncio.gather(*(c[2] for c in calls), return_exceptions=True)

        raw_venues: List[RawVenue] = []
        raw_events: List[RawEvent] = []
        outcomes: List[ProviderOutcome] = []

        for (provider, operation, _), result in zip(calls, results):
            if isinstance(result, Exception):
                logger.error(f"Error fetching {operation} from {provider.provider_id}: {result}")
                outcomes.append(
                    ProviderOutcome(provider.provider_id, operation, ok=False, error=str(result))
                )
                continue

            if result is not None and not isinstance(result, (list, tuple)):
                logger.error(
                    f"Unexpected {operation} payload from {provider.provider_id}: "
                    f"{type(result).__name__}"
                )
                outcomes.append(
                    ProviderOutcome(
                        provider.provider_id,
                        operation,
                        ok=False,
                        error=f"Expected a list, got {type(result).__name__}",
                    )
                )
                continue

            if operation == "venues":
                records = clean_venues(result or [], provider.provider_id)
                raw_venues.extend(records)
            else:
                records = clean_events(result or [], provider.provider_id)
                raw_events.extend(records)

            logger.info(f"{provider.provider_id}: {len(records)} {operation}")
            outcomes.append(ProviderOutcome(provider.provider_id, operation, ok=True, count=len(records)))

        return raw_venues, raw_events, outcomes

    async def aggregate(self, params: Optional[FetchParams] = None) -> AggregationResult:
        """Build venues with their deduplicated events.

        Args:
            params: Bounding box and time range passed to every provider

        Returns:
            AggregationResult with only venues that have events
        """
        params = params or FetchParams()
        start_time = time.time()

        raw_venues, raw_events, outcomes = await self._fetch_all(params)
        logger.info(f"Raw data: {len(raw_venues)} venues, {len(raw_events)} events")

        venue_result = self.venue_deduplicator.deduplicate(raw_venues)
        event_result = self.event_deduplicator.deduplicate(
            raw_events, venue_result.source_to_venue_id
        )

        venues = assemble_venues(venue_result.venues, event_result.events)
        if params.bbox:
            venues = [v for v in venues if is_venue_in_bounds(v, params.bbox)]

        event_count = sum(len(v.events) for v in venues)
        logger.info(f"Final result: {len(venues)} venues with {event_count} total events")
        logger.info(f"Events by source (raw): {count_by_source(raw_events)}")
        logger.info(
            f"Deduplication efficiency: {dedup_efficiency(len(raw_events), len(event_result.events))}"
        )
        logger.debug(f"Venue stats: {venue_stats(venues)}")

        return AggregationResult(
            venues=venues,
            outcomes=outcomes,
            raw_venue_count=len(raw_venues),
            raw_event_count=len(raw_events),
            canonical_venue_count=len(venue_result.venues),
            event_count=event_count,
            dropped_event_count=len(event_result.dropped),
            duration_seconds=time.time() - start_time,
        )

    async def load_aggregated(self, params: Optional[FetchParams] = None) -> List[CanonicalVenue]:
        """Return the deduplicated venues that have at least one event."""
        result = await self.aggregate(params)
        return result.venues


def assemble_venues(
    venues: List[CanonicalVenue], events: List[CanonicalEvent]
) -> List[CanonicalVenue]:
    """Attach events to their venues and drop venues without events.

    Args:
        venues: Canonical venues
        events: Canonical events carrying ``venue_id``

    Returns:
        Venues with events sorted by start time, in input order
    """
    by_venue: Dict[str, List[CanonicalEvent]] = defaultdict(list)
    for event in events:
        by_venue[event.venue_id].append(event)

    for venue in venues:
        venue.events = sorted(by_venue.get(venue.id, []), key=lambda e: e.start_utc)

    return [venue for venue in venues if venue.events]


async def load_aggregated(
    params: Optional[FetchParams],
    providers: Sequence[EventProvider],
    priority: Sequence[str],
) -> List[CanonicalVenue]:
    """Aggregate venues and events from ``providers`` in one call.

    Args:
        params: Bounding box and time range
        providers: Provider adapters
        priority: Provider ids, most trusted first

    Returns:
        Canonical venues with events
    """
    aggregator = Aggregator(providers, SourcePriorityResolver(priority))
    return await aggregator.load_aggregated(params)
