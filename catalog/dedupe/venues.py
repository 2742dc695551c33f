"""Venue deduplication."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging

from ..ingest.schema import CanonicalVenue, RawVenue, VenueSource
from ..matching.matcher import are_same_venue
from ..matching.resolver import SourcePriorityResolver
from ..matching.similarity import deterministic_hash, normalize_name, venue_name_key
from .clustering import Clusterer, FirstMatchClusterer, unique_id

logger = logging.getLogger(__name__)


def venue_id_for(raw: RawVenue) -> str:
    """Deterministic canonical id from normalized name, city and rounded coordinates."""
    city = normalize_name(raw.city) if raw.city else ""
    seed = f"{venue_name_key(raw.name)}-{city}-{raw.lat:.3f}-{raw.lng:.3f}"
    return deterministic_hash(seed)


@dataclass
class VenueDedupResult:
    """Canonical venues and the provider-key to canonical-id map."""

    venues: List[CanonicalVenue] = field(default_factory=list)
    source_to_venue_id: Dict[str, str] = field(default_factory=dict)


class VenueDeduplicator:
    """Cluster raw venues from all providers into canonical venues."""

    def __init__(
        self,
        resolver: SourcePriorityResolver,
        clusterer: Optional[Clusterer[CanonicalVenue, RawVenue]] = None,
    ):
        """Initialize deduplicator.

        Args:
            resolver: Field conflict resolver
            clusterer: Cluster assignment policy (first match by default)
        """
        self.resolver = resolver
        self.clusterer = clusterer or FirstMatchClusterer()

    def _new_venue(self, raw: RawVenue, venue_id: str) -> CanonicalVenue:
        return CanonicalVenue(
            id=venue_id,
            name=raw.name,
            lat=raw.lat,
            lng=raw.lng,
            address=raw.address,
            city=raw.city,
            country=raw.country,
            postal_code=raw.postal_code,
            phone=raw.phone,
            website=raw.website,
            category=raw.category,
            description=raw.description,
            sources=[VenueSource(source=raw.source, external_id=raw.external_id)],
        )

    def deduplicate(self, raw_venues: List[RawVenue]) -> VenueDedupResult:
        """Deduplicate venues.

        Args:
            raw_venues: Validated venues from every provider

        Returns:
            VenueDedupResult with canonical venues in creation order
        """
        result = VenueDedupResult()
        by_id: Dict[str, CanonicalVenue] = {}

        for raw in raw_venues:
            match = self.clusterer.find_cluster(result.venues, raw, are_same_venue)

            if match is not None:
                self.resolver.merge_venue(match, raw)
                result.source_to_venue_id[raw.key] = match.id
                continue

            venue_id = unique_id(venue_id_for(raw), by_id)
            venue = self._new_venue(raw, venue_id)
            result.venues.append(venue)
            by_id[venue_id] = venue
            result.source_to_venue_id[raw.key] = venue_id

        logger.info(
            f"Deduplicated {len(raw_venues)} venues to {len(result.venues)} "
            f"({len(raw_venues) - len(result.venues)} duplicates merged)"
        )

        return result
