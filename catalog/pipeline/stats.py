"""Aggregation statistics."""

from collections import Counter
from typing import Dict, Iterable, List

from ..ingest.schema import BoundingBox, CanonicalVenue


def is_venue_in_bounds(venue: CanonicalVenue, bbox: BoundingBox) -> bool:
    """Check whether a venue's coordinates fall inside a bounding box."""
    return bbox.contains(venue.lat, venue.lng)


def venue_stats(venues: List[CanonicalVenue]) -> Dict:
    """Summarize canonical venues by source and category.

    Args:
        venues: Canonical venues

    Returns:
        Dictionary with total, by_source, by_category and multi_source counts
    """
    by_source: Counter = Counter()
    by_category: Counter = Counter()
    multi_source = 0

    for venue in venues:
        for source in venue.sources:
            by_source[source.source] += 1
        if venue.category:
            by_category[venue.category] += 1
        if len({s.source for s in venue.sources}) > 1:
            multi_source += 1

    return {
        "total": len(venues),
        "by_source": dict(by_source),
        "by_category": dict(by_category),
        "multi_source": multi_source,
    }


def dedup_efficiency(raw_count: int, merged_count: int) -> Dict:
    """Describe how many raw records collapsed during deduplication."""
    removed = raw_count - merged_count
    rate = round(removed / raw_count * 100, 1) if raw_count else 0.0
    return {
        "raw": raw_count,
        "merged": merged_count,
        "duplicates_removed": removed,
        "dedupe_rate": rate,
    }


def count_by_source(records: Iterable) -> Dict[str, int]:
    """Count raw records per provider."""
    return dict(Counter(r.source for r in records))
