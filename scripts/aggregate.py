#!/usr/bin/env python3
"""Script to run one aggregation and save the catalog as JSON.

Usage:
    python scripts/aggregate.py [min_lat min_lng max_lat max_lng]
"""

import asyncio
import json
import sys
import logging
from datetime import datetime
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.config import get_settings
from api.main import build_aggregator
from catalog.ingest.schema import BoundingBox, FetchParams
from catalog.pipeline.stats import venue_stats

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def parse_bbox(args):
    """Parse an optional bounding box from command-line arguments."""
    if not args:
        return None
    if len(args) != 4:
        logger.error("Expected 4 values: min_lat min_lng max_lat max_lng")
        sys.exit(2)

    min_lat, min_lng, max_lat, max_lng = (float(a) for a in args)
    return BoundingBox(min_lat=min_lat, min_lng=min_lng, max_lat=max_lat, max_lng=max_lng)


def main():
    """Aggregate venues and events from all configured providers."""
    settings = get_settings()
    aggregator = build_aggregator(settings)

    if not aggregator.providers:
        logger.error("No providers configured!")
        sys.exit(1)

    params = FetchParams(bbox=parse_bbox(sys.argv[1:]))
    result = asyncio.run(aggregator.aggregate(params))

    if result.failed_providers:
        logger.warning(f"Failed providers: {result.failed_providers}")

    output_file = Path("data") / f"venues_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
    output_file.parent.mkdir(parents=True, exist_ok=True)

    with open(output_file, "w", encoding="utf-8") as f:
        json.dump(
            [v.model_dump(mode="json", by_alias=True) for v in result.venues],
            f,
            ensure_ascii=False,
            indent=2,
        )

    logger.info(f"Venue stats: {venue_stats(result.venues)}")
    logger.info(f"Saved {len(result.venues)} venues to {output_file}")


if __name__ == "__main__":
    main()
