"""Unit tests for the aggregation pipeline."""

import asyncio
from datetime import datetime, timedelta

import pytest
import pytz

from catalog.ingest.schema import BoundingBox, FetchParams, RawEvent, RawVenue
from catalog.matching.resolver import SourcePriorityResolver
from catalog.pipeline.aggregator import Aggregator, assemble_venues, load_aggregated
from catalog.pipeline.stats import dedup_efficiency, venue_stats
from catalog.providers.base import EventProvider, ProviderError

START = datetime(2025, 9, 12, 19, 0, tzinfo=pytz.utc)


class StaticProvider(EventProvider):
    """Provider returning fixed records."""

    def __init__(self, provider_id, venues=None, events=None):
        self.provider_id = provider_id
        self.venues = venues or []
        self.events = events or []
        self.calls = []

    async def fetch_venues(self, params):
        self.calls.append(("venues", params))
        return self.venues

    async def fetch_events(self, params):
        self.calls.append(("events", params))
        return self.events


class FailingProvider(EventProvider):
    """Provider whose every call fails."""

    provider_id = "broken"

    async def fetch_venues(self, params):
        raise ProviderError(self.provider_id, "HTTP 500")

    async def fetch_events(self, params):
        raise ProviderError(self.provider_id, "HTTP 500")


@pytest.fixture
def ticketmaster():
    """Create Ticketmaster-like provider."""
    return StaticProvider(
        "ticketmaster",
        venues=[
            RawVenue(source="ticketmaster", external_id="KovZ1", name="Kesselhaus",
                     lat=52.5411, lng=13.4121, city="Berlin"),
            RawVenue(source="ticketmaster", external_id="KovZ2", name="Empty Hall",
                     lat=52.6, lng=13.5, city="Berlin"),
        ],
        events=[
            RawEvent(source="ticketmaster", external_id="tm2", venue_external_id="KovZ1",
                     title="Late Show", start_utc=START + timedelta(hours=3)),
            RawEvent(source="ticketmaster", external_id="tm1", venue_external_id="KovZ1",
                     title="Radiohead Live", start_utc=START, artists=["Radiohead"]),
        ],
    )


@pytest.fixture
def osm():
    """Create OSM-like provider returning plain dicts."""
    return StaticProvider(
        "osm",
        venues=[
            {"externalId": "node_1", "name": "Kesselhaus Kulturbrauerei",
             "lat": 52.541, "lng": 13.412, "city": "Berlin"},
            {"externalId": "node_2", "name": "", "lat": 52.0, "lng": 13.0},
        ],
    )


@pytest.fixture
def eventbrite():
    """Create Eventbrite-like provider."""
    return StaticProvider(
        "eventbrite",
        venues=[
            {"externalId": "eb8", "name": "Kesselhaus", "lat": 52.5410, "lng": 13.4120,
             "city": "Berlin"},
        ],
        events=[
            {"externalId": "eb1", "venueExternalId": "eb8", "title": "Radiohead - Live",
             "startUtc": "2025-09-12T19:05:00Z", "status": "live"},
            {"externalId": "eb2", "venueExternalId": "missing", "title": "Orphan",
             "startUtc": "2025-09-12T19:00:00Z"},
            {"externalId": "eb3", "venueExternalId": "eb8", "title": "Bad Date",
             "startUtc": "not a date"},
        ],
    )


@pytest.fixture
def resolver():
    """Create resolver."""
    return SourcePriorityResolver(["osm", "ticketmaster", "eventbrite"])


def test_aggregate_end_to_end(ticketmaster, osm, eventbrite, resolver):
    """Test the full pipeline over three providers."""
    aggregator = Aggregator([ticketmaster, osm, eventbrite], resolver)
    result = asyncio.run(aggregator.aggregate())

    assert len(result.venues) == 1
    venue = result.venues[0]
    assert venue.name == "Kesselhaus Kulturbrauerei"
    assert {s.source for s in venue.sources} == {"ticketmaster", "osm", "eventbrite"}

    assert [e.title for e in venue.events] == ["Radiohead Live", "Late Show"]
    radiohead = venue.events[0]
    assert len(radiohead.sources) == 2
    assert radiohead.venue_id == venue.id

    assert result.raw_venue_count == 4
    assert result.raw_event_count == 4
    assert result.canonical_venue_count == 2
    assert result.dropped_event_count == 1
    assert result.event_count == 2
    assert result.failed_providers == []


def test_provider_failure_isolated(ticketmaster, resolver):
    """Test that one failing provider does not abort the run."""
    aggregator = Aggregator([FailingProvider(), ticketmaster], resolver)
    result = asyncio.run(aggregator.aggregate())

    assert len(result.venues) == 1
    assert result.failed_providers == ["broken"]
    failed = [o for o in result.outcomes if not o.ok]
    assert {o.operation for o in failed} == {"venues", "events"}
    assert "HTTP 500" in failed[0].error


def test_all_providers_fail(resolver):
    """Test that total failure yields an empty result."""
    result = asyncio.run(Aggregator([FailingProvider()], resolver).aggregate())
    assert result.venues == []


def test_no_providers(resolver):
    """Test aggregation without providers."""
    result = asyncio.run(Aggregator([], resolver).aggregate())
    assert result.venues == []
    assert result.outcomes == []


def test_params_forwarded_and_bbox_filter(ticketmaster, resolver):
    """Test that params reach providers and venues outside the box are removed."""
    ticketmaster.venues.append(
        RawVenue(source="ticketmaster", external_id="far", name="Far Away", lat=48.1, lng=11.5)
    )
    ticketmaster.events.append(
        RawEvent(source="ticketmaster", external_id="tm9", venue_external_id="far",
                 title="Munich Show", start_utc=START)
    )
    params = FetchParams(bbox=BoundingBox(min_lat=52.3, min_lng=13.0, max_lat=52.7, max_lng=13.8))

    result = asyncio.run(Aggregator([ticketmaster], resolver).aggregate(params))

    assert [v.name for v in result.venues] == ["Kesselhaus"]
    assert ticketmaster.calls[0][1] is params


def test_load_aggregated_function(ticketmaster, osm):
    """Test the one-call entry point."""
    venues = asyncio.run(load_aggregated(None, [ticketmaster, osm], ["osm", "ticketmaster"]))

    assert len(venues) == 1
    assert venues[0].name == "Kesselhaus Kulturbrauerei"


def test_output_serializes_camel_case(ticketmaster, resolver):
    """Test JSON output field names."""
    result = asyncio.run(Aggregator([ticketmaster], resolver).aggregate())
    data = result.venues[0].model_dump(mode="json", by_alias=True)

    assert "postalCode" in data
    event = data["events"][0]
    assert event["startUtc"] == "2025-09-12T19:00:00Z"
    assert event["venueId"] == data["id"]
    assert event["sources"][0] == {
        "source": "ticketmaster",
        "externalId": "tm1",
        "venueExternalId": "KovZ1",
    }


def test_assemble_venues_sorts_and_filters(ticketmaster, resolver):
    """Test event attachment."""
    venue_result = Aggregator([], resolver).venue_deduplicator.deduplicate(ticketmaster.venues)
    event_result = Aggregator([], resolver).event_deduplicator.deduplicate(
        ticketmaster.events, venue_result.source_to_venue_id
    )

    venues = assemble_venues(venue_result.venues, event_result.events)

    assert len(venues) == 1
    starts = [e.start_utc for e in venues[0].events]
    assert starts == sorted(starts)


def test_stats():
    """Test statistics helpers."""
    assert dedup_efficiency(10, 7) == {
        "raw": 10,
        "merged": 7,
        "duplicates_removed": 3,
        "dedupe_rate": 30.0,
    }
    assert dedup_efficiency(0, 0)["dedupe_rate"] == 0.0
    assert venue_stats([]) == {"total": 0, "by_source": {}, "by_category": {}, "multi_source": 0}


def test_malformed_records_isolated(ticketmaster, resolver):
    """Test that non-object records from one provider do not abort the run."""
    malformed = StaticProvider("junk", venues=[None, "venue", 42], events=[None])
    result = asyncio.run(Aggregator([malformed, ticketmaster], resolver).aggregate())

    assert [v.name for v in result.venues] == ["Kesselhaus"]
    junk = [o for o in result.outcomes if o.provider_id == "junk"]
    assert all(o.ok and o.count == 0 for o in junk)


def test_non_list_payload_counts_as_failure(ticketmaster, resolver):
    """Test that a provider returning a mapping instead of a list is marked failed."""
    malformed = StaticProvider("junk")
    malformed.venues = {"externalId": "1", "name": "Astra", "lat": 52.5, "lng": 13.4}
    result = asyncio.run(Aggregator([malformed, ticketmaster], resolver).aggregate())

    assert [v.name for v in result.venues] == ["Kesselhaus"]
    assert result.failed_providers == ["junk"]
