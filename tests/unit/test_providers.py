"""Unit tests for provider adapters and the shared HTTP client."""

import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from catalog.ingest.schema import BoundingBox, EventStatus, FetchParams, TimeRange
from catalog.providers.base import ProviderError, ProviderHTTPClient
from catalog.providers.eventbrite import EventbriteProvider
from catalog.providers.eventbrite import event_to_record as eventbrite_event
from catalog.providers.osm import OSMProvider, build_overpass_query, categorize, element_to_venue
from catalog.providers.registry import build_providers
from catalog.providers.ticketmaster import TicketmasterProvider, parse_start
from catalog.providers.ticketmaster import event_to_record as ticketmaster_event

BERLIN = BoundingBox(min_lat=52.25, min_lng=13.0, max_lat=52.75, max_lng=13.5)


def make_client(handler, provider_id="test", max_retries=3):
    """Create client backed by a mock transport."""
    return ProviderHTTPClient(
        provider_id,
        max_retries=max_retries,
        backoff_factor=0,
        transport=httpx.MockTransport(handler),
    )


def test_client_returns_json():
    """Test a successful request."""
    client = make_client(lambda request: httpx.Response(200, json={"ok": True}))
    assert asyncio.run(client.request_json("GET", "https://example.com/api")) == {"ok": True}


def test_client_retries_on_server_error():
    """Test retry on 503 followed by success."""
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json=[1, 2])

    client = make_client(handler)

    assert asyncio.run(client.request_json("GET", "https://example.com/api")) == [1, 2]
    assert len(calls) == 3


def test_client_gives_up_after_max_retries():
    """Test that exhausted retries raise ProviderError."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(429)

    client = make_client(handler, provider_id="ticketmaster", max_retries=2)

    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(client.request_json("GET", "https://example.com/api"))

    assert len(calls) == 2
    assert exc_info.value.provider_id == "ticketmaster"


def test_client_no_retry_on_client_error():
    """Test that 4xx other than 429 fails immediately."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401)

    with pytest.raises(ProviderError, match="HTTP 401"):
        asyncio.run(make_client(handler).request_json("GET", "https://example.com/api"))

    assert len(calls) == 1


def test_client_retries_transport_errors():
    """Test retry on connection failures."""
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProviderError, match="after 3 attempts"):
        asyncio.run(make_client(handler).request_json("GET", "https://example.com/api"))

    assert len(calls) == 3


def test_client_malformed_json():
    """Test that a non-JSON body raises ProviderError."""
    client = make_client(lambda request: httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(ProviderError, match="Malformed JSON"):
        asyncio.run(client.request_json("GET", "https://example.com/api"))


def test_overpass_query():
    """Test Overpass query construction."""
    query = build_overpass_query(52.25, 13.0, 52.75, 13.5)

    assert query.startswith("[out:json]")
    assert "(52.25,13.0,52.75,13.5)" in query
    assert "nwr[\"amenity\"" in query
    assert query.endswith("out center;")


def test_osm_element_mapping():
    """Test OSM element mapping for nodes and ways."""
    node = {
        "type": "node",
        "id": 123,
        "lat": 52.541,
        "lon": 13.412,
        "tags": {
            "name": "Kesselhaus",
            "amenity": "nightclub",
            "addr:street": "Knaackstraße",
            "addr:housenumber": "97",
            "addr:city": "Berlin",
            "contact:website": "https://kesselhaus.net",
        },
    }
    way = {"type": "way", "id": 9, "center": {"lat": 52.5, "lon": 13.4}, "tags": {"name": "Arena", "leisure": "stadium"}}

    venue = element_to_venue(node)
    assert venue["externalId"] == "node_123"
    assert venue["address"] == "Knaackstraße 97"
    assert venue["category"] == "nightlife"
    assert venue["website"] == "https://kesselhaus.net"

    assert element_to_venue(way)["lat"] == 52.5
    assert element_to_venue({"type": "node", "id": 1, "lat": 1, "lon": 1, "tags": {}}) is None
    assert element_to_venue({"type": "way", "id": 1, "tags": {"name": "No Centre"}}) is None


def test_categorize():
    """Test OSM category derivation."""
    assert categorize({"amenity": "theatre"}) == "entertainment"
    assert categorize({"leisure": "stadium"}) == "sports"
    assert categorize({"tourism": "museum"}) == "attraction"
    assert categorize({"shop": "books"}) == "venue"


def test_osm_provider_fetch():
    """Test OSM provider against a mocked Overpass endpoint."""
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "elements": [
                    {"type": "node", "id": 1, "lat": 52.5, "lon": 13.4, "tags": {"name": "Astra", "amenity": "bar"}},
                    {"type": "node", "id": 2, "lat": 52.5, "lon": 13.4, "tags": {}},
                ]
            },
        )

    provider = OSMProvider(make_client(handler, "osm"))
    venues = asyncio.run(provider.fetch_venues(FetchParams(bbox=BERLIN)))

    assert [v.key for v in venues] == ["osm:node_1"]
    assert requests[0].method == "POST"
    assert b"out center;" in requests[0].content
    assert asyncio.run(provider.fetch_events(FetchParams(bbox=BERLIN))) == []


def test_osm_provider_requires_bbox():
    """Test that OSM skips queries without a bbox."""

    def handler(request):
        raise AssertionError("no request expected")

    provider = OSMProvider(make_client(handler, "osm"))
    assert asyncio.run(provider.fetch_venues(FetchParams())) == []


TM_EVENT = {
    "id": "G5v",
    "name": "Radiohead Live",
    "url": "https://www.ticketmaster.de/event/G5v",
    "dates": {
        "start": {"localDate": "2025-09-12", "dateTime": "2025-09-12T19:00:00Z"},
        "status": {"code": "rescheduled"},
    },
    "classifications": [{"genre": {"name": "Rock"}, "subGenre": {"name": "Undefined"}}],
    "images": [
        {"url": "https://img/small.jpg", "width": 100, "height": 56},
        {"url": "https://img/large.jpg", "width": 1024, "height": 576},
    ],
    "info": "<b>Doors</b> at 18:00",
    "_embedded": {
        "venues": [{"id": "KovZ1"}],
        "attractions": [{"name": "Radiohead"}, {"name": "Support Act"}],
    },
}


def test_ticketmaster_event_mapping():
    """Test Ticketmaster event mapping."""
    record = ticketmaster_event(TM_EVENT)

    assert record["venueExternalId"] == "KovZ1"
    assert record["status"] == EventStatus.POSTPONED
    assert record["genres"] == ["Rock"]
    assert record["artists"] == ["Radiohead", "Support Act"]
    assert record["imageUrl"] == "https://img/large.jpg"
    assert record["description"] == "Doors at 18:00"


def test_ticketmaster_parse_start():
    """Test start time fallbacks."""
    assert parse_start({"start": {"localDate": "2025-09-12"}}) == "2025-09-12T20:00:00"
    assert parse_start({"start": {"localDate": "2025-09-12", "localTime": "19:30:00"}}) == "2025-09-12T19:30:00"
    assert parse_start({}) is None


def test_ticketmaster_provider_fetch():
    """Test Ticketmaster provider query parameters and parsing."""
    requests = []

    def handler(request):
        requests.append(request)
        if request.url.path.endswith("venues.json"):
            return httpx.Response(
                200,
                json={
                    "_embedded": {
                        "venues": [
                            {"id": "KovZ1", "name": "Kesselhaus", "city": {"name": "Berlin"},
                             "location": {"latitude": "52.5411", "longitude": "13.4121"}},
                            {"id": "KovZ2", "name": "Nowhere", "location": {}},
                        ]
                    }
                },
            )
        return httpx.Response(200, json={"_embedded": {"events": [TM_EVENT, {"id": "bad"}]}})

    provider = TicketmasterProvider("secret", make_client(handler, "ticketmaster"))
    params = FetchParams(
        bbox=BERLIN,
        time_range=TimeRange(start_iso="2025-09-01T00:00:00Z", end_iso="2025-09-30T23:59:59Z"),
    )

    venues = asyncio.run(provider.fetch_venues(params))
    events = asyncio.run(provider.fetch_events(params))

    assert [v.key for v in venues] == ["ticketmaster:KovZ1"]
    assert venues[0].lat == pytest.approx(52.5411)
    assert [e.external_id for e in events] == ["G5v"]

    query = requests[1].url.params
    assert query["apikey"] == "secret"
    assert query["latlong"] == "52.5,13.25"
    assert query["radius"] == "28"
    assert query["startDateTime"] == "2025-09-01T00:00:00Z"
    assert query["endDateTime"] == "2025-09-30T23:59:59Z"


def test_ticketmaster_default_location():
    """Test defaults when no bbox is given."""
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={})

    provider = TicketmasterProvider("secret", make_client(handler, "ticketmaster"))
    assert asyncio.run(provider.fetch_venues(FetchParams())) == []
    assert requests[0].url.params["latlong"] == "52.52,13.405"
    assert requests[0].url.params["radius"] == "50"
    assert requests[0].url.params["countryCode"] == "DE"


EB_EVENT = {
    "id": "eb1",
    "name": {"text": "Radiohead - Live"},
    "summary": "An evening with Radiohead",
    "start": {"utc": "2025-09-12T19:05:00Z"},
    "end": {"utc": "2025-09-12T22:00:00Z"},
    "status": "live",
    "url": "https://www.eventbrite.de/e/eb1",
    "logo": {"url": "https://img.evbuc.com/logo.jpg"},
    "category": {"name": "Music"},
    "format": {"name": "Concert or Performance"},
    "organizer": {"name": "Live Nation"},
    "venue": {
        "id": "eb8",
        "name": "Kesselhaus",
        "latitude": "52.5410",
        "longitude": "13.4120",
        "address": {"address_1": "Knaackstraße 97", "city": "Berlin", "postal_code": "10435", "country": "DE"},
    },
}


def test_eventbrite_event_mapping():
    """Test Eventbrite event mapping."""
    record = eventbrite_event(EB_EVENT)

    assert record["title"] == "Radiohead - Live"
    assert record["venueExternalId"] == "eb8"
    assert record["status"] == EventStatus.LIVE
    assert record["genres"] == ["Music", "Concert or Performance"]
    assert record["artists"] == ["Live Nation"]
    assert record["description"] == "An evening with Radiohead"


def test_eventbrite_provider_fetch():
    """Test Eventbrite search, venue extraction and auth header."""
    requests = []
    second = dict(EB_EVENT, id="eb2")

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"events": [EB_EVENT, second, {"id": "eb3", "venue": None}]})

    provider = EventbriteProvider("token", make_client(handler, "eventbrite"))

    venues = asyncio.run(provider.fetch_venues(FetchParams(bbox=BERLIN)))
    events = asyncio.run(provider.fetch_events(FetchParams()))

    assert [v.key for v in venues] == ["eventbrite:eb8"]
    assert venues[0].postal_code == "10435"
    assert [e.external_id for e in events] == ["eb1", "eb2"]

    assert requests[0].headers["Authorization"] == "Bearer token"
    assert requests[0].url.params["location.within"] == "28km"
    assert requests[1].url.params["location.address"] == "Germany"


def test_eventbrite_unexpected_shape():
    """Test that a non-object response raises ProviderError."""
    provider = EventbriteProvider("token", make_client(lambda r: httpx.Response(200, content=json.dumps([])), "eventbrite"))

    with pytest.raises(ProviderError):
        asyncio.run(provider.fetch_events(FetchParams()))


def test_build_providers_skips_missing_credentials():
    """Test provider registry."""
    settings = SimpleNamespace(
        enabled_providers=["osm", "ticketmaster", "eventbrite", "myspace"],
        ticketmaster_api_key="key",
        eventbrite_token=None,
        http_timeout=5.0,
        http_max_retries=2,
        http_backoff_factor=0.1,
        country_code="DE",
        default_lat=52.52,
        default_lng=13.405,
        default_radius_km=50,
        eventbrite_default_address="Germany",
    )

    providers = build_providers(settings)

    assert [p.provider_id for p in providers] == ["osm", "ticketmaster"]
    assert providers[1].client.max_retries == 2


def test_eventbrite_single_search_per_run():
    """Test that concurrent venue and event fetches share one search request."""
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"events": [EB_EVENT]})

    provider = EventbriteProvider("token", make_client(handler, "eventbrite"))
    params = FetchParams(bbox=BERLIN)

    async def run():
        return await asyncio.gather(provider.fetch_venues(params), provider.fetch_events(params))

    venues, events = asyncio.run(run())
    assert len(requests) == 1
    assert [v.key for v in venues] == ["eventbrite:eb8"]
    assert [e.external_id for e in events] == ["eb1"]

    # The next run searches again
    asyncio.run(run())
    assert len(requests) == 2


def test_eventbrite_shared_search_failure_fails_both():
    """Test that a failed shared search is reported to both fetches."""
    provider = EventbriteProvider(
        "token", make_client(lambda r: httpx.Response(401), "eventbrite")
    )
    params = FetchParams()

    async def run():
        return await asyncio.gather(
            provider.fetch_venues(params), provider.fetch_events(params), return_exceptions=True
        )

    results = asyncio.run(run())
    assert all(isinstance(r, ProviderError) for r in results)
