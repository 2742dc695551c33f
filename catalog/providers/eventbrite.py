"""Eventbrite API provider."""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set
import logging

from ..ingest.cleaning import clean_events, clean_venues, join_parts, strip_html
from ..ingest.schema import EventStatus, FetchParams, RawEvent, RawVenue
from .base import EventProvider, ProviderError, ProviderHTTPClient

logger = logging.getLogger(__name__)

API_BASE = "https://www.eventbriteapi.com/v3"

# Music, Performing & Visual Arts
DEFAULT_CATEGORIES = "103,105"

STATUS_MAPPING = {
    "live": EventStatus.LIVE,
    "started": EventStatus.LIVE,
    "canceled": EventStatus.CANCELLED,
    "cancelled": EventStatus.CANCELLED,
    "postponed": EventStatus.POSTPONED,
}


def _text(value) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("text") or value.get("html")
    if not value:
        return None
    return strip_html(value) or None


@dataclass
class _SharedSearch:
    """One in-flight search awaited by the venue and the event fetch."""

    key: str
    task: "asyncio.Task"
    waiting: Set[str] = field(default_factory=lambda: {"venues", "events"})


def venue_to_record(venue: Dict) -> Optional[Dict]:
    """Map an expanded Eventbrite venue to a raw venue dict."""
    if not venue or not venue.get("id"):
        return None

    address = venue.get("address") or {}
    lat = venue.get("latitude") or address.get("latitude")
    lng = venue.get("longitude") or address.get("longitude")
    if not lat or not lng:
        return None

    return {
        "source": EventbriteProvider.provider_id,
        "externalId": venue["id"],
        "name": venue.get("name"),
        "lat": lat,
        "lng": lng,
        "address": join_parts(address.get("address_1"), address.get("address_2")),
        "city": address.get("city"),
        "postalCode": address.get("postal_code"),
        "country": address.get("country_name") or address.get("country"),
    }


def event_to_record(event: Dict) -> Dict:
    """Map an Eventbrite event to a raw event dict."""
    venue = event.get("venue") or {}

    genres = [
        item["name"]
        for item in (event.get("category"), event.get("format"))
        if item and item.get("name")
    ]
    organizer = (event.get("organizer") or {}).get("name")

    return {
        "source": EventbriteProvider.provider_id,
        "externalId": event.get("id"),
        "venueExternalId": venue.get("id") or event.get("venue_id"),
        "title": _text(event.get("name")),
        "startUtc": (event.get("start") or {}).get("utc"),
        "endUtc": (event.get("end") or {}).get("utc"),
        "status": STATUS_MAPPING.get((event.get("status") or "").lower(), EventStatus.SCHEDULED),
        "artists": [organizer] if organizer else [],
        "genres": genres,
        "description": _text(event.get("summary")) or _text(event.get("description")),
        "url": event.get("url"),
        "imageUrl": (event.get("logo") or {}).get("url"),
    }


class EventbriteProvider(EventProvider):
    """Venues and events from Eventbrite.

    Eventbrite has no venue search, so venues are taken from the
    expanded venue of each event in the search results.
    """

    provider_id = "eventbrite"

    def __init__(
        self,
        token: str,
        client: ProviderHTTPClient,
        default_address: str = "Germany",
        categories: str = DEFAULT_CATEGORIES,
        page_size: int = 200,
    ):
        """Initialize provider.

        Args:
            token: OAuth token
            client: Shared HTTP client
            default_address: Location filter when no bbox is given
            categories: Comma-separated category ids
            page_size: Page size
        """
        self.token = token
        self.client = client
        self.default_address = default_address
        self.categories = categories
        self.page_size = page_size
        self._shared: Optional[_SharedSearch] = None

    async def _search(self, params: FetchParams) -> List[Dict]:
        query = {
            "expand": "venue,category,format,organizer",
            "page_size": self.page_size,
            "categories": self.categories,
        }

        if params.bbox:
            lat, lng = params.bbox.center
            query["location.latitude"] = lat
            query["location.longitude"] = lng
            query["location.within"] = f"{params.bbox.radius_km(maximum=200)}km"
        else:
            query["location.address"] = self.default_address

        if params.time_range and params.time_range.start_iso:
            query["start_date.range_start"] = params.time_range.start_iso.strftime("%Y-%m-%dT%H:%M:%SZ")
        if params.time_range and params.time_range.end_iso:
            query["start_date.range_end"] = params.time_range.end_iso.strftime("%Y-%m-%dT%H:%M:%SZ")

        data = await self.client.request_json(
            "GET",
            f"{API_BASE}/events/search/",
            params=query,
            headers={"Authorization": f"Bearer {self.token}"},
        )
        if not isinstance(data, dict):
            raise ProviderError(self.provider_id, "Unexpected search response shape")

        return data.get("events") or []

    async def _shared_search(self, params: FetchParams, consumer: str) -> List[Dict]:
        """Run a single search per aggregation for both fetch operations.

        The first of ``fetch_venues`` and ``fetch_events`` starts the
        request; the second awaits the same task. A later call with the same
        parameters starts a fresh search.
        """
        key = params.model_dump_json()
        loop = asyncio.get_running_loop()
        shared = self._shared

        if (
            shared is None
            or shared.key != key
            or consumer not in shared.waiting
            or shared.task.get_loop() is not loop
        ):
            shared = _SharedSearch(key, loop.create_task(self._search(params)))
            self._shared = shared

        shared.waiting.discard(consumer)
        if not shared.waiting:
            self._shared = None

        return await shared.task

    async def fetch_venues(self, params: FetchParams) -> List[RawVenue]:
        records = {}
        for event in await self._shared_search(params, "venues"):
            record = venue_to_record(event.get("venue"))
            if record and record["externalId"] not in records:
                records[record["externalId"]] = record

        venues = clean_venues(list(records.values()), self.provider_id)

        logger.info(f"Found {len(venues)} unique Eventbrite venues")
        return venues

    async def fetch_events(self, params: FetchParams) -> List[RawEvent]:
        events = clean_events(
            [event_to_record(e) for e in await self._shared_search(params, "events")], self.provider_id
        )

        logger.info(f"Found {len(events)} Eventbrite events")
        return events
