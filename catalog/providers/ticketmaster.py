"""Ticketmaster Discovery API provider."""

from typing import Dict, List, Optional, Tuple
import logging

from ..ingest.cleaning import clean_events, clean_venues, join_parts, strip_html
from ..ingest.schema import EventStatus, FetchParams, RawEvent, RawVenue
from .base import EventProvider, ProviderError, ProviderHTTPClient

logger = logging.getLogger(__name__)

API_BASE = "https://app.ticketmaster.com/discovery/v2"

STATUS_MAPPING = {
    "onsale": EventStatus.SCHEDULED,
    "offsale": EventStatus.SCHEDULED,
    "cancelled": EventStatus.CANCELLED,
    "canceled": EventStatus.CANCELLED,
    "postponed": EventStatus.POSTPONED,
    "rescheduled": EventStatus.POSTPONED,
}

# Used when only a local date is known
DEFAULT_LOCAL_TIME = "20:00:00"


def venue_to_record(venue: Dict) -> Optional[Dict]:
    """Map a Ticketmaster venue object to a raw venue dict."""
    location = venue.get("location") or {}
    if not location.get("latitude") or not location.get("longitude"):
        return None

    address = venue.get("address") or {}
    country = venue.get("country") or {}

    return {
        "source": TicketmasterProvider.provider_id,
        "externalId": venue.get("id"),
        "name": venue.get("name"),
        "lat": location["latitude"],
        "lng": location["longitude"],
        "address": join_parts(address.get("line1"), address.get("line2")),
        "city": (venue.get("city") or {}).get("name"),
        "postalCode": venue.get("postalCode"),
        "country": country.get("name") or country.get("countryCode"),
        "website": venue.get("url"),
        "description": (venue.get("generalInfo") or {}).get("generalRule"),
    }


def parse_start(dates: Dict) -> Optional[str]:
    """Start time from ``dateTime`` or the local date and time."""
    start = dates.get("start") or {}
    if start.get("dateTime"):
        return start["dateTime"]
    if start.get("localDate"):
        local_time = start.get("localTime") or DEFAULT_LOCAL_TIME
        return f"{start['localDate']}T{local_time}"
    return None


def largest_image(images: List[Dict]) -> Optional[str]:
    """URL of the image with the largest area."""
    if not images:
        return None
    best = max(images, key=lambda img: (img.get("width") or 0) * (img.get("height") or 0))
    return best.get("url")


def event_to_record(event: Dict) -> Dict:
    """Map a Ticketmaster event to a raw event dict."""
    embedded = event.get("_embedded") or {}
    venues = embedded.get("venues") or []
    venue = venues[0] if venues else None

    dates = event.get("dates") or {}
    status_code = ((dates.get("status") or {}).get("code") or "").lower()

    genres = []
    classifications = event.get("classifications") or []
    if classifications:
        for key in ("genre", "subGenre"):
            name = (classifications[0].get(key) or {}).get("name")
            if name and name.lower() != "undefined":
                genres.append(name)

    return {
        "source": TicketmasterProvider.provider_id,
        "externalId": event.get("id"),
        "venueExternalId": venue.get("id") if venue else None,
        "title": event.get("name"),
        "startUtc": parse_start(dates),
        "endUtc": (dates.get("end") or {}).get("dateTime"),
        "status": STATUS_MAPPING.get(status_code, EventStatus.SCHEDULED),
        "artists": [a.get("name") for a in embedded.get("attractions") or [] if a.get("name")],
        "genres": genres,
        "description": strip_html(event.get("info") or event.get("pleaseNote")) or None,
        "url": event.get("url"),
        "imageUrl": largest_image(event.get("images") or []),
    }


class TicketmasterProvider(EventProvider):
    """Venues and events from the Ticketmaster Discovery API."""

    provider_id = "ticketmaster"

    def __init__(
        self,
        api_key: str,
        client: ProviderHTTPClient,
        country_code: Optional[str] = "DE",
        default_center: Tuple[float, float] = (52.52, 13.405),
        default_radius_km: int = 50,
        page_size: int = 200,
    ):
        """Initialize provider.

        Args:
            api_key: Discovery API key
            client: Shared HTTP client
            country_code: ISO country filter
            default_center: Search centre when no bbox is given
            default_radius_km: Search radius when no bbox is given
            page_size: Page size (max 200)
        """
        self.api_key = api_key
        self.client = client
        self.country_code = country_code
        self.default_center = default_center
        self.default_radius_km = default_radius_km
        self.page_size = min(page_size, 200)

    def _geo_params(self, params: FetchParams) -> Dict:
        if params.bbox:
            lat, lng = params.bbox.center
            radius = params.bbox.radius_km()
        else:
            (lat, lng), radius = self.default_center, self.default_radius_km

        query = {
            "apikey": self.api_key,
            "latlong": f"{lat},{lng}",
            "radius": radius,
            "unit": "km",
            "size": self.page_size,
        }
        if self.country_code:
            query["countryCode"] = self.country_code
        return query

    async def _get(self, path: str, query: Dict) -> Dict:
        data = await self.client.request_json("GET", f"{API_BASE}/{path}", params=query)
        if not isinstance(data, dict):
            raise ProviderError(self.provider_id, f"Unexpected response shape from {path}")
        return data

    async def fetch_venues(self, params: FetchParams) -> List[RawVenue]:
        data = await self._get("venues.json", self._geo_params(params))

        records = [venue_to_record(v) for v in (data.get("_embedded") or {}).get("venues", [])]
        venues = clean_venues([r for r in records if r], self.provider_id)

        logger.info(f"Found {len(venues)} Ticketmaster venues")
        return venues

    async def fetch_events(self, params: FetchParams) -> List[RawEvent]:
        query = self._geo_params(params)
        if params.time_range and params.time_range.start_iso:
            query["startDateTime"] = params.time_range.start_iso.strftime("%Y-%m-%dT%H:%M:%SZ")
        if params.time_range and params.time_range.end_iso:
            query["endDateTime"] = params.time_range.end_iso.strftime("%Y-%m-%dT%H:%M:%SZ")

        data = await self._get("events.json", query)

        records = [event_to_record(e) for e in (data.get("_embedded") or {}).get("events", [])]
        events = clean_events(records, self.provider_id)

        logger.info(f"Found {len(events)} Ticketmaster events")
        return events
