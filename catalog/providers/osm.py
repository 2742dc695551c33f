"""OpenStreetMap (Overpass API) venue provider."""

from typing import Dict, List, Optional
import logging

from ..ingest.cleaning import clean_venues, join_parts
from ..ingest.schema import FetchParams, RawEvent, RawVenue
from .base import EventProvider, ProviderError, ProviderHTTPClient

logger = logging.getLogger(__name__)

OVERPASS_URL = "https://overpass-api.de/api/interpreter"

AMENITIES = "theatre|cinema|music_venue|concert_hall|nightclub|bar|pub|restaurant|cafe|biergarten|arts_centre"
LEISURE = "stadium|sports_centre|dance|bowling_alley"
TOURISM = "attraction|museum|gallery"

CATEGORY_BY_AMENITY = {
    "theatre": "entertainment",
    "cinema": "entertainment",
    "music_venue": "entertainment",
    "concert_hall": "entertainment",
    "arts_centre": "entertainment",
    "nightclub": "nightlife",
    "bar": "nightlife",
    "pub": "nightlife",
    "restaurant": "dining",
    "cafe": "dining",
    "biergarten": "dining",
}

CATEGORY_BY_LEISURE = {
    "stadium": "sports",
    "sports_centre": "sports",
    "dance": "entertainment",
    "bowling_alley": "entertainment",
}


def build_overpass_query(min_lat: float, min_lng: float, max_lat: float, max_lng: float) -> str:
    """Build an Overpass QL query for venue-like features inside a bbox."""
    bbox = f"({min_lat},{min_lng},{max_lat},{max_lng})"
    return (
        "[out:json][timeout:25];\n(\n"
        f'  nwr["amenity"~"^({AMENITIES})$"]{bbox};\n'
        f'  nwr["leisure"~"^({LEISURE})$"]{bbox};\n'
        f'  nwr["tourism"~"^({TOURISM})$"]{bbox};\n'
        ");\nout center;"
    )


def categorize(tags: Dict) -> str:
    """Derive a coarse venue category from OSM tags."""
    if tags.get("amenity"):
        return CATEGORY_BY_AMENITY.get(tags["amenity"], "venue")
    if tags.get("leisure"):
        return CATEGORY_BY_LEISURE.get(tags["leisure"], "venue")
    if tags.get("tourism"):
        return "attraction"
    return "venue"


def element_to_venue(element: Dict) -> Optional[Dict]:
    """Map an Overpass element to a raw venue dict."""
    tags = element.get("tags") or {}
    if not tags.get("name"):
        return None

    if element.get("type") == "node":
        lat, lng = element.get("lat"), element.get("lon")
    else:
        center = element.get("center") or {}
        lat, lng = center.get("lat"), center.get("lon")

    if lat is None or lng is None:
        return None

    return {
        "source": OSMProvider.provider_id,
        "externalId": f"{element.get('type')}_{element.get('id')}",
        "name": tags["name"],
        "lat": lat,
        "lng": lng,
        "address": join_parts(tags.get("addr:street"), tags.get("addr:housenumber"), sep=" "),
        "city": tags.get("addr:city"),
        "postalCode": tags.get("addr:postcode"),
        "country": tags.get("addr:country"),
        "website": tags.get("website") or tags.get("contact:website"),
        "phone": tags.get("phone") or tags.get("contact:phone"),
        "category": categorize(tags),
        "description": tags.get("description"),
    }


class OSMProvider(EventProvider):
    """Venues from OpenStreetMap. OSM carries no events."""

    provider_id = "osm"

    def __init__(self, client: ProviderHTTPClient, url: str = OVERPASS_URL):
        self.client = client
        self.url = url

    async def fetch_venues(self, params: FetchParams) -> List[RawVenue]:
        if params.bbox is None:
            logger.warning("OSM venue fetch requires a bounding box, skipping")
            return []

        bbox = params.bbox
        query = build_overpass_query(bbox.min_lat, bbox.min_lng, bbox.max_lat, bbox.max_lng)

        data = await self.client.request_json(
            "POST", self.url, content=query, headers={"Content-Type": "text/plain"}
        )
        if not isinstance(data, dict):
            raise ProviderError(self.provider_id, "Unexpected Overpass response shape")

        records = [v for v in (element_to_venue(e) for e in data.get("elements", [])) if v]
        venues = clean_venues(records, self.provider_id)

        logger.info(f"Found {len(venues)} OSM venues")
        return venues

    async def fetch_events(self, params: FetchParams) -> List[RawEvent]:
        return []
