"""FastAPI application for VenueFlow."""

import time
import logging
from datetime import datetime
from typing import Annotated, List, Optional

from fastapi import FastAPI, HTTPException, Query, status
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from pydantic import ValidationError
from starlette.responses import Response

from .config import Settings, get_settings
from .models import HealthResponse, VenueQuery

from catalog.ingest.schema import BoundingBox, CanonicalVenue, FetchParams, TimeRange
from catalog.matching.resolver import SourcePriorityResolver
from catalog.pipeline.aggregator import AggregationResult, Aggregator
from catalog.providers.registry import build_providers

# Setup logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Prometheus metrics
request_counter = Counter("venueflow_requests_total", "Total requests", ["endpoint", "status"])
request_latency = Histogram("venueflow_request_duration_seconds", "Request latency", ["endpoint"])
provider_fetch_counter = Counter(
    "venueflow_provider_fetch_total", "Provider fetch outcomes", ["provider", "operation", "status"]
)
dropped_events_counter = Counter(
    "venueflow_dropped_events_total", "Events dropped for unresolvable venue references"
)
venues_gauge = Gauge("venueflow_venues", "Venues with events in the last aggregation")
events_gauge = Gauge("venueflow_events", "Canonical events in the last aggregation")

# Application
app = FastAPI(
    title="VenueFlow",
    description="Deduplicated venue and event catalog aggregated from multiple providers",
    version="0.1.0",
)


# Global state
class AppState:
    """Application state."""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.aggregator: Optional[Aggregator] = None


state = AppState()


def build_aggregator(settings: Settings) -> Aggregator:
    """Create the aggregator from settings."""
    return Aggregator(
        providers=build_providers(settings),
        resolver=SourcePriorityResolver(settings.provider_priority),
    )


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    logger.info("Starting VenueFlow API...")

    state.settings = get_settings()
    state.aggregator = build_aggregator(state.settings)

    logger.info("VenueFlow API started")


def parse_fetch_params(query: VenueQuery) -> FetchParams:
    """Translate query parameters into provider fetch parameters.

    Raises:
        HTTPException: On a partial or inverted bbox or an unparsable time
    """
    bounds = query.bounds()
    bbox = None

    if any(b is not None for b in bounds):
        if any(b is None for b in bounds):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Bounding box requires min_lat, min_lng, max_lat and max_lng",
            )
        try:
            bbox = BoundingBox(
                min_lat=query.min_lat,
                min_lng=query.min_lng,
                max_lat=query.max_lat,
                max_lng=query.max_lng,
            )
        except ValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    time_range = None
    if query.start or query.end:
        try:
            time_range = TimeRange(start_iso=query.start, end_iso=query.end)
        except ValidationError as e:
            raise HTTPException(
                status_code=422, detail=f"Invalid time range: {e}"
            )

    return FetchParams(bbox=bbox, time_range=time_range)


def record_metrics(result: AggregationResult):
    """Record per-provider outcomes and catalog size."""
    for outcome in result.outcomes:
        provider_fetch_counter.labels(
            provider=outcome.provider_id,
            operation=outcome.operation,
            status="success" if outcome.ok else "error",
        ).inc()
    dropped_events_counter.inc(result.dropped_event_count)
    venues_gauge.set(len(result.venues))
    events_gauge.set(result.event_count)


@app.get("/venues", response_model=List[CanonicalVenue])
async def venues(query: Annotated[VenueQuery, Query()]) -> List[CanonicalVenue]:
    """Venues with their deduplicated events.

    Args:
        query: Optional bounding box and time range

    Returns:
        Canonical venues, each with at least one event
    """
    start_time = time.time()

    if state.aggregator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Aggregator not initialized"
        )

    params = parse_fetch_params(query)

    try:
        result = await state.aggregator.aggregate(params)
    except Exception as e:
        logger.error(f"Error aggregating venues: {e}", exc_info=True)
        request_counter.labels(endpoint="venues", status="error").inc()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Aggregation failed: {str(e)}",
        )

    if result.failed_providers:
        logger.warning(f"Degraded result, failed providers: {result.failed_providers}")

    record_metrics(result)
    request_counter.labels(endpoint="venues", status="success").inc()
    request_latency.labels(endpoint="venues").observe(time.time() - start_time)

    return result.venues


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint.

    Returns:
        Service health status
    """
    providers = [p.provider_id for p in state.aggregator.providers] if state.aggregator else []

    return HealthResponse(
        status="healthy" if providers else "degraded",
        providers=providers,
        provider_priority=state.aggregator.resolver.priority if state.aggregator else [],
        timestamp=datetime.utcnow().isoformat(),
    )


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint.

    Returns:
        Prometheus metrics
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "VenueFlow",
        "version": "0.1.0",
        "description": "Deduplicated venue and event catalog",
        "endpoints": {
            "GET /venues": "Venues with events (bbox: min_lat, min_lng, max_lat, max_lng; time: start, end)",
            "GET /health": "Health check",
            "GET /metrics": "Prometheus metrics",
        },
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=settings.api_workers,
        log_level="info",
    )
