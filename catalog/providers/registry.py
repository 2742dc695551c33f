"""Build configured provider adapters."""

from typing import List
import logging

from .base import EventProvider, ProviderHTTPClient
from .eventbrite import EventbriteProvider
from .osm import OSMProvider
from .ticketmaster import TicketmasterProvider

logger = logging.getLogger(__name__)


def build_providers(settings) -> List[EventProvider]:
    """Instantiate every enabled provider that has its credentials.

    Args:
        settings: Application settings

    Returns:
        List of providers in configuration order
    """
    providers: List[EventProvider] = []

    def client(provider_id: str) -> ProviderHTTPClient:
        return ProviderHTTPClient(
            provider_id,
            timeout=settings.http_timeout,
            max_retries=settings.http_max_retries,
            backoff_factor=settings.http_backoff_factor,
        )

    for provider_id in settings.enabled_providers:
        if provider_id == OSMProvider.provider_id:
            providers.append(OSMProvider(client(provider_id)))
        elif provider_id == TicketmasterProvider.provider_id:
            if not settings.ticketmaster_api_key:
                logger.warning("Ticketmaster API key not configured, skipping Ticketmaster")
                continue
            providers.append(
                TicketmasterProvider(
                    settings.ticketmaster_api_key,
                    client(provider_id),
                    country_code=settings.country_code,
                    default_center=(settings.default_lat, settings.default_lng),
                    default_radius_km=settings.default_radius_km,
                )
            )
        elif provider_id == EventbriteProvider.provider_id:
            if not settings.eventbrite_token:
                logger.warning("Eventbrite token not configured, skipping Eventbrite")
                continue
            providers.append(
                EventbriteProvider(
                    settings.eventbrite_token,
                    client(provider_id),
                    default_address=settings.eventbrite_default_address,
                )
            )
        else:
            logger.warning(f"Unknown provider {provider_id!r}, skipping")

    logger.info(f"Configured providers: {[p.provider_id for p in providers]}")
    return providers
