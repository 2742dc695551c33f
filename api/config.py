"""API configuration."""

from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Provider credentials
    ticketmaster_api_key: Optional[str] = None
    eventbrite_token: Optional[str] = None

    # Providers, queried concurrently
    enabled_providers: List[str] = ["osm", "ticketmaster", "eventbrite"]

    # Trust ranking for field conflicts, most trusted first
    provider_priority: List[str] = ["direct", "osm", "ticketmaster", "eventbrite"]

    # Provider HTTP
    http_timeout: float = 10.0
    http_max_retries: int = 3
    http_backoff_factor: float = 0.5

    # Search defaults when no bbox is given
    country_code: str = "DE"
    default_lat: float = 52.52
    default_lng: float = 13.405
    default_radius_km: int = 50
    eventbrite_default_address: str = "Germany"

    # Optional: API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 1

    class Config:
        """Pydantic config."""

        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
