"""Provider adapter interface and shared async HTTP client."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union
import logging

import httpx

from ..ingest.schema import FetchParams, RawEvent, RawVenue

logger = logging.getLogger(__name__)

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class ProviderError(Exception):
    """Raised when a provider cannot deliver a usable response."""

    def __init__(self, provider_id: str, message: str):
        self.provider_id = provider_id
        super().__init__(f"{provider_id}: {message}")


class ProviderHTTPClient:
    """Async HTTP client with bounded timeout and exponential-backoff retry."""

    def __init__(
        self,
        provider_id: str,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            provider_id: Provider id used in logs and errors
            timeout: Per-request timeout in seconds
            max_retries: Maximum number of attempts
            backoff_factor: First retry delay in seconds, doubled per attempt
            headers: Default request headers
            transport: Optional httpx transport (tests)
        """
        self.provider_id = provider_id
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_factor = backoff_factor
        self.headers = {"Accept": "application/json", **(headers or {})}
        self.transport = transport

    async def request_json(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        content: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Make a request and decode the JSON body.

        Args:
            method: HTTP method
            url: Request URL
            params: Query parameters
            content: Raw request body
            headers: Extra headers

        Returns:
            Decoded JSON

        Raises:
            ProviderError: After the last failed attempt or on a non-JSON body
        """
        last_error = None

        async with httpx.AsyncClient(
            headers=self.headers, timeout=self.timeout, transport=self.transport
        ) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.request(
                        method, url, params=params, content=content, headers=headers
                    )
                    if response.status_code in RETRY_STATUS_CODES:
                        raise httpx.HTTPStatusError(
                            f"HTTP {response.status_code}", request=response.request, response=response
                        )
                    response.raise_for_status()
                except httpx.HTTPStatusError as e:
                    if e.response.status_code not in RETRY_STATUS_CODES:
                        raise ProviderError(
                            self.provider_id, f"HTTP {e.response.status_code} from {url}"
                        ) from e
                    last_error = e
                except httpx.TransportError as e:
                    last_error = e
                else:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise ProviderError(self.provider_id, f"Malformed JSON from {url}") from e

                if attempt + 1 < self.max_retries:
                    delay = self.backoff_factor * 2**attempt
                    logger.warning(
                        f"{self.provider_id} request failed ({last_error}), retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)

        raise ProviderError(
            self.provider_id, f"Request failed after {self.max_retries} attempts: {last_error}"
        )


class EventProvider(ABC):
    """Source of raw venues and events."""

    provider_id: str = ""

    @abstractmethod
    async def fetch_venues(self, params: FetchParams) -> List[Union[RawVenue, Dict]]:
        """Fetch raw venues for the query region."""

    @abstractmethod
    async def fetch_events(self, params: FetchParams) -> List[Union[RawEvent, Dict]]:
        """Fetch raw events for the query region and time range."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.provider_id!r})"
