"""
TCG Price Aggregator - Adapter Interface

Every price source, API-backed or crawler-backed, exposes one operation:

    await adapter.fetch(query, timeout) -> PriceObservation

and raises NotFound / UpstreamError / PolicyDenied. The orchestrator
never branches on the source name; it only sees this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx
import structlog

from tcgprice.config import ObservationSource, SourceKind
from tcgprice.errors import NotFound, UpstreamError
from tcgprice.pricing import CardQuery, PriceObservation
from tcgprice.pricing.stats import PriceStats


class PriceAdapter(ABC):
    """
    Abstract base class for all price sources.

    Adapters own their httpx client unless one is injected. Use as an
    async context manager, or call aclose() when done.
    """

    platform: ClassVar[str] = ""          # Registry id, e.g. "ebay"
    kind: ClassVar[SourceKind] = SourceKind.API
    currency: ClassVar[str] = "USD"

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client
        self._owns_client = client is None
        self.logger = structlog.get_logger(adapter=self.platform)

    async def __aenter__(self) -> PriceAdapter:
        self.http()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    def http(self) -> httpx.AsyncClient:
        """Return the HTTP client, creating an owned one on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0, follow_redirects=True)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @abstractmethod
    def is_active(self) -> bool:
        """Whether this source may be queried (credentials present, etc.)."""

    @abstractmethod
    async def fetch(self, query: CardQuery, timeout: float) -> PriceObservation:
        """
        Fetch price statistics for one card.

        Args:
            query: Card identity.
            timeout: Seconds allowed per HTTP request.

        Raises:
            NotFound: The source had no matching product or price points.
            UpstreamError: Transport or HTTP failure.
            PolicyDenied: Crawling forbidden by robots.txt.
        """

    def fallback_for(self, query: CardQuery, error: Exception) -> PriceObservation | None:
        """
        Substitute observation once every attempt for `query` has failed.

        Called by the orchestrator after the retry budget is spent. None
        (the default) lets `error` propagate.
        """
        return None

    def _observation(
        self,
        stats: PriceStats,
        source: ObservationSource,
        currency: str | None = None,
    ) -> PriceObservation:
        return PriceObservation(
            platform=self.platform,
            average=stats.average,
            median=stats.median,
            min=stats.min,
            max=stats.max,
            currency=currency or self.currency,
            source=source,
            total_results=stats.count,
        )


class BaseAPIAdapter(PriceAdapter):
    """
    Base class for documented marketplace APIs.

    Converts httpx failures into the error taxonomy. Retrying is the
    orchestrator's job, so _request makes exactly one attempt.
    """

    kind = SourceKind.API

    async def _request(
        self,
        method: str,
        url: str,
        timeout: float,
        **kwargs: Any,
    ) -> Any:
        """
        Issue one request and decode JSON.

        Raises:
            NotFound: On HTTP 404.
            UpstreamError: On any other transport, status or decode failure.
        """
        try:
            response = await self.http().request(method, url, timeout=timeout, **kwargs)
            if response.status_code == 404:
                raise NotFound(self.platform, f"404 from {url}")
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            self.logger.error(
                "api_http_error",
                platform=self.platform,
                status_code=e.response.status_code,
                url=url,
            )
            raise UpstreamError(
                self.platform,
                f"HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e

        except httpx.RequestError as e:
            self.logger.error(
                "api_request_error",
                platform=self.platform,
                error=str(e),
                error_type=type(e).__name__,
                url=url,
            )
            raise UpstreamError(self.platform, f"request failed: {type(e).__name__}") from e

        except ValueError as e:
            # Body was not JSON
            raise UpstreamError(self.platform, "invalid JSON response") from e
