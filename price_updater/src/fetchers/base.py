"""Base fetcher interface and shared HTTP client management.

A fetcher is the updater's price source: it performs a single HTTP query
against a market-data endpoint and returns a PriceQuote. All fetchers share
one httpx.AsyncClient to avoid connection overhead between block cycles.

.. code-block:: python

    @register_fetcher
    class MyFetcher(BaseFetcher):
        name = "myfetcher"

        async def fetch_price(self) -> PriceQuote:
            response = await self._get(f"https://api.example.com/{self.symbol}")
            return self._quote(response.json()["price"])
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar

import httpx

logger = logging.getLogger(__name__)


class SourceUnavailable(Exception):
    """Raised when a price cannot be fetched or parsed."""

    pass


class SourceHTTPError(SourceUnavailable):
    """Raised when the price endpoint answers with a non-2xx status.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


@dataclass(frozen=True)
class PriceQuote:
    """A single price observation.

    :ivar value: Quoted price.
    :ivar observed_at: Unix timestamp of the observation.
    """

    value: Decimal
    observed_at: float = field(default_factory=time.time)


class BaseFetcher(ABC):
    """Abstract base class for price sources.

    Subclasses must implement:
        - name: Class variable identifying the source (e.g., "binance")
        - fetch_price(): Async method returning a PriceQuote for ``symbol``

    :cvar name: Unique identifier for this fetcher.
    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :ivar symbol: Market symbol as understood by the endpoint.
    :ivar timeout: Request timeout in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    name: ClassVar[str] = ""

    DEFAULT_TIMEOUT = 10.0

    def __init__(self, symbol: str, timeout: float | None = None):
        """Initialize the fetcher.

        :param symbol: Market symbol (e.g., "DOGEUSDT", "DOGE-USD").
        :param timeout: Request timeout in seconds (default: 10).
        """
        self.symbol = symbol
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.symbol!r})"

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        :returns: Shared httpx.AsyncClient instance.
        """
        if cls._shared_client is None or cls._shared_client.is_closed:
            cls._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                follow_redirects=True,
            )
        return cls._shared_client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        if cls._shared_client is not None and not cls._shared_client.is_closed:
            await cls._shared_client.aclose()
            cls._shared_client = None

    @abstractmethod
    async def fetch_price(self) -> PriceQuote:
        """Fetch the current price for the configured symbol.

        :returns: Fresh PriceQuote.
        :raises SourceUnavailable: On network, HTTP or parse errors.
        """
        pass

    def _quote(self, raw: Any) -> PriceQuote:
        """Build a PriceQuote from a raw price field.

        Prices are parsed from their string form so that no binary float
        rounding leaks into the comparison against the last on-chain price.

        :param raw: Price as returned by the endpoint (string or number).
        :returns: PriceQuote observed now.
        :raises SourceUnavailable: If the value is not a finite positive number.
        """
        try:
            value = Decimal(str(raw))
        except (InvalidOperation, ValueError, TypeError) as e:
            raise SourceUnavailable(f"[{self.name}] Unparseable price {raw!r}") from e
        if not value.is_finite() or value <= 0:
            raise SourceUnavailable(f"[{self.name}] Invalid price {raw!r}")
        return PriceQuote(value=value)

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request using the shared client.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises SourceHTTPError: On non-2xx response.
        :raises SourceUnavailable: On network/timeout errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise SourceUnavailable(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise SourceUnavailable(f"Request failed: {e}") from e

        if not response.is_success:
            logger.debug(
                "HTTP GET %s failed with status %s: %s",
                url,
                response.status_code,
                response.text[:200],
            )
            raise SourceHTTPError(response.status_code, response.text[:200])
        return response

    def _json(self, response: httpx.Response) -> Any:
        """Decode a JSON body, mapping decode errors to SourceUnavailable."""
        try:
            return response.json()
        except ValueError as e:
            raise SourceUnavailable(f"[{self.name}] Invalid JSON response: {e}") from e


# Registry of available fetchers (populated by subclass imports)
FETCHER_REGISTRY: dict[str, type[BaseFetcher]] = {}


def register_fetcher(cls: type[BaseFetcher]) -> type[BaseFetcher]:
    """Decorator to register a fetcher class in the global registry.

    :param cls: Fetcher class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If fetcher has no name defined.
    """
    if not cls.name:
        raise ValueError(f"Fetcher {cls.__name__} must define a 'name' class variable")
    FETCHER_REGISTRY[cls.name] = cls
    return cls


def get_fetcher(name: str, symbol: str, timeout: float | None = None) -> BaseFetcher:
    """Get a fetcher instance by name.

    :param name: Fetcher name (e.g., "binance", "coinbase").
    :param symbol: Market symbol to quote.
    :param timeout: Optional request timeout in seconds.
    :returns: Fetcher instance.
    :raises ValueError: If fetcher name is unknown.
    """
    if name not in FETCHER_REGISTRY:
        available = ", ".join(sorted(FETCHER_REGISTRY.keys()))
        raise ValueError(f"Unknown fetcher '{name}'. Available: {available}")
    return FETCHER_REGISTRY[name](symbol, timeout=timeout)


def get_available_fetchers() -> list[str]:
    """Get list of available fetcher names.

    :returns: Sorted list of registered fetcher names.
    """
    return sorted(FETCHER_REGISTRY.keys())
