"""Base fetcher interface and shared HTTP client management.

All price fetchers inherit from BaseFetcher and implement the fetch() method.
A shared httpx.AsyncClient is used across all fetchers to avoid connection overhead.

A fetcher either returns a price or raises FetcherError; it never returns a
placeholder value for a failed request.

.. code-block:: python

    @register_fetcher
    class MyFetcher(BaseFetcher):
        name = "myfetcher"
        BASE_URL = "https://api.example.com"

        def default_symbol(self, pair: TradingPair) -> str:
            return f"{pair.pair_base}{pair.pair_quote}".upper()

        async def fetch(self, symbol: str) -> float:
            response = await self._get(f"{self.base_url}/price/{symbol}")
            return self._parse_price(response.json().get("price"), symbol)
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from ..TradingPair import TradingPair

logger = logging.getLogger(__name__)


class FetcherError(Exception):
    """Base exception for fetcher errors."""

    pass


class FetcherConfigError(FetcherError):
    """Raised when fetcher configuration is invalid (e.g., unknown source)."""

    pass


class FetcherHTTPError(FetcherError):
    """Raised when HTTP request fails.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class BaseFetcher(ABC):
    """Abstract base class for price fetchers.

    Subclasses must implement:
        - name: Class variable identifying the source (e.g., "coinbase", "binance")
        - default_symbol(): Exchange symbol for a trading pair
        - fetch(): Async method to fetch the price of an exchange symbol

    :cvar name: Unique identifier for this fetcher.
    :cvar BASE_URL: Default API endpoint.
    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :ivar base_url: API endpoint in use.
    :ivar timeout: Request timeout in seconds.
    :ivar symbols: Per-pair exchange symbol overrides.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    # Fetcher identification
    name: ClassVar[str] = ""
    BASE_URL: ClassVar[str] = ""

    # Default timeout for HTTP requests (seconds)
    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        symbols: dict[TradingPair, str] | None = None,
    ):
        """Initialize the fetcher.

        :param base_url: Optional API endpoint override.
        :param timeout: Request timeout in seconds (default: 10).
        :param symbols: Optional mapping of pair to exchange symbol.
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.symbols = dict(symbols or {})

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        The client is shared across all fetcher instances to reuse connections.

        :returns: Shared httpx.AsyncClient instance.
        """
        if BaseFetcher._shared_client is None or BaseFetcher._shared_client.is_closed:
            BaseFetcher._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                follow_redirects=True,
            )
        return BaseFetcher._shared_client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = BaseFetcher._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        BaseFetcher._shared_client = None

    def symbol_for(self, pair: TradingPair) -> str:
        """Get the exchange symbol for a pair, honoring configured overrides.

        :param pair: Trading pair.
        :returns: Exchange-specific symbol.
        """
        return self.symbols.get(pair) or self.default_symbol(pair)

    @abstractmethod
    def default_symbol(self, pair: TradingPair) -> str:
        """Map a trading pair to this exchange's symbol format.

        :param pair: Trading pair.
        :returns: Exchange-specific symbol (e.g., "BTCUSDT", "BTC-USD").
        """
        pass

    @abstractmethod
    async def fetch(self, symbol: str) -> float:
        """Fetch the current price of an exchange symbol.

        :param symbol: Exchange-specific symbol.
        :returns: Current price.
        :raises FetcherError: If the price could not be fetched or parsed.
        """
        pass

    def _parse_price(self, raw: Any, symbol: str) -> float:
        """Convert a raw price field to a positive float.

        :param raw: Price value from the response body.
        :param symbol: Symbol being fetched (for error messages).
        :returns: Parsed price.
        :raises FetcherError: If the value is missing or not a positive number.
        """
        if raw is None:
            raise FetcherError(f"No price in response for {symbol}")
        try:
            price = float(raw)
        except (TypeError, ValueError) as e:
            raise FetcherError(f"Unparseable price {raw!r} for {symbol}") from e
        if not math.isfinite(price) or price <= 0:
            raise FetcherError(f"Invalid price {price!r} for {symbol}")
        return price

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
        :raises FetcherHTTPError: On non-2xx response.
        :raises FetcherError: On network/timeout errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
            if not response.is_success:
                logger.debug(
                    "HTTP GET %s failed with status %s: %s",
                    url,
                    response.status_code,
                    response.text[:200],
                )
                raise FetcherHTTPError(response.status_code, response.text[:200])
            return response
        except httpx.TimeoutException as e:
            raise FetcherError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise FetcherError(f"Request failed: {e}") from e

    def _json(self, response: httpx.Response, symbol: str) -> Any:
        """Decode a JSON response body.

        :raises FetcherError: If the body is not valid JSON.
        """
        try:
            return response.json()
        except ValueError as e:
            raise FetcherError(f"Invalid JSON response for {symbol}: {e}") from e


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


def get_fetcher(
    name: str,
    *,
    base_url: str | None = None,
    timeout: float | None = None,
    symbols: dict[TradingPair, str] | None = None,
) -> BaseFetcher:
    """Get a fetcher instance by name.

    :param name: Fetcher name (e.g., "coinbase", "binance").
    :param base_url: Optional API endpoint override.
    :param timeout: Optional request timeout in seconds.
    :param symbols: Optional per-pair symbol overrides.
    :returns: Fetcher instance.
    :raises FetcherConfigError: If fetcher name is unknown.
    """
    if name not in FETCHER_REGISTRY:
        available = ", ".join(sorted(FETCHER_REGISTRY.keys()))
        raise FetcherConfigError(f"Unknown fetcher '{name}'. Available: {available}")
    return FETCHER_REGISTRY[name](base_url=base_url, timeout=timeout, symbols=symbols)


def get_available_fetchers() -> list[str]:
    """Get list of available fetcher names.

    :returns: Sorted list of registered fetcher names.
    """
    return sorted(FETCHER_REGISTRY.keys())
