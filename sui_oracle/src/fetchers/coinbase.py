"""Coinbase Exchange fetcher.

Endpoint: https://api.exchange.coinbase.com/products/{BASE}-{QUOTE}/ticker
Rate Limit: High (no key required)
"""

import logging

from ..TradingPair import TradingPair
from .base import BaseFetcher, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class CoinbaseFetcher(BaseFetcher):
    """Fetcher for Coinbase Exchange API.

    Coinbase requires a User-Agent header on public endpoints.
    """

    name = "coinbase"
    BASE_URL = "https://api.exchange.coinbase.com"
    USER_AGENT = "sui-price-oracle"

    def default_symbol(self, pair: TradingPair) -> str:
        """Coinbase product IDs look like "BTC-USD"."""
        return f"{pair.pair_base.upper()}-{pair.pair_quote.upper()}"

    async def fetch(self, symbol: str) -> float:
        """Fetch price from Coinbase Exchange.

        :param symbol: Product ID (e.g., "BTC-USD").
        :returns: Current price.
        :raises FetcherError: On request or parse failure.
        """
        url = f"{self.base_url}/products/{symbol}/ticker"
        response = await self._get(url, headers={"User-Agent": self.USER_AGENT})
        data = self._json(response, symbol)

        price = self._parse_price(
            data.get("price") if isinstance(data, dict) else None, symbol
        )
        logger.debug(f"[coinbase] {symbol}: {price}")
        return price
