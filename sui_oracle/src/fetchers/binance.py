"""Binance fetcher.

Binance lists USDT pairs for most assets, so a ``usd`` quote maps to the
``USDT`` market by default (BTC/USD -> BTCUSDT). Use a symbol override to
pick a different market.

Endpoint: https://api.binance.com/api/v3/ticker/price
Rate Limit: High (no key required for public endpoints)
"""

import logging

from ..TradingPair import TradingPair
from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class BinanceFetcher(BaseFetcher):
    """Fetcher for the Binance public ticker endpoint."""

    name = "binance"
    BASE_URL = "https://api.binance.com/api/v3"

    # Quote currencies that are listed under a stablecoin market instead
    QUOTE_ALIASES = {"USD": "USDT"}

    def default_symbol(self, pair: TradingPair) -> str:
        quote = pair.pair_quote.upper()
        return f"{pair.pair_base.upper()}{self.QUOTE_ALIASES.get(quote, quote)}"

    async def fetch(self, symbol: str) -> float:
        """Fetch price from Binance.

        :param symbol: Binance symbol (e.g., "BTCUSDT").
        :returns: Current price.
        :raises FetcherError: On request or parse failure.
        """
        url = f"{self.base_url}/ticker/price"
        response = await self._get(url, params={"symbol": symbol})
        data = self._json(response, symbol)

        if not isinstance(data, dict):
            raise FetcherError(f"Unexpected response for {symbol}: {data!r}")
        if data.get("symbol") not in (None, symbol):
            raise FetcherError(
                f"Response symbol {data.get('symbol')!r} does not match {symbol}"
            )

        price = self._parse_price(data.get("price"), symbol)
        logger.debug(f"[binance] {symbol}: {price}")
        return price
