"""QuoteCollector: Concurrent per-pair price fetching.

Every configured source is queried for the pair at the same time, each
fetch bounded by its own timeout. A slow or failing source only produces a
failure outcome for itself; it never delays or drops the other sources.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from .Quote import Quote, QuoteOutcome

if TYPE_CHECKING:
    from .fetchers import BaseFetcher
    from .TradingPair import TradingPair

logger = logging.getLogger(__name__)


class QuoteCollector:
    """Collects quotes for a pair from all configured sources.

    :ivar fetchers: Dict mapping source names to fetcher instances.
    :ivar fetch_timeout: Timeout for each fetch in seconds.
    """

    def __init__(
        self,
        fetchers: dict[str, BaseFetcher],
        fetch_timeout: float = 10.0,
    ) -> None:
        """Initialize the collector.

        :param fetchers: Dict mapping source names to fetcher instances.
        :param fetch_timeout: Timeout for each fetch (default: 10.0).
        """
        self.fetchers = fetchers
        self.fetch_timeout = fetch_timeout

    async def collect(self, pair: TradingPair) -> list[QuoteOutcome]:
        """Fetch a pair from every source concurrently.

        :param pair: Trading pair to fetch.
        :returns: One outcome per source, in source order.
        """
        tasks = [
            self._fetch_single(source, fetcher, pair)
            for source, fetcher in self.fetchers.items()
        ]
        if not tasks:
            return []
        return list(await asyncio.gather(*tasks))

    async def _fetch_single(
        self,
        source: str,
        fetcher: BaseFetcher,
        pair: TradingPair,
    ) -> QuoteOutcome:
        """Fetch a single pair from one source with timeout.

        :param source: Source name.
        :param fetcher: Fetcher instance to use.
        :param pair: Trading pair to fetch.
        :returns: Success outcome with a quote, or failure outcome with reason.
        """
        symbol = fetcher.symbol_for(pair)
        try:
            price = await asyncio.wait_for(
                fetcher.fetch(symbol),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[{source}] Timeout fetching {symbol} for {pair}")
            return QuoteOutcome.failed(source, pair, "timeout")
        except Exception as e:
            logger.warning(f"[{source}] Error fetching {symbol} for {pair}: {e}")
            return QuoteOutcome.failed(source, pair, str(e) or type(e).__name__)

        return QuoteOutcome.ok(
            Quote(source=source, pair=pair, price=price, fetched_at=time.time())
        )
