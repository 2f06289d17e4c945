"""Unit tests for QuoteCollector."""

import asyncio

from sui_oracle.src.fetchers import BaseFetcher, FetcherError
from sui_oracle.src.QuoteCollector import QuoteCollector
from sui_oracle.src.TradingPair import TradingPair

BTC = TradingPair("btc", "usd")


class StaticFetcher(BaseFetcher):
    """Fetcher that returns a fixed price, raises, or hangs."""

    name = "static"

    def __init__(self, price=None, error=None, delay=0.0, **kwargs) -> None:
        super().__init__(**kwargs)
        self.price = price
        self.error = error
        self.delay = delay
        self.requested: list[str] = []

    def default_symbol(self, pair: TradingPair) -> str:
        return f"{pair.pair_base}{pair.pair_quote}".upper()

    async def fetch(self, symbol: str) -> float:
        self.requested.append(symbol)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.price


class TestQuoteCollector:
    """Test concurrent collection."""

    def test_one_outcome_per_source_in_order(self) -> None:
        """Every source should produce exactly one outcome."""
        collector = QuoteCollector(
            {"a": StaticFetcher(price=1.0), "b": StaticFetcher(price=2.0)}
        )

        outcomes = asyncio.run(collector.collect(BTC))

        assert [o.source for o in outcomes] == ["a", "b"]
        assert [o.quote.price for o in outcomes] == [1.0, 2.0]
        assert all(o.pair == BTC for o in outcomes)

    def test_failure_is_isolated(self) -> None:
        """A failing source should not affect the others."""
        collector = QuoteCollector(
            {
                "bad": StaticFetcher(error=FetcherError("HTTP 503: unavailable")),
                "good": StaticFetcher(price=65000.0),
            }
        )

        bad, good = asyncio.run(collector.collect(BTC))

        assert not bad.success
        assert bad.error == "HTTP 503: unavailable"
        assert good.success
        assert good.quote.price == 65000.0

    def test_timeout_is_isolated(self) -> None:
        """A hanging source should time out without delaying the others."""
        collector = QuoteCollector(
            {"slow": StaticFetcher(price=1.0, delay=5.0), "fast": StaticFetcher(price=2.0)},
            fetch_timeout=0.05,
        )

        slow, fast = asyncio.run(collector.collect(BTC))

        assert slow.error == "timeout"
        assert fast.success

    def test_empty_error_message_uses_type_name(self) -> None:
        """Exceptions without a message should be reported by type."""
        collector = QuoteCollector({"a": StaticFetcher(error=RuntimeError())})

        (outcome,) = asyncio.run(collector.collect(BTC))

        assert outcome.error == "RuntimeError"

    def test_symbol_override_is_used(self) -> None:
        """Configured symbols should replace the default mapping."""
        fetcher = StaticFetcher(price=1.0, symbols={BTC: "XBTUSD"})

        asyncio.run(QuoteCollector({"a": fetcher}).collect(BTC))

        assert fetcher.requested == ["XBTUSD"]

    def test_no_sources(self) -> None:
        """No fetchers should give no outcomes."""
        assert asyncio.run(QuoteCollector({}).collect(BTC)) == []
