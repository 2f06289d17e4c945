"""Per-cycle price data passed between the fetch, aggregation and publish stages."""

from __future__ import annotations

from dataclasses import dataclass

from .TradingPair import TradingPair


@dataclass(frozen=True)
class Quote:
    """A price observed from a single source.

    :ivar source: Source name (e.g., "binance").
    :ivar pair: Trading pair the price is for.
    :ivar price: Observed price.
    :ivar fetched_at: Unix timestamp of the fetch.
    """

    source: str
    pair: TradingPair
    price: float
    fetched_at: float


@dataclass(frozen=True)
class QuoteOutcome:
    """Result of fetching one pair from one source.

    Exactly one of ``quote`` and ``error`` is set.

    :ivar source: Source name.
    :ivar pair: Trading pair that was requested.
    :ivar quote: Quote on success.
    :ivar error: Failure reason on failure.
    """

    source: str
    pair: TradingPair
    quote: Quote | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        """Check if the fetch produced a quote."""
        return self.quote is not None

    @classmethod
    def ok(cls, quote: Quote) -> QuoteOutcome:
        return cls(source=quote.source, pair=quote.pair, quote=quote)

    @classmethod
    def failed(cls, source: str, pair: TradingPair, error: str) -> QuoteOutcome:
        return cls(source=source, pair=pair, error=error)


@dataclass(frozen=True)
class AggregatedPrice:
    """Consensus price for a pair in one cycle.

    :ivar pair: Trading pair.
    :ivar price: Aggregated price.
    :ivar source_count: Number of sources that contributed.
    :ivar timestamp_ms: Cycle timestamp in Unix milliseconds.
    """

    pair: TradingPair
    price: float
    source_count: int
    timestamp_ms: int
