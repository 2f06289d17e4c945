"""PriceAggregator: Mean aggregation over the quotes fetched in one cycle.

Algorithm:
    1. Drop failed outcomes and non-positive or non-finite prices
    2. Return a ``no_data`` gap if nothing remains
    3. Return ``insufficient_sources`` if fewer than min_sources remain
    4. Return the arithmetic mean of the remaining prices

.. code-block:: python

    >>> aggregator = PriceAggregator()
    >>> result = aggregator.aggregate(pair, outcomes, timestamp_ms=1700000000000)
    >>> result.success
    True
    >>> result.aggregated.price
    65000.0
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from statistics import fmean
from typing import TypedDict

from .Quote import AggregatedPrice, QuoteOutcome
from .TradingPair import TradingPair

NO_DATA = "no_data"
INSUFFICIENT_SOURCES = "insufficient_sources"


class AggregationError(TypedDict, total=False):
    """Error information when aggregation fails.

    :ivar error: Error type identifier.
    :ivar available: Number of valid sources available.
    :ivar failed: Dict of failed sources and their reasons.
    """

    error: str
    available: int
    failed: dict[str, str]


class AggregationMetadata(TypedDict, total=False):
    """Metadata about a successful aggregation.

    :ivar sources: List of sources used in the mean.
    :ivar failed: Dict of failed sources and their reasons.
    :ivar count: Number of sources used.
    """

    sources: list[str]
    failed: dict[str, str]
    count: int


@dataclass
class AggregationResult:
    """Result of price aggregation.

    :ivar aggregated: Aggregated price, or None if there was no usable data.
    :ivar metadata: Additional information about the aggregation.
    """

    aggregated: AggregatedPrice | None
    metadata: AggregationMetadata | AggregationError

    @property
    def success(self) -> bool:
        """Check if aggregation was successful."""
        return self.aggregated is not None

    @property
    def error(self) -> str | None:
        """Get error type if aggregation failed."""
        if self.aggregated is None:
            return self.metadata.get("error")
        return None


class PriceAggregator:
    """Aggregates per-source quotes into a single mean price.

    :ivar min_sources: Minimum sources required for valid aggregation.
    """

    def __init__(self, min_sources: int = 1) -> None:
        """Initialize the aggregator.

        :param min_sources: Minimum number of valid quotes required.
        :raises ValueError: If min_sources is less than 1.
        """
        if min_sources < 1:
            raise ValueError("min_sources must be at least 1")
        self.min_sources = min_sources

    def aggregate(
        self,
        pair: TradingPair,
        outcomes: list[QuoteOutcome],
        *,
        timestamp_ms: int,
    ) -> AggregationResult:
        """Aggregate the quotes of one cycle for a pair.

        :param pair: Trading pair being aggregated.
        :param outcomes: Per-source fetch outcomes for this cycle.
        :param timestamp_ms: Cycle timestamp in Unix milliseconds.
        :returns: AggregationResult with the aggregated price or error info.
        """
        valid: dict[str, float] = {}
        failed: dict[str, str] = {}

        for outcome in outcomes:
            if outcome.pair != pair:
                continue
            if outcome.quote is None:
                failed[outcome.source] = outcome.error or "unknown error"
                continue
            price = outcome.quote.price
            if not math.isfinite(price) or price <= 0:
                failed[outcome.source] = f"invalid price {price!r}"
                continue
            valid[outcome.source] = price

        if not valid:
            return AggregationResult(
                aggregated=None,
                metadata={"error": NO_DATA, "available": 0, "failed": failed},
            )

        if len(valid) < self.min_sources:
            return AggregationResult(
                aggregated=None,
                metadata={
                    "error": INSUFFICIENT_SOURCES,
                    "available": len(valid),
                    "failed": failed,
                },
            )

        return AggregationResult(
            aggregated=AggregatedPrice(
                pair=pair,
                price=fmean(valid.values()),
                source_count=len(valid),
                timestamp_ms=timestamp_ms,
            ),
            metadata={
                "sources": list(valid.keys()),
                "failed": failed,
                "count": len(valid),
            },
        )
