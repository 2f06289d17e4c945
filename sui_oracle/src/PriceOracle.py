"""PriceOracle: Periodic fetch, aggregate and publish loop.

Architecture:
    - One cycle per fetch_period, never two cycles at the same time
    - Within a cycle every pair runs concurrently: collect quotes from all
      sources, aggregate them, reconcile the result into its on-chain object
    - A failure in one pair's pipeline never affects the other pairs
    - A fatal chain error stops the loop once the cycle has finished
"""

from __future__ import annotations

import asyncio
import logging
import time

from .fetchers import BaseFetcher
from .LedgerClient import FatalChainError, LedgerClient
from .LedgerReconciler import LedgerReconciler, ReconcileOutcome, ReconcileResult
from .ObjectRegistry import ObjectRegistry
from .PriceAggregator import PriceAggregator
from .QuoteCollector import QuoteCollector
from .TradingPair import TradingPair

logger = logging.getLogger(__name__)


class PriceOracle:
    """Main orchestrator for published price objects.

    :ivar pairs: Trading pairs to publish.
    :ivar fetch_period: Seconds between cycle starts.
    :ivar cycle_count: Number of completed cycles.
    """

    def __init__(
        self,
        pairs: list[TradingPair],
        fetchers: dict[str, BaseFetcher],
        registry: ObjectRegistry,
        ledger: LedgerClient,
        fetch_period: float = 5.0,
        fetch_timeout: float = 10.0,
        min_sources: int = 1,
    ) -> None:
        """Initialize the price oracle.

        :param pairs: Trading pairs to publish.
        :param fetchers: Dict mapping source names to fetcher instances.
        :param registry: Loaded object registry.
        :param ledger: Ledger client used for chain mutations.
        :param fetch_period: Seconds between cycle starts (minimum: 1).
        :param fetch_timeout: Timeout for each source fetch (default: 10.0).
        :param min_sources: Minimum sources required for aggregation (default: 1).
        :raises ValueError: If no pairs or no fetchers are given.
        """
        if not pairs:
            raise ValueError("At least one trading pair must be specified")
        if not fetchers:
            raise ValueError("At least one source must be specified")

        self.pairs = list(dict.fromkeys(pairs))
        self.fetch_period = max(1.0, fetch_period)
        self.ledger = ledger
        self.collector = QuoteCollector(fetchers, fetch_timeout=fetch_timeout)
        self.aggregator = PriceAggregator(min_sources=min_sources)
        self.reconciler = LedgerReconciler(registry, ledger)
        self.cycle_count = 0
        self._stop_event = asyncio.Event()

        logger.info(
            f"PriceOracle initialized: pairs={[str(p) for p in self.pairs]}, "
            f"sources={list(fetchers)}, fetch_period={self.fetch_period}s, "
            f"registered={len(registry)}"
        )

    @property
    def registry(self) -> ObjectRegistry:
        return self.reconciler.registry

    def stop(self) -> None:
        """Request the loop to stop after the in-flight cycle."""
        if not self._stop_event.is_set():
            logger.info("Stop requested, finishing current cycle")
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    async def _process_pair(self, pair: TradingPair, timestamp_ms: int) -> ReconcileResult:
        """Collect, aggregate and reconcile a single pair.

        :param pair: Trading pair.
        :param timestamp_ms: Cycle timestamp in Unix milliseconds.
        :returns: ReconcileResult for the pair.
        """
        try:
            outcomes = await self.collector.collect(pair)
            aggregation = self.aggregator.aggregate(pair, outcomes, timestamp_ms=timestamp_ms)
            if aggregation.aggregated is not None:
                logger.info(
                    f"{pair}: ${aggregation.aggregated.price:.6f} "
                    f"(mean of {aggregation.aggregated.source_count}/{len(outcomes)} sources)"
                )
            return await self.reconciler.reconcile(pair, aggregation)
        except Exception as e:
            logger.exception(f"{pair}: unexpected error during cycle")
            return ReconcileResult(
                pair, ReconcileOutcome.RETRYING, error_kind=type(e).__name__, detail=str(e)
            )

    async def run_cycle(self) -> list[ReconcileResult]:
        """Run one reconciliation pass over all pairs.

        :returns: One ReconcileResult per pair, in pair order.
        """
        self.cycle_count += 1
        timestamp_ms = int(time.time() * 1000)

        results = list(
            await asyncio.gather(
                *(self._process_pair(pair, timestamp_ms) for pair in self.pairs)
            )
        )

        summary = " ".join(f"{r.pair}={r.outcome.value}" for r in results)
        logger.info(f"cycle={self.cycle_count} {summary}")
        return results

    async def run(self) -> None:
        """Run cycles until stop() is called.

        :raises FatalChainError: If a pair hit a fatal chain error.
        """
        logger.info(f"Starting publish loop for {len(self.pairs)} pairs")
        try:
            while not self.stopping:
                started = time.monotonic()
                results = await self.run_cycle()

                halted = [r for r in results if r.outcome == ReconcileOutcome.HALTED]
                if halted:
                    details = "; ".join(f"{r.pair}: {r.detail}" for r in halted)
                    raise FatalChainError(f"Fatal chain error, stopping: {details}")

                elapsed = time.monotonic() - started
                remaining = self.fetch_period - elapsed
                if remaining <= 0:
                    logger.warning(
                        f"cycle={self.cycle_count} took {elapsed:.1f}s, longer than "
                        f"fetch period {self.fetch_period}s; starting next cycle now"
                    )
                    continue

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=remaining)
                except asyncio.TimeoutError:
                    pass
        finally:
            await BaseFetcher.close_shared_client()
            await self.ledger.close()
            logger.info(f"Publish loop stopped after {self.cycle_count} cycles")
