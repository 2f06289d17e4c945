"""LedgerReconciler: Create-or-update state machine for on-chain price objects.

Per pair and per cycle exactly one transition happens:

    Unregistered --create ok--> Registered
    Unregistered --create failed--> Unregistered (retried next cycle)
    Registered --update ok--> Registered (version refreshed)
    Registered --transient failure--> Registered (unchanged)
    Registered --stale reference--> Unregistered (recreated next cycle)
    any --fatal failure--> halted (never attempted again)

The registry is only written after the chain confirms a mutation, or after
the chain reports that the stored reference is stale.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from .LedgerClient import (
    ChainError,
    FatalChainError,
    LedgerClient,
    ObjectRef,
    StaleReferenceError,
)
from .ObjectRegistry import ObjectRegistry
from .PriceAggregator import AggregationResult
from .Quote import AggregatedPrice
from .TradingPair import TradingPair

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, Enum):
    """What happened to a pair in one cycle."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED_NO_DATA = "skipped_no_data"
    RETRYING = "retrying"
    DEMOTED = "demoted"
    HALTED = "halted"
    BUSY = "busy"


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of reconciling one pair.

    :ivar pair: Trading pair.
    :ivar outcome: What happened.
    :ivar object_id: Object involved, if any.
    :ivar error_kind: ChainError kind or aggregation error, if any.
    :ivar detail: Human-readable error detail.
    """

    pair: TradingPair
    outcome: ReconcileOutcome
    object_id: str | None = None
    error_kind: str | None = None
    detail: str | None = None


class LedgerReconciler:
    """Keeps one on-chain price object per pair in sync with aggregated prices.

    :ivar registry: Pair to object reference mapping.
    :ivar ledger: Client used to submit chain mutations.
    :ivar halted: Pairs disabled after a fatal chain error.
    """

    def __init__(self, registry: ObjectRegistry, ledger: LedgerClient) -> None:
        self.registry = registry
        self.ledger = ledger
        self.halted: dict[TradingPair, str] = {}
        self._locks: dict[TradingPair, asyncio.Lock] = {}

    def _lock_for(self, pair: TradingPair) -> asyncio.Lock:
        lock = self._locks.get(pair)
        if lock is None:
            lock = self._locks[pair] = asyncio.Lock()
        return lock

    async def reconcile(
        self, pair: TradingPair, aggregation: AggregationResult
    ) -> ReconcileResult:
        """Publish this cycle's aggregated price for a pair.

        :param pair: Trading pair.
        :param aggregation: Result of aggregating this cycle's quotes.
        :returns: ReconcileResult describing the transition taken.
        """
        if pair in self.halted:
            return self._log(
                ReconcileResult(
                    pair, ReconcileOutcome.HALTED, error_kind="fatal",
                    detail=self.halted[pair],
                )
            )

        aggregated = aggregation.aggregated
        if aggregated is None:
            return self._log(
                ReconcileResult(
                    pair, ReconcileOutcome.SKIPPED_NO_DATA,
                    error_kind=aggregation.error, detail=str(aggregation.metadata),
                )
            )

        lock = self._lock_for(pair)
        if lock.locked():
            return self._log(
                ReconcileResult(
                    pair, ReconcileOutcome.BUSY,
                    detail="previous reconciliation still in flight",
                )
            )

        async with lock:
            ref = self.registry.lookup(pair)
            try:
                if ref is None:
                    result = await self._create(pair, aggregated)
                else:
                    result = await self._update(pair, ref, aggregated)
            except FatalChainError as e:
                self.halted[pair] = str(e)
                result = ReconcileResult(
                    pair, ReconcileOutcome.HALTED,
                    object_id=ref.object_id if ref else None,
                    error_kind=e.kind, detail=str(e),
                )
            except ChainError as e:
                result = ReconcileResult(
                    pair, ReconcileOutcome.RETRYING,
                    object_id=ref.object_id if ref else None,
                    error_kind=e.kind, detail=str(e),
                )
        return self._log(result)

    async def _create(
        self, pair: TradingPair, aggregated: AggregatedPrice
    ) -> ReconcileResult:
        new_ref = await self.ledger.create(pair, aggregated)
        try:
            self.registry.record(pair, new_ref)
        except (OSError, ValueError) as e:
            # The object exists on-chain but is unknown to the registry.
            raise FatalChainError(
                f"created {new_ref.object_id} but could not record it: {e}"
            ) from e
        return ReconcileResult(pair, ReconcileOutcome.CREATED, object_id=new_ref.object_id)

    async def _update(
        self, pair: TradingPair, ref: ObjectRef, aggregated: AggregatedPrice
    ) -> ReconcileResult:
        try:
            new_version = await self.ledger.update(ref, aggregated)
        except StaleReferenceError as e:
            try:
                self.registry.forget(pair)
            except OSError as write_error:
                # Entry kept; the next cycle reads the object again.
                return ReconcileResult(
                    pair, ReconcileOutcome.RETRYING,
                    object_id=ref.object_id, error_kind=e.kind,
                    detail=f"{e}; could not remove registry entry: {write_error}",
                )
            return ReconcileResult(
                pair, ReconcileOutcome.DEMOTED,
                object_id=ref.object_id, error_kind=e.kind, detail=str(e),
            )

        if new_version is not None and new_version != ref.version:
            try:
                self.registry.record(pair, ObjectRef(ref.object_id, new_version))
            except OSError as e:
                # A stale version on disk would demote the pair on the next cycle.
                raise FatalChainError(
                    f"updated {ref.object_id} to version {new_version} "
                    f"but could not record it: {e}"
                ) from e
        return ReconcileResult(pair, ReconcileOutcome.UPDATED, object_id=ref.object_id)

    @staticmethod
    def _log(result: ReconcileResult) -> ReconcileResult:
        message = f"{result.pair}: {result.outcome.value}"
        if result.object_id:
            message += f" object={result.object_id}"
        if result.error_kind:
            message += f" error={result.error_kind}"
        if result.detail:
            message += f" ({result.detail})"

        if result.outcome in (ReconcileOutcome.CREATED, ReconcileOutcome.UPDATED):
            logger.info(message)
        elif result.outcome == ReconcileOutcome.HALTED:
            logger.error(message)
        else:
            logger.warning(message)
        return result
