"""Unit tests for LedgerReconciler."""

import asyncio

from sui_oracle.src.LedgerClient import (
    FatalChainError,
    ObjectRef,
    StaleReferenceError,
    TransientChainError,
)
from sui_oracle.src.LedgerReconciler import LedgerReconciler, ReconcileOutcome
from sui_oracle.src.ObjectRegistry import ObjectRegistry
from sui_oracle.src.PriceAggregator import PriceAggregator
from sui_oracle.src.Quote import Quote, QuoteOutcome
from sui_oracle.src.TradingPair import TradingPair

BTC = TradingPair("btc", "usd")
ETH = TradingPair("eth", "usd")
TS = 1_700_000_000_000


def aggregate(pair: TradingPair, *prices: float):
    outcomes = [
        QuoteOutcome.ok(Quote(source=f"s{i}", pair=pair, price=p, fetched_at=0.0))
        for i, p in enumerate(prices)
    ]
    return PriceAggregator().aggregate(pair, outcomes, timestamp_ms=TS)


def gap(pair: TradingPair):
    outcomes = [
        QuoteOutcome.failed("binance", pair, "timeout"),
        QuoteOutcome.failed("coinbase", pair, "HTTP 503"),
    ]
    return PriceAggregator().aggregate(pair, outcomes, timestamp_ms=TS)


class TestReconcilerCreate:
    """Test the Unregistered -> Registered transition."""

    def test_absent_entry_creates_once(self, fake_ledger, registry_path) -> None:
        """No registry entry should trigger exactly one create and no update."""
        registry = ObjectRegistry(registry_path)
        reconciler = LedgerReconciler(registry, fake_ledger)

        result = asyncio.run(reconciler.reconcile(BTC, aggregate(BTC, 65000.0, 65000.0)))

        assert result.outcome == ReconcileOutcome.CREATED
        assert len(fake_ledger.create_calls) == 1
        assert fake_ledger.update_calls == []
        pair, aggregated = fake_ledger.create_calls[0]
        assert pair == BTC
        assert aggregated.price == 65000.0
        assert registry.lookup(BTC) == ObjectRef(result.object_id, 1)

    def test_created_entry_survives_restart(self, fake_ledger, registry_path) -> None:
        """After a create, a reloaded registry should lead to an update."""
        reconciler = LedgerReconciler(ObjectRegistry(registry_path), fake_ledger)
        asyncio.run(reconciler.reconcile(BTC, aggregate(BTC, 100.0)))

        restarted = LedgerReconciler(ObjectRegistry.load(registry_path), fake_ledger)
        result = asyncio.run(restarted.reconcile(BTC, aggregate(BTC, 101.0)))

        assert result.outcome == ReconcileOutcome.UPDATED
        assert len(fake_ledger.create_calls) == 1
        assert len(fake_ledger.update_calls) == 1

    def test_failed_create_leaves_no_entry(self, fake_ledger, registry_path) -> None:
        """A failed create should not write the registry and should retry next cycle."""
        registry = ObjectRegistry(registry_path)
        reconciler = LedgerReconciler(registry, fake_ledger)
        fake_ledger.create_errors.append(TransientChainError("timeout"))

        first = asyncio.run(reconciler.reconcile(BTC, aggregate(BTC, 100.0)))
        assert first.outcome == ReconcileOutcome.RETRYING
        assert first.error_kind == "transient"
        assert registry.lookup(BTC) is None
        assert not registry_path.exists()

        second = asyncio.run(reconciler.reconcile(BTC, aggregate(BTC, 100.0)))
        assert second.outcome == ReconcileOutcome.CREATED
        assert len(fake_ledger.create_calls) == 2
        assert fake_ledger.update_calls == []


class TestReconcilerUpdate:
    """Test the Registered -> Registered transition."""

    def test_present_entry_updates_once(self, fake_ledger, registry_path) -> None:
        """A registry entry should trigger exactly one update and no create."""
        registry = ObjectRegistry(registry_path)
        ref = ObjectRef("0x" + "a" * 64, 3)
        registry.record(BTC, ref)
        reconciler = LedgerReconciler(registry, fake_ledger)

        result = asyncio.run(reconciler.reconcile(BTC, aggregate(BTC, 100.0)))

        assert result.outcome == ReconcileOutcome.UPDATED
        assert fake_ledger.create_calls == []
        assert [r for r, _ in fake_ledger.update_calls] == [ref]

    def test_new_version_is_recorded(self, fake_ledger, registry_path) -> None:
        """A version returned by the chain should refresh the entry."""
        registry = ObjectRegistry(registry_path)
        registry.record(BTC, ObjectRef("0x" + "a" * 64, 3))
        fake_ledger.next_version = 4

        asyncio.run(LedgerReconciler(registry, fake_ledger).reconcile(BTC, aggregate(BTC, 1.0)))

        assert registry.lookup(BTC) == ObjectRef("0x" + "a" * 64, 4)
        assert ObjectRegistry.load(registry_path).lookup(BTC).version == 4

    def test_no_version_leaves_registry_untouched(self, fake_ledger, registry_path) -> None:
        """Without a new version the registry file should not change."""
        registry = ObjectRegistry(registry_path)
        registry.record(BTC, ObjectRef("0x" + "a" * 64, 3))
        before = registry_path.read_bytes()

        asyncio.run(LedgerReconciler(registry, fake_ledger).reconcile(BTC, aggregate(BTC, 1.0)))

        assert registry_path.read_bytes() == before

    def test_transient_failure_keeps_entry_identical(self, fake_ledger, registry_path) -> None:
        """A transient update failure should leave the entry byte-identical."""
        registry = ObjectRegistry(registry_path)
        ref = ObjectRef("0x" + "a" * 64, 3)
        registry.record(BTC, ref)
        before = registry_path.read_bytes()
        fake_ledger.update_errors.append(TransientChainError("HTTP 429"))
        reconciler = LedgerReconciler(registry, fake_ledger)

        result = asyncio.run(reconciler.reconcile(BTC, aggregate(BTC, 100.0)))

        assert result.outcome == ReconcileOutcome.RETRYING
        assert registry.lookup(BTC) == ref
        assert registry_path.read_bytes() == before

        # The next cycle retries the update with the fresh price
        asyncio.run(reconciler.reconcile(BTC, aggregate(BTC, 105.0)))
        assert [a.price for _, a in fake_ledger.update_calls] == [100.0, 105.0]
        assert fake_ledger.create_calls == []

    def test_stale_reference_demotes_only_that_pair(self, fake_ledger, registry_path) -> None:
        """A stale reference should clear exactly that pair's entry."""
        registry = ObjectRegistry(registry_path)
        registry.record(BTC, ObjectRef("0x" + "a" * 64, 3))
        eth_ref = ObjectRef("0x" + "b" * 64, 9)
        registry.record(ETH, eth_ref)
        fake_ledger.update_errors.append(StaleReferenceError("version mismatch"))
        reconciler = LedgerReconciler(registry, fake_ledger)

        result = asyncio.run(reconciler.reconcile(BTC, aggregate(BTC, 100.0)))

        assert result.outcome == ReconcileOutcome.DEMOTED
        assert result.error_kind == "stale_reference"
        assert registry.lookup(BTC) is None
        assert registry.lookup(ETH) == eth_ref

    def test_stale_reference_recreates_next_cycle(self, fake_ledger, registry_path) -> None:
        """BTC at v3 going stale should be recreated on the next cycle."""
        registry = ObjectRegistry(registry_path)
        registry.record(BTC, ObjectRef("0x" + "a" * 64, 3))
        fake_ledger.update_errors.append(StaleReferenceError("deleted"))
        reconciler = LedgerReconciler(registry, fake_ledger)

        asyncio.run(reconciler.reconcile(BTC, aggregate(BTC, 100.0)))
        assert ObjectRegistry.load(registry_path).lookup(BTC) is None

        result = asyncio.run(reconciler.reconcile(BTC, aggregate(BTC, 100.0)))
        assert result.outcome == ReconcileOutcome.CREATED
        assert len(fake_ledger.create_calls) == 1
        assert registry.lookup(BTC).object_id != "0x" + "a" * 64

    def test_failed_demotion_write_keeps_entry(self, fake_ledger, registry_path, monkeypatch) -> None:
        """If the stale entry cannot be removed, the pair retries with the stale error kind."""
        registry = ObjectRegistry(registry_path)
        ref = ObjectRef("0x" + "a" * 64, 3)
        registry.record(BTC, ref)
        fake_ledger.update_errors.append(StaleReferenceError("deleted"))

        def failing_forget(pair):
            raise OSError("read-only file system")

        monkeypatch.setattr(registry, "forget", failing_forget)
        result = asyncio.run(LedgerReconciler(registry, fake_ledger).reconcile(BTC, aggregate(BTC, 1.0)))

        assert result.outcome == ReconcileOutcome.RETRYING
        assert result.error_kind == "stale_reference"
        assert "read-only file system" in result.detail
        assert BTC in registry
        assert registry.lookup(BTC) == ref
        assert fake_ledger.create_calls == []


class TestReconcilerSkipAndHalt:
    """Test gaps, fatal errors and overlapping calls."""

    def test_gap_makes_no_chain_calls(self, fake_ledger, registry_path) -> None:
        """An aggregation gap should skip the pair entirely."""
        registry = ObjectRegistry(registry_path)
        reconciler = LedgerReconciler(registry, fake_ledger)

        result = asyncio.run(reconciler.reconcile(ETH, gap(ETH)))

        assert result.outcome == ReconcileOutcome.SKIPPED_NO_DATA
        assert result.error_kind == "no_data"
        assert fake_ledger.create_calls == []
        assert fake_ledger.update_calls == []
        assert not registry_path.exists()

    def test_fatal_error_halts_pair(self, fake_ledger, registry_path) -> None:
        """A fatal error should stop further attempts for the pair."""
        registry = ObjectRegistry(registry_path)
        reconciler = LedgerReconciler(registry, fake_ledger)
        fake_ledger.create_errors.append(FatalChainError("Package object does not exist"))

        first = asyncio.run(reconciler.reconcile(BTC, aggregate(BTC, 100.0)))
        second = asyncio.run(reconciler.reconcile(BTC, aggregate(BTC, 100.0)))

        assert first.outcome == ReconcileOutcome.HALTED
        assert first.error_kind == "fatal"
        assert second.outcome == ReconcileOutcome.HALTED
        assert len(fake_ledger.create_calls) == 1
        assert registry.lookup(BTC) is None

    def test_fatal_error_does_not_affect_other_pairs(self, fake_ledger, registry_path) -> None:
        """Halting one pair should leave the others working."""
        reconciler = LedgerReconciler(ObjectRegistry(registry_path), fake_ledger)
        fake_ledger.create_errors.append(FatalChainError("Invalid user signature"))

        asyncio.run(reconciler.reconcile(BTC, aggregate(BTC, 100.0)))
        result = asyncio.run(reconciler.reconcile(ETH, aggregate(ETH, 3000.0)))

        assert result.outcome == ReconcileOutcome.CREATED

    def test_overlapping_reconcile_is_busy(self, registry_path) -> None:
        """A second reconcile of the same pair while one is in flight should be skipped."""

        class SlowLedger:
            def __init__(self) -> None:
                self.calls = 0
                self.release = asyncio.Event()

            async def create(self, pair, aggregated):
                self.calls += 1
                await self.release.wait()
                return ObjectRef("0x" + "d" * 64, 1)

        async def scenario():
            ledger = SlowLedger()
            reconciler = LedgerReconciler(ObjectRegistry(registry_path), ledger)
            first = asyncio.create_task(reconciler.reconcile(BTC, aggregate(BTC, 1.0)))
            await asyncio.sleep(0)
            second = await reconciler.reconcile(BTC, aggregate(BTC, 1.0))
            ledger.release.set()
            return await first, second, ledger.calls

        first, second, calls = asyncio.run(scenario())

        assert first.outcome == ReconcileOutcome.CREATED
        assert second.outcome == ReconcileOutcome.BUSY
        assert calls == 1
