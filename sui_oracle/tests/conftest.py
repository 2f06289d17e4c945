"""Shared fixtures for the oracle tests."""

from __future__ import annotations

import pytest

from sui_oracle.src.LedgerClient import ChainError, LedgerClient, ObjectRef
from sui_oracle.src.Quote import AggregatedPrice
from sui_oracle.src.TradingPair import TradingPair


class FakeLedger(LedgerClient):
    """In-memory ledger that records calls and can be told to fail."""

    def __init__(self) -> None:
        self.create_calls: list[tuple[TradingPair, AggregatedPrice]] = []
        self.update_calls: list[tuple[ObjectRef, AggregatedPrice]] = []
        self.create_errors: list[ChainError] = []
        self.update_errors: list[ChainError] = []
        self.next_version: int | None = None
        self.closed = False
        self._counter = 0

    async def create(self, pair: TradingPair, aggregated: AggregatedPrice) -> ObjectRef:
        self.create_calls.append((pair, aggregated))
        if self.create_errors:
            raise self.create_errors.pop(0)
        self._counter += 1
        return ObjectRef(object_id=f"0x{self._counter:064x}", version=1)

    async def update(self, ref: ObjectRef, aggregated: AggregatedPrice) -> int | None:
        self.update_calls.append((ref, aggregated))
        if self.update_errors:
            raise self.update_errors.pop(0)
        return self.next_version

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def registry_path(tmp_path):
    return tmp_path / "known_price_objects.json"
