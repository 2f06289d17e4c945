"""LedgerClient: Abstract interface for publishing price objects on-chain."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal

from .Quote import AggregatedPrice
from .TradingPair import TradingPair

# Number of decimals stored on-chain.
NUM_DECIMALS = 6


class ChainError(Exception):
    """Base exception for ledger submission failures."""

    kind = "chain"


class TransientChainError(ChainError):
    """Network, timeout, rate-limit or otherwise retryable failure."""

    kind = "transient"


class StaleReferenceError(ChainError):
    """The stored object reference no longer matches the chain.

    Raised when the object was deleted or its version moved on without us.
    """

    kind = "stale_reference"


class FatalChainError(ChainError):
    """Failure that retrying cannot fix (credentials, package id, signer)."""

    kind = "fatal"


@dataclass(frozen=True)
class ObjectRef:
    """Reference to the on-chain price object of a pair.

    :ivar object_id: Chain-assigned object identifier.
    :ivar version: Object version, or None if unknown.
    """

    object_id: str
    version: int | None = None


def scale_price(price: float, decimals: int = NUM_DECIMALS) -> int:
    """Convert a price to the on-chain fixed-point integer.

    Truncates toward zero on the shortest decimal form of the float, so the
    same float always maps to the same integer.

    :param price: Price as a float.
    :param decimals: Number of fixed-point decimals.
    :returns: Scaled integer price.
    :raises ValueError: If the price is negative or not finite.
    """
    value = Decimal(repr(price))
    if not value.is_finite() or value < 0:
        raise ValueError(f"Cannot scale price {price!r}")
    return int((value * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN))


class LedgerClient(ABC):
    """Abstract base class for ledger implementations.

    Implementations raise TransientChainError, StaleReferenceError or
    FatalChainError on failure; any other exception is a bug.
    """

    @abstractmethod
    async def create(self, pair: TradingPair, aggregated: AggregatedPrice) -> ObjectRef:
        """Create the price object for a pair.

        :param pair: Trading pair the object tracks.
        :param aggregated: Initial price.
        :returns: Reference to the newly created object.
        """
        pass

    @abstractmethod
    async def update(self, ref: ObjectRef, aggregated: AggregatedPrice) -> int | None:
        """Update an existing price object.

        :param ref: Stored reference to the object.
        :param aggregated: New price.
        :returns: New object version, or None if the chain does not report one.
        """
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass
