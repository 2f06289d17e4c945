"""TradingPair: Logical trading pair tracked by the oracle.

The lowercase ``base/quote`` form is the key used in the object registry,
while the uppercase ``BASE/QUOTE`` form is the symbol written into the
on-chain price object.

.. code-block:: python

    >>> pair = TradingPair("btc", "usd")
    >>> str(pair)
    'btc/usd'
    >>> pair.symbol
    'BTC/USD'
    >>> TradingPair.from_string("ETH/USD").pair_base
    'eth'
"""

from __future__ import annotations


class TradingPair:
    """A trading pair whose price is published on-chain.

    :ivar pair_base: Base currency symbol (lowercase).
    :ivar pair_quote: Quote currency symbol (lowercase).
    """

    def __init__(self, pair_base: str, pair_quote: str) -> None:
        """Initialize a trading pair.

        :param pair_base: Base currency symbol (e.g., "btc", "eth").
        :param pair_quote: Quote currency symbol (e.g., "usd").
        :raises ValueError: If either symbol is empty.
        """
        pair_base = pair_base.strip().lower()
        pair_quote = pair_quote.strip().lower()
        if not pair_base or not pair_quote:
            raise ValueError("Pair base and quote must be non-empty")
        self.pair_base = pair_base
        self.pair_quote = pair_quote

    def __str__(self) -> str:
        """Return the registry key for this pair."""
        return f"{self.pair_base}/{self.pair_quote}"

    def __repr__(self) -> str:
        """Return a developer-friendly string representation."""
        return f"TradingPair({self.pair_base!r}, {self.pair_quote!r})"

    def __hash__(self) -> int:
        """Return hash for use in dicts and sets."""
        return hash(str(self))

    def __eq__(self, other: object) -> bool:
        """Check equality based on string representation."""
        if not isinstance(other, TradingPair):
            return NotImplemented
        return str(self) == str(other)

    @property
    def symbol(self) -> str:
        """Symbol stored in the on-chain price object (e.g., "BTC/USD")."""
        return f"{self.pair_base.upper()}/{self.pair_quote.upper()}"

    @classmethod
    def from_string(cls, pair_str: str) -> TradingPair:
        """Parse a pair string in format "base/quote".

        :param pair_str: Pair string like "btc/usd" or "ETH/USD".
        :returns: New TradingPair instance.
        :raises ValueError: If pair string format is invalid.
        """
        parts = pair_str.lower().split("/")
        if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
            raise ValueError(
                f"Invalid pair format '{pair_str}'. Expected 'base/quote' (e.g., 'btc/usd')"
            )
        return cls(parts[0], parts[1])
