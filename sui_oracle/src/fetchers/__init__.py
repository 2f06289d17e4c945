"""
Price fetchers for exchange APIs.

Usage:
    from sui_oracle.src.fetchers import get_fetcher, get_available_fetchers

    # Get list of available fetchers
    available = get_available_fetchers()
    # ['binance', 'coinbase']

    # Create a fetcher instance and fetch a pair
    fetcher = get_fetcher("coinbase")
    price = await fetcher.fetch(fetcher.symbol_for(TradingPair("btc", "usd")))
"""

# Import base classes and utilities
from .base import (
    FETCHER_REGISTRY,
    BaseFetcher,
    FetcherConfigError,
    FetcherError,
    FetcherHTTPError,
    get_available_fetchers,
    get_fetcher,
    register_fetcher,
)

# Import all fetcher implementations to trigger registration
from .binance import BinanceFetcher
from .coinbase import CoinbaseFetcher

__all__ = [
    # Base classes
    "BaseFetcher",
    "FetcherError",
    "FetcherConfigError",
    "FetcherHTTPError",
    # Registry functions
    "register_fetcher",
    "get_fetcher",
    "get_available_fetchers",
    "FETCHER_REGISTRY",
    # Fetcher implementations
    "BinanceFetcher",
    "CoinbaseFetcher",
]
