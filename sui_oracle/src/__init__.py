"""
Sui Price Oracle - Publish Module

This module publishes exchange prices to on-chain Sui price objects:
- TradingPair: Trading pair identifier used as the registry key
- PriceAggregator: Mean of the quotes fetched in one cycle
- QuoteCollector: Concurrent per-source fetching with timeouts
- ObjectRegistry: Persistent pair -> on-chain object mapping
- LedgerReconciler: Create-or-update state machine per pair
- SuiLedgerClient: Sui JSON-RPC transaction submission
- PriceOracle: Main orchestrator for the publish loop
- fetchers: Exchange price fetcher implementations
"""

from .LedgerClient import (
    NUM_DECIMALS,
    ChainError,
    FatalChainError,
    LedgerClient,
    ObjectRef,
    StaleReferenceError,
    TransientChainError,
    scale_price,
)
from .LedgerReconciler import LedgerReconciler, ReconcileOutcome, ReconcileResult
from .ObjectRegistry import ObjectRegistry, RegistryCorruptionError
from .PriceAggregator import AggregationResult, PriceAggregator
from .PriceOracle import PriceOracle
from .Quote import AggregatedPrice, Quote, QuoteOutcome
from .QuoteCollector import QuoteCollector
from .SuiLedgerClient import SuiLedgerClient
from .SuiSigner import SuiSigner
from .TradingPair import TradingPair

__all__ = [
    "AggregatedPrice",
    "AggregationResult",
    "ChainError",
    "FatalChainError",
    "LedgerClient",
    "LedgerReconciler",
    "NUM_DECIMALS",
    "ObjectRef",
    "ObjectRegistry",
    "PriceAggregator",
    "PriceOracle",
    "Quote",
    "QuoteCollector",
    "QuoteOutcome",
    "ReconcileOutcome",
    "ReconcileResult",
    "RegistryCorruptionError",
    "StaleReferenceError",
    "SuiLedgerClient",
    "SuiSigner",
    "TradingPair",
    "TransientChainError",
    "scale_price",
]
