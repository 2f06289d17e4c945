#!/usr/bin/env python3
"""Sui Price Oracle.

Fetches cryptocurrency prices from several exchanges, computes their mean
and publishes the result to one on-chain PriceObject per pair on Sui.

Object ids of created PriceObjects are kept in a local registry file so each
pair's object is created only once.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys

from .src.fetchers import BaseFetcher, get_available_fetchers, get_fetcher
from .src.LedgerClient import NUM_DECIMALS, FatalChainError
from .src.ObjectRegistry import DEFAULT_REGISTRY_PATH, ObjectRegistry, RegistryCorruptionError
from .src.PriceOracle import PriceOracle
from .src.SuiLedgerClient import (
    DEFAULT_GAS_BUDGET,
    DEFAULT_MODULE_NAME,
    NETWORK_RPC_URLS,
    SuiLedgerClient,
)
from .src.SuiSigner import SuiSigner
from .src.TradingPair import TradingPair

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_source_urls(value: str | None) -> dict[str, str]:
    """Parse comma-separated source endpoint overrides.

    Format: source1=url1,source2=url2
    Example: binance=https://api.binance.us/api/v3

    :param value: Comma-separated override string.
    :returns: Dict mapping source names to base URLs.
    """
    if not value:
        return {}

    urls = {}
    for item in value.split(","):
        item = item.strip()
        if "=" in item:
            source, url = item.split("=", 1)
            urls[source.strip().lower()] = url.strip()
    return urls


def parse_symbol_overrides(value: str | None) -> dict[str, dict[TradingPair, str]]:
    """Parse per-source exchange symbol overrides.

    Format: source:base/quote=SYMBOL,...
    Example: binance:btc/usd=BTCUSDC,coinbase:eth/usd=ETH-USD

    :param value: Comma-separated override string.
    :returns: Dict mapping source names to {pair: symbol}.
    :raises ValueError: If an entry is malformed.
    """
    if not value:
        return {}

    overrides: dict[str, dict[TradingPair, str]] = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        if ":" not in item or "=" not in item:
            raise ValueError(f"Invalid symbol override '{item}'. Expected source:base/quote=SYMBOL")
        source, rest = item.split(":", 1)
        pair_str, symbol = rest.split("=", 1)
        if not symbol.strip():
            raise ValueError(f"Invalid symbol override '{item}'. Symbol is empty")
        pair = TradingPair.from_string(pair_str.strip())
        overrides.setdefault(source.strip().lower(), {})[pair] = symbol.strip()
    return overrides


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with environment defaults."""
    available_sources = get_available_fetchers()

    parser = argparse.ArgumentParser(
        description="Sui Price Oracle: exchange prices published as on-chain objects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available price sources:
  {', '.join(available_sources)}

Examples:
  # BTC/USD and ETH/USD on testnet
  SUI_PRIVATE_KEY=suiprivkey1... python -m sui_oracle.main \\
      --pairs btc/usd,eth/usd --package-id 0xe99f...f482

  # Custom Binance endpoint and market
  python -m sui_oracle.main --pairs btc/usd --package-id 0x... \\
      --source-urls binance=https://api.binance.us/api/v3 \\
      --symbols binance:btc/usd=BTCUSD

Environment variables (CLI args take precedence):
  PAIRS, SOURCES, MIN_SOURCES, FETCH_PERIOD, FETCH_TIMEOUT, NETWORK, RPC_URL,
  PACKAGE_ID, MODULE_NAME, GAS_BUDGET, REGISTRY_PATH, SOURCE_URLS, SYMBOLS,
  SUI_PRIVATE_KEY (environment only)
""",
    )

    parser.add_argument(
        "--pairs",
        type=str,
        help="Comma-separated trading pairs (e.g., btc/usd,eth/usd)",
        default=os.environ.get("PAIRS") or "btc/usd,eth/usd",
    )

    parser.add_argument(
        "--sources",
        type=str,
        help=f"Comma-separated price sources. Available: {', '.join(available_sources)}",
        default=os.environ.get("SOURCES") or "binance,coinbase",
    )

    parser.add_argument(
        "--min-sources",
        dest="min_sources",
        type=int,
        help="Minimum sources required for a price to be published (default: 1)",
        default=int(os.environ.get("MIN_SOURCES") or "1"),
    )

    parser.add_argument(
        "--fetch-period",
        dest="fetch_period",
        type=int,
        help="Seconds between publish cycles (minimum: 1, default: 5)",
        default=int(os.environ.get("FETCH_PERIOD") or "5"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for individual fetch requests in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "--network",
        type=str,
        help=f"Network to connect to ({', '.join(NETWORK_RPC_URLS)})",
        default=os.environ.get("NETWORK") or "testnet",
    )

    parser.add_argument(
        "--rpc-url",
        dest="rpc_url",
        type=str,
        help="Full node JSON-RPC URL (overrides --network)",
        default=os.environ.get("RPC_URL"),
    )

    parser.add_argument(
        "--package-id",
        dest="package_id",
        type=str,
        help="Id of the published price oracle Move package",
        default=os.environ.get("PACKAGE_ID"),
    )

    parser.add_argument(
        "--module-name",
        dest="module_name",
        type=str,
        help=f"Move module name (default: {DEFAULT_MODULE_NAME})",
        default=os.environ.get("MODULE_NAME") or DEFAULT_MODULE_NAME,
    )

    parser.add_argument(
        "--gas-budget",
        dest="gas_budget",
        type=int,
        help=f"Gas budget per transaction in MIST (default: {DEFAULT_GAS_BUDGET})",
        default=int(os.environ.get("GAS_BUDGET") or str(DEFAULT_GAS_BUDGET)),
    )

    parser.add_argument(
        "--registry-path",
        dest="registry_path",
        type=str,
        help=f"Path of the object registry file (default: {DEFAULT_REGISTRY_PATH})",
        default=os.environ.get("REGISTRY_PATH") or DEFAULT_REGISTRY_PATH,
    )

    parser.add_argument(
        "--source-urls",
        dest="source_urls",
        type=str,
        help="Comma-separated endpoint overrides (e.g., binance=https://...)",
        default=os.environ.get("SOURCE_URLS"),
    )

    parser.add_argument(
        "--symbols",
        type=str,
        help="Comma-separated symbol overrides (e.g., binance:btc/usd=BTCUSDT)",
        default=os.environ.get("SYMBOLS"),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser


async def run_oracle(oracle: PriceOracle) -> None:
    """Run the oracle, stopping gracefully on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, oracle.stop)
        except NotImplementedError:
            # Signal handlers are unavailable on some platforms (e.g., Windows)
            pass
    await oracle.run()


def main() -> None:
    """Main entry point for the Sui Price Oracle CLI."""
    parser = build_parser()
    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if args.fetch_period < 1:
        parser.error("--fetch-period must be at least 1 second")

    if args.min_sources < 1:
        parser.error("--min-sources must be at least 1")

    if args.gas_budget < 1:
        parser.error("--gas-budget must be positive")

    # Parse pairs and sources
    try:
        pairs = [TradingPair.from_string(p.strip()) for p in args.pairs.split(",") if p.strip()]
    except ValueError as e:
        parser.error(str(e))
    sources = [s.strip().lower() for s in args.sources.split(",") if s.strip()]

    if not pairs:
        parser.error("At least one trading pair must be specified")

    if not sources:
        parser.error("At least one source must be specified")

    # Validate sources
    available_sources = get_available_fetchers()
    invalid_sources = [s for s in sources if s not in available_sources]
    if invalid_sources:
        parser.error(
            f"Unknown sources: {invalid_sources}. "
            f"Available: {', '.join(available_sources)}"
        )

    try:
        symbol_overrides = parse_symbol_overrides(args.symbols)
    except ValueError as e:
        parser.error(str(e))
    source_urls = parse_source_urls(args.source_urls)

    # Resolve ledger settings
    rpc_url = args.rpc_url or NETWORK_RPC_URLS.get(args.network)
    if not rpc_url:
        parser.error(f"Unknown network {args.network} and no --rpc-url given")

    if not args.package_id:
        parser.error("--package-id (or PACKAGE_ID) is required")

    private_key = os.environ.get("SUI_PRIVATE_KEY")
    if not private_key:
        parser.error("SUI_PRIVATE_KEY environment variable is required")

    try:
        signer = SuiSigner(private_key)
    except ValueError as e:
        parser.error(f"Invalid SUI_PRIVATE_KEY: {e}")

    # Log configuration
    logger.info("=" * 60)
    logger.info("Sui Price Oracle")
    logger.info("=" * 60)
    logger.info(f"Network:           {args.network}")
    logger.info(f"RPC URL:           {rpc_url}")
    logger.info(f"Package:           {args.package_id}::{args.module_name}")
    logger.info(f"Publisher:         {signer.address}")
    logger.info(f"Trading Pairs:     {', '.join(str(p) for p in pairs)}")
    logger.info(f"Sources:           {', '.join(sources)}")
    logger.info(f"Min Sources:       {args.min_sources}")
    logger.info(f"Fetch Period:      {args.fetch_period}s")
    logger.info(f"Fetch Timeout:     {args.fetch_timeout}s")
    logger.info(f"Decimals:          {NUM_DECIMALS}")
    logger.info(f"Registry:          {args.registry_path}")
    logger.info("=" * 60)

    try:
        registry = ObjectRegistry.load(args.registry_path)
    except RegistryCorruptionError as e:
        logger.error(f"Refusing to start: {e}")
        sys.exit(1)

    try:
        fetchers: dict[str, BaseFetcher] = {
            source: get_fetcher(
                source,
                base_url=source_urls.get(source),
                timeout=args.fetch_timeout,
                symbols=symbol_overrides.get(source),
            )
            for source in sources
        }
        ledger = SuiLedgerClient(
            rpc_url=rpc_url,
            package_id=args.package_id,
            signer=signer,
            module_name=args.module_name,
            gas_budget=args.gas_budget,
        )
        price_oracle = PriceOracle(
            pairs=pairs,
            fetchers=fetchers,
            registry=registry,
            ledger=ledger,
            fetch_period=args.fetch_period,
            fetch_timeout=args.fetch_timeout,
            min_sources=args.min_sources,
        )
        asyncio.run(run_oracle(price_oracle))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except FatalChainError as e:
        logger.error(f"{e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
