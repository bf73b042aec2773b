#!/usr/bin/env python3
"""Price Feed Updater.

Watches new blocks and pushes the current market price to an on-chain oracle
whenever the price changed, the minimum update interval elapsed and no other
update transaction is in flight.

Configure via CLI arguments or environment variables. The signing key is
read from PRIVATE_KEY only.
"""

import argparse
import asyncio
import contextlib
import logging
import os
import signal
import sys
from decimal import Decimal

from eth_account import Account

from .src.BlockNotifier import BlockNotifier
from .src.ContractUtility import NETWORKS, ContractUtility
from .src.fetchers import BaseFetcher, get_available_fetchers, get_fetcher
from .src.Scheduler import BootstrapFailed, Scheduler
from .src.TransactionPipeline import TransactionPipeline
from .src.UpdateGate import UpdateGate
from .src.UpdateState import UpdateState
from .src.Web3LedgerClient import Web3LedgerClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser. Defaults come from environment variables."""
    available_sources = get_available_fetchers()

    parser = argparse.ArgumentParser(
        description="Price Feed Updater: block-driven on-chain oracle updates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available price sources:
  {', '.join(available_sources)}

Known networks:
  {', '.join(NETWORKS)}

Examples:
  # DOGE/USDT from Binance on Hyperion testnet
  PRIVATE_KEY=0x... python -m price_updater.main

  # Coinbase quote against a local node and a custom oracle
  PRIVATE_KEY=0x... python -m price_updater.main --network localnet \\
      --source coinbase --symbol DOGE-USD --oracle-address 0x...

Environment variables (CLI args take precedence):
  NETWORK, RPC_URL, ORACLE_ADDRESS, PRICE_SOURCE, PRICE_SYMBOL,
  MIN_UPDATE_INTERVAL, PRICE_DECIMALS, GAS_MARGIN_PERCENT, FALLBACK_GAS_LIMIT,
  BLOCK_POLL_INTERVAL, CONFIRMATION_TIMEOUT, FETCH_TIMEOUT, PRIVATE_KEY
""",
    )

    parser.add_argument(
        "--network",
        type=str,
        help="Network to connect to (known name or RPC URL, default: hyperion-testnet)",
        default=os.environ.get("NETWORK") or "hyperion-testnet",
    )

    parser.add_argument(
        "--rpc-url",
        dest="rpc_url",
        type=str,
        help="JSON-RPC endpoint overriding the network default",
        default=os.environ.get("RPC_URL"),
    )

    parser.add_argument(
        "--oracle-address",
        dest="oracle_address",
        type=str,
        help="Address of the oracle contract (default: network default)",
        default=os.environ.get("ORACLE_ADDRESS"),
    )

    parser.add_argument(
        "--source",
        type=str,
        help=f"Price source. Available: {', '.join(available_sources)}",
        default=os.environ.get("PRICE_SOURCE") or "binance",
    )

    parser.add_argument(
        "--symbol",
        type=str,
        help="Market symbol as understood by the source (default: DOGEUSDT)",
        default=os.environ.get("PRICE_SYMBOL") or "DOGEUSDT",
    )

    parser.add_argument(
        "--min-update-interval",
        dest="min_update_interval",
        type=float,
        help="Minimum seconds between on-chain updates (default: 10)",
        default=float(os.environ.get("MIN_UPDATE_INTERVAL") or "10"),
    )

    parser.add_argument(
        "--price-decimals",
        dest="price_decimals",
        type=int,
        help="Fixed-point decimals of the on-chain price (default: 8)",
        default=int(os.environ.get("PRICE_DECIMALS") or "8"),
    )

    parser.add_argument(
        "--gas-margin",
        dest="gas_margin",
        type=float,
        help="Percent added to gas estimates (default: 20)",
        default=float(os.environ.get("GAS_MARGIN_PERCENT") or "20"),
    )

    parser.add_argument(
        "--fallback-gas-limit",
        dest="fallback_gas_limit",
        type=int,
        help="Gas limit used when estimation fails (default: 300000)",
        default=int(os.environ.get("FALLBACK_GAS_LIMIT") or "300000"),
    )

    parser.add_argument(
        "--poll-interval",
        dest="poll_interval",
        type=float,
        help="Seconds between block height polls (default: 4)",
        default=float(os.environ.get("BLOCK_POLL_INTERVAL") or "4"),
    )

    parser.add_argument(
        "--confirmation-timeout",
        dest="confirmation_timeout",
        type=float,
        help="Seconds to wait for a transaction receipt (default: 120)",
        default=float(os.environ.get("CONFIRMATION_TIMEOUT") or "120"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for price requests in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser


def validate_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    """Reject out-of-range arguments via parser.error()."""
    if args.min_update_interval < 0:
        parser.error("--min-update-interval must not be negative")

    if not 0 <= args.price_decimals <= 36:
        parser.error("--price-decimals must be between 0 and 36")

    if args.gas_margin < 0:
        parser.error("--gas-margin must not be negative")

    if args.fallback_gas_limit <= 0:
        parser.error("--fallback-gas-limit must be positive")

    if args.poll_interval <= 0:
        parser.error("--poll-interval must be positive")

    if args.confirmation_timeout <= 0:
        parser.error("--confirmation-timeout must be positive")

    if args.fetch_timeout <= 0:
        parser.error("--fetch-timeout must be positive")

    args.source = args.source.strip().lower()
    if args.source not in get_available_fetchers():
        parser.error(
            f"Unknown source: {args.source}. "
            f"Available: {', '.join(get_available_fetchers())}"
        )


def build_scheduler(args: argparse.Namespace, private_key: str) -> Scheduler:
    """Wire the updater components from parsed arguments.

    :param args: Validated CLI arguments.
    :param private_key: Hex-encoded signing key.
    :returns: Ready-to-run Scheduler.
    :raises ValueError: If no oracle address is known or the key is invalid.
    """
    contract_utility = ContractUtility(args.network, rpc_url=args.rpc_url)

    oracle_address = args.oracle_address or contract_utility.default_oracle_address
    if not oracle_address:
        raise ValueError(f"No oracle address configured for network {args.network}")

    try:
        account = Account.from_key(private_key)
    except Exception as e:
        raise ValueError(f"Invalid PRIVATE_KEY: {e}") from e

    ledger = Web3LedgerClient(
        w3=contract_utility.w3,
        account=account,
        oracle_address=oracle_address,
        oracle_abi=ContractUtility.get_contract("PriceOracle"),
        price_decimals=args.price_decimals,
        confirmation_timeout=args.confirmation_timeout,
        explorer_url=contract_utility.explorer_url,
    )
    fetcher = get_fetcher(args.source, args.symbol, timeout=args.fetch_timeout)

    state = UpdateState()
    gate = UpdateGate(state, fetcher, min_update_interval=args.min_update_interval)
    pipeline = TransactionPipeline(
        ledger,
        price_decimals=args.price_decimals,
        gas_margin=Decimal(str(args.gas_margin)) / 100,
        fallback_gas_limit=args.fallback_gas_limit,
    )
    notifier = BlockNotifier(ledger.current_block_height, poll_interval=args.poll_interval)

    logger.info("=" * 60)
    logger.info("Price Feed Updater")
    logger.info("=" * 60)
    logger.info(f"Network:             {args.network}")
    logger.info(f"RPC URL:             {contract_utility.rpc_url}")
    logger.info(f"Oracle:              {oracle_address}")
    logger.info(f"Signer:              {account.address}")
    logger.info(f"Price Source:        {args.source} ({args.symbol})")
    logger.info(f"Min Update Interval: {args.min_update_interval}s")
    logger.info(f"Price Decimals:      {args.price_decimals}")
    logger.info(f"Gas Margin:          {args.gas_margin}%")
    logger.info(f"Fallback Gas Limit:  {args.fallback_gas_limit}")
    logger.info(f"Poll Interval:       {args.poll_interval}s")
    logger.info("=" * 60)

    return Scheduler(
        state=state,
        gate=gate,
        pipeline=pipeline,
        ledger=ledger,
        price_source=fetcher,
        notifier=notifier,
    )


async def run_until_stopped(scheduler: Scheduler) -> None:
    """Run the scheduler with SIGINT/SIGTERM bound to a clean stop."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows event loops; KeyboardInterrupt still applies.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, scheduler.stop)

    try:
        await scheduler.run()
    finally:
        await BaseFetcher.close_shared_client()


def main() -> None:
    """Main entry point for the Price Feed Updater CLI."""
    parser = build_parser()
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    validate_args(parser, args)

    private_key = os.environ.get("PRIVATE_KEY")
    if not private_key:
        parser.error("PRIVATE_KEY environment variable is required")

    try:
        scheduler = build_scheduler(args, private_key)
    except ValueError as e:
        parser.error(str(e))

    try:
        asyncio.run(run_until_stopped(scheduler))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except BootstrapFailed as e:
        logger.error(f"{e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
