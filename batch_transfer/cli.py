"""
Batch Transfer CLI

Non-interactive process wrapper around the engine:
    python -m batch_transfer --network Base --amount 0.01 \
        --sources sources.txt --destinations addresses.json

Exit status: 1 on a fatal setup error (bad config or input, count
mismatch, no reachable RPC), 0 once a run completed.
"""

import argparse
import asyncio
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv
from loguru import logger
from web3 import Web3

from .batch_runner import BatchRunner
from .config import DEFAULT_CONFIG_PATH, load_transfer_parameters, request_timeout_from_config
from .endpoint_selector import EndpointSelector
from .errors import BatchTransferError
from .events import OutcomeEvent, RetryEvent, RunCompleted, RunEvent, RunStarted
from .input_loader import load_destinations, load_sources, pair_records, shorten_address
from .network_config import load_networks, select_network
from .transfer_engine import OutcomeStatus


LOG_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"

STATUS_ICONS = {
    OutcomeStatus.SENT: "✅",
    OutcomeStatus.SKIPPED_LOW_BALANCE: "⚠️ ",
    OutcomeStatus.SKIPPED_INSUFFICIENT_FUNDS: "❌",
    OutcomeStatus.FAILED: "❌",
}


def configure_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Replace loguru's default sink with a leveled stderr sink (+ optional file)"""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
    if log_file:
        logger.add(log_file, level="DEBUG", rotation="10 MB", retention=5, encoding="utf-8")


class ConsoleReporter:
    """Prints one line per outcome and the final summary to stdout"""

    def __init__(self, symbol: str = ""):
        self.symbol = symbol

    def __call__(self, event: RunEvent):
        if isinstance(event, RunStarted):
            self.symbol = event.network.symbol
            print(f"🌐 {event.network.label} via {event.endpoint_url}: {event.total} transfers")
        elif isinstance(event, RetryEvent):
            print(f"   🔄 Retry {event.attempt}/{event.max_attempts} ({event.reason})")
        elif isinstance(event, OutcomeEvent):
            print(self.format_outcome(event))
        elif isinstance(event, RunCompleted):
            print("\n" + event.summary.format_report())

    def format_outcome(self, event: OutcomeEvent) -> str:
        outcome = event.outcome
        icon = STATUS_ICONS.get(outcome.status, "•")
        prefix = f"{icon} [{event.index}/{event.total}] {shorten_address(outcome.source_address)}"

        if outcome.status is OutcomeStatus.SENT:
            return f"{prefix} sent to {outcome.destination} ({outcome.tx_hash})"

        if outcome.balance_wei is not None and outcome.skipped:
            balance = Web3.from_wei(outcome.balance_wei, 'ether')
            return f"{prefix} {outcome.reason}: {balance} {self.symbol}"

        return f"{prefix} failed: {outcome.reason}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="batch-transfer",
        description="Send a fixed native-currency amount from many wallets to paired destinations"
    )
    parser.add_argument("--config", default=os.getenv("BATCH_TRANSFER_CONFIG", DEFAULT_CONFIG_PATH),
                        help="YAML/JSON file with networks and transfer settings")
    parser.add_argument("--network", required=True, help="Network name, symbol or chain id")
    parser.add_argument("--amount", required=True, help="Amount per wallet in display units, e.g. 0.01")
    parser.add_argument("--sources", default="sources.txt", help="Private keys, one per line")
    parser.add_argument("--destinations", default="addresses.json",
                        help='JSON array of {"address": ...} objects')
    parser.add_argument("--min-balance", default=None, help="Skip wallets below this balance")
    parser.add_argument("--max-attempts", type=int, default=None)
    parser.add_argument("--delay", type=float, default=None, dest="inter_item_delay_seconds",
                        help="Seconds to wait between wallets")
    parser.add_argument("--log-level", default=os.getenv("BATCH_TRANSFER_LOG_LEVEL", "INFO"))
    parser.add_argument("--log-file", default=os.getenv("BATCH_TRANSFER_LOG_FILE"))
    return parser


async def run_from_args(args: argparse.Namespace) -> int:
    networks = load_networks(args.config)
    chain = select_network(networks, args.network)
    logger.info(f"🌐 Selected: {chain.label}")

    destinations = load_destinations(args.destinations)
    sources = load_sources(args.sources)
    records = pair_records(sources, destinations)

    params = load_transfer_parameters(
        args.config,
        args.amount,
        min_balance=args.min_balance,
        max_attempts=args.max_attempts,
        inter_item_delay_seconds=args.inter_item_delay_seconds,
    )

    runner = BatchRunner(selector=EndpointSelector(request_timeout_from_config(args.config)))
    runner.subscribe(ConsoleReporter(chain.symbol))
    await runner.run(records, chain, params)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    try:
        return asyncio.run(run_from_args(args))
    except BatchTransferError as e:
        logger.error(f"🔥 Fatal error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
