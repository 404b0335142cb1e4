"""
Batch Runner

Sequential driver for a whole batch:
1. Resolve one RPC connection for the network
2. Execute each record in input order
3. Wait the inter-item delay after every record, whatever happened
4. Accumulate counters and publish a final summary
"""

import asyncio
from dataclasses import dataclass, asdict, replace
from typing import Dict, List, Optional, Sequence

from loguru import logger

from .config import TransferParameters
from .endpoint_selector import EndpointSelector
from .errors import short_error_message
from .events import Listener, OutcomeEvent, RetryEvent, RunCompleted, RunEvent, RunStarted
from .input_loader import TransferRecord
from .network_config import NetworkDescriptor
from .transfer_engine import AccountTransferExecutor, OutcomeStatus, Sleep, TransferOutcome


@dataclass
class RunSummary:
    """Aggregate counters for a run"""
    processed: int = 0
    succeeded: int = 0
    skipped_low_balance: int = 0
    skipped_insufficient_funds: int = 0
    failed: int = 0

    @property
    def failed_or_skipped(self) -> int:
        return self.processed - self.succeeded

    @property
    def success_rate(self) -> float:
        """Percentage of processed records that were sent, one decimal; 0.0 for an empty run"""
        if self.processed == 0:
            return 0.0
        return round(self.succeeded / self.processed * 100, 1)

    def record(self, outcome: TransferOutcome):
        self.processed += 1
        if outcome.status is OutcomeStatus.SENT:
            self.succeeded += 1
        elif outcome.status is OutcomeStatus.SKIPPED_LOW_BALANCE:
            self.skipped_low_balance += 1
        elif outcome.status is OutcomeStatus.SKIPPED_INSUFFICIENT_FUNDS:
            self.skipped_insufficient_funds += 1
        else:
            self.failed += 1

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['failed_or_skipped'] = self.failed_or_skipped
        data['success_rate'] = self.success_rate
        return data

    def format_report(self) -> str:
        return (
            "✨ Transfer summary:\n"
            f"   Processed: {self.processed} wallets\n"
            f"   Success: {self.succeeded}\n"
            f"   Failed: {self.failed_or_skipped} "
            f"(low balance {self.skipped_low_balance}, "
            f"insufficient {self.skipped_insufficient_funds}, "
            f"errors {self.failed})\n"
            f"   Success rate: {self.success_rate:.1f}%"
        )


class BatchRunner:
    """
    Strictly sequential batch execution

    Features:
    - One connection per run, reused for every record
    - Outcomes published in input order
    - Unconditional rate-limit delay between records
    - Per-record failures isolated from the batch
    """

    def __init__(
        self,
        selector: Optional[EndpointSelector] = None,
        executor: Optional[AccountTransferExecutor] = None,
        sleep: Optional[Sleep] = None
    ):
        """
        Initialize batch runner

        Args:
            selector: Endpoint selector (default: HTTP selector)
            executor: Per-account executor
            sleep: Awaitable sleep for the inter-item delay
        """
        self.selector = selector or EndpointSelector()
        self.executor = executor or AccountTransferExecutor()
        self._sleep = sleep or asyncio.sleep
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Listener:
        """Register a callable that receives every RunEvent"""
        self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _publish(self, event: RunEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Event listener {listener!r} failed on "
                               f"{type(event).__name__}: {short_error_message(e)}")

    async def _execute_isolated(
        self,
        connection,
        chain: NetworkDescriptor,
        record: TransferRecord,
        params: TransferParameters,
        index: int
    ) -> TransferOutcome:
        def on_retry(event: RetryEvent):
            self._publish(replace(event, index=index))

        try:
            return await self.executor.execute(connection, chain, record, params, on_retry=on_retry)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = short_error_message(e)
            logger.error(f"❌ Unexpected error on record {index}: {reason}")
            return TransferOutcome(
                status=OutcomeStatus.FAILED,
                source_address=None,
                destination=record.destination,
                reason=reason
            )

    async def run(
        self,
        records: Sequence[TransferRecord],
        chain: NetworkDescriptor,
        params: TransferParameters
    ) -> RunSummary:
        """
        Execute all records in order

        Raises NoReachableEndpoint before touching any record when no
        RPC endpoint answers. Nothing else escapes.

        Args:
            records: Paired (credential, destination) records
            chain: Target network
            params: Run parameters

        Returns:
            RunSummary
        """
        connection = await self.selector.select(chain.rpc)
        summary = RunSummary()
        total = len(records)

        logger.info(f"🔄 Starting {total} transfers on {chain.label}")
        self._publish(RunStarted(network=chain, endpoint_url=connection.url, total=total))

        try:
            for index, record in enumerate(records, 1):
                try:
                    logger.info(f"👛 Wallet {index}/{total} → {record.destination}")
                    outcome = await self._execute_isolated(connection, chain, record, params, index)
                    summary.record(outcome)
                    self._publish(OutcomeEvent(index=index, total=total, outcome=outcome))
                finally:
                    record.discard()
                    await self._sleep(params.inter_item_delay_seconds)
        finally:
            await connection.close()

        logger.info(summary.format_report())
        self._publish(RunCompleted(summary=summary))
        return summary
