"""
Batch Runner Tests.

Sequential execution, rate-limit delay, summary accounting and event
publication.
"""

import pytest
from web3 import Web3

from batch_transfer.batch_runner import BatchRunner, RunSummary
from batch_transfer.endpoint_selector import Connection
from batch_transfer.errors import NoReachableEndpoint
from batch_transfer.events import OutcomeEvent, RetryEvent, RunCompleted, RunStarted
from batch_transfer.input_loader import TransferRecord
from batch_transfer.transfer_engine import AccountTransferExecutor, OutcomeStatus, TransferOutcome

from conftest import FakeEth, FakeWeb3, RecordingSleep, address_of, make_key


class FakeSelector:
    def __init__(self, w3=None, error=None):
        self.w3 = w3 or FakeWeb3()
        self.error = error
        self.calls = []

    async def select(self, candidates):
        self.calls.append(tuple(candidates))
        if self.error is not None:
            raise self.error
        return Connection(url=candidates[0], w3=self.w3, block_number=1)


def make_records(count, offset=0):
    return [
        TransferRecord(private_key=make_key(offset + i + 1), destination=address_of(make_key(5000 + i)))
        for i in range(count)
    ]


def build_runner(eth, sleep=None):
    sleep = sleep or RecordingSleep()
    w3 = FakeWeb3(eth)
    runner = BatchRunner(
        selector=FakeSelector(w3),
        executor=AccountTransferExecutor(sleep=sleep),
        sleep=sleep,
    )
    return runner, w3, sleep


class TestRunSummary:

    def test_empty_run_rate_is_zero(self):
        summary = RunSummary()

        assert summary.processed == 0
        assert summary.success_rate == 0.0
        assert "0.0%" in summary.format_report()

    def test_rate_rounded_to_one_decimal(self):
        summary = RunSummary(processed=3, succeeded=1, failed=2)

        assert summary.success_rate == 33.3
        assert summary.failed_or_skipped == 2

    def test_record_counts_each_status(self):
        summary = RunSummary()
        for status in OutcomeStatus:
            summary.record(TransferOutcome(status=status, source_address=None, destination="0x0"))

        assert summary.to_dict() == {
            'processed': 4,
            'succeeded': 1,
            'skipped_low_balance': 1,
            'skipped_insufficient_funds': 1,
            'failed': 1,
            'failed_or_skipped': 3,
            'success_rate': 25.0,
        }


class TestBatchRunner:

    @pytest.mark.asyncio
    async def test_sample_scenario(self, chain, params):
        records = make_records(3)
        eth = FakeEth(balances={
            address_of(records[0].private_key): 0,
            address_of(records[1].private_key): Web3.to_wei("0.005", 'ether'),
            address_of(records[2].private_key): Web3.to_wei("1.0", 'ether'),
        })
        runner, _, _ = build_runner(eth)
        outcomes = []
        runner.subscribe(lambda e: outcomes.append(e.outcome) if isinstance(e, OutcomeEvent) else None)

        summary = await runner.run(records, chain, params)

        assert [o.status for o in outcomes] == [
            OutcomeStatus.SKIPPED_LOW_BALANCE,
            OutcomeStatus.SKIPPED_INSUFFICIENT_FUNDS,
            OutcomeStatus.SENT,
        ]
        assert summary.processed == 3
        assert summary.succeeded == 1
        assert summary.failed_or_skipped == 2
        assert summary.success_rate == 33.3
        assert summary.succeeded + summary.failed_or_skipped == summary.processed

    @pytest.mark.asyncio
    async def test_zero_records(self, chain, params):
        runner, _, sleep = build_runner(FakeEth())

        summary = await runner.run([], chain, params)

        assert summary.processed == 0
        assert summary.success_rate == 0.0
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_delay_after_every_record(self, chain, params):
        records = make_records(3)
        eth = FakeEth(balances={address_of(r.private_key): Web3.to_wei(1, 'ether') for r in records})
        eth.send_script = [ValueError("boom")] * 3  # first record fails all attempts
        runner, _, sleep = build_runner(eth)

        await runner.run(records, chain, params)

        inter_item = [d for d in sleep.delays if d == params.inter_item_delay_seconds]
        assert len(inter_item) == 3
        assert sleep.delays == [2.0, 4.0, 1.5, 1.5, 1.5]

    @pytest.mark.asyncio
    async def test_outcomes_follow_input_order(self, chain, params):
        records = make_records(4)
        eth = FakeEth(balances={address_of(r.private_key): Web3.to_wei(1, 'ether') for r in records})
        runner, _, _ = build_runner(eth)
        events = []
        runner.subscribe(events.append)

        await runner.run(records, chain, params)

        outcome_events = [e for e in events if isinstance(e, OutcomeEvent)]
        assert [e.index for e in outcome_events] == [1, 2, 3, 4]
        assert [e.outcome.destination for e in outcome_events] == [r.destination for r in records]
        assert all(e.total == 4 for e in outcome_events)
        assert isinstance(events[0], RunStarted)
        assert isinstance(events[-1], RunCompleted)
        assert events[-1].summary.succeeded == 4

    @pytest.mark.asyncio
    async def test_retry_events_carry_record_index(self, chain, params):
        records = make_records(2)
        eth = FakeEth(balances={address_of(r.private_key): Web3.to_wei(1, 'ether') for r in records})
        eth.send_script = [Web3.keccak(text="first"), ValueError("underpriced")]
        runner, _, _ = build_runner(eth)
        retries = []
        runner.subscribe(lambda e: retries.append(e) if isinstance(e, RetryEvent) else None)

        await runner.run(records, chain, params)

        assert len(retries) == 1
        assert retries[0].index == 2
        assert retries[0].reason == "underpriced"

    @pytest.mark.asyncio
    async def test_credentials_discarded_after_run(self, chain, params):
        records = make_records(2)
        runner, _, _ = build_runner(FakeEth())

        await runner.run(records, chain, params)

        assert all(r.is_discarded for r in records)
        assert all(r.destination for r in records)

    @pytest.mark.asyncio
    async def test_connection_resolved_once_and_closed(self, chain, params):
        records = make_records(3)
        runner, w3, _ = build_runner(FakeEth())

        await runner.run(records, chain, params)

        assert runner.selector.calls == [chain.rpc]
        assert w3.provider.disconnected

    @pytest.mark.asyncio
    async def test_no_reachable_endpoint_processes_nothing(self, chain, params):
        records = make_records(2)
        sleep = RecordingSleep()
        runner = BatchRunner(
            selector=FakeSelector(error=NoReachableEndpoint([("http://a.invalid", "refused")])),
            sleep=sleep,
        )
        events = []
        runner.subscribe(events.append)

        with pytest.raises(NoReachableEndpoint):
            await runner.run(records, chain, params)

        assert events == []
        assert sleep.delays == []
        assert not any(r.is_discarded for r in records)

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_abort_run(self, chain, params):
        records = make_records(2)
        runner, _, _ = build_runner(FakeEth())

        def broken(event):
            raise RuntimeError("display crashed")

        runner.subscribe(broken)
        seen = []
        runner.subscribe(seen.append)

        summary = await runner.run(records, chain, params)

        assert summary.processed == 2
        assert len([e for e in seen if isinstance(e, OutcomeEvent)]) == 2

    @pytest.mark.asyncio
    async def test_executor_exception_isolated_to_record(self, chain, params):
        class ExplodingExecutor:
            def __init__(self):
                self.calls = 0

            async def execute(self, conn, chain, record, params, on_retry=None):
                self.calls += 1
                if self.calls == 1:
                    raise RuntimeError("unexpected")
                return TransferOutcome(
                    status=OutcomeStatus.SENT,
                    source_address=None,
                    destination=record.destination,
                    tx_hash="0xabc",
                )

        sleep = RecordingSleep()
        runner = BatchRunner(selector=FakeSelector(), executor=ExplodingExecutor(), sleep=sleep)

        summary = await runner.run(make_records(2), chain, params)

        assert summary.processed == 2
        assert summary.failed == 1
        assert summary.succeeded == 1
        assert sleep.delays == [1.5, 1.5]

    def test_unsubscribe(self):
        runner = BatchRunner(selector=FakeSelector(), sleep=RecordingSleep())
        listener = runner.subscribe(lambda e: None)

        runner.unsubscribe(listener)
        runner.unsubscribe(listener)

        assert runner._listeners == []
