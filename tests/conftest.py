"""
Shared fixtures: an in-memory stand-in for the AsyncWeb3 surface the
engine uses, plus deterministic throwaway keys.
"""

from typing import Dict, List, Optional

import pytest
from eth_account import Account
from web3 import Web3
from web3.exceptions import TransactionNotFound

from batch_transfer.config import TransferParameters
from batch_transfer.endpoint_selector import Connection
from batch_transfer.input_loader import TransferRecord
from batch_transfer.network_config import NetworkDescriptor


GWEI = 10 ** 9


def make_key(n: int) -> str:
    return f"{n:064x}"


def address_of(key: str) -> str:
    return Account.from_key(key).address


def _next(script: List, default):
    """Pop the next scripted result; raise it if it is an exception"""
    result = script.pop(0) if script else default
    if isinstance(result, BaseException):
        raise result
    if isinstance(result, type) and issubclass(result, BaseException):
        raise result()
    return result


class FakeProvider:
    def __init__(self):
        self.disconnected = False

    async def disconnect(self):
        self.disconnected = True


class FakeEth:
    """Scriptable subset of AsyncEth"""

    def __init__(
        self,
        balances: Optional[Dict[str, int]] = None,
        block_number=100,
        base_fee: Optional[int] = 10 * GWEI,
        priority_fee=2 * GWEI,
        gas_price: int = 5 * GWEI,
        nonce: int = 0,
    ):
        self.balances = balances or {}
        self._block_number = block_number
        self.base_fee = base_fee
        self.priority_fee = priority_fee
        self._gas_price = gas_price
        self.nonce = nonce

        self.send_script: List = []
        self.wait_script: List = []
        self.lookup_script: List = []
        self.balance_error: Optional[Exception] = None

        self.calls: List[str] = []
        self.sent_raw: List[bytes] = []

    @property
    async def block_number(self):
        self.calls.append('block_number')
        if isinstance(self._block_number, BaseException):
            raise self._block_number
        return self._block_number

    @property
    async def max_priority_fee(self):
        self.calls.append('max_priority_fee')
        if isinstance(self.priority_fee, BaseException):
            raise self.priority_fee
        return self.priority_fee

    @property
    async def gas_price(self):
        self.calls.append('gas_price')
        return self._gas_price

    async def get_balance(self, address):
        self.calls.append('get_balance')
        if self.balance_error is not None:
            raise self.balance_error
        return self.balances.get(address, 0)

    async def get_transaction_count(self, address, block_identifier='latest'):
        self.calls.append('get_transaction_count')
        return self.nonce

    async def get_block(self, block_identifier):
        self.calls.append('get_block')
        block = {'number': 100}
        if self.base_fee is not None:
            block['baseFeePerGas'] = self.base_fee
        return block

    async def send_raw_transaction(self, raw):
        self.calls.append('send_raw_transaction')
        self.sent_raw.append(bytes(raw))
        return _next(self.send_script, Web3.keccak(raw))

    async def wait_for_transaction_receipt(self, tx_hash, timeout=120, poll_latency=0.1):
        self.calls.append('wait_for_transaction_receipt')
        return _next(self.wait_script, {'status': 1, 'transactionHash': tx_hash})

    async def get_transaction_receipt(self, tx_hash):
        self.calls.append('get_transaction_receipt')
        return _next(self.lookup_script, TransactionNotFound(f"Transaction {Web3.to_hex(tx_hash)} not found"))

    def count(self, name: str) -> int:
        return self.calls.count(name)


class FakeWeb3:
    def __init__(self, eth: Optional[FakeEth] = None):
        self.eth = eth or FakeEth()
        self.provider = FakeProvider()


class RecordingSleep:
    """Awaitable sleep replacement that records requested delays"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


@pytest.fixture
def chain():
    return NetworkDescriptor(
        name="Testnet",
        symbol="TST",
        chain_id=31337,
        rpc=("http://a.invalid", "http://b.invalid", "http://c.invalid"),
    )


@pytest.fixture
def params():
    return TransferParameters(
        amount_wei=Web3.to_wei("0.01", 'ether'),
        min_balance_wei=Web3.to_wei("0.0000099", 'ether'),
        max_attempts=3,
        inter_item_delay_seconds=1.5,
        backoff_base_seconds=1.0,
    )


@pytest.fixture
def fake_eth():
    return FakeEth()


@pytest.fixture
def connection(fake_eth):
    return Connection(url="http://a.invalid", w3=FakeWeb3(fake_eth), block_number=100)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def record():
    return TransferRecord(private_key=make_key(1), destination=address_of(make_key(1001)))
