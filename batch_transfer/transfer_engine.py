"""
Account Transfer Executor

Moves a fixed amount of native currency out of one source account:
1. Derive address from the private key
2. Balance gate (dust floor, then amount)
3. Build draft (nonce, gas limit, type 2, chain id)
4. Attach fresh fee quote
5. Sign, submit, wait for receipt (with receipt lookup fallback)
6. Retry with exponential backoff, rebuilding the draft every attempt
"""

import asyncio
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from eth_account import Account
from loguru import logger
from web3 import Web3
from web3.exceptions import Web3Exception

from .config import TransferParameters
from .errors import ReconciliationFailure, TransactionReverted, short_error_message
from .events import RetryEvent
from .input_loader import TransferRecord, shorten_address
from .network_config import NetworkDescriptor
from .endpoint_selector import Connection


DEFAULT_PRIORITY_FEE_WEI = Web3.to_wei(1, 'gwei')

Sleep = Callable[[float], Awaitable[Any]]
RetryCallback = Callable[[RetryEvent], None]


class OutcomeStatus(str, Enum):
    SENT = "sent"
    SKIPPED_LOW_BALANCE = "skipped_low_balance"
    SKIPPED_INSUFFICIENT_FUNDS = "skipped_insufficient_funds"
    FAILED = "failed"


@dataclass(frozen=True)
class TransferOutcome:
    """Terminal result for one record"""
    status: OutcomeStatus
    source_address: Optional[str]
    destination: str
    tx_hash: Optional[str] = None
    reason: Optional[str] = None
    balance_wei: Optional[int] = None
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SENT

    @property
    def skipped(self) -> bool:
        return self.status in (OutcomeStatus.SKIPPED_LOW_BALANCE, OutcomeStatus.SKIPPED_INSUFFICIENT_FUNDS)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['status'] = self.status.value
        return data

    def __repr__(self):
        detail = self.tx_hash or self.reason or ""
        return f"TransferOutcome({shorten_address(self.source_address)}: {self.status.value} {detail})".rstrip()


@dataclass(frozen=True)
class FeeQuote:
    """EIP-1559 fee bid"""
    max_fee_per_gas: int
    max_priority_fee_per_gas: int

    def apply(self, draft: Dict) -> Dict:
        draft['maxFeePerGas'] = self.max_fee_per_gas
        draft['maxPriorityFeePerGas'] = self.max_priority_fee_per_gas
        return draft


async def fetch_fee_quote(w3) -> FeeQuote:
    """
    Current fee market quote

    maxFeePerGas = 2 × latest base fee + priority fee.

    Chains without a base fee fall back to the legacy gas price for
    both components.

    Args:
        w3: AsyncWeb3 instance

    Returns:
        FeeQuote
    """
    block = await w3.eth.get_block('latest')
    base_fee = block.get('baseFeePerGas')

    if base_fee is None:
        gas_price = await w3.eth.gas_price
        logger.debug(f"No base fee on latest block, using gas price {gas_price}")
        return FeeQuote(max_fee_per_gas=gas_price, max_priority_fee_per_gas=gas_price)

    try:
        priority_fee = await w3.eth.max_priority_fee
    except (Web3Exception, ValueError) as e:
        logger.debug(f"eth_maxPriorityFeePerGas unavailable ({short_error_message(e)}), using 1 gwei")
        priority_fee = DEFAULT_PRIORITY_FEE_WEI

    return FeeQuote(
        max_fee_per_gas=base_fee * 2 + priority_fee,
        max_priority_fee_per_gas=priority_fee
    )


class AccountTransferExecutor:
    """
    Balance-gated, fee-priced, retried transfer for a single account

    Each submission attempt is independent: nonce and fee quote are
    fetched again so a retry never reuses stale sequencing or pricing.
    """

    RECEIPT_POLL_LATENCY_SECONDS = 1.0

    def __init__(self, sleep: Optional[Sleep] = None):
        """
        Initialize executor

        Args:
            sleep: Awaitable sleep used for backoff (tests inject a recorder)
        """
        self._sleep = sleep or asyncio.sleep

    async def execute(
        self,
        conn: Connection,
        chain: NetworkDescriptor,
        record: TransferRecord,
        params: TransferParameters,
        on_retry: Optional[RetryCallback] = None
    ) -> TransferOutcome:
        """
        Process one record to a terminal outcome

        Never raises for per-account problems; they become Failed outcomes.

        Args:
            conn: Live RPC connection
            chain: Target network
            record: Source credential and destination
            params: Run parameters
            on_retry: Called before each backoff wait

        Returns:
            TransferOutcome
        """
        w3 = conn.w3
        source_address = None

        try:
            account = Account.from_key(record.private_key)
            source_address = account.address

            balance = await w3.eth.get_balance(source_address)

            if balance < params.min_balance_wei:
                logger.warning(f"⚠️  {shorten_address(source_address)} low balance: "
                               f"{Web3.from_wei(balance, 'ether')} {chain.symbol}")
                return TransferOutcome(
                    status=OutcomeStatus.SKIPPED_LOW_BALANCE,
                    source_address=source_address,
                    destination=record.destination,
                    reason="Low balance",
                    balance_wei=balance
                )

            if balance < params.amount_wei:
                logger.warning(f"❌ {shorten_address(source_address)} insufficient funds: "
                               f"{Web3.from_wei(balance, 'ether')} {chain.symbol}")
                return TransferOutcome(
                    status=OutcomeStatus.SKIPPED_INSUFFICIENT_FUNDS,
                    source_address=source_address,
                    destination=record.destination,
                    reason="Insufficient funds",
                    balance_wei=balance
                )

            return await self._submit_with_retry(
                w3, chain, account, record.destination, params, balance, on_retry
            )

        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = short_error_message(e)
            logger.error(f"❌ Critical error for {shorten_address(source_address)}: {reason}")
            return TransferOutcome(
                status=OutcomeStatus.FAILED,
                source_address=source_address,
                destination=record.destination,
                reason=reason
            )

    async def build_draft(
        self,
        w3,
        chain: NetworkDescriptor,
        source_address: str,
        destination: str,
        params: TransferParameters
    ) -> Dict:
        """Unpriced type-2 transaction with the account's current nonce"""
        nonce = await w3.eth.get_transaction_count(source_address, params.nonce_block_identifier)
        return {
            'from': source_address,
            'to': Web3.to_checksum_address(destination),
            'value': params.amount_wei,
            'nonce': nonce,
            'gas': params.gas_limit,
            'type': 2,
            'chainId': chain.chain_id,
        }

    async def wait_for_receipt(self, w3, tx_hash, params: TransferParameters):
        """
        Wait for the receipt; on wait failure look it up directly

        The wait can error (timeout, dropped connection) for a transaction
        that was mined anyway; the receipt lookup settles it before the
        attempt counts as failed.
        """
        try:
            return await w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=params.receipt_timeout_seconds,
                poll_latency=self.RECEIPT_POLL_LATENCY_SECONDS
            )
        except asyncio.CancelledError:
            raise
        except Exception as wait_error:
            hex_hash = Web3.to_hex(tx_hash)
            logger.warning(f"Confirmation wait failed for {hex_hash} "
                           f"({short_error_message(wait_error)}), checking receipt")
            try:
                receipt = await w3.eth.get_transaction_receipt(tx_hash)
            except asyncio.CancelledError:
                raise
            except Exception as lookup_error:
                raise ReconciliationFailure(hex_hash, wait_error) from lookup_error

            if receipt is None:
                raise ReconciliationFailure(hex_hash, wait_error)

            logger.info(f"Receipt found for {hex_hash} after failed wait")
            return receipt

    async def submit_once(
        self,
        w3,
        chain: NetworkDescriptor,
        account,
        destination: str,
        params: TransferParameters
    ) -> str:
        """
        One complete attempt: fresh draft, fresh fees, sign, send, confirm

        Returns:
            Transaction hash (0x-prefixed) of a successful transfer
        """
        draft = await self.build_draft(w3, chain, account.address, destination, params)
        fee_quote = await fetch_fee_quote(w3)
        fee_quote.apply(draft)

        logger.debug(f"Draft for {shorten_address(account.address)}: nonce={draft['nonce']} "
                     f"maxFee={fee_quote.max_fee_per_gas} priority={fee_quote.max_priority_fee_per_gas}")

        signed = account.sign_transaction(draft)
        tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)
        hex_hash = Web3.to_hex(tx_hash)
        logger.debug(f"Submitted {hex_hash}")

        receipt = await self.wait_for_receipt(w3, tx_hash, params)

        if receipt.get('status') != 1:
            raise TransactionReverted(hex_hash)

        return hex_hash

    async def _submit_with_retry(
        self,
        w3,
        chain: NetworkDescriptor,
        account,
        destination: str,
        params: TransferParameters,
        balance: int,
        on_retry: Optional[RetryCallback]
    ) -> TransferOutcome:
        last_reason = None

        for attempt in range(1, params.max_attempts + 1):
            try:
                tx_hash = await self.submit_once(w3, chain, account, destination, params)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_reason = short_error_message(e)

                if attempt >= params.max_attempts:
                    break

                delay = params.backoff_delay(attempt)
                logger.warning(f"🔄 Retry {attempt}/{params.max_attempts} for "
                               f"{shorten_address(account.address)} in {delay:.1f}s ({last_reason})")
                if on_retry is not None:
                    on_retry(RetryEvent(
                        source_address=account.address,
                        attempt=attempt,
                        max_attempts=params.max_attempts,
                        delay_seconds=delay,
                        reason=last_reason
                    ))
                await self._sleep(delay)
                continue

            logger.info(f"✅ Sent {Web3.from_wei(params.amount_wei, 'ether')} {chain.symbol} "
                        f"to {destination} ({tx_hash})")
            return TransferOutcome(
                status=OutcomeStatus.SENT,
                source_address=account.address,
                destination=destination,
                tx_hash=tx_hash,
                balance_wei=balance,
                attempts=attempt
            )

        logger.error(f"❌ Failed after {params.max_attempts} attempts: {last_reason}")
        return TransferOutcome(
            status=OutcomeStatus.FAILED,
            source_address=account.address,
            destination=destination,
            reason=last_reason,
            balance_wei=balance,
            attempts=params.max_attempts
        )
