"""
Batch Native Transfer Engine

Sends a fixed amount of a chain's native currency from many source
wallets to positionally paired destination addresses over JSON-RPC.

Components:
- endpoint_selector: first live RPC endpoint, probed in config order
- transfer_engine: balance-gated, fee-priced, retried single transfer
- batch_runner: sequential execution, rate limiting, summary
- network_config: static network descriptors (YAML/JSON)
- config: per-run transfer parameters
- input_loader: source keys / destination lists and pairing
- events: structured progress events for presentation layers

Outcomes per wallet:
- Sent (tx hash)
- Skipped: low balance (below dust floor)
- Skipped: insufficient funds (below amount)
- Failed (last error after bounded retries)
"""

from .batch_runner import (
    BatchRunner,
    RunSummary,
)
from .config import (
    TransferParameters,
    load_transfer_parameters,
    parse_amount,
)
from .endpoint_selector import (
    Connection,
    EndpointSelector,
)
from .errors import (
    BatchTransferError,
    ConfigError,
    InvalidAmountError,
    NetworkNotFoundError,
    NoReachableEndpoint,
    ReconciliationFailure,
    RecordCountMismatch,
    SubmissionError,
    TransactionReverted,
)
from .events import (
    OutcomeEvent,
    RetryEvent,
    RunCompleted,
    RunStarted,
)
from .input_loader import (
    TransferRecord,
    load_destinations,
    load_sources,
    pair_records,
)
from .network_config import (
    NetworkDescriptor,
    load_networks,
    select_network,
)
from .transfer_engine import (
    AccountTransferExecutor,
    FeeQuote,
    OutcomeStatus,
    TransferOutcome,
    fetch_fee_quote,
)

__all__ = [
    # Engine
    'BatchRunner',
    'RunSummary',
    'AccountTransferExecutor',
    'TransferOutcome',
    'OutcomeStatus',
    'FeeQuote',
    'fetch_fee_quote',

    # Endpoint selection
    'EndpointSelector',
    'Connection',

    # Configuration
    'NetworkDescriptor',
    'load_networks',
    'select_network',
    'TransferParameters',
    'load_transfer_parameters',
    'parse_amount',

    # Inputs
    'TransferRecord',
    'load_destinations',
    'load_sources',
    'pair_records',

    # Events
    'RunStarted',
    'RetryEvent',
    'OutcomeEvent',
    'RunCompleted',

    # Errors
    'BatchTransferError',
    'ConfigError',
    'InvalidAmountError',
    'NetworkNotFoundError',
    'NoReachableEndpoint',
    'RecordCountMismatch',
    'SubmissionError',
    'ReconciliationFailure',
    'TransactionReverted',
]

__version__ = '1.0.0'
