"""
Batch Transfer Errors

Exception hierarchy for the batch transfer engine.

Setup errors (fatal to the run):
- NoReachableEndpoint
- RecordCountMismatch
- InvalidAmountError
- NetworkNotFoundError
- ConfigError

Per-account errors (retried, never abort the batch):
- SubmissionError
- ReconciliationFailure
- TransactionReverted
"""

from typing import List, Optional, Tuple


MAX_ERROR_MESSAGE_LENGTH = 200


class BatchTransferError(Exception):
    """Base class for all batch transfer errors"""


class ConfigError(BatchTransferError):
    """Invalid or unreadable configuration"""


class NetworkNotFoundError(BatchTransferError):
    """Requested network is not in the configuration"""


class InvalidAmountError(BatchTransferError):
    """Transfer amount is not a positive decimal"""


class RecordCountMismatch(BatchTransferError):
    """Sources and destinations lists have different lengths"""

    def __init__(self, sources: int, destinations: int):
        self.sources = sources
        self.destinations = destinations
        super().__init__(f"Mismatch: {sources} sources vs {destinations} destinations")


class NoReachableEndpoint(BatchTransferError):
    """Every candidate RPC endpoint failed its liveness probe"""

    def __init__(self, failures: Optional[List[Tuple[str, str]]] = None):
        self.failures = failures or []
        if self.failures:
            tried = ", ".join(url for url, _ in self.failures)
            message = f"No working RPC endpoints found (tried: {tried})"
        else:
            message = "No working RPC endpoints found (no candidates configured)"
        super().__init__(message)


class SubmissionError(BatchTransferError):
    """A submission attempt failed and may be retried"""


class ReconciliationFailure(SubmissionError):
    """Confirmation wait failed and no receipt could be found by hash"""

    def __init__(self, tx_hash: str, cause: BaseException):
        self.tx_hash = tx_hash
        self.cause = cause
        super().__init__(f"No receipt for {tx_hash}: {short_error_message(cause)}")


class TransactionReverted(SubmissionError):
    """Receipt was found but reports a failed status"""

    def __init__(self, tx_hash: str):
        self.tx_hash = tx_hash
        super().__init__("Transaction failed")


def short_error_message(exc: BaseException, limit: int = MAX_ERROR_MESSAGE_LENGTH) -> str:
    """
    Concise single-line description of an exception

    web3 errors often carry a dict payload ({'code': ..., 'message': ...});
    the inner message is preferred when present.

    Args:
        exc: Exception to describe
        limit: Maximum length of the returned message

    Returns:
        Message suitable for an outcome reason or a log line
    """
    message = None

    if exc.args and isinstance(exc.args[0], dict):
        message = exc.args[0].get('message')

    if not message:
        message = str(exc) or exc.__class__.__name__

    message = " ".join(str(message).split())

    if len(message) > limit:
        message = message[:limit - 3] + "..."

    return message
