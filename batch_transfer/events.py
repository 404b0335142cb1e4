"""
Run Events

Structured progress events published by the batch runner. Presentation
layers subscribe with plain callables and never reach into engine state.
"""

from dataclasses import dataclass, asdict
from typing import TYPE_CHECKING, Callable, Dict, Optional, Union

if TYPE_CHECKING:
    from .batch_runner import RunSummary
    from .network_config import NetworkDescriptor
    from .transfer_engine import TransferOutcome


@dataclass(frozen=True)
class RunStarted:
    """Emitted once the endpoint is resolved, before the first record"""
    network: 'NetworkDescriptor'
    endpoint_url: str
    total: int


@dataclass(frozen=True)
class RetryEvent:
    """A submission attempt failed and another one is scheduled"""
    source_address: str
    attempt: int
    max_attempts: int
    delay_seconds: float
    reason: str
    index: Optional[int] = None

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class OutcomeEvent:
    """One record reached its terminal outcome"""
    index: int
    total: int
    outcome: 'TransferOutcome'


@dataclass(frozen=True)
class RunCompleted:
    """Emitted after the last record"""
    summary: 'RunSummary'


RunEvent = Union[RunStarted, RetryEvent, OutcomeEvent, RunCompleted]
Listener = Callable[[RunEvent], None]
