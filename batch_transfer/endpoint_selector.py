"""
Endpoint Selector

Finds the first live RPC endpoint for a network.

Candidates are probed one at a time, in config order, with a
block-number request. The first endpoint that answers wins; later
candidates are never contacted.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

import aiohttp
from loguru import logger
from web3 import AsyncHTTPProvider, AsyncWeb3

from .errors import NoReachableEndpoint, short_error_message


ProviderFactory = Callable[[str, float], Any]


def default_provider_factory(url: str, timeout: float) -> AsyncWeb3:
    """AsyncWeb3 over HTTP with a per-request timeout"""
    provider = AsyncHTTPProvider(
        url,
        request_kwargs={'timeout': aiohttp.ClientTimeout(total=timeout)}
    )
    return AsyncWeb3(provider)


@dataclass
class Connection:
    """Live RPC channel to exactly one endpoint"""
    url: str
    w3: Any
    block_number: int

    async def close(self):
        await close_web3(self.w3, self.url)

    def __repr__(self):
        return f"Connection({self.url} @ block {self.block_number})"


async def close_web3(w3: Any, url: str = ""):
    """Release the provider's HTTP session, if it keeps one"""
    provider = getattr(w3, 'provider', None)
    disconnect = getattr(provider, 'disconnect', None)
    if disconnect is None:
        return

    try:
        await disconnect()
        logger.debug(f"✓ Closed RPC session {url}")
    except (RuntimeError, ConnectionError, OSError, aiohttp.ClientError) as e:
        logger.debug(f"Error closing RPC session {url}: {e}")


class EndpointSelector:
    """
    Fail-fast linear scan over candidate RPC endpoints

    Features:
    - Deterministic order (config order)
    - One probe in flight at a time
    - Per-probe timeout
    """

    def __init__(
        self,
        request_timeout_seconds: float = 10.0,
        provider_factory: Optional[ProviderFactory] = None
    ):
        """
        Initialize endpoint selector

        Args:
            request_timeout_seconds: Timeout for each liveness probe
            provider_factory: Builds a web3 client for a URL (tests inject fakes)
        """
        self.request_timeout_seconds = request_timeout_seconds
        self.provider_factory = provider_factory or default_provider_factory

    async def probe(self, url: str) -> Connection:
        """
        Open a client for one URL and check that it answers

        Args:
            url: RPC endpoint URL

        Returns:
            Connection if the probe succeeded
        """
        w3 = self.provider_factory(url, self.request_timeout_seconds)
        try:
            block_number = await asyncio.wait_for(
                w3.eth.block_number,
                timeout=self.request_timeout_seconds
            )
        except BaseException:
            await close_web3(w3, url)
            raise

        return Connection(url=url, w3=w3, block_number=int(block_number))

    async def select(self, candidates: Sequence[str]) -> Connection:
        """
        Return a connection to the first candidate that responds

        Args:
            candidates: Ordered RPC URLs

        Returns:
            Connection
        """
        failures: List[Tuple[str, str]] = []

        for url in candidates:
            logger.info(f"🔍 Connecting to RPC: {url}")
            try:
                connection = await self.probe(url)
            except asyncio.CancelledError:
                raise
            except asyncio.TimeoutError:
                reason = f"timeout after {self.request_timeout_seconds}s"
                failures.append((url, reason))
                logger.warning(f"❌ Failed RPC: {url} - {reason}")
                continue
            except Exception as e:
                reason = short_error_message(e)
                failures.append((url, reason))
                logger.warning(f"❌ Failed RPC: {url} - {reason}")
                continue

            logger.info(f"✅ Connected to RPC: {url} (block {connection.block_number})")
            return connection

        raise NoReachableEndpoint(failures)
