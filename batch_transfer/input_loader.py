"""
Input Loader

Parses the two external input lists and pairs them into transfer records:
- destinations: JSON array of objects with an "address" field
- sources: text file, one private key per line (optional 0x prefix)

Invalid entries are filtered out, not rejected; the count check in
pair_records() is the only hard failure.
"""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from loguru import logger
from web3 import Web3

from .errors import ConfigError, RecordCountMismatch


PRIVATE_KEY_PATTERN = re.compile(r'^[0-9a-fA-F]{64}$')


@dataclass
class TransferRecord:
    """One unit of work: source credential paired with a destination"""
    private_key: Optional[str] = field(repr=False)
    destination: str

    @property
    def is_discarded(self) -> bool:
        return self.private_key is None

    def discard(self):
        """Drop the credential once the record reached a terminal outcome"""
        self.private_key = None


def shorten_address(address: Optional[str]) -> str:
    if not address:
        return "unknown"
    return f"{address[:6]}...{address[-4:]}"


def normalize_private_key(line: str) -> Optional[str]:
    """Strip whitespace and a leading 0x; None unless exactly 64 hex characters remain"""
    key = line.strip()
    if key[:2].lower() == '0x':
        key = key[2:]
    return key if PRIVATE_KEY_PATTERN.match(key) else None


def parse_destinations(entries: List) -> List[str]:
    """
    Keep syntactically valid addresses, checksummed, in input order

    Args:
        entries: Decoded JSON array of {"address": ...} objects

    Returns:
        List of checksum addresses
    """
    destinations = []
    for entry in entries:
        address = entry.get('address') if isinstance(entry, dict) else None
        if isinstance(address, str) and Web3.is_address(address.strip()):
            destinations.append(Web3.to_checksum_address(address.strip()))
    return destinations


def load_destinations(path: Union[str, Path]) -> List[str]:
    """Load destinations file (JSON array of {"address": ...})"""
    source = Path(path)
    try:
        with open(source, 'r', encoding='utf-8') as f:
            entries = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigError(f"Error loading destinations {source}: {e}") from e

    if not isinstance(entries, list):
        raise ConfigError(f"Destinations file {source} must contain a JSON array")

    destinations = parse_destinations(entries)
    skipped = len(entries) - len(destinations)
    logger.info(f"📄 {len(destinations)} destinations loaded from {source}")
    if skipped:
        logger.warning(f"Ignored {skipped} invalid destination entries")
    return destinations


def load_sources(path: Union[str, Path]) -> List[str]:
    """Load private keys file; lines that are not 32-byte hex keys are ignored"""
    source = Path(path)
    try:
        lines = source.read_text(encoding='utf-8').splitlines()
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Error loading sources {source}: {e}") from e

    keys = [key for key in (normalize_private_key(line) for line in lines) if key]
    logger.info(f"📄 {len(keys)} sources loaded from {source}")
    return keys


def pair_records(sources: List[str], destinations: List[str]) -> List[TransferRecord]:
    """
    Pair sources with destinations strictly by position

    Args:
        sources: Normalized private keys
        destinations: Checksum addresses

    Returns:
        List of TransferRecord
    """
    if len(sources) != len(destinations):
        raise RecordCountMismatch(len(sources), len(destinations))

    return [
        TransferRecord(private_key=key, destination=destination)
        for key, destination in zip(sources, destinations)
    ]
