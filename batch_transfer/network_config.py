"""
Network Configuration

Static network descriptors loaded from YAML (or JSON, which is valid YAML).

Accepted layouts:
    networks:
      - name: Base
        symbol: ETH
        chainId: 8453
        rpc:
          - https://mainnet.base.org
          - https://base.llamarpc.com

or a bare top-level list of the same entries.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple, Union

import yaml
from loguru import logger

from .errors import ConfigError, NetworkNotFoundError


@dataclass(frozen=True)
class NetworkDescriptor:
    """Identity of a target chain"""
    name: str
    symbol: str
    chain_id: int
    rpc: Tuple[str, ...]

    @classmethod
    def from_dict(cls, data: Dict) -> 'NetworkDescriptor':
        """
        Build a descriptor from a config entry

        Args:
            data: Entry with name, symbol, chainId (or chain_id) and rpc

        Returns:
            NetworkDescriptor
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Network entry must be a mapping, got {type(data).__name__}")

        name = data.get('name')
        if not name:
            raise ConfigError("Network entry is missing 'name'")

        chain_id = data.get('chainId', data.get('chain_id'))
        try:
            chain_id = int(chain_id)
        except (TypeError, ValueError):
            raise ConfigError(f"Network {name} has invalid chain id: {chain_id!r}")

        rpc = data.get('rpc') or []
        if isinstance(rpc, str):
            rpc = [rpc]
        rpc = tuple(url.strip() for url in rpc if isinstance(url, str) and url.strip())
        if not rpc:
            raise ConfigError(f"Network {name} has no RPC endpoints")

        return cls(
            name=str(name),
            symbol=str(data.get('symbol') or 'ETH'),
            chain_id=chain_id,
            rpc=rpc,
        )

    @property
    def label(self) -> str:
        return f"{self.name} ({self.symbol})"

    def __repr__(self):
        return f"NetworkDescriptor({self.name}/{self.chain_id}: {len(self.rpc)} rpc)"


def load_networks(path: Union[str, Path]) -> List[NetworkDescriptor]:
    """
    Load ordered network descriptors from a YAML or JSON file

    Args:
        path: Path to the config file

    Returns:
        List of NetworkDescriptor in file order
    """
    config_file = Path(path)

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Error loading network config {config_file}: {e}") from e

    if isinstance(config, dict):
        entries = config.get('networks') or []
    elif isinstance(config, list):
        entries = config
    else:
        entries = []

    if not entries:
        raise ConfigError(f"No networks defined in {config_file}")

    networks = [NetworkDescriptor.from_dict(entry) for entry in entries]
    logger.info(f"Loaded {len(networks)} networks from {config_file}")
    return networks


def select_network(networks: List[NetworkDescriptor], selector: Union[str, int]) -> NetworkDescriptor:
    """
    Pick one network by name, symbol or chain id

    Name matches win over symbol matches, since several chains share
    a currency symbol (ETH on most L2s).

    Args:
        networks: Loaded descriptors
        selector: Network name, currency symbol or numeric chain id

    Returns:
        Matching NetworkDescriptor
    """
    key = str(selector).strip()

    if key.isdigit():
        for network in networks:
            if network.chain_id == int(key):
                return network

    lowered = key.lower()
    for network in networks:
        if network.name.lower() == lowered:
            return network

    for network in networks:
        if network.symbol.lower() == lowered:
            return network

    available = ", ".join(n.label for n in networks)
    raise NetworkNotFoundError(f"Network '{selector}' not found. Available: {available}")
