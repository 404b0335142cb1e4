"""
Transfer Parameters

Per-run constant configuration for the batch transfer engine, plus the
loader for the optional `transfer:` section of the YAML config.
"""

from dataclasses import dataclass, asdict
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Optional, Union

import yaml
from loguru import logger
from web3 import Web3

from .errors import ConfigError, InvalidAmountError


DEFAULT_CONFIG_PATH = "batch_transfer.yaml"

BASE_UNIT_DECIMALS = 18

# roughly $0.03 of ETH; tune per chain
DEFAULT_MIN_BALANCE = Decimal("0.0000099")


def to_base_units(value: Union[str, int, float, Decimal]) -> int:
    """Convert a display-unit value (e.g. '0.01') to the chain's smallest unit"""
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(f"Not a decimal number: {value!r}")

    if not number.is_finite():
        raise InvalidAmountError(f"Not a finite number: {value!r}")

    # digits past the 18th decimal place would be silently truncated
    _, digits, exponent = number.as_tuple()
    if exponent < -BASE_UNIT_DECIMALS and any(digits[exponent + BASE_UNIT_DECIMALS:]):
        raise InvalidAmountError(f"Too many decimal places (max {BASE_UNIT_DECIMALS}): {value!r}")

    try:
        return int(Web3.to_wei(number, 'ether'))
    except ValueError as e:
        # negative or above 2**256 - 1
        raise InvalidAmountError(f"Amount out of range: {value!r}") from e


def parse_amount(text: Union[str, Decimal]) -> int:
    """
    Parse a positive transfer amount

    Args:
        text: Decimal string in display units (e.g. "0.01")

    Returns:
        Amount in base units (wei)
    """
    if text is None or str(text).strip() == "":
        raise InvalidAmountError("Amount is empty")

    amount_wei = to_base_units(text)
    if amount_wei <= 0:
        raise InvalidAmountError(f"Must be positive number: {text!r}")

    return amount_wei


@dataclass(frozen=True)
class TransferParameters:
    """Immutable run parameters"""
    amount_wei: int
    min_balance_wei: int = int(Web3.to_wei(DEFAULT_MIN_BALANCE, 'ether'))
    max_attempts: int = 3
    inter_item_delay_seconds: float = 1.5
    backoff_base_seconds: float = 1.0
    gas_limit: int = 21000
    receipt_timeout_seconds: float = 120.0
    nonce_block_identifier: str = "latest"

    def __post_init__(self):
        if self.amount_wei <= 0:
            raise InvalidAmountError(f"Amount must be positive, got {self.amount_wei} wei")
        if self.min_balance_wei < 0:
            raise ConfigError("min_balance must not be negative")
        if self.max_attempts < 1:
            raise ConfigError("max_attempts must be at least 1")
        if self.inter_item_delay_seconds < 0 or self.backoff_base_seconds < 0:
            raise ConfigError("Delays must not be negative")
        if self.gas_limit <= 0:
            raise ConfigError("gas_limit must be positive")
        if self.receipt_timeout_seconds <= 0:
            raise ConfigError("receipt_timeout_seconds must be positive")

    def backoff_delay(self, attempt: int) -> float:
        """Exponential backoff before retrying after `attempt` (1-based): base × 2^attempt"""
        return self.backoff_base_seconds * (2 ** attempt)

    def to_dict(self) -> Dict:
        return asdict(self)


# YAML keys that map straight onto TransferParameters fields
_NUMERIC_KEYS = {
    'max_attempts': int,
    'inter_item_delay_seconds': float,
    'backoff_base_seconds': float,
    'gas_limit': int,
    'receipt_timeout_seconds': float,
}


def load_transfer_section(config_path: Union[str, Path, None]) -> Dict:
    """
    Read the `transfer:` section of the YAML config

    A missing file or section is not an error; defaults apply.

    Args:
        config_path: Path to config file

    Returns:
        Raw section dict (possibly empty)
    """
    if config_path is None:
        return {}

    config_file = Path(config_path)
    if not config_file.exists():
        logger.debug(f"Config file {config_file} not found, using default transfer settings")
        return {}

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Error loading config {config_file}: {e}") from e

    if not isinstance(config, dict):
        return {}

    section = config.get('transfer') or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'transfer' section in {config_file} must be a mapping")

    return section


def load_transfer_parameters(
    config_path: Union[str, Path, None],
    amount: Union[str, Decimal],
    **overrides
) -> TransferParameters:
    """
    Build TransferParameters from config file, amount and explicit overrides

    Priority:
    1. Explicit overrides (CLI flags), ignored when None
    2. `transfer:` section of the config file
    3. Dataclass defaults

    Args:
        config_path: Path to YAML config (may be None)
        amount: Transfer amount in display units
        **overrides: Field overrides; `min_balance` is in display units

    Returns:
        TransferParameters
    """
    section = load_transfer_section(config_path)
    values: Dict = {}

    try:
        for key, cast in _NUMERIC_KEYS.items():
            if key in section:
                values[key] = cast(section[key])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid transfer setting: {e}") from e

    if 'min_balance' in section:
        values['min_balance_wei'] = to_base_units(section['min_balance'])

    if 'nonce_block_identifier' in section:
        values['nonce_block_identifier'] = str(section['nonce_block_identifier'])

    if values:
        logger.info(f"Loaded custom transfer settings from config: {values}")

    for key, value in overrides.items():
        if value is None:
            continue
        if key == 'min_balance':
            values['min_balance_wei'] = to_base_units(value)
        else:
            values[key] = value

    params = TransferParameters(amount_wei=parse_amount(amount), **values)
    logger.debug(f"Transfer parameters: {params}")
    return params


def request_timeout_from_config(config_path: Union[str, Path, None], default: float = 10.0) -> float:
    """RPC request timeout used by endpoint probes and calls"""
    section = load_transfer_section(config_path)
    value: Optional[float] = section.get('request_timeout_seconds')
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid request_timeout_seconds: {value!r}") from e
