"""Utility helpers shared across core modules."""

from __future__ import annotations

import logging
from decimal import Decimal, ROUND_DOWN
from typing import Optional, Union

from web3 import Web3


def get_logger(name: str = "debridge_kit") -> logging.Logger:
    """Return a configured logger that prints to stdout."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


def ensure_web3_connected(web3: Web3, *, expected_chain_id: Optional[int] = None) -> None:
    """Validate that ``web3`` is connected and optionally matches the expected chain id."""
    if not web3.is_connected():
        raise ConnectionError("Failed to connect to the configured RPC endpoint")
    if expected_chain_id is not None and web3.eth.chain_id != expected_chain_id:
        raise ValueError(f"RPC chain ID mismatch: expected {expected_chain_id}, got {web3.eth.chain_id}")


def clip_hex_prefix(data: str) -> str:
    """Remove a leading ``0x`` if present."""
    return data[2:] if data.startswith("0x") else data


def hex_to_bytes(data: str) -> bytes:
    """Convert a hex string (with or without ``0x``) to bytes."""
    return bytes.fromhex(clip_hex_prefix(data))


def parse_int(value: Union[int, str, None], default: int = 0) -> int:
    """Parse an integer that may arrive as a hex string, a decimal string or an int."""
    if value is None or value == "":
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text)


def to_atomic_units(amount: Union[str, int, Decimal], decimals: int) -> int:
    """Convert a human readable amount into the token's smallest unit, rounding down."""
    scaled = Decimal(str(amount)) * (Decimal(10) ** decimals)
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_DOWN))


def from_atomic_units(amount: Union[str, int], decimals: int) -> Decimal:
    """Inverse of :func:`to_atomic_units`."""
    return Decimal(int(amount)) / (Decimal(10) ** decimals)


__all__ = [
    "clip_hex_prefix",
    "ensure_web3_connected",
    "from_atomic_units",
    "get_logger",
    "hex_to_bytes",
    "parse_int",
    "to_atomic_units",
]
