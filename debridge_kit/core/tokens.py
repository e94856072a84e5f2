"""Well-known token addresses and ERC-20 helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from web3 import Web3
from web3.contract import Contract

from debridge_kit.contracts import load_contract_abi
from debridge_kit.core.utils import ensure_web3_connected

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class NativeToken:
    """Placeholder address used by deBridge for a chain's native asset."""

    address: str
    decimals: int


EVM_NATIVE_TOKEN = NativeToken(address=ZERO_ADDRESS, decimals=18)


class SOL:
    NATIVE = "11111111111111111111111111111111"
    WRAPPED = "So11111111111111111111111111111111111111112"
    DECIMALS = 9


class USDC:
    SOLANA = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
    BASE = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
    POLYGON = "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359"
    ARBITRUM = "0xaf88d065e77c8cc2239327c5edb3a432268e5831"
    BNB = "0x8ac76a51cc950d9822d68b83fe1ad97b32cd580d"
    DECIMALS = 6


class USDT:
    TRON = "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t"
    DECIMALS = 6


class TRX:
    # deBridge's stand-in for native TRX
    SENTINEL = "T9yD14Nj9j7xAB4dbGeiX9h8unkKHxuWwb"
    DECIMALS = 6


def is_native_token(address: str) -> bool:
    """Return ``True`` for the addresses deBridge uses to denote a native asset."""
    return address.lower() in {ZERO_ADDRESS, SOL.NATIVE.lower(), TRX.SENTINEL.lower()}


_CONTRACT_CACHE: Dict[Tuple[int, str], Contract] = {}


def get_contract(web3: Web3, token_address: str) -> Contract:
    """Return a cached ERC20 contract instance for ``token_address``."""
    ensure_web3_connected(web3)
    return _get_or_create_contract(web3, token_address)


def _get_or_create_contract(web3: Web3, token_address: str) -> Contract:
    checksum_address = Web3.to_checksum_address(token_address)
    key = (id(web3), checksum_address)
    contract = _CONTRACT_CACHE.get(key)
    if contract is None:
        contract = web3.eth.contract(address=checksum_address, abi=load_contract_abi("erc20.json"))
        _CONTRACT_CACHE[key] = contract
    return contract


def balance_of(web3: Web3, token_address: str, owner: str) -> int:
    """Fetch the ERC20 balance."""
    contract = get_contract(web3, token_address)
    return contract.functions.balanceOf(Web3.to_checksum_address(owner)).call()


def allowance_of(web3: Web3, token_address: str, owner: str, spender: str) -> int:
    """Fetch the ERC20 allowance."""
    contract = get_contract(web3, token_address)
    return contract.functions.allowance(
        Web3.to_checksum_address(owner),
        Web3.to_checksum_address(spender),
    ).call()


def decimals_of(web3: Web3, token_address: str) -> int:
    contract = get_contract(web3, token_address)
    return int(contract.functions.decimals().call())


def build_approve_tx(
    web3: Web3,
    token_address: str,
    owner: str,
    spender: str,
    amount: int,
    tx_params: Dict[str, Any],
) -> Dict[str, Any]:
    """Build an unsigned ``approve(spender, amount)`` transaction."""
    contract = get_contract(web3, token_address)
    params = {"from": Web3.to_checksum_address(owner), **tx_params}
    return contract.functions.approve(Web3.to_checksum_address(spender), int(amount)).build_transaction(params)


__all__ = [
    "EVM_NATIVE_TOKEN",
    "NativeToken",
    "SOL",
    "TRX",
    "USDC",
    "USDT",
    "ZERO_ADDRESS",
    "allowance_of",
    "balance_of",
    "build_approve_tx",
    "decimals_of",
    "get_contract",
    "is_native_token",
]
