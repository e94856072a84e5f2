"""deBridge chain identifiers.

deBridge uses internal chain IDs which differ from the standard EVM ones for
non-EVM networks and for chains added after the original launch. The live list
is available from ``/supported-chains-info`` on the DLN API.
"""

from __future__ import annotations

from typing import Dict, Union

CHAIN_IDS: Dict[str, int] = {
    "Arbitrum": 42161,
    "Avalanche": 43114,
    "BNB": 56,
    "Ethereum": 1,
    "Polygon": 137,
    "Fantom": 250,
    "Solana": 7565164,
    "Linea": 59144,
    "Optimism": 10,
    "Base": 8453,
    "Neon": 100000001,
    "Gnosis": 100000002,
    "Metis": 100000004,
    "Bitrock": 100000005,
    "CrossFi": 100000006,
    "Zilliqa": 100000008,
    "Flow": 100000009,
    "Cronos": 100000010,
    "Story": 100000013,
    "Sonic": 100000014,
    "Zircuit": 100000015,
    "Abstract": 100000017,
    "Berachain": 100000020,
    "BOB": 100000021,
    "HyperEVM": 100000022,
    "Mantle": 100000023,
    "Plume": 100000024,
    "Sophon": 100000025,
    "TRON": 100000026,
    "Sei": 100000027,
    "Plasma": 100000028,
}

SOLANA_CHAIN_ID = CHAIN_IDS["Solana"]
TRON_CHAIN_ID = CHAIN_IDS["TRON"]

EVM = "evm"
SOLANA = "solana"
TRON = "tron"


def chain_family(chain_id: Union[int, str]) -> str:
    """Return ``evm``, ``solana`` or ``tron`` for a deBridge chain id."""
    value = int(chain_id)
    if value == SOLANA_CHAIN_ID:
        return SOLANA
    if value == TRON_CHAIN_ID:
        return TRON
    return EVM


def resolve_chain_id(name_or_id: Union[int, str]) -> int:
    """Accept either a chain name from :data:`CHAIN_IDS` (case-insensitive) or a numeric id."""
    if isinstance(name_or_id, int):
        return name_or_id
    text = str(name_or_id).strip()
    if text.isdigit():
        return int(text)
    for name, chain_id in CHAIN_IDS.items():
        if name.lower() == text.lower():
            return chain_id
    raise ValueError(f"Unknown chain: {name_or_id}")


__all__ = [
    "CHAIN_IDS",
    "EVM",
    "SOLANA",
    "SOLANA_CHAIN_ID",
    "TRON",
    "TRON_CHAIN_ID",
    "chain_family",
    "resolve_chain_id",
]
