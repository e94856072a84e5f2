"""DLN hooks: contract calls executed on the destination chain after an order fills."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from web3 import Web3

from debridge_kit.contracts import load_contract_abi

AAVE_POOL_POLYGON = "0x794a61358D6845594F94dc1DB02A252b5b4814aD"

EVM_TRANSACTION_CALL = "evm_transaction_call"


@dataclass(frozen=True)
class DlnHook:
    """Hook payload passed as ``dlnHook`` to ``create-tx``.

    ``gas`` of ``0`` lets the taker estimate gas for the call.
    """

    to: str
    calldata: str
    gas: int = 0
    type: str = EVM_TRANSACTION_CALL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "data": {"to": self.to, "calldata": self.calldata, "gas": self.gas},
        }


def aave_supply_calldata(asset: str, amount: int, on_behalf_of: str, referral_code: int = 0) -> str:
    """Encode ``Pool.supply(asset, amount, onBehalfOf, referralCode)`` for Aave V3."""
    contract = Web3().eth.contract(abi=load_contract_abi("aave_pool.json"))
    return contract.encode_abi(
        "supply",
        args=[
            Web3.to_checksum_address(asset),
            int(amount),
            Web3.to_checksum_address(on_behalf_of),
            int(referral_code),
        ],
    )


def aave_supply_hook(asset: str, amount: int, on_behalf_of: str, *, pool: str = AAVE_POOL_POLYGON) -> DlnHook:
    """Hook that supplies ``amount`` of ``asset`` to an Aave pool on behalf of ``on_behalf_of``."""
    return DlnHook(to=pool, calldata=aave_supply_calldata(asset, amount, on_behalf_of))


__all__ = [
    "AAVE_POOL_POLYGON",
    "DlnHook",
    "EVM_TRANSACTION_CALL",
    "aave_supply_calldata",
    "aave_supply_hook",
]
