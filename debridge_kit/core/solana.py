"""Solana helpers: JSON-RPC access and priority fee adjustment of API-built transactions.

deBridge returns Solana transactions as hex-encoded ``VersionedTransaction``
bytes whose first two instructions are ``SetComputeUnitLimit`` and
``SetComputeUnitPrice``. The blockhash inside is usually stale by the time the
payload arrives, and the compute budget is a generic default, so the
transaction is simulated locally and both values are rewritten before the
final signature.
"""

from __future__ import annotations

import base64
import math
import time
from typing import Any, Dict, List, Optional, Sequence, Union

import base58
import requests
from solders.hash import Hash
from solders.instruction import CompiledInstruction
from solders.keypair import Keypair
from solders.message import Message, MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from debridge_kit.core.orders import OrderResponse
from debridge_kit.core.utils import get_logger, hex_to_bytes

LOGGER = get_logger("debridge_kit.solana")

COMPUTE_BUDGET_PROGRAM_ID = Pubkey.from_string("ComputeBudget111111111111111111111111111111")
SET_COMPUTE_UNIT_LIMIT = 2
SET_COMPUTE_UNIT_PRICE = 3

DEFAULT_COMPUTE_UNITS = 200_000
DEFAULT_CU_PRICE = 2_000
DEFAULT_CU_BUFFER = 1.1

AnyMessage = Union[Message, MessageV0]


class SolanaRpcError(ConnectionError):
    """Raised when the RPC node answers with a JSON-RPC error object."""


class SolanaRpc:
    """Minimal JSON-RPC client covering the calls needed to submit DLN orders."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout: int = 30,
        commitment: str = "confirmed",
        session: Optional[requests.Session] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.commitment = commitment
        self.session = session or requests.Session()

    def _call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params or []}
        try:
            response = self.session.post(self.rpc_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ConnectionError(f"Solana RPC {method} failed: {exc}") from exc

        body = response.json()
        if body.get("error"):
            raise SolanaRpcError(f"Solana RPC {method} error: {body['error']}")
        return body.get("result")

    def get_latest_blockhash(self) -> Hash:
        result = self._call("getLatestBlockhash", [{"commitment": self.commitment}])
        return Hash.from_string(result["value"]["blockhash"])

    def simulate_transaction(self, tx: VersionedTransaction) -> Optional[int]:
        """Simulate ``tx`` and return the compute units it consumed, if reported."""
        encoded = base64.b64encode(bytes(tx)).decode("ascii")
        result = self._call(
            "simulateTransaction",
            [
                encoded,
                {
                    "encoding": "base64",
                    "commitment": self.commitment,
                    "sigVerify": False,
                    "replaceRecentBlockhash": False,
                },
            ],
        )
        value = result.get("value") or {}
        if value.get("err"):
            LOGGER.warning("Simulation reported an error: %s", value["err"])
            for line in value.get("logs") or []:
                LOGGER.debug("  %s", line)
        return value.get("unitsConsumed")

    def get_recent_prioritization_fees(self, accounts: Optional[Sequence[str]] = None) -> List[int]:
        params: List[Any] = [list(accounts)] if accounts else []
        result = self._call("getRecentPrioritizationFees", params) or []
        return [int(entry["prioritizationFee"]) for entry in result]

    def send_raw_transaction(self, raw: bytes, *, skip_preflight: bool = False) -> str:
        encoded = base64.b64encode(raw).decode("ascii")
        return self._call(
            "sendTransaction",
            [
                encoded,
                {
                    "encoding": "base64",
                    "skipPreflight": skip_preflight,
                    "preflightCommitment": self.commitment,
                },
            ],
        )

    def get_multiple_accounts(self, pubkeys: Sequence[str]) -> List[Optional[Dict[str, Any]]]:
        result = self._call(
            "getMultipleAccounts",
            [list(pubkeys), {"encoding": "base64", "commitment": self.commitment}],
        )
        return list(result.get("value") or [])

    def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        result = self._call("getSignatureStatuses", [[signature], {"searchTransactionHistory": False}])
        statuses = result.get("value") or [None]
        return statuses[0]


def load_keypair(secret: str) -> Keypair:
    """Load a keypair from a base58-encoded 64 byte secret key."""
    try:
        return Keypair.from_bytes(base58.b58decode(secret.strip()))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid Solana secret key: {exc}") from exc


def median_prioritization_fee(fees: Sequence[int], *, fallback: int = DEFAULT_CU_PRICE) -> int:
    """Return the middle element of the sorted fee list (upper middle for even lengths)."""
    if not fees:
        return fallback
    ordered = sorted(fees)
    return int(ordered[len(ordered) // 2])


def compute_unit_limit(
    units_consumed: Optional[int],
    *,
    buffer: float = DEFAULT_CU_BUFFER,
    fallback: int = DEFAULT_COMPUTE_UNITS,
) -> int:
    used = fallback if units_consumed is None else units_consumed
    return math.ceil(used * buffer)


def _encode_le(value: int, size: int, name: str) -> bytes:
    if value < 0 or value >= 1 << (8 * size):
        raise ValueError(f"{name} {value} does not fit in {size} bytes")
    return int(value).to_bytes(size, "little")


def _patch_data(data: bytes, encoded: bytes) -> bytes:
    if len(data) < 1 + len(encoded):
        raise ValueError("Compute budget instruction data is too short to patch")
    return data[:1] + encoded + data[1 + len(encoded):]


def replace_message(
    message: AnyMessage,
    *,
    recent_blockhash: Optional[Hash] = None,
    instructions: Optional[Sequence[CompiledInstruction]] = None,
) -> AnyMessage:
    """Copy ``message`` with a new blockhash and/or compiled instructions."""
    blockhash = recent_blockhash or message.recent_blockhash
    compiled = list(message.instructions if instructions is None else instructions)
    if isinstance(message, MessageV0):
        return MessageV0(
            message.header,
            message.account_keys,
            blockhash,
            compiled,
            message.address_table_lookups,
        )
    header = message.header
    return Message.new_with_compiled_instructions(
        header.num_required_signatures,
        header.num_readonly_signed_accounts,
        header.num_readonly_unsigned_accounts,
        message.account_keys,
        blockhash,
        compiled,
    )


def update_priority_fee(
    tx: VersionedTransaction,
    compute_unit_price: int,
    compute_unit_limit: Optional[int] = None,
) -> VersionedTransaction:
    """Return a copy of ``tx`` with its ComputeBudget price (and optionally limit) rewritten.

    The price is stored as a little-endian u64 and the limit as a little-endian
    u32, both right after the one-byte instruction discriminator. The returned
    transaction keeps the old signatures, which are no longer valid, so it must
    be signed again.
    """
    message = tx.message
    encoded_price = _encode_le(compute_unit_price, 8, "compute unit price")
    encoded_limit = None if compute_unit_limit is None else _encode_le(compute_unit_limit, 4, "compute unit limit")

    price_patched = False
    limit_patched = compute_unit_limit is None
    instructions: List[CompiledInstruction] = []
    for ix in message.instructions:
        data = bytes(ix.data)
        is_budget = message.account_keys[ix.program_id_index] == COMPUTE_BUDGET_PROGRAM_ID
        if is_budget and data and data[0] == SET_COMPUTE_UNIT_PRICE:
            data = _patch_data(data, encoded_price)
            price_patched = True
        elif is_budget and data and data[0] == SET_COMPUTE_UNIT_LIMIT and encoded_limit is not None:
            data = _patch_data(data, encoded_limit)
            limit_patched = True
        instructions.append(
            CompiledInstruction(program_id_index=ix.program_id_index, data=data, accounts=bytes(ix.accounts))
        )

    if not price_patched:
        raise ValueError("Transaction has no SetComputeUnitPrice instruction")
    if not limit_patched:
        raise ValueError("Transaction has no SetComputeUnitLimit instruction")

    return VersionedTransaction.populate(replace_message(message, instructions=instructions), tx.signatures)


def sign_with_blockhash(tx: VersionedTransaction, blockhash: Hash, signers: Sequence[Keypair]) -> VersionedTransaction:
    return VersionedTransaction(replace_message(tx.message, recent_blockhash=blockhash), list(signers))


def prepare_solana_transaction(
    rpc: SolanaRpc,
    tx_data: str,
    keypair: Keypair,
    *,
    cu_buffer: float = DEFAULT_CU_BUFFER,
    fallback_units: int = DEFAULT_COMPUTE_UNITS,
    fallback_price: int = DEFAULT_CU_PRICE,
) -> VersionedTransaction:
    """Simulate, set priority fees and blockhash, and sign an API-built transaction."""
    tx = VersionedTransaction.from_bytes(hex_to_bytes(tx_data))

    # The simulation needs a live blockhash.
    tx = sign_with_blockhash(tx, rpc.get_latest_blockhash(), [keypair])
    units = rpc.simulate_transaction(tx)
    limit = compute_unit_limit(units, buffer=cu_buffer, fallback=fallback_units)

    price = median_prioritization_fee(rpc.get_recent_prioritization_fees(), fallback=fallback_price)
    LOGGER.info("Compute units used=%s limit=%s price=%s micro-lamports/CU", units, limit, price)

    tx = update_priority_fee(tx, price, limit)
    return sign_with_blockhash(tx, rpc.get_latest_blockhash(), [keypair])


def send_solana_transaction(
    rpc: SolanaRpc,
    tx_data: str,
    keypair: Keypair,
    *,
    skip_preflight: bool = False,
    **fee_options: Any,
) -> str:
    """Prepare and broadcast a hex-encoded transaction, returning its signature."""
    signed = prepare_solana_transaction(rpc, tx_data, keypair, **fee_options)
    signature = rpc.send_raw_transaction(bytes(signed), skip_preflight=skip_preflight)
    LOGGER.info("Transaction sent! Signature: %s", signature)
    return signature


def send_solana_order(
    rpc: SolanaRpc,
    order: OrderResponse,
    keypair: Keypair,
    *,
    skip_preflight: bool = False,
    **fee_options: Any,
) -> str:
    """Submit the Solana transaction of a DLN order or same-chain swap."""
    return send_solana_transaction(rpc, order.tx.data, keypair, skip_preflight=skip_preflight, **fee_options)


def wait_for_confirmation(rpc: SolanaRpc, signature: str, *, timeout: float = 90, interval: float = 1.0) -> bool:
    """Poll the signature status until it is confirmed, fails, or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        status = rpc.get_signature_status(signature)
        if status is not None:
            if status.get("err"):
                LOGGER.error("Transaction %s failed on-chain: %s", signature, status["err"])
                return False
            if status.get("confirmationStatus") in ("confirmed", "finalized"):
                return True
        time.sleep(interval)
    LOGGER.error("Confirmation timeout after %ss for %s", timeout, signature)
    return False


__all__ = [
    "COMPUTE_BUDGET_PROGRAM_ID",
    "SolanaRpc",
    "SolanaRpcError",
    "compute_unit_limit",
    "load_keypair",
    "median_prioritization_fee",
    "prepare_solana_transaction",
    "replace_message",
    "send_solana_order",
    "send_solana_transaction",
    "sign_with_blockhash",
    "update_priority_fee",
    "wait_for_confirmation",
]
