"""TRON support: address codecs, TronGrid HTTP calls and DLN order submission.

TRON contracts speak the EVM ABI, so calldata is built with ``eth_abi`` and
transactions are signed with secp256k1 keys through ``eth_keys``. Addresses
travel over the HTTP API in "hex41" form (``41`` followed by the 20 address
bytes) and are shown to users in base58check.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

import base58
import requests
from eth_abi import encode
from eth_keys import keys
from web3 import Web3

from debridge_kit.core.orders import OrderResponse
from debridge_kit.core.tokens import USDT, is_native_token
from debridge_kit.core.utils import clip_hex_prefix, get_logger, hex_to_bytes

LOGGER = get_logger("debridge_kit.tron")

DEFAULT_TRON_RPC = "https://api.trongrid.io"
TRON_ADDRESS_PREFIX = b"\x41"
SUN_PER_TRX = 10**6


def hex_to_utf8(data: Optional[str]) -> str:
    """Decode a hex-encoded message from the node, returning ``""`` if it is not valid."""
    if not data:
        return ""
    try:
        return hex_to_bytes(data).decode("utf-8")
    except ValueError:
        return ""


def to_hex41(address: str) -> str:
    """Convert a ``0x`` EVM-style, hex41 or base58check TRON address to hex41."""
    if address.startswith("0x"):
        return "41" + address[2:].lower()
    if len(address) == 42 and address.startswith("41"):
        return address.lower()
    raw = base58.b58decode_check(address)
    if len(raw) != 21 or raw[:1] != TRON_ADDRESS_PREFIX:
        raise ValueError(f"Not a TRON address: {address}")
    return raw.hex()


def to_base58(address: str) -> str:
    """Convert a hex41 (or ``0x``-prefixed 20 byte) address to base58check."""
    raw = bytes.fromhex(to_hex41(address))
    return base58.b58encode_check(raw).decode("ascii")


def _evm_address(address: str) -> str:
    return Web3.to_checksum_address("0x" + to_hex41(address)[2:])


def address_from_private_key(private_key: str) -> str:
    """Return the base58 TRON address controlled by ``private_key``."""
    public_key = keys.PrivateKey(hex_to_bytes(private_key)).public_key
    return base58.b58encode_check(TRON_ADDRESS_PREFIX + public_key.to_canonical_address()).decode("ascii")


def calc_fee_limit(energy_used: int, energy_price_sun: int, buffer: float = 1.3) -> int:
    """Fee limit in SUN for ``energy_used`` at ``energy_price_sun`` plus ``buffer``."""
    return math.ceil(energy_used * energy_price_sun * buffer)


def check_receipt(receipt: Mapping[str, Any]) -> Tuple[bool, Optional[str]]:
    """Interpret a ``broadcasttransaction`` response.

    ``result: true`` only means the node accepted the transaction; execution
    status must be checked separately.
    """
    if receipt.get("code"):
        message = hex_to_utf8(receipt.get("message"))
        return False, f"Transaction failed with code {receipt['code']}: {message}"
    if not receipt.get("result"):
        return False, "Transaction broadcast failed (result: false)"
    return True, None


def _selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


def encode_call(signature: str, arg_types: Tuple[str, ...], args: Tuple[Any, ...]) -> str:
    """ABI-encode a call as hex without the ``0x`` prefix."""
    return (_selector(signature) + encode(list(arg_types), list(args))).hex()


@dataclass(frozen=True)
class SimulationResult:
    """Outcome of a ``triggerconstantcontract`` dry run."""

    ok: bool
    energy_used: int = 0
    error: Optional[str] = None


class TronClient:
    """Signer bound to a TronGrid-compatible full node."""

    def __init__(
        self,
        rpc_url: str = DEFAULT_TRON_RPC,
        *,
        private_key: str,
        api_key: Optional[str] = None,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.rpc_url = rpc_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if api_key:
            self.session.headers.update({"TRON-PRO-API-KEY": api_key})
        self._private_key = keys.PrivateKey(hex_to_bytes(private_key))
        self.address = address_from_private_key(private_key)
        self.address_hex41 = to_hex41(self.address)
        LOGGER.info("TRON signer %s", self.address)

    def _post(self, path: str, body: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.rpc_url}/{path}"
        try:
            response = self.session.post(url, json=dict(body or {}), timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ConnectionError(f"TRON request {path} failed: {exc}") from exc
        return response.json()

    def simulate(
        self,
        contract: str,
        data: str,
        *,
        call_value: int = 0,
        owner: Optional[str] = None,
        label: str = "simulation",
    ) -> SimulationResult:
        """Dry-run a contract call and report the energy it would consume."""
        sim = self._post(
            "wallet/triggerconstantcontract",
            {
                "owner_address": to_hex41(owner or self.address),
                "contract_address": to_hex41(contract),
                "call_value": int(call_value),
                "data": clip_hex_prefix(data),
            },
        )
        result = sim.get("result") or {}
        if result.get("result") is not True:
            reason = hex_to_utf8(result.get("message")) or "unknown"
            LOGGER.warning("%s simulation failed (%s)", label, reason)
            return SimulationResult(ok=False, error=reason)

        energy_used = int(sim.get("energy_used") or 0)
        LOGGER.info("%s energy_used: %s", label, energy_used)
        return SimulationResult(ok=True, energy_used=energy_used)

    def _constant_call(self, contract: str, data: str) -> int:
        sim = self._post(
            "wallet/triggerconstantcontract",
            {
                "owner_address": self.address_hex41,
                "contract_address": to_hex41(contract),
                "call_value": 0,
                "data": data,
            },
        )
        results = sim.get("constant_result") or []
        if not results:
            raise ValueError(f"Constant call to {contract} returned no result")
        return int(results[0] or "0", 16)

    def energy_price_sun(self) -> int:
        params = self._post("wallet/getchainparameters").get("chainParameter") or []
        for entry in params:
            if entry.get("key") == "getEnergyFee" and entry.get("value") is not None:
                return int(entry["value"])
        raise ValueError("getEnergyFee not found in chain parameters")

    def trx_balance(self, owner: Optional[str] = None) -> int:
        account = self._post("wallet/getaccount", {"address": to_hex41(owner or self.address)})
        return int(account.get("balance") or 0)

    def balance_of(self, token: str, owner: Optional[str] = None) -> int:
        """TRC-20 ``balanceOf`` in the token's smallest unit."""
        data = encode_call("balanceOf(address)", ("address",), (_evm_address(owner or self.address),))
        return self._constant_call(token, data)

    def allowance_of(self, token: str, spender: str, owner: Optional[str] = None) -> int:
        data = encode_call(
            "allowance(address,address)",
            ("address", "address"),
            (_evm_address(owner or self.address), _evm_address(spender)),
        )
        return self._constant_call(token, data)

    @staticmethod
    def build_approve_calldata(spender: str, amount: int) -> str:
        return encode_call("approve(address,uint256)", ("address", "uint256"), (_evm_address(spender), int(amount)))

    def trigger_smart_contract(self, contract: str, data: str, *, call_value: int = 0, fee_limit: int) -> Dict[str, Any]:
        """Build an unsigned contract call transaction."""
        built = self._post(
            "wallet/triggersmartcontract",
            {
                "owner_address": self.address_hex41,
                "contract_address": to_hex41(contract),
                "data": clip_hex_prefix(data),
                "call_value": int(call_value),
                "fee_limit": int(fee_limit),
            },
        )
        result = built.get("result") or {}
        transaction = built.get("transaction")
        if not result.get("result") or not transaction:
            reason = hex_to_utf8(result.get("message")) or "unknown"
            raise RuntimeError(f"Failed to build contract call to {contract}: {reason}")
        return transaction

    def sign(self, transaction: Mapping[str, Any]) -> Dict[str, Any]:
        signature = self._private_key.sign_msg_hash(bytes.fromhex(transaction["txID"]))
        signed = dict(transaction)
        signed["signature"] = list(transaction.get("signature") or []) + [signature.to_bytes().hex()]
        return signed

    def broadcast(self, signed: Mapping[str, Any]) -> str:
        receipt = self._post("wallet/broadcasttransaction", signed)
        ok, error = check_receipt(receipt)
        if not ok:
            raise RuntimeError(error)
        return receipt.get("txid") or signed["txID"]

    def send_contract_call(self, contract: str, data: str, *, call_value: int = 0, fee_limit: int) -> str:
        transaction = self.trigger_smart_contract(contract, data, call_value=call_value, fee_limit=fee_limit)
        return self.broadcast(self.sign(transaction))

    def wait_for_allowance(
        self,
        token: str,
        spender: str,
        needed: int,
        *,
        timeout: float = 30,
        interval: float = 2,
    ) -> bool:
        """Poll the allowance until it reaches ``needed`` or ``timeout`` elapses."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.allowance_of(token, spender) >= needed:
                return True
            time.sleep(interval)
        return False


def _ensure_trc20_allowance(client: TronClient, token: str, spender: str, required: int, fee_buffer: float) -> None:
    balance = client.balance_of(token)
    LOGGER.info("Token balance %s, required %s", balance, required)
    if balance < required:
        raise ValueError(f"Insufficient token balance: have {balance}, need {required}")

    allowance = client.allowance_of(token, spender)
    if allowance >= required:
        LOGGER.info("Sufficient allowance already granted")
        return

    calldata = client.build_approve_calldata(spender, required)
    sim = client.simulate(token, calldata, label=f"approve({required})")
    if not sim.ok:
        raise RuntimeError(f"approve simulation failed: {sim.error}")

    fee_limit = calc_fee_limit(sim.energy_used, client.energy_price_sun(), fee_buffer)
    txid = client.send_contract_call(token, calldata, fee_limit=fee_limit)
    LOGGER.info("Approve tx: %s", txid)

    if not client.wait_for_allowance(token, spender, required):
        raise RuntimeError("Allowance not updated in time after approve")


def send_tron_order(
    client: TronClient,
    order: OrderResponse,
    token: str = USDT.TRON,
    *,
    fee_buffer: float = 1.3,
) -> str:
    """Approve if needed, then simulate and broadcast the order's bridge call.

    For TRC-20 input the protocol fix fee is paid as call value; for native
    TRX input the API already folds everything into ``tx.value``.
    """
    order_tx = order.tx
    if not order_tx.to or not order_tx.data:
        raise ValueError("Invalid transaction data returned from order creation")

    native = is_native_token(token)
    if native:
        call_value = order_tx.value
    else:
        required = order.required_src_amount
        LOGGER.info("Required token amount: %s", required)
        _ensure_trc20_allowance(client, token, to_base58(order_tx.to), required, fee_buffer)
        call_value = order.fix_fee

    sim = client.simulate(order_tx.to, order_tx.data, call_value=call_value, label="bridge")
    if not sim.ok:
        raise RuntimeError(f"bridge simulation failed: {sim.error}")
    fee_limit = calc_fee_limit(sim.energy_used, client.energy_price_sun(), fee_buffer)

    if native:
        balance = client.trx_balance()
        total = call_value + fee_limit
        LOGGER.info(
            "TRX balance %.6f, callValue %.6f, feeLimit %.6f",
            balance / SUN_PER_TRX,
            call_value / SUN_PER_TRX,
            fee_limit / SUN_PER_TRX,
        )
        if balance < total:
            raise ValueError(f"Insufficient balance. Missing ~{(total - balance) / SUN_PER_TRX:.6f} TRX")

    txid = client.send_contract_call(order_tx.to, order_tx.data, call_value=call_value, fee_limit=fee_limit)
    LOGGER.info("TX Hash: %s", txid)
    LOGGER.info("TronScan: https://tronscan.org/#/transaction/%s", txid)
    return txid


__all__ = [
    "SimulationResult",
    "TronClient",
    "address_from_private_key",
    "calc_fee_limit",
    "check_receipt",
    "encode_call",
    "hex_to_utf8",
    "send_tron_order",
    "to_base58",
    "to_hex41",
]
