"""Execution of DLN orders on EVM chains."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError

from debridge_kit.core.orders import OrderResponse, OrderTransaction
from debridge_kit.core.tokens import allowance_of, build_approve_tx, is_native_token
from debridge_kit.core.utils import ensure_web3_connected, get_logger

LOGGER = get_logger("debridge_kit.evm")

FALLBACK_GAS = 1_000_000


@dataclass(frozen=True)
class GasParameters:
    """EIP-1559 gas parameters."""

    gas: int
    gas_price: int
    max_priority_fee: int
    max_fee: int
    estimated_cost: int


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of a mined transaction."""

    tx_hash: str
    status: int
    block_number: Optional[int] = None
    gas_used: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


def web3_from_url(url: str) -> Web3:
    return Web3(Web3.HTTPProvider(url))


class EvmOrderExecutor:
    """Approve, sign and broadcast API-built transactions with a local key."""

    def __init__(
        self,
        *,
        rpc_url: str,
        private_key: str,
        expected_chain_id: Optional[int] = None,
        gas_buffer: float = 1.1,
        web3_factory: Callable[[str], Web3] = web3_from_url,
    ) -> None:
        self.web3 = web3_factory(rpc_url)
        ensure_web3_connected(self.web3, expected_chain_id=expected_chain_id)
        self.chain_id = self.web3.eth.chain_id
        self.gas_buffer = gas_buffer

        self.account = Account.from_key(private_key)
        self.address = self.account.address
        LOGGER.info("Connected to chain %s as %s", self.chain_id, self.address)

    def fee_parameters(self) -> Dict[str, int]:
        gas_price = self.web3.eth.gas_price
        max_priority_fee = getattr(self.web3.eth, "max_priority_fee", gas_price)
        return {"maxFeePerGas": gas_price + max_priority_fee, "maxPriorityFeePerGas": max_priority_fee}

    def estimate_gas(self, tx: Dict[str, Any], *, buffer: Optional[float] = None) -> GasParameters:
        """Estimate gas usage for ``tx`` and apply ``buffer`` (defaults to the executor's)."""
        try:
            gas_estimate = self.web3.eth.estimate_gas(tx)
        except ContractLogicError as exc:
            raise ValueError(f"Transaction would revert: {exc}") from exc

        gas = int(gas_estimate * (buffer or self.gas_buffer))
        gas_price = self.web3.eth.gas_price
        max_priority_fee = getattr(self.web3.eth, "max_priority_fee", gas_price)
        return GasParameters(
            gas=gas,
            gas_price=gas_price,
            max_priority_fee=max_priority_fee,
            max_fee=gas_price + max_priority_fee,
            estimated_cost=gas * gas_price,
        )

    def ensure_allowance(self, token_address: str, spender: str, required: int) -> Optional[str]:
        """Approve ``spender`` for ``required`` tokens if the current allowance is short.

        Returns the approval transaction hash, or ``None`` when nothing was sent.
        """
        if is_native_token(token_address):
            LOGGER.info("Native token input, no approval needed")
            return None

        current = allowance_of(self.web3, token_address, self.address, spender)
        LOGGER.info("Allowance for %s -> %s: %s (required %s)", token_address, spender, current, required)
        if current >= required:
            LOGGER.info("Sufficient allowance already granted")
            return None

        LOGGER.info("Allowance insufficient, sending approve(%s, %s)", spender, required)
        tx = build_approve_tx(
            self.web3,
            token_address,
            self.address,
            spender,
            required,
            {
                "nonce": self.web3.eth.get_transaction_count(self.address),
                "chainId": self.chain_id,
                **self.fee_parameters(),
            },
        )
        result = self._sign_and_send(tx)
        if not result.succeeded:
            raise RuntimeError(f"Approval failed (status={result.status}) tx={result.tx_hash}")
        LOGGER.info("Approval confirmed in block %s", result.block_number)
        return result.tx_hash

    def _base_tx(self, order_tx: OrderTransaction) -> Dict[str, Any]:
        if not order_tx.to or not order_tx.data:
            raise ValueError("Invalid transaction data returned from order creation")
        return {
            "from": self.address,
            "to": Web3.to_checksum_address(order_tx.to),
            "data": order_tx.data,
            "value": order_tx.value,
            "chainId": self.chain_id,
        }

    def send_order(self, order: OrderResponse, token_in: str) -> ExecutionResult:
        """Approve the input token if needed, then broadcast the order transaction."""
        order_tx = order.tx
        tx = self._base_tx(order_tx)
        self.ensure_allowance(token_in, tx["to"], order.required_src_amount)

        try:
            gas = self.estimate_gas(tx)
            self._log_gas(gas)
        except Exception as exc:
            LOGGER.warning("Gas estimation failed: %s", exc)
            gas = self._fallback_gas()
            self._log_gas(gas, label="Fallback")

        tx.update(
            {
                "gas": gas.gas,
                "maxFeePerGas": gas.max_fee,
                "maxPriorityFeePerGas": gas.max_priority_fee,
                "nonce": self.web3.eth.get_transaction_count(self.address),
            }
        )
        return self._sign_and_send(tx)

    def cancel_order(self, cancel_tx: OrderTransaction, *, gas_buffer: float = 1.3) -> ExecutionResult:
        """Broadcast the cancel transaction for an order whose authority is this signer."""
        if cancel_tx.chain_id is None:
            raise ValueError("Cancel transaction does not specify a chain")
        if cancel_tx.from_address is None:
            raise ValueError("Cancel transaction does not specify the order authority address")
        if cancel_tx.chain_id != self.chain_id:
            raise ValueError(f"Expected wallet on chain {cancel_tx.chain_id} but got {self.chain_id}")
        if Web3.to_checksum_address(cancel_tx.from_address) != self.address:
            raise ValueError("Sender not matching the order destination chain authority address")

        tx = self._base_tx(cancel_tx)
        try:
            tx["gas"] = self.estimate_gas(tx, buffer=gas_buffer).gas
        except Exception as exc:
            LOGGER.error("Error estimating gas for cancel transaction: %s", exc)
            tx["gas"] = FALLBACK_GAS

        tx.update({"nonce": self.web3.eth.get_transaction_count(self.address), **self.fee_parameters()})
        return self._sign_and_send(tx)

    def _sign_and_send(self, tx: Dict[str, Any]) -> ExecutionResult:
        LOGGER.info("Signing transaction")
        signed = self.account.sign_transaction(tx)

        LOGGER.info("Broadcasting transaction")
        tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        tx_hex = Web3.to_hex(tx_hash)
        LOGGER.info("Transaction hash: %s", tx_hex)

        LOGGER.info("Awaiting confirmation")
        receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash)
        if receipt["status"] == 1:
            LOGGER.info("Transaction confirmed in block %s (gasUsed=%s)", receipt["blockNumber"], receipt["gasUsed"])
        else:
            LOGGER.error("Transaction failed! status=%s", receipt["status"])

        return ExecutionResult(
            tx_hash=tx_hex,
            status=receipt["status"],
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
        )

    @staticmethod
    def _log_gas(gas: GasParameters, *, label: str = "Estimate") -> None:
        LOGGER.info(
            "%s gas=%s maxFee=%.2f gwei priority=%.2f gwei estimatedCost=%.6f",
            label,
            gas.gas,
            gas.max_fee / 10**9,
            gas.max_priority_fee / 10**9,
            gas.estimated_cost / 10**18,
        )

    def _fallback_gas(self) -> GasParameters:
        gas_price = self.web3.eth.gas_price
        max_priority_fee = getattr(self.web3.eth, "max_priority_fee", gas_price)
        return GasParameters(
            gas=FALLBACK_GAS,
            gas_price=gas_price,
            max_priority_fee=max_priority_fee,
            max_fee=gas_price + max_priority_fee,
            estimated_cost=FALLBACK_GAS * gas_price,
        )


__all__ = ["EvmOrderExecutor", "ExecutionResult", "GasParameters", "web3_from_url"]
