"""Request and response models for DLN orders and same-chain swaps."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from debridge_kit.core.utils import parse_int

DEFAULT_REFERRAL_CODE = "31805"


def _apply_affiliate_fee(params: Dict[str, str], percent: Optional[float], recipient: Optional[str]) -> None:
    # Both fields must be present for the API to accept either of them.
    if percent and recipient:
        params["affiliateFeePercent"] = str(percent)
        params["affiliateFeeRecipient"] = recipient


@dataclass(frozen=True)
class OrderInput:
    """Parameters for ``/dln/order/create-tx``."""

    src_chain_id: Union[int, str]
    src_chain_token_in: str
    src_chain_token_in_amount: Union[int, str]
    dst_chain_id: Union[int, str]
    dst_chain_token_out: str
    dst_chain_token_out_recipient: str
    account: str
    dst_chain_token_out_amount: Optional[Union[int, str]] = None
    src_chain_order_authority_address: Optional[str] = None
    dst_chain_order_authority_address: Optional[str] = None
    referral_code: Optional[Union[int, str]] = None
    affiliate_fee_percent: Optional[float] = None
    affiliate_fee_recipient: Optional[str] = None

    def validate(self) -> None:
        if str(self.src_chain_id) == str(self.dst_chain_id):
            raise ValueError("Source and destination chains must be different")

    def to_query_params(self, *, default_referral_code: str = DEFAULT_REFERRAL_CODE) -> Dict[str, str]:
        """Build the query string for an order, applying the API's fallback rules."""
        self.validate()
        params = {
            "srcChainId": str(self.src_chain_id),
            "srcChainTokenIn": self.src_chain_token_in,
            "srcChainTokenInAmount": str(self.src_chain_token_in_amount),
            "dstChainId": str(self.dst_chain_id),
            "dstChainTokenOut": self.dst_chain_token_out,
            "dstChainTokenOutRecipient": self.dst_chain_token_out_recipient,
            "dstChainTokenOutAmount": str(self.dst_chain_token_out_amount or "auto"),
            "senderAddress": self.account,
            "srcChainOrderAuthorityAddress": self.src_chain_order_authority_address or self.account,
            "srcChainRefundAddress": self.account,
            "dstChainOrderAuthorityAddress": (
                self.dst_chain_order_authority_address or self.dst_chain_token_out_recipient
            ),
            "referralCode": str(self.referral_code or default_referral_code),
            "prependOperatingExpenses": "true",
        }
        _apply_affiliate_fee(params, self.affiliate_fee_percent, self.affiliate_fee_recipient)
        return params


@dataclass(frozen=True)
class HookOrderInput(OrderInput):
    """Order that also carries a DLN hook executed on the destination chain."""

    dln_hook: Mapping[str, Any] = field(default_factory=dict)

    def to_query_params(self, *, default_referral_code: str = DEFAULT_REFERRAL_CODE) -> Dict[str, str]:
        if not self.dln_hook:
            raise ValueError("dln_hook is required for hook orders")
        params = super().to_query_params(default_referral_code=default_referral_code)
        params.pop("affiliateFeePercent", None)
        params.pop("affiliateFeeRecipient", None)
        params["dlnHook"] = json.dumps(dict(self.dln_hook), separators=(",", ":"))
        return params


@dataclass(frozen=True)
class SameChainSwapInput:
    """Parameters for ``/chain/transaction``."""

    chain_id: Union[int, str]
    token_in: str
    token_in_amount: Union[int, str]
    token_out: str
    token_out_recipient: str
    sender_address: Optional[str] = None
    src_chain_priority_level: str = "normal"
    slippage: Optional[str] = None
    referral_code: Optional[Union[int, str]] = None
    affiliate_fee_percent: Optional[float] = None
    affiliate_fee_recipient: Optional[str] = None

    def to_query_params(self, *, default_referral_code: str = DEFAULT_REFERRAL_CODE) -> Dict[str, str]:
        params = {
            "chainId": str(self.chain_id),
            "tokenIn": self.token_in,
            "tokenInAmount": str(self.token_in_amount),
            "tokenOut": self.token_out,
            "tokenOutRecipient": self.token_out_recipient,
            "senderAddress": self.sender_address or "",
            "srcChainPriorityLevel": self.src_chain_priority_level or "normal",
            "slippage": str(self.slippage or "auto"),
            "referralCode": str(self.referral_code or default_referral_code),
        }
        _apply_affiliate_fee(params, self.affiliate_fee_percent, self.affiliate_fee_recipient)
        return params


@dataclass(frozen=True)
class SameChainEstimateInput:
    """Parameters for ``/chain/estimation``."""

    chain_id: Union[int, str]
    token_in: str
    token_in_amount: Union[int, str]
    token_out: str
    slippage: Optional[str] = None

    def to_query_params(self) -> Dict[str, str]:
        return {
            "chainId": str(self.chain_id),
            "tokenIn": self.token_in,
            "tokenInAmount": str(self.token_in_amount),
            "tokenOut": self.token_out,
            "slippage": str(self.slippage or "auto"),
        }


@dataclass(frozen=True)
class OrderTransaction:
    """Transaction payload returned by the API for the source chain."""

    to: Optional[str]
    data: str
    value: int = 0
    chain_id: Optional[int] = None
    from_address: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "OrderTransaction":
        data = payload.get("data")
        if data is None:
            raise ValueError("Transaction payload is missing 'data'")
        chain_id = payload.get("chainId")
        return cls(
            to=payload.get("to"),
            data=str(data),
            value=parse_int(payload.get("value")),
            chain_id=int(chain_id) if chain_id is not None else None,
            from_address=payload.get("from"),
        )


@dataclass(frozen=True)
class OrderResponse:
    """Parsed ``create-tx`` / ``chain/transaction`` response."""

    raw: Mapping[str, Any] = field(repr=False)
    requested_amount: Optional[int] = None

    @property
    def tx(self) -> OrderTransaction:
        payload = self.raw.get("tx")
        if not payload:
            raise ValueError("Invalid transaction data returned from order creation")
        return OrderTransaction.from_payload(payload)

    @property
    def estimation(self) -> Dict[str, Any]:
        return dict(self.raw.get("estimation") or {})

    @property
    def order_id(self) -> Optional[str]:
        return self.raw.get("orderId")

    @property
    def fix_fee(self) -> int:
        return parse_int(self.raw.get("fixFee"))

    @property
    def required_src_amount(self) -> int:
        """Amount of the input token the source transaction pulls, after prepended expenses."""
        amount = self.estimation.get("srcChainTokenIn", {}).get("amount")
        if amount is None:
            if self.requested_amount is None:
                raise ValueError("Order estimation is missing srcChainTokenIn.amount")
            return self.requested_amount
        return parse_int(amount)


__all__ = [
    "DEFAULT_REFERRAL_CODE",
    "HookOrderInput",
    "OrderInput",
    "OrderResponse",
    "OrderTransaction",
    "SameChainEstimateInput",
    "SameChainSwapInput",
]
