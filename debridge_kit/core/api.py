"""HTTP clients for the deBridge DLN API and the DLN stats API."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

import requests

from debridge_kit.core.orders import (
    DEFAULT_REFERRAL_CODE,
    HookOrderInput,
    OrderInput,
    OrderResponse,
    OrderTransaction,
    SameChainEstimateInput,
    SameChainSwapInput,
)
from debridge_kit.core.utils import get_logger

LOGGER = get_logger("debridge_kit.api")

FULFILLED_STATES = ("Fulfilled", "SentUnlock", "ClaimedUnlock")


class DlnApiError(ValueError):
    """Raised when the DLN API rejects a request or reports an error."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class _JsonHttpClient:
    def __init__(self, base_url: str, *, timeout: int = 30, session: Optional[requests.Session] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json_body: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        LOGGER.debug("%s %s params=%s", method, url, params)
        try:
            response = self.session.request(method, url, params=params, json=json_body, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ConnectionError(f"Request to {url} failed: {exc}") from exc

        if not response.ok:
            raise DlnApiError(
                f"{method} {path} failed: {response.status_code} {response.reason}. {response.text}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise DlnApiError(f"{method} {path} returned a non-JSON body") from exc

        if isinstance(data, dict) and data.get("error"):
            raise DlnApiError(f"DLN API error: {data['error']}", status_code=response.status_code)
        return data


def _normalize_tx(data: Dict[str, Any]) -> Dict[str, Any]:
    tx = data.get("tx")
    if isinstance(tx, dict) and tx.get("data") is not None:
        tx["data"] = str(tx["data"])
    return data


def _as_int(value: Union[int, str]) -> Optional[int]:
    text = str(value)
    return int(text) if text.isdigit() else None


class DlnApiClient(_JsonHttpClient):
    """Client for order creation, same-chain swaps and cancellation."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: int = 30,
        referral_code: str = DEFAULT_REFERRAL_CODE,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(base_url, timeout=timeout, session=session)
        self.referral_code = referral_code

    def create_order(self, order: OrderInput) -> OrderResponse:
        """Create a cross-chain order and return the source-chain transaction."""
        params = order.to_query_params(default_referral_code=self.referral_code)
        LOGGER.info(
            "Creating order %s -> %s amount=%s",
            params["srcChainId"],
            params["dstChainId"],
            params["srcChainTokenInAmount"],
        )
        data = _normalize_tx(self._request("GET", "/dln/order/create-tx", params=params))
        response = OrderResponse(raw=data, requested_amount=_as_int(order.src_chain_token_in_amount))
        LOGGER.info("Order created orderId=%s", response.order_id)
        return response

    def create_hook_order(self, order: HookOrderInput) -> OrderResponse:
        """Create an order that executes ``order.dln_hook`` on the destination chain."""
        return self.create_order(order)

    def create_same_chain_swap(self, swap: SameChainSwapInput) -> OrderResponse:
        params = swap.to_query_params(default_referral_code=self.referral_code)
        LOGGER.info("Creating same-chain swap on chain %s", params["chainId"])
        data = _normalize_tx(self._request("GET", "/chain/transaction", params=params))
        return OrderResponse(raw=data, requested_amount=_as_int(swap.token_in_amount))

    def estimate_same_chain_swap(self, estimate: SameChainEstimateInput) -> Dict[str, Any]:
        data = self._request("GET", "/chain/estimation", params=estimate.to_query_params())
        if not data or "estimation" not in data:
            raise DlnApiError("Invalid estimation returned from /chain/estimation")
        return data

    def get_cancel_tx(self, order_id: str) -> OrderTransaction:
        """Fetch the destination-chain transaction that cancels ``order_id``."""
        data = self._request("GET", f"/dln/order/{order_id}/cancel-tx")
        return OrderTransaction.from_payload(data)

    def get_supported_chains(self) -> Dict[str, Any]:
        return self._request("GET", "/supported-chains-info")


@dataclass
class OrdersFilter:
    """Body for ``POST /Orders/filteredList``. ``None`` fields are omitted."""

    skip: int = 0
    take: int = 10
    give_chain_ids: Optional[List[int]] = None
    take_chain_ids: Optional[List[int]] = None
    order_states: Optional[List[str]] = None
    external_call_states: Optional[List[str]] = None
    maker: Optional[str] = None
    referral_code: Optional[str] = None
    filter: Optional[str] = None
    filter_mode: Optional[str] = None
    block_timestamp_from: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _FIELD_NAMES = {
        "give_chain_ids": "giveChainIds",
        "take_chain_ids": "takeChainIds",
        "order_states": "orderStates",
        "external_call_states": "externalCallStates",
        "referral_code": "referralCode",
        "filter_mode": "filterMode",
        "block_timestamp_from": "blockTimestampFrom",
    }

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        for name, value in asdict(self).items():
            if name == "extra" or value is None:
                continue
            body[self._FIELD_NAMES.get(name, name)] = value
        body.update(self.extra)
        return body


def fulfilled_orders_filter(*, maker: Optional[str] = None, referral_code: Optional[str] = None, take: int = 10) -> OrdersFilter:
    """Filter for orders considered fulfilled from the end user's perspective."""
    return OrdersFilter(
        take=take,
        give_chain_ids=[],
        take_chain_ids=[],
        order_states=list(FULFILLED_STATES),
        external_call_states=["NoExtCall"],
        maker=maker,
        referral_code=referral_code,
    )


class StatsApiClient(_JsonHttpClient):
    """Read-only queries against the DLN stats API."""

    def get_order_ids_by_tx(self, tx_hash: str) -> Any:
        return self._request("GET", f"/Transaction/{tx_hash}/orderIds")

    def get_order_status(self, order_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/Orders/{order_id}")

    def get_same_chain_swap(self, chain_id: Union[int, str], tx_hash: str) -> Dict[str, Any]:
        return self._request("GET", f"/SameChainSwap/{chain_id}/tx/{tx_hash}")

    def filter_orders(self, orders_filter: OrdersFilter) -> Dict[str, Any]:
        return self._request("POST", "/Orders/filteredList", json_body=orders_filter.to_body())

    def iter_orders(self, orders_filter: OrdersFilter, *, page_size: int = 100) -> Iterator[Dict[str, Any]]:
        """Yield every order matching ``orders_filter``, paging from its ``skip`` offset until an empty page."""
        page = 0
        while True:
            skip = orders_filter.skip + page * page_size
            current = OrdersFilter(**{**asdict(orders_filter), "skip": skip, "take": page_size})
            orders: Sequence[Dict[str, Any]] = self.filter_orders(current).get("orders") or []
            if not orders:
                return
            yield from orders
            page += 1


__all__ = [
    "DlnApiClient",
    "DlnApiError",
    "FULFILLED_STATES",
    "OrdersFilter",
    "StatsApiClient",
    "fulfilled_orders_filter",
]
