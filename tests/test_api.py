"""Tests for the DLN API and stats API clients."""

from unittest.mock import Mock

import pytest
import requests

from debridge_kit.core.api import (
    DlnApiClient,
    DlnApiError,
    OrdersFilter,
    StatsApiClient,
    fulfilled_orders_filter,
)
from debridge_kit.core.orders import OrderInput, SameChainEstimateInput

BASE = "https://dln.example/v1.0"


def make_response(payload=None, *, ok=True, status_code=200, reason="OK", text=""):
    response = Mock()
    response.ok = ok
    response.status_code = status_code
    response.reason = reason
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


def make_session(*responses):
    session = Mock()
    session.headers = {}
    session.request.side_effect = list(responses)
    return session


def make_order():
    return OrderInput(
        src_chain_id=137,
        src_chain_token_in="0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359",
        src_chain_token_in_amount="1000000",
        dst_chain_id=42161,
        dst_chain_token_out="0xaf88d065e77c8cc2239327c5edb3a432268e5831",
        dst_chain_token_out_recipient="0x55A8f5cce1d53D9Ff84EC0962882b447E5914dB8",
        account="0x55A8f5cce1d53D9Ff84EC0962882b447E5914dB8",
    )


class TestDlnApiClient:
    def test_create_order(self):
        payload = {"tx": {"to": "0xabc", "data": "0x1234", "value": "0"}, "orderId": "0xid", "estimation": {}}
        session = make_session(make_response(payload))
        client = DlnApiClient(BASE + "/", referral_code="42", session=session)

        response = client.create_order(make_order())

        method, url = session.request.call_args[0]
        assert method == "GET"
        assert url == f"{BASE}/dln/order/create-tx"
        params = session.request.call_args[1]["params"]
        assert params["referralCode"] == "42"
        assert params["srcChainTokenInAmount"] == "1000000"
        assert response.order_id == "0xid"
        assert response.requested_amount == 1_000_000
        assert response.tx.data == "0x1234"

    def test_error_field_raises(self):
        session = make_session(make_response({"error": "bad amount"}))
        client = DlnApiClient(BASE, session=session)
        with pytest.raises(DlnApiError, match="DLN API error: bad amount"):
            client.create_order(make_order())

    def test_http_error_keeps_status(self):
        session = make_session(make_response(None, ok=False, status_code=400, reason="Bad Request", text="nope"))
        client = DlnApiClient(BASE, session=session)
        with pytest.raises(DlnApiError) as excinfo:
            client.get_supported_chains()
        assert excinfo.value.status_code == 400
        assert "Bad Request" in str(excinfo.value)

    def test_non_json_body(self):
        session = make_session(make_response(ValueError("no json")))
        client = DlnApiClient(BASE, session=session)
        with pytest.raises(DlnApiError, match="non-JSON"):
            client.get_supported_chains()

    def test_transport_error(self):
        session = Mock()
        session.headers = {}
        session.request.side_effect = requests.exceptions.Timeout("slow")
        client = DlnApiClient(BASE, session=session)
        with pytest.raises(ConnectionError, match="slow"):
            client.get_supported_chains()

    def test_estimate_requires_estimation(self):
        session = make_session(make_response({"tokenIn": {}}))
        client = DlnApiClient(BASE, session=session)
        estimate = SameChainEstimateInput(chain_id=137, token_in="a", token_in_amount=1, token_out="b")
        with pytest.raises(DlnApiError, match="Invalid estimation"):
            client.estimate_same_chain_swap(estimate)

    def test_cancel_tx(self):
        payload = {"to": "0xabc", "data": "0xdead", "value": "0", "chainId": 137, "from": "0x55A8f5cce1d53D9Ff84EC0962882b447E5914dB8"}
        session = make_session(make_response(payload))
        client = DlnApiClient(BASE, session=session)

        cancel_tx = client.get_cancel_tx("0xorder")

        assert session.request.call_args[0][1] == f"{BASE}/dln/order/0xorder/cancel-tx"
        assert cancel_tx.chain_id == 137
        assert cancel_tx.data == "0xdead"


class TestOrdersFilter:
    def test_body_uses_api_names_and_skips_none(self):
        body = OrdersFilter(take=5, maker="0xabc", order_states=["Fulfilled"], filter_mode="SameChain").to_body()
        assert body == {"skip": 0, "take": 5, "orderStates": ["Fulfilled"], "maker": "0xabc", "filterMode": "SameChain"}

    def test_extra_fields_merged(self):
        body = OrdersFilter(extra={"creator": "x"}).to_body()
        assert body["creator"] == "x"
        assert "extra" not in body

    def test_fulfilled_filter(self):
        body = fulfilled_orders_filter(maker="0xabc").to_body()
        assert body["orderStates"] == ["Fulfilled", "SentUnlock", "ClaimedUnlock"]
        assert body["externalCallStates"] == ["NoExtCall"]
        assert body["giveChainIds"] == []


class TestStatsApiClient:
    def test_paths(self):
        session = make_session(make_response(["0x1"]), make_response({"status": "Fulfilled"}), make_response({}))
        client = StatsApiClient("https://stats.example/api", session=session)

        assert client.get_order_ids_by_tx("0xhash") == ["0x1"]
        assert client.get_order_status("0xid") == {"status": "Fulfilled"}
        client.get_same_chain_swap(7565164, "sig")

        urls = [call[0][1] for call in session.request.call_args_list]
        assert urls == [
            "https://stats.example/api/Transaction/0xhash/orderIds",
            "https://stats.example/api/Orders/0xid",
            "https://stats.example/api/SameChainSwap/7565164/tx/sig",
        ]

    def test_filter_orders_posts_body(self):
        session = make_session(make_response({"orders": []}))
        client = StatsApiClient("https://stats.example/api", session=session)

        client.filter_orders(OrdersFilter(referral_code="31805"))

        method, url = session.request.call_args[0]
        assert method == "POST"
        assert url.endswith("/Orders/filteredList")
        assert session.request.call_args[1]["json"]["referralCode"] == "31805"

    def test_iter_orders_pages_until_empty(self):
        session = make_session(
            make_response({"orders": [{"id": 1}, {"id": 2}]}),
            make_response({"orders": [{"id": 3}]}),
            make_response({"orders": []}),
        )
        client = StatsApiClient("https://stats.example/api", session=session)

        orders = list(client.iter_orders(OrdersFilter(maker="0xabc"), page_size=2))

        assert [order["id"] for order in orders] == [1, 2, 3]
        bodies = [call[1]["json"] for call in session.request.call_args_list]
        assert [(body["skip"], body["take"]) for body in bodies] == [(0, 2), (2, 2), (4, 2)]
        assert all(body["maker"] == "0xabc" for body in bodies)

    def test_iter_orders_starts_at_skip(self):
        session = make_session(make_response({"orders": [{"id": 6}]}), make_response({"orders": []}))
        client = StatsApiClient("https://stats.example/api", session=session)

        orders = list(client.iter_orders(OrdersFilter(maker="0xabc", skip=5), page_size=2))

        assert [order["id"] for order in orders] == [6]
        bodies = [call[1]["json"] for call in session.request.call_args_list]
        assert [body["skip"] for body in bodies] == [5, 7]
