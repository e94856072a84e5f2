"""Tests for TRON address codecs, fee math and the HTTP client."""

from unittest.mock import Mock

import pytest
from eth_account import Account

from debridge_kit.core.orders import OrderResponse
from debridge_kit.core.tokens import TRX, USDT
from debridge_kit.core.tron import (
    SimulationResult,
    TronClient,
    address_from_private_key,
    calc_fee_limit,
    check_receipt,
    hex_to_utf8,
    send_tron_order,
    to_base58,
    to_hex41,
)

USDT_HEX41 = "41a614f803b6fd780986a42c78ec9c7f77e6ded13c"
PRIVATE_KEY = "11" * 32
ROUTER_EVM = "0x" + "ab" * 20


class TestAddresses:
    def test_base58_to_hex41(self):
        assert to_hex41(USDT.TRON) == USDT_HEX41

    def test_hex41_to_base58(self):
        assert to_base58(USDT_HEX41) == USDT.TRON

    def test_evm_style_address(self):
        assert to_hex41("0xA614F803B6FD780986A42C78EC9C7F77E6DED13C") == USDT_HEX41
        assert to_base58("0xa614f803b6fd780986a42c78ec9c7f77e6ded13c") == USDT.TRON

    def test_address_from_private_key(self):
        address = address_from_private_key(PRIVATE_KEY)
        assert address.startswith("T")
        assert to_hex41(address)[2:] == Account.from_key("0x" + PRIVATE_KEY).address[2:].lower()


class TestHelpers:
    def test_hex_to_utf8(self):
        assert hex_to_utf8("0x626164") == "bad"
        assert hex_to_utf8("zz") == ""
        assert hex_to_utf8(None) == ""

    def test_calc_fee_limit(self):
        assert calc_fee_limit(100, 420, 1.5) == 63_000
        assert calc_fee_limit(3, 1, 1.5) == 5

    def test_check_receipt(self):
        assert check_receipt({"result": True, "txid": "abc"}) == (True, None)
        assert check_receipt({"result": False}) == (False, "Transaction broadcast failed (result: false)")
        ok, error = check_receipt({"code": "SIGERROR", "message": "626164"})
        assert not ok
        assert error == "Transaction failed with code SIGERROR: bad"


def make_client(routes):
    """Client whose session answers each ``wallet/...`` path from ``routes``."""
    session = Mock()
    session.headers = {}

    def post(url, json, timeout):
        response = Mock()
        response.json.return_value = routes[url.rsplit("/", 2)[-2] + "/" + url.rsplit("/", 1)[-1]](json)
        return response

    session.post.side_effect = post
    return TronClient("https://tron.example/", private_key=PRIVATE_KEY, api_key="key", session=session), session


class TestTronClient:
    def test_api_key_header(self):
        _, session = make_client({})
        assert session.headers["TRON-PRO-API-KEY"] == "key"

    def test_simulate_ok(self):
        client, session = make_client(
            {"wallet/triggerconstantcontract": lambda body: {"result": {"result": True}, "energy_used": 1500}}
        )
        result = client.simulate(USDT.TRON, "0x095ea7b3", call_value=5)
        assert result == SimulationResult(ok=True, energy_used=1500)
        body = session.post.call_args[1]["json"]
        assert body["contract_address"] == USDT_HEX41
        assert body["owner_address"] == client.address_hex41
        assert body["data"] == "095ea7b3"
        assert body["call_value"] == 5

    def test_simulate_failure_decodes_message(self):
        client, _ = make_client(
            {"wallet/triggerconstantcontract": lambda body: {"result": {"result": False, "message": "626164"}}}
        )
        assert client.simulate(USDT.TRON, "00") == SimulationResult(ok=False, error="bad")

    def test_energy_price(self):
        client, _ = make_client(
            {"wallet/getchainparameters": lambda body: {"chainParameter": [{"key": "getEnergyFee", "value": 210}]}}
        )
        assert client.energy_price_sun() == 210

    def test_energy_price_missing(self):
        client, _ = make_client({"wallet/getchainparameters": lambda body: {"chainParameter": []}})
        with pytest.raises(ValueError, match="getEnergyFee"):
            client.energy_price_sun()

    def test_balance_of(self):
        client, session = make_client(
            {"wallet/triggerconstantcontract": lambda body: {"constant_result": ["%064x" % 2_500_000]}}
        )
        assert client.balance_of(USDT.TRON) == 2_500_000
        data = session.post.call_args[1]["json"]["data"]
        assert data.startswith("70a08231")
        assert data.endswith(client.address_hex41[2:])

    def test_approve_calldata(self):
        calldata = TronClient.build_approve_calldata(USDT.TRON, 10)
        assert calldata.startswith("095ea7b3")
        assert calldata[8:72].endswith(USDT_HEX41[2:])
        assert int(calldata[72:], 16) == 10

    def test_sign_and_broadcast(self):
        client, session = make_client(
            {"wallet/broadcasttransaction": lambda body: {"result": True, "txid": body["txID"]}}
        )
        signed = client.sign({"txID": "00" * 32, "raw_data": {}})
        assert len(signed["signature"]) == 1
        assert len(signed["signature"][0]) == 130
        assert client.broadcast(signed) == "00" * 32

    def test_broadcast_failure(self):
        client, _ = make_client({"wallet/broadcasttransaction": lambda body: {"code": "DUP_TRANSACTION_ERROR"}})
        with pytest.raises(RuntimeError, match="DUP_TRANSACTION_ERROR"):
            client.broadcast({"txID": "00"})

    def test_trigger_failure(self):
        client, _ = make_client({"wallet/triggersmartcontract": lambda body: {"result": {"message": "626164"}}})
        with pytest.raises(RuntimeError, match="bad"):
            client.trigger_smart_contract(USDT.TRON, "00", fee_limit=1)

    def test_wait_for_allowance(self):
        client, _ = make_client({})
        client.allowance_of = Mock(side_effect=[0, 10])
        assert client.wait_for_allowance(USDT.TRON, ROUTER_EVM, 10, timeout=5, interval=0)


def make_order(fix_fee="1000000", value="0"):
    return OrderResponse(
        raw={
            "tx": {"to": ROUTER_EVM, "data": "0xdeadbeef", "value": value},
            "estimation": {"srcChainTokenIn": {"amount": "2010000"}},
            "fixFee": fix_fee,
        },
        requested_amount=2_000_000,
    )


def stub_client(*, balance=5_000_000, allowance=0, trx_balance=0):
    client, _ = make_client({})
    client.balance_of = Mock(return_value=balance)
    client.allowance_of = Mock(return_value=allowance)
    client.trx_balance = Mock(return_value=trx_balance)
    client.simulate = Mock(return_value=SimulationResult(ok=True, energy_used=100))
    client.energy_price_sun = Mock(return_value=420)
    client.send_contract_call = Mock(side_effect=["approve-tx", "bridge-tx"])
    client.wait_for_allowance = Mock(return_value=True)
    return client


class TestSendTronOrder:
    def test_approves_then_bridges(self):
        client = stub_client()

        assert send_tron_order(client, make_order(), USDT.TRON, fee_buffer=1.5) == "bridge-tx"

        approve_call, bridge_call = client.send_contract_call.call_args_list
        assert approve_call[0][0] == USDT.TRON
        assert int(approve_call[0][1][72:], 16) == 2_010_000
        assert bridge_call[0] == (ROUTER_EVM, "0xdeadbeef")
        assert bridge_call[1] == {"call_value": 1_000_000, "fee_limit": 63_000}
        client.wait_for_allowance.assert_called_once_with(USDT.TRON, to_base58(ROUTER_EVM), 2_010_000)

    def test_skips_approve_with_allowance(self):
        client = stub_client(allowance=2_010_000)
        client.send_contract_call = Mock(return_value="bridge-tx")
        assert send_tron_order(client, make_order(), USDT.TRON) == "bridge-tx"
        client.send_contract_call.assert_called_once()

    def test_insufficient_balance(self):
        client = stub_client(balance=1)
        with pytest.raises(ValueError, match="Insufficient token balance"):
            send_tron_order(client, make_order(), USDT.TRON)
        client.send_contract_call.assert_not_called()

    def test_failed_bridge_simulation(self):
        client = stub_client(allowance=10**12)
        client.simulate = Mock(return_value=SimulationResult(ok=False, error="REVERT"))
        with pytest.raises(RuntimeError, match="bridge simulation failed"):
            send_tron_order(client, make_order(), USDT.TRON)

    def test_native_trx_uses_tx_value(self):
        client = stub_client(trx_balance=10_000_000)
        client.send_contract_call = Mock(return_value="bridge-tx")

        send_tron_order(client, make_order(value="5000000"), TRX.SENTINEL, fee_buffer=1.5)

        client.balance_of.assert_not_called()
        assert client.send_contract_call.call_args[1] == {"call_value": 5_000_000, "fee_limit": 63_000}

    def test_native_trx_insufficient(self):
        client = stub_client(trx_balance=5_000_000)
        with pytest.raises(ValueError, match="Missing"):
            send_tron_order(client, make_order(value="5000000"), TRX.SENTINEL)
