"""Tests for the command line entrypoint."""

from dataclasses import replace
from unittest.mock import Mock, patch

import pytest

from debridge_kit.cli import main as cli
from debridge_kit.config import ConfigError, load_config
from debridge_kit.core.tokens import USDT


@pytest.fixture
def config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return load_config(env={})


class TestParseArgs:
    def test_tron_order_defaults_to_usdt(self):
        args = cli._parse_args(
            ["tron-order", "--src-chain", "TRON", "--dst-chain", "Solana", "--amount", "2",
             "--token-out", "So11111111111111111111111111111111111111112", "--recipient", "abc"]
        )
        assert args.handler is cli.cmd_tron_order
        assert args.token_in == USDT.TRON
        assert args.decimals == 6

    def test_evm_order_requires_token_in(self):
        with pytest.raises(SystemExit):
            cli._parse_args(["evm-order", "--src-chain", "Polygon", "--dst-chain", "Solana", "--amount", "1",
                             "--token-out", "x", "--recipient", "y"])

    def test_orders_flags(self):
        args = cli._parse_args(["orders", "--maker", "0xabc", "--fulfilled", "--state", "Fulfilled", "--state", "Created"])
        assert args.fulfilled
        assert args.state == ["Fulfilled", "Created"]
        assert args.handler is cli.cmd_orders

    def test_order_status_requires_one_target(self):
        with pytest.raises(SystemExit):
            cli._parse_args(["order-status"])


class TestCommands:
    def test_orders_same_chain_filter(self, config):
        stats = Mock()
        stats.filter_orders.return_value = {"orders": []}
        args = cli._parse_args(["orders", "--referral-code", "31805", "--same-chain", "--skip", "20"])
        with patch.object(cli, "_stats_client", return_value=stats):
            cli.cmd_orders(config, args)

        body = stats.filter_orders.call_args[0][0].to_body()
        assert body["filterMode"] == "SameChain"
        assert body["referralCode"] == "31805"
        assert body["skip"] == 20

    def test_order_family_mismatch(self, config):
        args = cli._parse_args(
            ["evm-order", "--src-chain", "Solana", "--dst-chain", "Polygon", "--token-in", "x", "--amount", "1",
             "--token-out", "y", "--recipient", "z"]
        )
        with pytest.raises(ValueError, match="not a evm chain"):
            cli.cmd_evm_order(config, args)

    def test_hook_order_needs_amount(self, config):
        args = cli._parse_args(
            ["hook-order", "--src-chain", "Arbitrum", "--dst-chain", "Polygon", "--token-in", "x", "--amount", "1",
             "--token-out", "y", "--recipient", "z"]
        )
        with patch.object(cli, "_signer_for", return_value=Mock(address="0xabc")):
            with pytest.raises(ValueError, match="--hook-amount"):
                cli.cmd_hook_order(config, args)

    def test_cancel_rejects_non_evm(self, config):
        dln = Mock()
        dln.get_cancel_tx.return_value = Mock(chain_id=7565164)
        args = cli._parse_args(["cancel", "--order-id", "0xid"])
        with patch.object(cli, "_dln_client", return_value=dln):
            with pytest.raises(ValueError, match="EVM destination"):
                cli.cmd_cancel(config, args)


class TestMain:
    def test_errors_exit_with_status_one(self, capsys):
        with patch.object(cli, "load_config", side_effect=ConfigError("config broken")):
            with pytest.raises(SystemExit) as excinfo:
                cli.main(["order-ids", "--tx-hash", "0xhash"])
        assert excinfo.value.code == 1
        assert "config broken" in capsys.readouterr().out

    def test_dispatches_handler(self, config):
        stats = Mock()
        stats.get_order_ids_by_tx.return_value = ["0xid"]
        with patch.object(cli, "load_config", return_value=config), patch.object(cli, "_stats_client", return_value=stats):
            cli.main(["order-ids", "--tx-hash", "0xhash"])
        stats.get_order_ids_by_tx.assert_called_once_with("0xhash")


class TestAffiliateFeeDefaults:
    ORDER_ARGS = ["evm-order", "--src-chain", "Polygon", "--dst-chain", "Solana", "--token-in", "x", "--amount", "1",
                  "--token-out", "y", "--recipient", "z", "--affiliate-fee-percent", "0.1"]

    def with_default_recipient(self, config, recipient="0xRecipient"):
        return replace(config, defaults=replace(config.defaults, affiliate_fee_recipient=recipient))

    def test_config_recipient_used_when_flag_missing(self, config):
        config = self.with_default_recipient(config)
        params = cli._order_input(config, cli._parse_args(self.ORDER_ARGS), "0xabc").to_query_params()
        assert params["affiliateFeePercent"] == "0.1"
        assert params["affiliateFeeRecipient"] == "0xRecipient"

    def test_flag_overrides_config_recipient(self, config):
        config = self.with_default_recipient(config)
        args = cli._parse_args(self.ORDER_ARGS + ["--affiliate-fee-recipient", "0xFlag"])
        assert cli._order_input(config, args, "0xabc").to_query_params()["affiliateFeeRecipient"] == "0xFlag"

    def test_no_recipient_anywhere_sends_no_fee(self, config):
        params = cli._order_input(config, cli._parse_args(self.ORDER_ARGS), "0xabc").to_query_params()
        assert "affiliateFeePercent" not in params


class TestSubmit:
    @patch.object(cli, "_solana_rpc")
    @patch.object(cli, "send_solana_order", return_value="SIG")
    def test_unconfirmed_solana_order_raises(self, _send, _rpc, config):
        with patch.object(cli, "wait_for_confirmation", return_value=False):
            with pytest.raises(RuntimeError, match="SIG was not confirmed"):
                cli._submit(config, Mock(), 7565164, "token", Mock())

    @patch.object(cli, "_solana_rpc")
    @patch.object(cli, "send_solana_order", return_value="SIG")
    def test_confirmed_solana_order_returns_signature(self, _send, _rpc, config):
        with patch.object(cli, "wait_for_confirmation", return_value=True):
            assert cli._submit(config, Mock(), 7565164, "token", Mock()) == "SIG"
