"""CLI entrypoint for creating, submitting and querying DLN orders."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv

from debridge_kit.config import KitConfig, load_config
from debridge_kit.core.affiliates import withdraw_affiliate_fees
from debridge_kit.core.api import DlnApiClient, OrdersFilter, StatsApiClient, fulfilled_orders_filter
from debridge_kit.core.chains import EVM, SOLANA, TRON, chain_family, resolve_chain_id
from debridge_kit.core.evm import EvmOrderExecutor
from debridge_kit.core.hooks import AAVE_POOL_POLYGON, aave_supply_hook
from debridge_kit.core.orders import (
    HookOrderInput,
    OrderInput,
    OrderResponse,
    SameChainEstimateInput,
    SameChainSwapInput,
)
from debridge_kit.core.solana import SolanaRpc, load_keypair, send_solana_order, wait_for_confirmation
from debridge_kit.core.tokens import USDT
from debridge_kit.core.tron import TronClient, send_tron_order
from debridge_kit.core.utils import get_logger, to_atomic_units

LOGGER = get_logger("debridge_kit.cli")

load_dotenv()


def _dln_client(config: KitConfig) -> DlnApiClient:
    return DlnApiClient(
        config.api_urls.dln_api,
        timeout=config.defaults.api_timeout,
        referral_code=config.defaults.referral_code,
    )


def _stats_client(config: KitConfig) -> StatsApiClient:
    return StatsApiClient(config.api_urls.stats_api, timeout=config.defaults.api_timeout)


def _evm_executor(config: KitConfig, chain_id: int) -> EvmOrderExecutor:
    chain = config.chain_by_id(chain_id)
    return EvmOrderExecutor(
        rpc_url=chain.ensure_rpc_url(),
        private_key=config.require_secret("SIGNER_PK"),
        expected_chain_id=chain.chain_id,
        gas_buffer=config.defaults.gas_buffer,
    )


def _solana_rpc(config: KitConfig) -> SolanaRpc:
    return SolanaRpc(config.chain("solana").ensure_rpc_url(), timeout=config.defaults.api_timeout)


def _solana_fee_options(config: KitConfig) -> Dict[str, Any]:
    return {
        "cu_buffer": config.defaults.cu_limit_buffer,
        "fallback_units": config.defaults.fallback_compute_units,
        "fallback_price": config.defaults.fallback_cu_price,
    }


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _amount(args: argparse.Namespace) -> int:
    return to_atomic_units(args.amount, args.decimals)


def _affiliate_fee_recipient(config: KitConfig, args: argparse.Namespace) -> Optional[str]:
    return getattr(args, "affiliate_fee_recipient", None) or config.defaults.affiliate_fee_recipient


def _order_input(
    config: KitConfig,
    args: argparse.Namespace,
    account: str,
    cls: Callable[..., OrderInput] = OrderInput,
    **extra: Any,
) -> OrderInput:
    return cls(
        src_chain_id=resolve_chain_id(args.src_chain),
        src_chain_token_in=args.token_in,
        src_chain_token_in_amount=_amount(args),
        dst_chain_id=resolve_chain_id(args.dst_chain),
        dst_chain_token_out=args.token_out,
        dst_chain_token_out_recipient=args.recipient,
        account=account,
        dst_chain_token_out_amount=args.dst_amount,
        dst_chain_order_authority_address=args.dst_authority,
        referral_code=args.referral_code,
        affiliate_fee_percent=getattr(args, "affiliate_fee_percent", None),
        affiliate_fee_recipient=_affiliate_fee_recipient(config, args),
        **extra,
    )


def _submit(config: KitConfig, order: OrderResponse, src_chain_id: int, token_in: str, signer: Any) -> str:
    family = chain_family(src_chain_id)
    if family == SOLANA:
        rpc = _solana_rpc(config)
        signature = send_solana_order(rpc, order, signer, **_solana_fee_options(config))
        if not wait_for_confirmation(rpc, signature):
            raise RuntimeError(f"Transaction {signature} was not confirmed")
        return signature
    if family == TRON:
        return send_tron_order(signer, order, token_in, fee_buffer=config.defaults.tron_fee_buffer)
    result = signer.send_order(order, token_in)
    if not result.succeeded:
        raise RuntimeError(f"Transaction {result.tx_hash} reverted")
    return result.tx_hash


def _signer_for(config: KitConfig, chain_id: int) -> Any:
    family = chain_family(chain_id)
    if family == SOLANA:
        return load_keypair(config.require_secret("SOL_PK"))
    if family == TRON:
        return TronClient(
            config.chain("tron").ensure_rpc_url(),
            private_key=config.require_secret("TRON_PK"),
            api_key=config.secrets.trongrid_api_key,
            timeout=config.defaults.api_timeout,
        )
    return _evm_executor(config, chain_id)


def _signer_address(signer: Any) -> str:
    if hasattr(signer, "pubkey"):
        return str(signer.pubkey())
    return signer.address


def _run_order(config: KitConfig, args: argparse.Namespace, expected_family: str) -> None:
    src_chain_id = resolve_chain_id(args.src_chain)
    if chain_family(src_chain_id) != expected_family:
        raise ValueError(f"Source chain {args.src_chain} is not a {expected_family} chain")

    signer = _signer_for(config, src_chain_id)
    order_input = _order_input(config, args, _signer_address(signer))
    order = _dln_client(config).create_order(order_input)
    LOGGER.info("Estimation: %s", order.estimation)
    tx_ref = _submit(config, order, src_chain_id, args.token_in, signer)
    print(f"Order {order.order_id} submitted: {tx_ref}")


def cmd_evm_order(config: KitConfig, args: argparse.Namespace) -> None:
    _run_order(config, args, EVM)


def cmd_solana_order(config: KitConfig, args: argparse.Namespace) -> None:
    _run_order(config, args, SOLANA)


def cmd_tron_order(config: KitConfig, args: argparse.Namespace) -> None:
    _run_order(config, args, TRON)


def cmd_hook_order(config: KitConfig, args: argparse.Namespace) -> None:
    src_chain_id = resolve_chain_id(args.src_chain)
    signer = _signer_for(config, src_chain_id)

    if args.hook_json:
        hook = json.loads(Path(args.hook_json).read_text(encoding="utf-8"))
    else:
        if args.hook_amount is None:
            raise ValueError("--hook-amount is required unless --hook-json is given")
        supply_amount = to_atomic_units(args.hook_amount, args.hook_decimals)
        hook = aave_supply_hook(args.token_out, supply_amount, args.recipient, pool=args.pool).to_dict()

    order_input = _order_input(config, args, _signer_address(signer), HookOrderInput, dln_hook=hook)
    order = _dln_client(config).create_hook_order(order_input)
    tx_ref = _submit(config, order, src_chain_id, args.token_in, signer)
    print(f"Hook order {order.order_id} submitted: {tx_ref}")


def cmd_same_chain(config: KitConfig, args: argparse.Namespace) -> None:
    chain_id = resolve_chain_id(args.chain)
    if chain_family(chain_id) == TRON:
        raise ValueError("Same-chain swaps are supported on EVM chains and Solana only")

    signer = _signer_for(config, chain_id)
    sender = _signer_address(signer)
    swap = SameChainSwapInput(
        chain_id=chain_id,
        token_in=args.token_in,
        token_in_amount=_amount(args),
        token_out=args.token_out,
        token_out_recipient=args.recipient or sender,
        sender_address=sender,
        slippage=args.slippage,
        referral_code=args.referral_code,
        affiliate_fee_percent=args.affiliate_fee_percent,
        affiliate_fee_recipient=_affiliate_fee_recipient(config, args),
    )
    order = _dln_client(config).create_same_chain_swap(swap)
    LOGGER.info("Estimation: %s", order.estimation)
    tx_ref = _submit(config, order, chain_id, args.token_in, signer)
    print(f"Swap submitted: {tx_ref}")


def cmd_estimate(config: KitConfig, args: argparse.Namespace) -> None:
    estimate = SameChainEstimateInput(
        chain_id=resolve_chain_id(args.chain),
        token_in=args.token_in,
        token_in_amount=_amount(args),
        token_out=args.token_out,
        slippage=args.slippage,
    )
    _print_json(_dln_client(config).estimate_same_chain_swap(estimate))


def cmd_cancel(config: KitConfig, args: argparse.Namespace) -> None:
    cancel_tx = _dln_client(config).get_cancel_tx(args.order_id)
    if cancel_tx.chain_id is None:
        raise ValueError("Cancel transaction does not specify a chain")
    if chain_family(cancel_tx.chain_id) != EVM:
        raise ValueError("Only orders with an EVM destination chain can be cancelled here")

    executor = _evm_executor(config, cancel_tx.chain_id)
    result = executor.cancel_order(cancel_tx, gas_buffer=config.defaults.cancel_gas_buffer)
    print(f"Cancel tx {result.tx_hash} status={'success' if result.succeeded else 'failed'} block={result.block_number}")


def cmd_order_ids(config: KitConfig, args: argparse.Namespace) -> None:
    _print_json(_stats_client(config).get_order_ids_by_tx(args.tx_hash))


def cmd_order_status(config: KitConfig, args: argparse.Namespace) -> None:
    stats = _stats_client(config)
    if args.same_chain_tx:
        _print_json(stats.get_same_chain_swap(resolve_chain_id(args.chain), args.same_chain_tx))
    else:
        _print_json(stats.get_order_status(args.order_id))


def cmd_orders(config: KitConfig, args: argparse.Namespace) -> None:
    if args.fulfilled:
        orders_filter = fulfilled_orders_filter(maker=args.maker, referral_code=args.referral_code, take=args.take)
    else:
        orders_filter = OrdersFilter(
            take=args.take,
            maker=args.maker,
            referral_code=args.referral_code,
            order_states=args.state or None,
        )
    if args.same_chain:
        orders_filter.filter_mode = "SameChain"
    orders_filter.skip = args.skip

    stats = _stats_client(config)
    if args.all:
        _print_json(list(stats.iter_orders(orders_filter, page_size=args.take)))
    else:
        _print_json(stats.filter_orders(orders_filter))


def cmd_withdraw_affiliate(config: KitConfig, args: argparse.Namespace) -> None:
    keypair = load_keypair(config.require_secret("SOL_PK"))
    sent = withdraw_affiliate_fees(
        _solana_rpc(config),
        _stats_client(config),
        keypair,
        beneficiary=args.beneficiary,
        referral_code=args.referral_code,
        pause=args.pause,
    )
    for order_ids, signature in sent:
        print(f"{signature}: {', '.join(order_ids)}")
    print(f"Done, {len(sent)} transaction(s) sent")


def _add_order_args(parser: argparse.ArgumentParser, *, default_token_in: Optional[str] = None) -> None:
    parser.add_argument("--src-chain", required=True, help="Source chain name or deBridge chain id")
    parser.add_argument("--dst-chain", required=True, help="Destination chain name or deBridge chain id")
    parser.add_argument("--token-in", required=default_token_in is None, default=default_token_in)
    parser.add_argument("--amount", required=True, help="Input amount in whole tokens")
    parser.add_argument("--decimals", type=int, default=6, help="Decimals of the input token")
    parser.add_argument("--token-out", required=True)
    parser.add_argument("--recipient", required=True, help="Recipient on the destination chain")
    parser.add_argument("--dst-amount", default=None, help="Destination amount, defaults to auto")
    parser.add_argument("--dst-authority", default=None, help="Destination order authority")
    parser.add_argument("--referral-code", default=None)


def _add_affiliate_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--affiliate-fee-percent", type=float, default=None)
    parser.add_argument("--affiliate-fee-recipient", default=None)


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create and submit deBridge DLN orders")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.json")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, handler, token_default in (
        ("evm-order", cmd_evm_order, None),
        ("solana-order", cmd_solana_order, None),
        ("tron-order", cmd_tron_order, USDT.TRON),
    ):
        order_parser = sub.add_parser(name, help=f"Create and submit a cross-chain order from a {name.split('-')[0]} chain")
        _add_order_args(order_parser, default_token_in=token_default)
        _add_affiliate_args(order_parser)
        order_parser.set_defaults(handler=handler)

    hook = sub.add_parser("hook-order", help="Cross-chain order with a destination hook (Aave supply by default)")
    _add_order_args(hook)
    hook.add_argument("--hook-json", default=None, help="File containing a raw dlnHook JSON object")
    hook.add_argument("--hook-amount", default=None, help="Amount supplied by the hook in whole tokens")
    hook.add_argument("--hook-decimals", type=int, default=6, help="Decimals of the destination token")
    hook.add_argument("--pool", default=AAVE_POOL_POLYGON, help="Aave pool on the destination chain")
    hook.set_defaults(handler=cmd_hook_order)

    same = sub.add_parser("same-chain", help="Swap on a single chain")
    same.add_argument("--chain", required=True)
    same.add_argument("--token-in", required=True)
    same.add_argument("--amount", required=True)
    same.add_argument("--decimals", type=int, default=6)
    same.add_argument("--token-out", required=True)
    same.add_argument("--recipient", default=None)
    same.add_argument("--slippage", default=None)
    same.add_argument("--referral-code", default=None)
    _add_affiliate_args(same)
    same.set_defaults(handler=cmd_same_chain)

    estimate = sub.add_parser("estimate", help="Estimate a same-chain swap")
    estimate.add_argument("--chain", required=True)
    estimate.add_argument("--token-in", required=True)
    estimate.add_argument("--amount", required=True)
    estimate.add_argument("--decimals", type=int, default=6)
    estimate.add_argument("--token-out", required=True)
    estimate.add_argument("--slippage", default=None)
    estimate.set_defaults(handler=cmd_estimate)

    cancel = sub.add_parser("cancel", help="Cancel an unfilled order on its EVM destination chain")
    cancel.add_argument("--order-id", required=True)
    cancel.set_defaults(handler=cmd_cancel)

    order_ids = sub.add_parser("order-ids", help="Order ids created by a source transaction")
    order_ids.add_argument("--tx-hash", required=True)
    order_ids.set_defaults(handler=cmd_order_ids)

    status = sub.add_parser("order-status", help="Status of an order or a same-chain swap")
    group = status.add_mutually_exclusive_group(required=True)
    group.add_argument("--order-id")
    group.add_argument("--same-chain-tx", help="Transaction hash of a same-chain swap")
    status.add_argument("--chain", default="Solana", help="Chain of --same-chain-tx")
    status.set_defaults(handler=cmd_order_status)

    orders = sub.add_parser("orders", help="List orders from the stats API")
    orders.add_argument("--maker", default=None)
    orders.add_argument("--referral-code", default=None)
    orders.add_argument("--state", action="append", default=None, help="Order state filter, repeatable")
    orders.add_argument("--fulfilled", action="store_true", help="Only orders fulfilled for the end user")
    orders.add_argument("--same-chain", action="store_true", help="Query same-chain swaps instead")
    orders.add_argument("--skip", type=int, default=0)
    orders.add_argument("--take", type=int, default=10)
    orders.add_argument("--all", action="store_true", help="Page through every matching order")
    orders.set_defaults(handler=cmd_orders)

    withdraw = sub.add_parser("withdraw-affiliate", help="Withdraw Solana affiliate fees")
    withdraw.add_argument("--beneficiary", default=None, help="Defaults to the SOL_PK address")
    withdraw.add_argument("--referral-code", default=None)
    withdraw.add_argument("--pause", type=float, default=5.0, help="Seconds between transactions")
    withdraw.set_defaults(handler=cmd_withdraw_affiliate)

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    try:
        config = load_config(args.config)
        args.handler(config, args)
    except Exception as exc:
        print(f"\n❌ Error: {exc}")
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover - CLI entry
    main()
