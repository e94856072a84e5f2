"""Core domain logic for deBridge DLN orders."""

from .api import DlnApiClient, DlnApiError, OrdersFilter, StatsApiClient, fulfilled_orders_filter
from .chains import CHAIN_IDS, chain_family, resolve_chain_id
from .evm import EvmOrderExecutor, ExecutionResult
from .hooks import DlnHook, aave_supply_hook
from .orders import (
    HookOrderInput,
    OrderInput,
    OrderResponse,
    OrderTransaction,
    SameChainEstimateInput,
    SameChainSwapInput,
)
from .solana import SolanaRpc, prepare_solana_transaction, send_solana_order, update_priority_fee
from .tron import TronClient, send_tron_order

__all__ = [
    "CHAIN_IDS",
    "DlnApiClient",
    "DlnApiError",
    "DlnHook",
    "EvmOrderExecutor",
    "ExecutionResult",
    "HookOrderInput",
    "OrderInput",
    "OrderResponse",
    "OrderTransaction",
    "OrdersFilter",
    "SameChainEstimateInput",
    "SameChainSwapInput",
    "SolanaRpc",
    "StatsApiClient",
    "TronClient",
    "aave_supply_hook",
    "chain_family",
    "fulfilled_orders_filter",
    "prepare_solana_transaction",
    "resolve_chain_id",
    "send_solana_order",
    "send_tron_order",
    "update_priority_fee",
]
