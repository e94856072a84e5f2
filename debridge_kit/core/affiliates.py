"""Withdrawal of affiliate fees accrued on Solana-sourced DLN orders.

Once an order is unlocked (``ClaimedUnlock``) the affiliate share stays in the
order's give wallet on the DLN source program until the beneficiary withdraws
it. This module finds such orders through the stats API, skips wallets that
are already empty and packs withdraw instructions into as few transactions as
fit in a packet.
"""

from __future__ import annotations

import base64
import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from debridge_kit.core.api import OrdersFilter, StatsApiClient
from debridge_kit.core.chains import SOLANA_CHAIN_ID
from debridge_kit.core.solana import SolanaRpc, wait_for_confirmation
from debridge_kit.core.utils import get_logger

LOGGER = get_logger("debridge_kit.affiliates")

DLN_SRC_PROGRAM_ID = Pubkey.from_string("src5qyZHqTqecJV4aY6Cb6zDZLMDzrDKKezs22MPHr4")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")

WITHDRAW_AFFILIATE_FEE_DISCRIMINATOR = bytes([143, 79, 158, 208, 125, 51, 86, 85])
GIVE_ORDER_STATE_SEED = b"GIVE_ORDER_STATE"
GIVE_ORDER_WALLET_SEED = b"GIVE_ORDER_WALLET"

PACKET_DATA_SIZE = 1232
PACK_COMPUTE_UNITS = 300_000
PACK_CU_PRICE = 30_000
ACCOUNTS_PER_REQUEST = 100


def give_order_state_address(order_id: bytes) -> Pubkey:
    return Pubkey.find_program_address([GIVE_ORDER_STATE_SEED, order_id], DLN_SRC_PROGRAM_ID)[0]


def give_order_wallet_address(order_id: bytes) -> Pubkey:
    return Pubkey.find_program_address([GIVE_ORDER_WALLET_SEED, order_id], DLN_SRC_PROGRAM_ID)[0]


def associated_token_address(owner: Pubkey, mint: Pubkey, token_program: Pubkey = TOKEN_PROGRAM_ID) -> Pubkey:
    return Pubkey.find_program_address(
        [bytes(owner), bytes(token_program), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )[0]


def order_id_bytes(order: Mapping[str, Any]) -> bytes:
    """Raw 32 byte order id from the stats API's ``bytesArrayValue`` JSON array."""
    return bytes(json.loads(order["orderId"]["bytesArrayValue"]))


def get_unlocked_orders(
    stats: StatsApiClient,
    beneficiary: str,
    *,
    chain_ids: Sequence[int] = (SOLANA_CHAIN_ID,),
    referral_code: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Return unlocked orders whose source-chain affiliate beneficiary is ``beneficiary``."""
    orders_filter = OrdersFilter(
        give_chain_ids=list(chain_ids),
        take_chain_ids=[],
        order_states=["ClaimedUnlock"],
        filter=beneficiary,
        referral_code=referral_code,
    )
    orders = [
        order
        for order in stats.iter_orders(orders_filter, page_size=100)
        if ((order.get("affiliateFee") or {}).get("beneficiarySrc") or {}).get("stringValue") == beneficiary
    ]
    LOGGER.info("Unclaimed orders: %s", len(orders))
    return orders


def build_withdraw_affiliate_fee_ix(
    order_id: bytes,
    beneficiary: Pubkey,
    mint: Pubkey,
    token_program: Pubkey = TOKEN_PROGRAM_ID,
) -> Instruction:
    accounts = [
        AccountMeta(pubkey=beneficiary, is_signer=True, is_writable=True),
        AccountMeta(pubkey=associated_token_address(beneficiary, mint, token_program), is_signer=False, is_writable=True),
        AccountMeta(pubkey=give_order_state_address(order_id), is_signer=False, is_writable=True),
        AccountMeta(pubkey=give_order_wallet_address(order_id), is_signer=False, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=token_program, is_signer=False, is_writable=False),
    ]
    return Instruction(DLN_SRC_PROGRAM_ID, WITHDRAW_AFFILIATE_FEE_DISCRIMINATOR + order_id, accounts)


def spl_token_amount(account: Optional[Mapping[str, Any]]) -> int:
    """Amount field of an SPL token account returned with base64 encoding."""
    if not account:
        return 0
    raw = base64.b64decode(account["data"][0])
    if len(raw) < 72:
        return 0
    return int.from_bytes(raw[64:72], "little")


def _chunks(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


@dataclass
class WithdrawBatch:
    """Withdraw instructions and the order ids they settle, index aligned."""

    instructions: List[Instruction] = field(default_factory=list)
    order_ids: List[str] = field(default_factory=list)


def withdraw_instructions(rpc: SolanaRpc, orders: Sequence[Mapping[str, Any]]) -> WithdrawBatch:
    """Build withdraw instructions for the orders whose give wallet still holds tokens."""
    wallets = [str(give_order_wallet_address(order_id_bytes(order))) for order in orders]
    accounts: List[Optional[Dict[str, Any]]] = []
    for chunk in _chunks(wallets, ACCOUNTS_PER_REQUEST):
        accounts.extend(rpc.get_multiple_accounts(chunk))

    batch = WithdrawBatch()
    for order, account in zip(orders, accounts):
        if not spl_token_amount(account):
            continue
        batch.instructions.append(
            build_withdraw_affiliate_fee_ix(
                order_id_bytes(order),
                Pubkey.from_string(order["affiliateFee"]["beneficiarySrc"]["stringValue"]),
                Pubkey.from_string(order["giveOfferWithMetadata"]["tokenAddress"]["stringValue"]),
                Pubkey.from_string(account["owner"]),
            )
        )
        batch.order_ids.append(order["orderId"]["stringValue"])
    return batch


def _compute_budget_instructions() -> List[Instruction]:
    return [set_compute_unit_limit(PACK_COMPUTE_UNITS), set_compute_unit_price(PACK_CU_PRICE)]


def transaction_size(payer: Pubkey, instructions: Sequence[Instruction]) -> int:
    """Serialized size of a v0 transaction carrying ``instructions`` with placeholder signatures."""
    message = MessageV0.try_compile(payer, list(instructions), [], Hash.default())
    signatures = [Signature.default()] * message.header.num_required_signatures
    return len(bytes(VersionedTransaction.populate(message, signatures)))


def split_instructions(
    payer: Pubkey,
    instructions: Sequence[Instruction],
    order_ids: Sequence[str],
) -> Tuple[List[List[Instruction]], List[List[str]]]:
    """Greedily pack instructions into transactions that fit ``PACKET_DATA_SIZE``.

    Every pack starts with the compute budget pair. An instruction that does
    not fit in a fresh pack on its own still gets a pack of its own.
    """
    base = _compute_budget_instructions()
    ix_packs: List[List[Instruction]] = []
    id_packs: List[List[str]] = []
    current = list(base)
    current_ids: List[str] = []

    for instruction, order_id in zip(instructions, order_ids):
        if len(current) > len(base) and transaction_size(payer, [*current, instruction]) > PACKET_DATA_SIZE:
            ix_packs.append(current)
            id_packs.append(current_ids)
            current = list(base)
            current_ids = []
        current.append(instruction)
        current_ids.append(order_id)

    if len(current) > len(base):
        ix_packs.append(current)
        id_packs.append(current_ids)
    return ix_packs, id_packs


def withdraw_affiliate_fees(
    rpc: SolanaRpc,
    stats: StatsApiClient,
    keypair: Keypair,
    *,
    beneficiary: Optional[str] = None,
    chain_ids: Sequence[int] = (SOLANA_CHAIN_ID,),
    referral_code: Optional[str] = None,
    pause: float = 5.0,
) -> List[Tuple[List[str], str]]:
    """Withdraw every pending affiliate fee for ``beneficiary`` (defaults to the signer).

    Returns ``(order_ids, signature)`` for each transaction sent.
    """
    beneficiary = beneficiary or str(keypair.pubkey())
    orders = get_unlocked_orders(stats, beneficiary, chain_ids=chain_ids, referral_code=referral_code)
    batch = withdraw_instructions(rpc, orders)
    ix_packs, id_packs = split_instructions(keypair.pubkey(), batch.instructions, batch.order_ids)
    LOGGER.info("Total instructions: %s, total transactions: %s", len(batch.instructions), len(ix_packs))

    sent: List[Tuple[List[str], str]] = []
    for index, (pack, ids) in enumerate(zip(ix_packs, id_packs)):
        message = MessageV0.try_compile(keypair.pubkey(), pack, [], rpc.get_latest_blockhash())
        tx = VersionedTransaction(message, [keypair])
        signature = rpc.send_raw_transaction(bytes(tx))
        LOGGER.info("Orders batch: %s", ids)
        LOGGER.info("Tx: %s", signature)
        if not wait_for_confirmation(rpc, signature):
            raise RuntimeError(f"Withdraw transaction {signature} was not confirmed")
        sent.append((ids, signature))
        if index < len(ix_packs) - 1:
            time.sleep(pause)
    return sent


__all__ = [
    "DLN_SRC_PROGRAM_ID",
    "PACKET_DATA_SIZE",
    "WithdrawBatch",
    "associated_token_address",
    "build_withdraw_affiliate_fee_ix",
    "get_unlocked_orders",
    "give_order_state_address",
    "give_order_wallet_address",
    "split_instructions",
    "spl_token_amount",
    "transaction_size",
    "withdraw_affiliate_fees",
    "withdraw_instructions",
]
