"""Funding and claiming of cashlink batches through the broadcaster."""

from __future__ import annotations

import logging
import math

from cashlink_generator.cashlink import Cashlink
from cashlink_generator.errors import InsufficientBalance
from cashlink_generator.interfaces.node import NodeClient
from cashlink_generator.models.config import Network
from cashlink_generator.models.records import ClaimingResult, FundingResult
from cashlink_generator.nimiq.broadcaster import TransactionBroadcaster
from cashlink_generator.nimiq.keys import Address, KeyPair
from cashlink_generator.nimiq.transaction import CashlinkExtraData, create_extended_transaction

log = logging.getLogger(__name__)


async def fund_cashlinks(
    cashlinks: dict[str, Cashlink],
    fee: int,
    key_pair: KeyPair,
    node: NodeClient,
    broadcaster: TransactionBroadcaster,
    network: Network,
) -> FundingResult:
    """Send every cashlink its value from the key pair's address."""
    sender = key_pair.address.to_user_friendly()
    total_value = sum(cashlink.value for cashlink in cashlinks.values())
    total_fee = fee * len(cashlinks)
    balance = await node.get_balance(sender)
    if balance < total_value + total_fee:
        raise InsufficientBalance(sender, balance, total_value + total_fee)
    log.info("Funding %d cashlinks from %s (balance %d luna)", len(cashlinks), sender, balance)

    log_every = math.ceil(len(cashlinks) / 20) or 1
    result = FundingResult(funded=0, total_value=total_value, total_fee=total_fee)
    for cashlink in cashlinks.values():
        validity_start_height = await node.get_block_height()
        transaction = create_extended_transaction(
            key_pair,
            cashlink.address,
            cashlink.value,
            fee,
            CashlinkExtraData.FUNDING,
            validity_start_height,
            network,
        )
        await broadcaster.broadcast_transaction(transaction)
        result.transaction_hashes.append(transaction.hash)

        result.funded += 1
        if result.funded != len(cashlinks) and result.funded % log_every == 0:
            log.info("%d cashlink funding transactions sent so far.", result.funded)

    await broadcaster.await_pending_broadcasts()
    log.info("%d cashlink funding transactions sent.", result.funded)
    return result


async def claim_cashlinks(
    cashlinks: dict[str, Cashlink],
    recipient: Address,
    node: NodeClient,
    broadcaster: TransactionBroadcaster,
    network: Network,
) -> ClaimingResult:
    """Move the balance of every still funded cashlink to ``recipient``."""
    log_every = math.ceil(len(cashlinks) / 10) or 1
    result = ClaimingResult(claimed=0, skipped=0, total_value=0)
    processed = 0
    for cashlink in cashlinks.values():
        processed += 1
        balance = await node.get_balance(cashlink.address.to_user_friendly())
        if balance:
            validity_start_height = await node.get_block_height()
            transaction = create_extended_transaction(
                cashlink.key_pair,
                recipient,
                balance,
                0,
                CashlinkExtraData.CLAIMING,
                validity_start_height,
                network,
            )
            await broadcaster.broadcast_transaction(transaction)
            result.transaction_hashes.append(transaction.hash)
            result.claimed += 1
            result.total_value += balance
        else:
            result.skipped += 1

        if processed != len(cashlinks) and processed % log_every == 0:
            log.info(
                "Processed %d cashlinks so far. %d were unclaimed and redeemed now.",
                processed, result.claimed,
            )

    await broadcaster.await_pending_broadcasts()
    log.info(
        "Processed %d cashlinks, of which %d were unclaimed and redeemed now.",
        processed, result.claimed,
    )
    return result
