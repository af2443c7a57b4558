"""Mempool-aware transaction broadcaster.

Pushes many signed transactions to a single node without tripping its
limits. Two kinds of slots gate each send:

- a global broadcast slot: at most ``max_parallel_broadcasts`` sends may be
  dispatched but not yet accepted by the node;
- a mempool slot of the sender: a node keeps only a limited number of
  transactions per sender in its mempool (fewer for free transactions), so
  further transactions wait until earlier ones have been mined.

Both are handed out first come first served by position in a wait list.
Mined transactions are detected by one shared poll that compares the
tracked hashes against the mempool content whenever the chain head moves.
"""

from __future__ import annotations

import asyncio
import logging

from cashlink_generator.errors import FatalNodeFailure, NodeError, TransientNodeFailure
from cashlink_generator.interfaces.node import NodeClient
from cashlink_generator.nimiq.keys import normalize_address
from cashlink_generator.nimiq.transaction import ExtendedTransaction

log = logging.getLogger(__name__)

# Relay timeout (10s) * transactions relayed per second (10)
MAX_PARALLEL_BROADCASTS = 100
FREE_TRANSACTIONS_PER_SENDER_MAX = 10
TRANSACTIONS_PER_SENDER_MAX = 500
TRANSACTION_RELAY_FEE_MIN = 1  # luna per byte


class TransactionBroadcaster:
    """Broadcasts transactions to one node as fast as its mempool allows.

    Create one broadcaster per node client and keep it for the client's
    lifetime: the tracked mempool state is only meaningful per node.
    """

    def __init__(
        self,
        node: NodeClient,
        max_parallel_broadcasts: int = MAX_PARALLEL_BROADCASTS,
        free_transactions_per_sender: int = FREE_TRANSACTIONS_PER_SENDER_MAX,
        transactions_per_sender: int = TRANSACTIONS_PER_SENDER_MAX,
        relay_fee_min: int = TRANSACTION_RELAY_FEE_MIN,
        retry_delay: float = 60.0,
        poll_interval: float = 1.0,
        max_retries: int | None = None,
    ) -> None:
        self._node = node
        self._max_parallel_broadcasts = max_parallel_broadcasts
        self._free_transactions_per_sender = free_transactions_per_sender
        self._transactions_per_sender = transactions_per_sender
        self._relay_fee_min = relay_fee_min
        self._retry_delay = retry_delay
        self._poll_interval = poll_interval
        self._max_retries = max_retries

        self._broadcast_wait_list: list[ExtendedTransaction] = []
        self._broadcasts: set[asyncio.Task] = set()
        self._broadcast_slot_freed = asyncio.Condition()
        self._mempool_wait_lists: dict[str, list[ExtendedTransaction]] = {}  # sender -> queued
        self._mempool_transactions: dict[str, set[str]] = {}  # sender -> tracked hashes
        self._sender_per_transaction: dict[str, str] = {}  # hash -> sender
        self._mining_task: asyncio.Task | None = None
        self._reservation_dropped = False
        self._last_block_height: int | None = None
        self._init_task: asyncio.Task | None = None
        self._initialized = False
        self._failed: list[ExtendedTransaction] = []

    # ── Public API ─────────────────────────────────────────

    async def broadcast_transaction(self, transaction: ExtendedTransaction) -> None:
        """Wait for free slots, then dispatch the send in the background.

        Returns as soon as the send is dispatched, not when it succeeded.
        Use await_pending_broadcasts() to wait for all sends.
        """
        await self._ensure_initialized()
        sender = transaction.sender.to_user_friendly()
        try:
            await asyncio.gather(
                self._await_free_broadcast_slot(transaction),
                self._await_free_mempool_slot(transaction, sender),
            )
        except asyncio.CancelledError:
            await self._release_broadcast_reservation(transaction, notify=True)
            self._release_mempool_reservation(transaction, sender, accepted=False)
            raise

        task = asyncio.create_task(self._send_until_success(transaction, sender))
        self._broadcasts.add(task)
        # The send task now holds the slot, so the wait list entry goes
        await self._release_broadcast_reservation(transaction, notify=False)

    async def await_pending_broadcasts(self) -> None:
        """Wait until every dispatched send, including retries, has finished.

        Raises TransientNodeFailure if sends were given up on since the last call.
        """
        while self._broadcasts:
            await asyncio.gather(*list(self._broadcasts), return_exceptions=True)
        if self._failed:
            failed, self._failed = self._failed, []
            raise TransientNodeFailure(
                f"{len(failed)} transactions could not be broadcast: "
                + ", ".join(tx.hash for tx in failed)
            )

    async def close(self) -> None:
        """Stop the background mempool poll."""
        for task in (self._mining_task, self._init_task):
            if task is not None and not task.done():
                task.cancel()

    @property
    def pending_broadcasts(self) -> int:
        return len(self._broadcasts)

    def mempool_transaction_count(self, sender: str) -> int:
        """Number of tracked transactions of a sender still in the mempool."""
        return len(self._mempool_transactions.get(normalize_address(sender), ()))

    # ── Initialization ─────────────────────────────────────

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        if self._init_task is None:
            self._init_task = asyncio.create_task(self._initialize())
        try:
            await asyncio.shield(self._init_task)
        except NodeError as exc:
            self._init_task = None
            raise FatalNodeFailure(f"Failed to load the node's mempool: {exc}") from exc

    async def _initialize(self) -> None:
        transactions = await self._node.get_mempool_transactions(include_transactions=True)
        for tx in transactions:
            if not isinstance(tx, dict):
                continue
            tx_hash = tx.get("hash")
            sender = tx.get("from") or tx.get("fromAddress")
            if tx_hash and sender:
                self._add_mempool_transaction(tx_hash, sender)
        self._initialized = True
        log.debug("Tracking %d transactions already in the mempool", len(self._sender_per_transaction))

    # ── Global broadcast slots ─────────────────────────────

    async def _await_free_broadcast_slot(self, transaction: ExtendedTransaction) -> None:
        # Queue up even if a slot is free right away, to reserve it. Several
        # slots can free up at once, so compare the position, not just the head.
        self._broadcast_wait_list.append(transaction)
        async with self._broadcast_slot_freed:
            await self._broadcast_slot_freed.wait_for(
                lambda: self._broadcast_wait_list.index(transaction)
                < self._max_parallel_broadcasts - len(self._broadcasts)
            )

    async def _release_broadcast_reservation(
        self, transaction: ExtendedTransaction, notify: bool
    ) -> None:
        if transaction in self._broadcast_wait_list:
            self._broadcast_wait_list.remove(transaction)
            if notify:
                async with self._broadcast_slot_freed:
                    self._broadcast_slot_freed.notify_all()

    # ── Sender mempool slots ───────────────────────────────

    async def _await_free_mempool_slot(self, transaction: ExtendedTransaction, sender: str) -> None:
        is_free = transaction.fee_per_byte < self._relay_fee_min
        if transaction.fee != 0 and is_free:
            log.warning(
                "Specified fee %d is too low to qualify as paid transaction. Use at least %d luna.",
                transaction.fee,
                transaction.serialized_size * self._relay_fee_min,
            )
        max_slots = self._free_transactions_per_sender if is_free else self._transactions_per_sender

        # Free and paid transactions keep their submission order in one queue.
        wait_list = self._mempool_wait_lists.setdefault(sender, [])
        wait_list.append(transaction)
        while wait_list.index(transaction) >= max_slots - self._tracked_count(sender):
            await self._await_transaction_mining()

    def _release_mempool_reservation(
        self, transaction: ExtendedTransaction, sender: str, accepted: bool
    ) -> None:
        wait_list = self._mempool_wait_lists.get(sender)
        if wait_list is None or transaction not in wait_list:
            return
        wait_list.remove(transaction)
        if not wait_list:
            del self._mempool_wait_lists[sender]
        if not accepted:
            # Waiters behind this entry moved up without anything being mined
            self._reservation_dropped = True

    async def _await_transaction_mining(self) -> None:
        if self._mining_task is None:
            self._mining_task = asyncio.create_task(self._poll_until_mined())
        await asyncio.shield(self._mining_task)

    async def _poll_until_mined(self) -> None:
        try:
            while True:
                if self._reservation_dropped:
                    self._reservation_dropped = False
                    return
                try:
                    if await self._check_for_mined_transactions():
                        return
                except NodeError as exc:
                    log.warning("Failed to check for mined transactions: %s", exc)
                await asyncio.sleep(self._poll_interval)
        finally:
            self._mining_task = None

    async def _check_for_mined_transactions(self) -> bool:
        block_height = await self._node.get_block_height()
        if block_height == self._last_block_height:
            return False
        mempool_hashes = {h.lower() for h in await self._node.get_mempool_transactions()}
        self._last_block_height = block_height

        mined = [h for h in self._sender_per_transaction if h not in mempool_hashes]
        for tx_hash in mined:
            self._remove_mempool_transaction(tx_hash)
        if mined:
            log.debug("%d transactions left the mempool at block %d", len(mined), block_height)
        return bool(mined)

    # ── Tracked mempool transactions ───────────────────────

    def _add_mempool_transaction(self, tx_hash: str, sender: str) -> None:
        tx_hash = tx_hash.lower()
        sender = normalize_address(sender)
        self._mempool_transactions.setdefault(sender, set()).add(tx_hash)
        self._sender_per_transaction[tx_hash] = sender

    def _remove_mempool_transaction(self, tx_hash: str) -> None:
        sender = self._sender_per_transaction.pop(tx_hash)
        hashes = self._mempool_transactions[sender]
        hashes.discard(tx_hash)
        if not hashes:
            del self._mempool_transactions[sender]

    def _tracked_count(self, sender: str) -> int:
        return len(self._mempool_transactions.get(sender, ()))

    # ── Sending ────────────────────────────────────────────

    async def _send_until_success(self, transaction: ExtendedTransaction, sender: str) -> None:
        tx_hash = transaction.hash
        failures = 0
        try:
            while True:
                try:
                    node_hash = (await self._node.send_raw_transaction(transaction.to_hex())).lower()
                    if node_hash != tx_hash:
                        log.warning("Node reports hash %s for transaction %s", node_hash, tx_hash)
                        tx_hash = node_hash
                    break
                except NodeError as exc:
                    failures += 1
                    if self._max_retries is not None and failures > self._max_retries:
                        log.error(
                            "Giving up on transaction %s after %d failed attempts: %s",
                            tx_hash, failures, exc,
                        )
                        self._failed.append(transaction)
                        self._release_mempool_reservation(transaction, sender, accepted=False)
                        return
                    log.warning(
                        "Failed to broadcast transaction %s: %s. Will retry in %ss.",
                        tx_hash, exc, self._retry_delay,
                    )
                    await asyncio.sleep(self._retry_delay)

            # Track only after the node accepted it, otherwise its absence from
            # the mempool would read as mined.
            self._add_mempool_transaction(tx_hash, sender)
            self._release_mempool_reservation(transaction, sender, accepted=True)
        except asyncio.CancelledError:
            self._release_mempool_reservation(transaction, sender, accepted=False)
            raise
        finally:
            self._broadcasts.discard(asyncio.current_task())
            async with self._broadcast_slot_freed:
                self._broadcast_slot_freed.notify_all()
