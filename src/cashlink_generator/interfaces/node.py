"""NodeClient protocol - the blockchain node as seen by broadcaster and handlers."""

from __future__ import annotations

from typing import Any, Protocol


class NodeClient(Protocol):
    """Queries and submits transactions to a Nimiq node.

    Failures are raised as NodeError subclasses.
    """

    async def is_connected(self) -> bool:
        ...

    async def is_consensus_established(self) -> bool:
        ...

    async def get_block_height(self) -> int:
        ...

    async def get_balance(self, address: str) -> int:
        """Balance of a user-friendly address in luna."""
        ...

    async def send_raw_transaction(self, raw_transaction: str) -> str:
        """Relay a signed, hex serialized transaction. Returns its hash."""
        ...

    async def get_mempool_transactions(
        self, include_transactions: bool = False
    ) -> list[Any]:
        """Hashes in the mempool, or transaction dicts when include_transactions."""
        ...

    async def get_transactions_by_address(
        self, address: str, max_results: int = 500
    ) -> list[dict[str, Any]]:
        ...

    async def close(self) -> None:
        ...
