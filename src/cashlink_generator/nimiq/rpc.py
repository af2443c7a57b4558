"""JSON-RPC client for a Nimiq node, implementing NodeClient over httpx."""

from __future__ import annotations

import itertools
import logging
from typing import Any

import httpx

from cashlink_generator.errors import FatalNodeFailure

log = logging.getLogger(__name__)

_RESULT_ENVELOPE = {"data", "metadata"}


def _unwrap(result: Any) -> Any:
    """Albatross nodes wrap results as {"data": ..., "metadata": ...}."""
    if isinstance(result, dict) and "data" in result and set(result) <= _RESULT_ENVELOPE:
        return result["data"]
    return result


class NimiqRpcClient:
    """Talks to a Nimiq node's JSON-RPC endpoint.

    Every failure (transport error, HTTP status, JSON-RPC error, unexpected
    result type) is raised as FatalNodeFailure; retrying is left to callers.
    """

    def __init__(
        self,
        url: str,
        username: str = "",
        password: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._ids = itertools.count(1)
        auth = httpx.BasicAuth(username, password) if username else None
        self._client = httpx.AsyncClient(
            auth=auth,
            timeout=httpx.Timeout(timeout, connect=10),
            transport=transport,
        )

    @property
    def url(self) -> str:
        return self._url

    async def close(self) -> None:
        await self._client.aclose()

    async def call(self, method: str, *params: Any) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": list(params),
        }
        log.debug("RPC %s %s", method, params)
        try:
            resp = await self._client.post(self._url, json=payload)
        except httpx.HTTPError as exc:
            raise FatalNodeFailure(f"{method}: {exc}") from exc

        if resp.status_code == 401:
            raise FatalNodeFailure(f"{method}: node rejected the RPC credentials")
        if resp.status_code != 200:
            raise FatalNodeFailure(f"{method}: HTTP {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise FatalNodeFailure(f"{method}: response is not JSON") from exc
        if not isinstance(body, dict):
            raise FatalNodeFailure(f"{method}: unexpected response {body!r}")
        if error := body.get("error"):
            message = error.get("message", error) if isinstance(error, dict) else error
            raise FatalNodeFailure(f"{method}: {message}")
        return _unwrap(body.get("result"))

    # ── Chain state ────────────────────────────────────────

    async def is_connected(self) -> bool:
        try:
            return isinstance(await self.get_block_height(), int)
        except FatalNodeFailure:
            return False

    async def is_consensus_established(self) -> bool:
        data = await self.call("isConsensusEstablished")
        if not isinstance(data, bool):
            raise FatalNodeFailure("Failed to check for consensus")
        return data

    async def get_block_height(self) -> int:
        data = await self.call("getBlockNumber")
        if isinstance(data, bool) or not isinstance(data, int):
            raise FatalNodeFailure("Failed to fetch block height")
        return data

    async def get_balance(self, address: str) -> int:
        data = await self.call("getAccountByAddress", address)
        if not isinstance(data, dict) or "balance" not in data:
            raise FatalNodeFailure(f"Failed to fetch balance of {address}")
        return int(data["balance"])

    # ── Transactions ───────────────────────────────────────

    async def send_raw_transaction(self, raw_transaction: str) -> str:
        tx_hash = await self.call("sendRawTransaction", raw_transaction)
        if not tx_hash or not isinstance(tx_hash, str):
            raise FatalNodeFailure("Failed to send raw transaction")
        return tx_hash

    async def get_mempool_transactions(self, include_transactions: bool = False) -> list[Any]:
        data = await self.call("mempoolContent", include_transactions)
        if not isinstance(data, list):
            raise FatalNodeFailure("Failed to fetch mempool content")
        return data

    async def get_transactions_by_address(
        self, address: str, max_results: int = 500
    ) -> list[dict[str, Any]]:
        data = await self.call("getTransactionsByAddress", address, max_results, None)
        if not isinstance(data, list):
            raise FatalNodeFailure(f"Failed to get transactions of {address}")
        return data
