"""Usage statistics of a cashlink batch, derived from on-chain history."""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from cashlink_generator.cashlink import Cashlink
from cashlink_generator.errors import ValidationError
from cashlink_generator.interfaces.node import NodeClient
from cashlink_generator.models.records import CashlinkStatistics
from cashlink_generator.nimiq.keys import Address, normalize_address

log = logging.getLogger(__name__)

# Anything above this is a millisecond timestamp (year 5138 in seconds)
_MILLISECONDS_THRESHOLD = 10**11


def _to_datetime(timestamp: int | float, tz: ZoneInfo) -> datetime:
    if timestamp > _MILLISECONDS_THRESHOLD:
        timestamp = timestamp / 1000
    return datetime.fromtimestamp(timestamp, tz)


def _load_time_zone(time_zone: str) -> ZoneInfo:
    try:
        return ZoneInfo(time_zone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown time zone {time_zone!r}") from exc


def throttle_delay(requests_per_minute: int | None, throttle_margin: float) -> float:
    """Seconds between two request initiations, 0 for no pacing."""
    if not requests_per_minute:
        return 0.0
    return 60 / requests_per_minute + throttle_margin


async def create_statistics(
    cashlinks: dict[str, Cashlink],
    reclaim_address: Address | str | None,
    time_zone: str,
    node: NodeClient,
    requests_per_minute: int | None = 300,
    throttle_margin: float = 0.05,
) -> CashlinkStatistics:
    """Fetch the history of every cashlink and aggregate funding and claims.

    A cashlink can be funded or claimed more than once, so the counts can
    add up to more than the number of cashlinks.
    """
    tz = _load_time_zone(time_zone)
    reclaim = normalize_address(str(reclaim_address)) if reclaim_address else None
    total = len(cashlinks)
    log_every = math.ceil(total / 10) if total else 1
    delay = throttle_delay(requests_per_minute, throttle_margin)

    processed = 0
    funded = 0
    user_claimed = 0
    reclaimed = 0
    unclaimed = 0
    claims_per_address: dict[str, int] = {}
    claims_per_day: dict[str, list[int]] = {}  # yyyy-mm-dd -> [claims, first time claims]

    def _tally(cashlink_address: str, transactions: list[dict[str, Any]]) -> None:
        nonlocal processed, funded, user_claimed, reclaimed, unclaimed
        was_funded = was_user_claimed = was_reclaimed = False

        for tx in transactions:
            timestamp = tx.get("timestamp")
            if not timestamp:
                continue  # not yet included in a block
            recipient = normalize_address(str(tx.get("to") or tx.get("toAddress") or ""))
            if not recipient:
                continue

            if recipient == cashlink_address:
                was_funded = True
            elif recipient == reclaim:
                was_reclaimed = True
            else:
                was_user_claimed = True
                previous_claims = claims_per_address.get(recipient, 0)
                claims_per_address[recipient] = previous_claims + 1
                day = _to_datetime(timestamp, tz).strftime("%Y-%m-%d")
                counts = claims_per_day.setdefault(day, [0, 0])
                counts[0] += 1
                if not previous_claims:
                    counts[1] += 1

        processed += 1
        funded += was_funded
        user_claimed += was_user_claimed
        reclaimed += was_reclaimed
        unclaimed += was_funded and not was_user_claimed and not was_reclaimed

        if processed != total and processed % log_every == 0:
            log.info("Processed %d cashlinks so far.", processed)

    async def _fetch(cashlink: Cashlink) -> None:
        address = cashlink.address.to_user_friendly()
        transactions = await node.get_transactions_by_address(address)
        _tally(address, transactions)

    loop = asyncio.get_running_loop()
    tasks: list[asyncio.Task] = []
    pending: set[asyncio.Task] = set()

    async def _pause() -> None:
        """Wait out the pacing delay, but re-raise as soon as an issued fetch fails."""
        nonlocal pending
        deadline = loop.time() + delay
        while (remaining := deadline - loop.time()) > 0:
            if not pending:
                await asyncio.sleep(remaining)
                return
            done, pending = await asyncio.wait(
                pending, timeout=remaining, return_when=asyncio.FIRST_EXCEPTION
            )
            for task in done:
                task.result()

    try:
        for i, cashlink in enumerate(cashlinks.values()):
            if i and delay:
                await _pause()
            task = asyncio.create_task(_fetch(cashlink))
            tasks.append(task)
            pending.add(task)
        await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            task.cancel()
    log.info("Processed %d cashlinks.", processed)

    repeat_claimers = sorted(
        ((address, claims) for address, claims in claims_per_address.items() if claims > 1),
        key=lambda item: item[1],
        reverse=True,
    )
    return CashlinkStatistics(
        total=total,
        funded=funded,
        user_claimed=user_claimed,
        unclaimed=unclaimed,
        reclaimed=reclaimed,
        distinct_claimers=len(claims_per_address),
        repeat_claimers=repeat_claimers,
        claims_per_day=[(day, c[0], c[1]) for day, c in sorted(claims_per_day.items())],
        reclaim_address=reclaim,
        time_zone=time_zone,
    )


def format_percent(ratio: float) -> str:
    """Percentage with at most two fraction digits: 0.5 -> '50%', 1/3 -> '33.33%'."""
    text = f"{ratio * 100:.2f}".rstrip("0").rstrip(".")
    return f"{text}%"


def format_statistics(stats: CashlinkStatistics) -> str:
    total = stats.total or 1
    lines = [
        f"Total Cashlinks: {stats.total}",
        f"Funded: {stats.funded} ({format_percent(stats.funded / total)})",
        f"User claimed: {stats.user_claimed} ({format_percent(stats.user_claimed / total)})",
        f"Unclaimed: {stats.unclaimed} ({format_percent(stats.unclaimed / total)})",
        f"Reclaimed: {stats.reclaimed} ({format_percent(stats.reclaimed / total)})",
    ]
    if stats.reclaim_address:
        lines.append(f"Reclaimed to {stats.reclaim_address}")
    lines += [
        "",
        f"Distinct user addresses: {stats.distinct_claimers} "
        f"({format_percent(stats.distinct_claimers / (stats.user_claimed or 1))} of user claimed Cashlinks, "
        f"{format_percent(stats.distinct_claimers / total)} of total Cashlinks)",
        f"Repeat claimers: {len(stats.repeat_claimers)} "
        f"({format_percent(len(stats.repeat_claimers) / (stats.distinct_claimers or 1))} of distinct users)",
    ]
    lines += [f"    {address}: {claims}" for address, claims in stats.repeat_claimers]
    lines += ["", f"User claims per day ({stats.time_zone} timezone):"]
    for day, claims, first_time in stats.claims_per_day:
        note = f" ({first_time} only counting first time claimers)" if first_time != claims else ""
        lines.append(f"    {day}: {claims}{note}")
    return "\n".join(lines) + "\n"
