"""Result records returned by the handlers and the file storage."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cashlink_generator.cashlink import Cashlink


@dataclass
class ImportedBatch:
    """Cashlinks read back from a batch CSV file, keyed by token."""

    cashlinks: dict[str, Cashlink]
    short_links: dict[str, str] = field(default_factory=dict)
    image_files: dict[str, str] = field(default_factory=dict)


@dataclass
class FundingResult:
    """Outcome of funding a batch of cashlinks."""

    funded: int
    total_value: int  # luna
    total_fee: int  # luna
    transaction_hashes: list[str] = field(default_factory=list)


@dataclass
class ClaimingResult:
    """Outcome of claiming a batch of cashlinks back to one address."""

    claimed: int
    skipped: int  # cashlinks without balance
    total_value: int  # luna
    transaction_hashes: list[str] = field(default_factory=list)


@dataclass
class CashlinkStatistics:
    """Aggregated usage of a batch of cashlinks."""

    total: int
    funded: int
    user_claimed: int
    unclaimed: int
    reclaimed: int
    distinct_claimers: int
    repeat_claimers: list[tuple[str, int]] = field(default_factory=list)  # (address, claims)
    claims_per_day: list[tuple[str, int, int]] = field(default_factory=list)  # (day, claims, first claims)
    reclaim_address: str | None = None
    time_zone: str = "UTC"
