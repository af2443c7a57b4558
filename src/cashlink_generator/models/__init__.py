"""Data models for the cashlink generator."""

from cashlink_generator.models.config import (
    BroadcasterConfig,
    CashlinkConfig,
    Network,
    StatisticsConfig,
)
from cashlink_generator.models.records import (
    CashlinkStatistics,
    ClaimingResult,
    FundingResult,
    ImportedBatch,
)

__all__ = [
    "BroadcasterConfig", "CashlinkConfig", "Network", "StatisticsConfig",
    "CashlinkStatistics", "ClaimingResult", "FundingResult", "ImportedBatch",
]
