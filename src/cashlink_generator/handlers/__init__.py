"""Batch operations on cashlinks that talk to the node."""

from cashlink_generator.handlers.statistics import create_statistics, format_statistics
from cashlink_generator.handlers.transactions import claim_cashlinks, fund_cashlinks

__all__ = ["claim_cashlinks", "create_statistics", "format_statistics", "fund_cashlinks"]
