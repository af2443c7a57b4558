"""Bulk generation and lifecycle management of Nimiq cashlinks."""

__version__ = "0.1.0"
