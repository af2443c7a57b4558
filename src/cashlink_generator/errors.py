"""Error taxonomy shared by all cashlink_generator components."""

from __future__ import annotations


class CashlinkError(Exception):
    """Base class for all errors raised by cashlink_generator."""


class ValidationError(CashlinkError, ValueError):
    """Malformed construction input: message too long, bad theme, bad config value."""


class MalformedInput(CashlinkError, ValueError):
    """A cashlink URL or batch record could not be decoded."""


class NodeError(CashlinkError):
    """A request to the blockchain node failed."""


class FatalNodeFailure(NodeError):
    """Node failure outside of broadcasting. Never retried by the core."""


class TransientNodeFailure(NodeError):
    """Broadcast failure that outlived the configured retry policy."""


class InsufficientBalance(CashlinkError):
    """The funding address cannot cover the requested cashlink batch."""

    def __init__(self, address: str, balance: int, required: int) -> None:
        super().__init__(
            f"Not enough balance on {address}: {balance} luna available, {required} luna required"
        )
        self.address = address
        self.balance = balance
        self.required = required
