"""Nimiq blockchain integration components."""

from cashlink_generator.nimiq.keys import Address, KeyPair
from cashlink_generator.nimiq.transaction import CashlinkExtraData, ExtendedTransaction
from cashlink_generator.nimiq.rpc import NimiqRpcClient
from cashlink_generator.nimiq.broadcaster import TransactionBroadcaster

__all__ = [
    "Address", "KeyPair",
    "CashlinkExtraData", "ExtendedTransaction",
    "NimiqRpcClient",
    "TransactionBroadcaster",
]
