"""Deterministic cashlink key derivation from short random tokens.

A token is a few url-safe base64 characters. The cashlink's private key is
the Blake2b-256 hash of the decoded token bytes followed by a secret salt,
so a batch can always be regenerated from its tokens and the salt.
"""

from __future__ import annotations

import logging
import math
import secrets
from typing import Callable

from cashlink_generator.cashlink import Cashlink, CashlinkTheme
from cashlink_generator.encoding import from_base64_url, to_base64, to_base64_url
from cashlink_generator.errors import ValidationError
from cashlink_generator.models.config import CashlinkConfig
from cashlink_generator.nimiq.keys import KeyPair, blake2b

log = logging.getLogger(__name__)

SECRET_SALT_LENGTH = 128  # bytes

RandomBytes = Callable[[int], bytes]


def generate_token(token_length: int, random_bytes: RandomBytes = secrets.token_bytes) -> str:
    entropy_bits = token_length * 6  # each base64 char carries 6 bits
    raw = random_bytes(math.ceil(entropy_bits / 8))
    return to_base64_url(raw)[:token_length]


def derive_key_pair(token: str, salt: bytes) -> KeyPair:
    return KeyPair.derive(blake2b(from_base64_url(token) + salt))


def key_space(token_length: int) -> int:
    """Number of distinct private keys reachable with tokens of this length."""
    return 256 ** (token_length * 6 // 8)


def create_cashlinks(
    cfg: CashlinkConfig,
    count: int,
    value: int,
    message: str = "",
    theme: int = CashlinkTheme.UNSPECIFIED,
    random_bytes: RandomBytes = secrets.token_bytes,
) -> dict[str, Cashlink]:
    """Create ``count`` cashlinks with distinct tokens and distinct addresses."""
    if count <= 0:
        raise ValidationError(f"Invalid cashlink count {count}")
    if count > key_space(cfg.token_length):
        raise ValidationError(
            f"Cannot create {count} cashlinks with tokens of length {cfg.token_length}"
        )
    salt = cfg.salt_bytes
    base_url = cfg.cashlink_base_url

    cashlinks: dict[str, Cashlink] = {}
    addresses = set()
    collisions = 0
    while len(cashlinks) < count:
        token = generate_token(cfg.token_length, random_bytes)
        if token in cashlinks:
            collisions += 1
            continue
        key_pair = derive_key_pair(token, salt)
        if key_pair.address in addresses:
            # Different tokens can decode to the same bytes
            collisions += 1
            continue
        addresses.add(key_pair.address)
        cashlinks[token] = Cashlink(base_url, key_pair, value, message, theme)

    if collisions:
        log.debug("Regenerated %d colliding tokens", collisions)
    log.info("Created %d cashlinks of %d luna", count, value)
    return cashlinks


def create_secret(length: int = SECRET_SALT_LENGTH) -> str:
    """A new random salt, base64 encoded."""
    return to_base64(secrets.token_bytes(length))
