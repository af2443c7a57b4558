"""Nimiq key pairs and addresses.

Nimiq accounts use plain Ed25519 keys, so the signing primitives come from
``stellar_sdk.Keypair``. Only the address scheme is Nimiq specific: the
address is the first 20 bytes of the Blake2b-256 hash of the public key, and
its user-friendly form is an IBAN-like string starting with ``NQ``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import secrets
from dataclasses import dataclass

from stellar_sdk import Keypair

from cashlink_generator.errors import ValidationError

PRIVATE_KEY_SIZE = 32
PUBLIC_KEY_SIZE = 32
SIGNATURE_SIZE = 64
ADDRESS_SIZE = 20

_COUNTRY_CODE = "NQ"
_RFC4648_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_NIMIQ_ALPHABET = "0123456789ABCDEFGHJKLMNPQRSTUVXY"
_TO_NIMIQ = str.maketrans(_RFC4648_ALPHABET, _NIMIQ_ALPHABET)
_FROM_NIMIQ = str.maketrans(_NIMIQ_ALPHABET, _RFC4648_ALPHABET)


def blake2b(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def _iban_check(value: str) -> int:
    digits = "".join(c if c.isdigit() else str(ord(c.upper()) - 55) for c in value)
    return int(digits) % 97


def normalize_address(value: str) -> str:
    """Canonical spaced form of a user-friendly address, without validation."""
    compact = "".join(value.split()).upper()
    return " ".join(compact[i:i + 4] for i in range(0, len(compact), 4))


@dataclass(frozen=True)
class Address:
    """A 20 byte Nimiq account address."""

    raw: bytes

    def __post_init__(self) -> None:
        if len(self.raw) != ADDRESS_SIZE:
            raise ValidationError(f"Address must be {ADDRESS_SIZE} bytes, got {len(self.raw)}")

    @classmethod
    def from_public_key(cls, public_key: bytes) -> Address:
        return cls(blake2b(public_key)[:ADDRESS_SIZE])

    @classmethod
    def from_user_friendly(cls, value: str) -> Address:
        compact = "".join(value.split()).upper()
        if len(compact) != 36 or not compact.startswith(_COUNTRY_CODE):
            raise ValidationError(f"Invalid address {value!r}")
        body = compact[4:]
        if _iban_check(body + compact[:4]) != 1:
            raise ValidationError(f"Invalid address checksum {value!r}")
        try:
            raw = base64.b32decode(body.translate(_FROM_NIMIQ))
        except (binascii.Error, ValueError) as exc:
            raise ValidationError(f"Invalid address {value!r}") from exc
        return cls(raw)

    def to_user_friendly(self, with_spaces: bool = True) -> str:
        body = base64.b32encode(self.raw).decode("ascii").translate(_TO_NIMIQ)
        check = f"{98 - _iban_check(body + _COUNTRY_CODE + '00'):02d}"
        result = _COUNTRY_CODE + check + body
        return normalize_address(result) if with_spaces else result

    def __str__(self) -> str:
        return self.to_user_friendly()


class KeyPair:
    """Ed25519 key pair identified by its 32 byte private key."""

    def __init__(self, private_key: bytes) -> None:
        if len(private_key) != PRIVATE_KEY_SIZE:
            raise ValidationError(
                f"Private key must be {PRIVATE_KEY_SIZE} bytes, got {len(private_key)}"
            )
        self._keypair = Keypair.from_raw_ed25519_seed(bytes(private_key))

    @classmethod
    def derive(cls, private_key: bytes) -> KeyPair:
        return cls(private_key)

    @classmethod
    def generate(cls) -> KeyPair:
        return cls(secrets.token_bytes(PRIVATE_KEY_SIZE))

    @classmethod
    def from_hex(cls, private_key_hex: str) -> KeyPair:
        try:
            raw = bytes.fromhex(private_key_hex.strip())
        except ValueError as exc:
            raise ValidationError("Private key is not valid hex") from exc
        return cls(raw)

    @property
    def private_key(self) -> bytes:
        return self._keypair.raw_secret_key()

    @property
    def public_key(self) -> bytes:
        return self._keypair.raw_public_key()

    @property
    def address(self) -> Address:
        return Address.from_public_key(self.public_key)

    def sign(self, data: bytes) -> bytes:
        return self._keypair.sign(data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeyPair):
            return NotImplemented
        return self.private_key == other.private_key

    def __hash__(self) -> int:
        return hash(self.private_key)

    def __repr__(self) -> str:
        return f"KeyPair(address={self.address})"
