"""Extended transactions: building, signing and wire serialization.

Wire layout of an extended transaction (Nimiq PoS / Albatross)::

    format (u8 = 1)
    sender (20) | sender_type (u8) | sender_data (varint length + bytes)
    recipient (20) | recipient_type (u8) | recipient_data (varint length + bytes)
    value (u64 BE) | fee (u64 BE) | validity_start_height (u32 BE)
    network_id (u8) | flags (u8)
    proof (varint length + bytes)

The signed content, which is also hashed for the transaction hash, keeps
the fixed u16 length prefixes: recipient data first, sender data last.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum

from stellar_sdk import Keypair
from stellar_sdk.exceptions import BadSignatureError

from cashlink_generator.errors import MalformedInput
from cashlink_generator.models.config import Network
from cashlink_generator.nimiq.keys import (
    ADDRESS_SIZE,
    PUBLIC_KEY_SIZE,
    SIGNATURE_SIZE,
    Address,
    KeyPair,
    blake2b,
)

NETWORK_IDS = {
    Network.MAIN: 24,
    Network.TEST: 5,
}

_FORMAT_EXTENDED = 1
_ACCOUNT = struct.Struct(f">{ADDRESS_SIZE}sB")
_AMOUNTS = struct.Struct(">QQIBB")  # value, fee, validity start height, network id, flags
_CONTENT_TAIL = struct.Struct(f">{ADDRESS_SIZE}sB{ADDRESS_SIZE}sBQQIBB")

# Signature proof: type byte (algorithm << 4 | flags), public key, merkle path, signature
_ED25519_PROOF_TYPE = 0x00
_EMPTY_MERKLE_PATH = b"\x00"
SIGNATURE_PROOF_SIZE = 1 + PUBLIC_KEY_SIZE + len(_EMPTY_MERKLE_PATH) + SIGNATURE_SIZE


class AccountType(IntEnum):
    BASIC = 0
    VESTING = 1
    HTLC = 2
    STAKING = 3


class CashlinkExtraData:
    """Transaction data tagging cashlink funding and claiming transactions.

    The bytes are 'CASH' and 'LINK' with every character code shifted by 63,
    prefixed by a zero byte.
    """

    FUNDING = bytes([0, 130, 128, 146, 135])
    CLAIMING = bytes([0, 139, 136, 141, 138])


def encode_varint(value: int) -> bytes:
    """Unsigned LEB128, the length prefix of variable-size fields."""
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _read_varint(raw: bytes, pos: int) -> tuple[int, int]:
    value = 0
    shift = 0
    while True:
        byte = raw[pos]
        pos += 1
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, pos
        shift += 7
        if shift > 63:
            raise MalformedInput("Length prefix is too long")


def _read_bytes(raw: bytes, pos: int) -> tuple[bytes, int]:
    length, pos = _read_varint(raw, pos)
    chunk = raw[pos:pos + length]
    if len(chunk) != length:
        raise MalformedInput("Truncated transaction")
    return chunk, pos + length


def _with_length(chunk: bytes) -> bytes:
    return encode_varint(len(chunk)) + chunk


@dataclass(eq=False)
class ExtendedTransaction:
    """A basic-account to basic-account transaction carrying extra data.

    ``data`` is the recipient data. Equality is identity: two transactions
    with identical content are still distinct entries in the broadcaster's
    wait lists.
    """

    sender: Address
    recipient: Address
    value: int  # luna
    fee: int  # luna
    validity_start_height: int
    network_id: int
    data: bytes = b""
    sender_data: bytes = b""
    sender_type: AccountType = AccountType.BASIC
    recipient_type: AccountType = AccountType.BASIC
    flags: int = 0
    proof: bytes = field(default=b"", repr=False)

    def serialize_content(self) -> bytes:
        """The signed part of the transaction, also the input of its hash."""
        return (
            struct.pack(">H", len(self.data))
            + self.data
            + _CONTENT_TAIL.pack(
                self.sender.raw,
                self.sender_type,
                self.recipient.raw,
                self.recipient_type,
                self.value,
                self.fee,
                self.validity_start_height,
                self.network_id,
                self.flags,
            )
            + struct.pack(">H", len(self.sender_data))
            + self.sender_data
        )

    def serialize(self) -> bytes:
        return (
            struct.pack(">B", _FORMAT_EXTENDED)
            + _ACCOUNT.pack(self.sender.raw, self.sender_type)
            + _with_length(self.sender_data)
            + _ACCOUNT.pack(self.recipient.raw, self.recipient_type)
            + _with_length(self.data)
            + _AMOUNTS.pack(
                self.value,
                self.fee,
                self.validity_start_height,
                self.network_id,
                self.flags,
            )
            + _with_length(self.proof)
        )

    @classmethod
    def deserialize(cls, raw: bytes) -> ExtendedTransaction:
        try:
            if raw[0] != _FORMAT_EXTENDED:
                raise MalformedInput(f"Unsupported transaction format {raw[0]}")
            pos = 1
            sender, sender_type = _ACCOUNT.unpack_from(raw, pos)
            pos += _ACCOUNT.size
            sender_data, pos = _read_bytes(raw, pos)
            recipient, recipient_type = _ACCOUNT.unpack_from(raw, pos)
            pos += _ACCOUNT.size
            data, pos = _read_bytes(raw, pos)
            value, fee, validity_start_height, network_id, flags = _AMOUNTS.unpack_from(raw, pos)
            pos += _AMOUNTS.size
            proof, pos = _read_bytes(raw, pos)
        except (IndexError, struct.error) as exc:
            raise MalformedInput(f"Truncated transaction: {exc}") from exc
        if pos != len(raw):
            raise MalformedInput(f"{len(raw) - pos} trailing bytes after transaction")
        try:
            sender_type = AccountType(sender_type)
            recipient_type = AccountType(recipient_type)
        except ValueError as exc:
            raise MalformedInput(f"Unknown account type: {exc}") from exc
        return cls(
            sender=Address(sender),
            recipient=Address(recipient),
            value=value,
            fee=fee,
            validity_start_height=validity_start_height,
            network_id=network_id,
            data=data,
            sender_data=sender_data,
            sender_type=sender_type,
            recipient_type=recipient_type,
            flags=flags,
            proof=proof,
        )

    @classmethod
    def from_hex(cls, raw_hex: str) -> ExtendedTransaction:
        try:
            raw = bytes.fromhex(raw_hex)
        except ValueError as exc:
            raise MalformedInput("Transaction is not valid hex") from exc
        return cls.deserialize(raw)

    def to_hex(self) -> str:
        return self.serialize().hex()

    @property
    def hash(self) -> str:
        return blake2b(self.serialize_content()).hex()

    @property
    def serialized_size(self) -> int:
        return len(self.serialize())

    @property
    def fee_per_byte(self) -> float:
        return self.fee / self.serialized_size

    def sign(self, key_pair: KeyPair) -> None:
        """Attach an Ed25519 signature proof with an empty merkle path."""
        signature = key_pair.sign(self.serialize_content())
        self.proof = (
            bytes([_ED25519_PROOF_TYPE]) + key_pair.public_key + _EMPTY_MERKLE_PATH + signature
        )

    def verify(self) -> bool:
        """Check that the proof is a valid signature by the sender's key."""
        if len(self.proof) != SIGNATURE_PROOF_SIZE or self.proof[0] != _ED25519_PROOF_TYPE:
            return False
        public_key = self.proof[1:1 + PUBLIC_KEY_SIZE]
        merkle_path_end = 1 + PUBLIC_KEY_SIZE + len(_EMPTY_MERKLE_PATH)
        if self.proof[1 + PUBLIC_KEY_SIZE:merkle_path_end] != _EMPTY_MERKLE_PATH:
            return False
        if Address.from_public_key(public_key) != self.sender:
            return False
        try:
            Keypair.from_raw_ed25519_public_key(public_key).verify(
                self.serialize_content(), self.proof[merkle_path_end:]
            )
        except BadSignatureError:
            return False
        return True


def create_extended_transaction(
    key_pair: KeyPair,
    recipient: Address,
    value: int,
    fee: int,
    extra_data: bytes,
    validity_start_height: int,
    network: Network,
) -> ExtendedTransaction:
    """Build and sign a transaction from the key pair's address."""
    transaction = ExtendedTransaction(
        sender=key_pair.address,
        recipient=recipient,
        value=value,
        fee=fee,
        validity_start_height=validity_start_height,
        network_id=NETWORK_IDS[network],
        data=extra_data,
    )
    transaction.sign(key_pair)
    return transaction
