"""Tests 6-9: Nimiq keys, addresses and extended transactions."""

from __future__ import annotations

import pytest

from cashlink_generator.errors import MalformedInput, ValidationError
from cashlink_generator.models.config import Network
from cashlink_generator.nimiq.keys import Address, KeyPair, blake2b, normalize_address
from cashlink_generator.nimiq.transaction import (
    SIGNATURE_PROOF_SIZE,
    AccountType,
    CashlinkExtraData,
    ExtendedTransaction,
    create_extended_transaction,
    encode_varint,
)

from tests.conftest import FUNDING_PRIVATE_KEY
from tests.factories import make_address, make_key_pair, make_transaction


# ── Test 6: Key pairs ─────────────────────────────────────────────


def test_key_pair_derives_ed25519_public_key():
    # RFC 8032 test vector 1
    key_pair = KeyPair(FUNDING_PRIVATE_KEY)
    assert key_pair.public_key.hex() == (
        "d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a"
    )
    assert key_pair.private_key == FUNDING_PRIVATE_KEY


def test_key_pair_from_hex():
    assert KeyPair.from_hex(FUNDING_PRIVATE_KEY.hex()) == KeyPair(FUNDING_PRIVATE_KEY)
    with pytest.raises(ValidationError):
        KeyPair.from_hex("zz")
    with pytest.raises(ValidationError):
        KeyPair.from_hex("00" * 31)


def test_generated_key_pairs_differ():
    assert KeyPair.generate() != KeyPair.generate()


# ── Test 7: Addresses ─────────────────────────────────────────────


def test_zero_address_user_friendly():
    address = Address(bytes(20))
    assert address.to_user_friendly() == "NQ07 0000 0000 0000 0000 0000 0000 0000 0000"
    assert address.to_user_friendly(with_spaces=False) == "NQ07" + "0" * 32


def test_address_is_blake2b_of_public_key():
    key_pair = make_key_pair(5)
    assert key_pair.address.raw == blake2b(key_pair.public_key)[:20]


def test_user_friendly_round_trip():
    address = make_address(42)
    text = address.to_user_friendly()

    assert text.startswith("NQ")
    assert len(text) == 44
    assert Address.from_user_friendly(text) == address
    assert Address.from_user_friendly(text.replace(" ", "").lower()) == address


def test_user_friendly_checksum_is_verified():
    text = make_address(42).to_user_friendly(with_spaces=False)
    corrupted = text[:-1] + ("0" if text[-1] != "0" else "1")
    with pytest.raises(ValidationError):
        Address.from_user_friendly(corrupted)


@pytest.mark.parametrize("text", ["", "NQ07 0000", "DE07 0000 0000 0000 0000 0000 0000 0000 0000"])
def test_user_friendly_rejects_malformed(text):
    with pytest.raises(ValidationError):
        Address.from_user_friendly(text)


def test_normalize_address():
    assert normalize_address("nq070000 0000000000000000000000000000") == (
        "NQ07 0000 0000 0000 0000 0000 0000 0000 0000"
    )


# ── Test 8: Transaction serialization ─────────────────────────────


def test_serialized_size_and_fee_per_byte():
    tx = make_transaction(fee=332, data=b"")
    # format + two accounts with empty data + amounts + proof length + signature proof (98)
    assert tx.serialized_size == 1 + 2 * 22 + 22 + 1 + 98 == len(tx.serialize())
    assert tx.fee_per_byte == 2.0

    with_data = make_transaction(data=CashlinkExtraData.FUNDING)
    assert with_data.serialized_size == 171


def test_deserialize_inverts_serialize():
    tx = make_transaction(value=123_456, fee=7, validity_start_height=99)
    parsed = ExtendedTransaction.from_hex(tx.to_hex())

    assert parsed.sender == tx.sender
    assert parsed.recipient == tx.recipient
    assert parsed.value == 123_456
    assert parsed.fee == 7
    assert parsed.validity_start_height == 99
    assert parsed.network_id == 5
    assert parsed.data == CashlinkExtraData.FUNDING
    assert parsed.sender_type is AccountType.BASIC
    assert parsed.proof == tx.proof
    assert parsed.hash == tx.hash


def test_hash_covers_content_only():
    tx = make_transaction()
    assert tx.hash == blake2b(tx.serialize_content()).hex()
    unsigned = ExtendedTransaction(
        sender=tx.sender,
        recipient=tx.recipient,
        value=tx.value,
        fee=tx.fee,
        validity_start_height=tx.validity_start_height,
        network_id=tx.network_id,
        data=tx.data,
    )
    assert unsigned.hash == tx.hash


def test_network_ids():
    assert make_transaction(network=Network.MAIN).network_id == 24
    assert make_transaction(network=Network.TEST).network_id == 5


def test_extra_data_spells_cash_link():
    assert CashlinkExtraData.FUNDING == b"\x00" + bytes(ord(c) + 63 for c in "CASH")
    assert CashlinkExtraData.CLAIMING == b"\x00" + bytes(ord(c) + 63 for c in "LINK")


def test_extended_wire_layout(funding_key):
    recipient = Address(bytes(range(20)))
    tx = create_extended_transaction(
        funding_key, recipient, 100_000, 171, CashlinkExtraData.FUNDING, 1000, Network.MAIN
    )
    sender = funding_key.address.raw.hex()
    public_key = "d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a"
    signature = tx.proof[-64:].hex()

    assert tx.to_hex() == (
        "01"                                          # extended format
        + sender + "00" + "00"                        # sender, basic, no sender data
        + "000102030405060708090a0b0c0d0e0f10111213"  # recipient
        + "00" + "05" + "0082809287"                  # basic, recipient data
        + "00000000000186a0"                          # value
        + "00000000000000ab"                          # fee
        + "000003e8"                                  # validity start height
        + "18"                                        # main network
        + "00"                                        # flags
        + "62" + "00" + public_key + "00" + signature
    )
    assert tx.serialize_content().hex() == (
        "0005" + "0082809287"
        + sender + "00"
        + "000102030405060708090a0b0c0d0e0f10111213" + "00"
        + "00000000000186a0" + "00000000000000ab" + "000003e8" + "18" + "00"
        + "0000"
    )
    assert tx.hash == blake2b(tx.serialize_content()).hex()
    assert tx.verify()


def test_sender_data_is_serialized_and_signed():
    tx = make_transaction()
    tx.sender_data = b"\x01\x02"
    tx.sign(make_key_pair(100))

    parsed = ExtendedTransaction.deserialize(tx.serialize())

    assert parsed.sender_data == b"\x01\x02"
    assert tx.serialize_content().endswith(b"\x00\x02\x01\x02")
    assert parsed.verify()


@pytest.mark.parametrize(
    "value, expected",
    [(0, "00"), (5, "05"), (127, "7f"), (128, "8001"), (300, "ac02"), (16_384, "808001")],
)
def test_varint_length_prefix(value, expected):
    assert encode_varint(value).hex() == expected


def test_long_data_uses_two_byte_length_prefix():
    tx = make_transaction(data=bytes(200))
    raw = tx.serialize()

    assert raw[1 + 22 + 20 + 1:1 + 22 + 20 + 1 + 2] == bytes.fromhex("c801")
    assert ExtendedTransaction.deserialize(raw).data == bytes(200)


def test_deserialize_rejects_trailing_bytes():
    with pytest.raises(MalformedInput):
        ExtendedTransaction.deserialize(make_transaction().serialize() + b"\x00")


@pytest.mark.parametrize("cut", [1, 10, 80, -1])
def test_deserialize_truncated(cut):
    raw = make_transaction().serialize()
    with pytest.raises(MalformedInput):
        ExtendedTransaction.deserialize(raw[:cut])


def test_deserialize_rejects_unknown_format():
    raw = bytearray(make_transaction().serialize())
    raw[0] = 0
    with pytest.raises(MalformedInput):
        ExtendedTransaction.deserialize(bytes(raw))


def test_from_hex_rejects_non_hex():
    with pytest.raises(MalformedInput):
        ExtendedTransaction.from_hex("xyz")


# ── Test 9: Signatures ────────────────────────────────────────────


def test_signed_transaction_verifies():
    tx = make_transaction()
    assert len(tx.proof) == SIGNATURE_PROOF_SIZE == 98
    assert tx.proof[0] == 0  # Ed25519, no flags
    assert tx.proof[33] == 0  # empty merkle path
    assert tx.verify()


def test_tampered_transaction_fails_verification():
    tx = make_transaction(value=100)
    tx.value = 101
    assert not tx.verify()


def test_proof_from_other_key_fails_verification():
    tx = make_transaction(key_pair=make_key_pair(1))
    tx.sign(make_key_pair(2))
    assert not tx.verify()
