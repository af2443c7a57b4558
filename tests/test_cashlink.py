"""Tests 1-5: cashlink URL codec."""

from __future__ import annotations

import re
import struct

import pytest

from cashlink_generator.cashlink import (
    Cashlink,
    CashlinkTheme,
    parse_theme,
    wrap_long_words,
)
from cashlink_generator.encoding import to_base64_url
from cashlink_generator.errors import MalformedInput, ValidationError

from tests.conftest import TEST_BASE_URL
from tests.factories import make_cashlink, make_key_pair


# ── Test 1: Round trip ────────────────────────────────────────────


@pytest.mark.parametrize(
    "value, message, theme",
    [
        (0, "", 0),
        (1, "", CashlinkTheme.BIRTHDAY),
        (500_000, "Welcome to Nimiq - Crypto for Humans", 0),
        (2**63 - 1, "Grüße 🎉", 255),
        (12_345, "x" * 255, CashlinkTheme.CHRISTMAS),
    ],
)
def test_render_parse_round_trip(value, message, theme):
    cashlink = Cashlink(TEST_BASE_URL, make_key_pair(7), value, message, theme)

    parsed = Cashlink.parse(cashlink.render())

    assert parsed == cashlink
    assert parsed.value == value
    assert parsed.message == message
    assert parsed.theme == theme
    assert parsed.address == cashlink.address
    assert parsed.base_url == TEST_BASE_URL


def test_parse_keeps_base_url_verbatim():
    cashlink = make_cashlink(base_url="https://example.com/some/path?x=1")
    assert Cashlink.parse(cashlink.render()).base_url == "https://example.com/some/path?x=1"


def test_render_layout():
    """Key, big-endian value, then message length and message."""
    key_pair = make_key_pair(3)
    cashlink = Cashlink(TEST_BASE_URL, key_pair, 1, "hi")
    expected = key_pair.private_key + struct.pack(">Q", 1) + b"\x02hi"

    assert cashlink.render() == f"{TEST_BASE_URL}#{to_base64_url(expected).replace('.', '=')}"


def test_padding_rendered_as_equal_signs():
    # 40 bytes encode to 56 chars including two padding chars
    url = make_cashlink(message="").render()
    fragment = url.split("#", 1)[1]

    assert fragment.endswith("==")
    assert "." not in fragment
    assert Cashlink.parse(url).value == 500_000


def test_parse_accepts_dot_padding():
    url = make_cashlink(message="").render()
    assert Cashlink.parse(url.replace("=", ".")) == Cashlink.parse(url)


# ── Test 2: Word wrapping ─────────────────────────────────────────


def test_wrap_long_words_every_256_chars():
    assert wrap_long_words("A" * 600) == "A" * 256 + "~" + "A" * 256 + "~" + "A" * 88


def test_wrap_leaves_short_words_alone():
    word = "A" * 256
    assert wrap_long_words(word) == word
    assert wrap_long_words(f"{word}-{word}") == f"{word}-{word}"


def test_rendered_words_never_exceed_256_chars():
    cashlink = make_cashlink(message="a" * 255, theme=5)
    fragment = cashlink.render().split("#", 1)[1]

    assert all(len(word) <= 256 for word in re.findall(r"[A-Za-z0-9_]+", fragment))
    assert Cashlink.parse(cashlink.render()) == cashlink


def test_parse_tolerates_inserted_tildes_and_whitespace():
    cashlink = make_cashlink(message="a" * 200)
    base, fragment = cashlink.render().split("#", 1)
    mangled = "~".join(fragment[i:i + 100] for i in range(0, len(fragment), 100))

    assert Cashlink.parse(f"{base}#{mangled}") == cashlink
    assert Cashlink.parse(f"{base}#{mangled}\n") == cashlink


# ── Test 3: Message length limit ──────────────────────────────────


def test_message_of_255_bytes_accepted():
    cashlink = make_cashlink(message="é" * 127 + "a")  # 255 bytes
    assert len(cashlink.message.encode("utf-8")) == 255
    assert Cashlink.parse(cashlink.render()).message == cashlink.message


def test_message_of_256_bytes_rejected():
    with pytest.raises(ValidationError):
        make_cashlink(message="é" * 128)


def test_message_setter_validates():
    cashlink = make_cashlink()
    with pytest.raises(ValidationError):
        cashlink.message = "x" * 256
    assert cashlink.message == "Welcome to Nimiq - Crypto for Humans"

    cashlink.message = "new"
    assert Cashlink.parse(cashlink.render()).message == "new"


# ── Test 4: Themes ────────────────────────────────────────────────


def test_theme_zero_and_omitted_render_identically():
    key_pair = make_key_pair(9)
    omitted = Cashlink(TEST_BASE_URL, key_pair, 42)
    explicit = Cashlink(TEST_BASE_URL, key_pair, 42, "", 0)

    assert omitted.render() == explicit.render()
    assert Cashlink.parse(omitted.render()).theme == 0


def test_theme_without_message_writes_empty_message_block():
    key_pair = make_key_pair(9)
    cashlink = Cashlink(TEST_BASE_URL, key_pair, 42, "", CashlinkTheme.EASTER)
    expected = key_pair.private_key + struct.pack(">Q", 42) + b"\x00\x04"

    assert cashlink.render().endswith(to_base64_url(expected).replace(".", "="))
    parsed = Cashlink.parse(cashlink.render())
    assert parsed.message == ""
    assert parsed.theme == CashlinkTheme.EASTER


@pytest.mark.parametrize("theme", [-1, 256, "1", True])
def test_invalid_theme_rejected(theme):
    with pytest.raises(ValidationError):
        make_cashlink(theme=theme)


def test_theme_setter():
    cashlink = make_cashlink()
    cashlink.theme = CashlinkTheme.LUNAR_NEW_YEAR
    assert Cashlink.parse(cashlink.render()).theme == 3
    with pytest.raises(ValidationError):
        cashlink.theme = 300
    assert cashlink.theme == 3


@pytest.mark.parametrize(
    "text, expected",
    [("birthday", 6), ("Lunar-New-Year", 3), ("UNSPECIFIED", 0), ("200", 200)],
)
def test_parse_theme(text, expected):
    assert parse_theme(text) == expected


@pytest.mark.parametrize("text", ["halloween", "256"])
def test_parse_theme_rejects_unknown(text):
    with pytest.raises(ValidationError):
        parse_theme(text)


# ── Test 5: Malformed links ───────────────────────────────────────


def _url_for(payload: bytes) -> str:
    return f"{TEST_BASE_URL}#{to_base64_url(payload)}"


def test_parse_without_fragment():
    with pytest.raises(MalformedInput):
        Cashlink.parse(TEST_BASE_URL)


def test_parse_invalid_base64():
    with pytest.raises(MalformedInput):
        Cashlink.parse(f"{TEST_BASE_URL}#not*base64!")


def test_parse_truncated_value():
    with pytest.raises(MalformedInput):
        Cashlink.parse(_url_for(bytes(32) + b"\x00\x01"))


def test_parse_truncated_message():
    payload = bytes(32) + struct.pack(">Q", 1) + b"\x0ashort"
    with pytest.raises(MalformedInput):
        Cashlink.parse(_url_for(payload))


def test_parse_invalid_utf8_message():
    payload = bytes(32) + struct.pack(">Q", 1) + b"\x02\xff\xfe"
    with pytest.raises(MalformedInput):
        Cashlink.parse(_url_for(payload))


def test_negative_value_rejected():
    with pytest.raises(ValidationError):
        Cashlink(TEST_BASE_URL, make_key_pair(), -1)


def test_equality():
    assert make_cashlink(seed=1) == make_cashlink(seed=1)
    assert make_cashlink(seed=1) != make_cashlink(seed=2)
    assert make_cashlink(value=1) != make_cashlink(value=2)
    assert make_cashlink(message="a") != make_cashlink(message="b")
    assert make_cashlink(theme=1) != make_cashlink(theme=2)
