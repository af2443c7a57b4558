"""Cashlinks and their URL codec.

A rendered cashlink is ``{base_url}#{payload}`` where the payload is the
url-safe base64 encoding of::

    private key (32) | value (u64 BE) | [message length (u8) | message] | [theme (u8)]

The message block is present when there is a message or a theme, the theme
byte only when the theme is non-zero. Padding dots become ``=`` and long
words are broken with ``~`` so the link survives messaging apps.
"""

from __future__ import annotations

import logging
import re
import struct
from enum import IntEnum

from cashlink_generator.encoding import from_base64_url, to_base64_url
from cashlink_generator.errors import MalformedInput, ValidationError
from cashlink_generator.nimiq.keys import PRIVATE_KEY_SIZE, Address, KeyPair

log = logging.getLogger(__name__)

MAX_MESSAGE_BYTES = 255
MAX_VALUE = 2**64 - 1
WORD_BREAK_LENGTH = 256

_LONG_WORD = re.compile(r"[A-Za-z0-9_]{%d,}" % (WORD_BREAK_LENGTH + 1))
_TRAILING_PADDING = re.compile(r"=*$")


class CashlinkTheme(IntEnum):
    UNSPECIFIED = 0
    STANDARD = 1
    CHRISTMAS = 2
    LUNAR_NEW_YEAR = 3
    EASTER = 4
    GENERIC = 5
    BIRTHDAY = 6


def parse_theme(value: str) -> int:
    """Theme from its name (any case, ``-`` or ``_``) or its number."""
    value = value.strip()
    if value.isdigit():
        theme = int(value)
        if theme > 255:
            raise ValidationError(f"Invalid theme {theme}")
        return theme
    try:
        return CashlinkTheme[value.upper().replace("-", "_").replace(" ", "_")].value
    except KeyError:
        raise ValidationError(f"Unknown theme {value!r}") from None


def wrap_long_words(encoded: str) -> str:
    """Insert ``~`` after every 256 characters of words longer than 256."""
    return _LONG_WORD.sub(
        lambda m: re.sub(r".{%d}" % WORD_BREAK_LENGTH, r"\g<0>~", m.group(0)),
        encoded,
    )


class Cashlink:
    """A funded or to-be-funded link that transfers its value to whoever claims it."""

    def __init__(
        self,
        base_url: str,
        key_pair: KeyPair,
        value: int,
        message: str = "",
        theme: int = CashlinkTheme.UNSPECIFIED,
    ) -> None:
        if not 0 <= value <= MAX_VALUE:
            raise ValidationError(f"Invalid value {value}")
        self._base_url = base_url
        self._key_pair = key_pair
        self._value = value
        self.message = message
        self.theme = theme

    @classmethod
    def parse(cls, url: str) -> Cashlink:
        base_url, sep, fragment = url.strip().partition("#")
        if not sep:
            raise MalformedInput(f"Cashlink has no fragment: {url!r}")
        payload = fragment.replace("~", "")
        payload = "".join(payload.split())
        payload = _TRAILING_PADDING.sub(lambda m: "." * len(m.group(0)), payload, count=1)
        buf = from_base64_url(payload)

        if len(buf) < PRIVATE_KEY_SIZE + 8:
            raise MalformedInput("Cashlink payload is truncated")
        key_pair = KeyPair.derive(buf[:PRIVATE_KEY_SIZE])
        pos = PRIVATE_KEY_SIZE
        (value,) = struct.unpack_from(">Q", buf, pos)
        pos += 8

        message = ""
        if pos < len(buf):
            length = buf[pos]
            pos += 1
            message_bytes = buf[pos:pos + length]
            if len(message_bytes) != length:
                raise MalformedInput("Cashlink message is truncated")
            pos += length
            try:
                message = message_bytes.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise MalformedInput("Cashlink message is not valid UTF-8") from exc

        theme = CashlinkTheme.UNSPECIFIED
        if pos < len(buf):
            theme = buf[pos]

        return cls(base_url, key_pair, value, message, theme)

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def key_pair(self) -> KeyPair:
        return self._key_pair

    @property
    def value(self) -> int:
        """Value in luna."""
        return self._value

    @property
    def message(self) -> str:
        return self._message_bytes.decode("utf-8")

    @message.setter
    def message(self, message: str) -> None:
        message_bytes = message.encode("utf-8")
        if len(message_bytes) > MAX_MESSAGE_BYTES:
            raise ValidationError(
                f"Cashlink message is too long ({len(message_bytes)} > {MAX_MESSAGE_BYTES} bytes)"
            )
        self._message_bytes = message_bytes

    @property
    def theme(self) -> int:
        return self._theme

    @theme.setter
    def theme(self, theme: int) -> None:
        if isinstance(theme, bool) or not isinstance(theme, int) or not 0 <= theme <= 255:
            raise ValidationError(f"Invalid theme {theme!r}")
        self._theme = int(theme)

    @property
    def address(self) -> Address:
        return self._key_pair.address

    def render(self) -> str:
        buf = self._key_pair.private_key + struct.pack(">Q", self._value)
        if self._message_bytes or self._theme:
            buf += bytes([len(self._message_bytes)]) + self._message_bytes
        if self._theme:
            buf += bytes([self._theme])

        encoded = to_base64_url(buf).replace(".", "=")
        return f"{self._base_url}#{wrap_long_words(encoded)}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Cashlink):
            return NotImplemented
        return (
            self._base_url == other._base_url
            and self._key_pair == other._key_pair
            and self._value == other._value
            and self._message_bytes == other._message_bytes
            and self._theme == other._theme
        )

    def __hash__(self) -> int:
        return hash((self._base_url, self._key_pair, self._value))

    def __repr__(self) -> str:
        return f"Cashlink(address={self.address}, value={self._value}, theme={self._theme})"
