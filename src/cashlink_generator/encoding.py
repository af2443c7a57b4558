"""Base64 helpers following the Nimiq BufferUtils conventions.

Nimiq's url-safe base64 uses ``-`` and ``_`` like RFC 4648 but pads with
``.`` instead of ``=``, so an encoded value never needs URL escaping.
"""

from __future__ import annotations

import base64
import binascii

from cashlink_generator.errors import MalformedInput


def to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def from_base64(value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedInput(f"Invalid base64: {exc}") from exc


def to_base64_url(data: bytes) -> str:
    """Encode with the url-safe alphabet and ``.`` padding."""
    return base64.urlsafe_b64encode(data).decode("ascii").replace("=", ".")


def from_base64_url(value: str) -> bytes:
    """Decode url-safe base64 with ``.`` (or missing) padding.

    Raises MalformedInput for characters outside the alphabet and for
    lengths that cannot be valid base64.
    """
    value = value.replace(".", "=")
    value += "=" * (-len(value) % 4)
    try:
        return base64.b64decode(value, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedInput(f"Invalid base64url: {exc}") from exc
