"""Shared field encodings of the WebTorrent tracker protocol."""

from __future__ import annotations

from typing import Any

ID_LENGTH = 20
"""Length in bytes of info hashes, peer ids and offer ids."""

ANNOUNCE_ACTION = "announce"
SCRAPE_ACTION = "scrape"


class ProtocolError(ValueError):
    """A message did not follow the WebTorrent tracker protocol."""


def encode_id(data: bytes) -> str:
    """Encode 20 bytes as a string with one character per byte."""
    data = bytes(data)
    if len(data) != ID_LENGTH:
        raise ValueError(f"id must be {ID_LENGTH} bytes, got {len(data)}")
    return data.decode("latin-1")


def decode_id(value: Any) -> bytes:
    """Decode a string whose first 20 characters each hold one byte.

    Characters beyond the twentieth are not looked at.
    """
    if not isinstance(value, str):
        raise ProtocolError(f"expected string consisting of 20 bytes, got {value!r}")
    head = value[:ID_LENGTH]
    for char in head:
        if ord(char) > 0xFF:
            raise ProtocolError(f"character not in single byte range: {char!r}")
    if len(head) < ID_LENGTH:
        raise ProtocolError(f"not 20 bytes: {value!r}")
    return head.encode("latin-1")


def check_action(value: Any, expected: str) -> str:
    """Return ``value`` if it is the expected action string, else raise."""
    if not isinstance(value, str):
        raise ProtocolError(f"expected string with value {expected!r}, got {value!r}")
    if value != expected:
        raise ProtocolError(f"value is not {expected!r}")
    return value