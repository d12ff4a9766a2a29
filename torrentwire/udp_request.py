"""Requests of the UDP tracker protocol and their wire encoding."""

from __future__ import annotations

import struct
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from ipaddress import IPv4Address
from itertools import islice

from torrentwire.udp_common import ID_LENGTH

PROTOCOL_IDENTIFIER = 4_497_486_125_440

_ACTION_CONNECT = 0
_ACTION_ANNOUNCE = 1
_ACTION_SCRAPE = 2

_HEADER = struct.Struct(">qii")
_ANNOUNCE_BODY = struct.Struct(f">{ID_LENGTH}s{ID_LENGTH}sqqqi4sIiH")


def _require_id(value: bytes, name: str) -> bytes:
    value = bytes(value)
    if len(value) != ID_LENGTH:
        raise ValueError(f"{name} must be {ID_LENGTH} bytes, got {len(value)}")
    return value


class AnnounceEvent(Enum):
    """Event carried by an announce request."""

    NONE = 0
    COMPLETED = 1
    STARTED = 2
    STOPPED = 3

    @classmethod
    def from_wire(cls, value: int) -> AnnounceEvent:
        """Map a wire value to an event; unknown values mean no event."""
        try:
            return cls(value)
        except ValueError:
            return cls.NONE

    def to_wire(self) -> int:
        return self.value


@dataclass(frozen=True, slots=True)
class ConnectRequest:
    transaction_id: int


@dataclass(frozen=True, slots=True)
class AnnounceRequest:
    connection_id: int
    transaction_id: int
    info_hash: bytes
    peer_id: bytes
    bytes_downloaded: int
    bytes_uploaded: int
    bytes_left: int
    event: AnnounceEvent
    ip_address: IPv4Address | None
    key: int
    peers_wanted: int
    port: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "info_hash", _require_id(self.info_hash, "info_hash"))
        object.__setattr__(self, "peer_id", _require_id(self.peer_id, "peer_id"))
        if self.ip_address is not None and not isinstance(self.ip_address, IPv4Address):
            object.__setattr__(self, "ip_address", IPv4Address(self.ip_address))


@dataclass(frozen=True, slots=True)
class ScrapeRequest:
    connection_id: int
    transaction_id: int
    info_hashes: tuple[bytes, ...]

    def __post_init__(self) -> None:
        hashes = tuple(_require_id(h, "info_hash") for h in self.info_hashes)
        object.__setattr__(self, "info_hashes", hashes)


Request = ConnectRequest | AnnounceRequest | ScrapeRequest


class RequestParseError(ValueError):
    """A request could not be parsed.

    When the connection and transaction ids were read before the failure,
    the error is ``sendable``: an error response can be addressed to the client.
    """

    def __init__(
        self,
        message: str,
        *,
        connection_id: int | None = None,
        transaction_id: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.connection_id = connection_id
        self.transaction_id = transaction_id
        self.sendable = connection_id is not None and transaction_id is not None


def encode_request(request: Request) -> bytes:
    """Encode a request into its wire form."""
    try:
        match request:
            case ConnectRequest():
                return _HEADER.pack(PROTOCOL_IDENTIFIER, _ACTION_CONNECT, request.transaction_id)
            case AnnounceRequest():
                ip = request.ip_address.packed if request.ip_address is not None else bytes(4)
                header = _HEADER.pack(
                    request.connection_id, _ACTION_ANNOUNCE, request.transaction_id
                )
                body = _ANNOUNCE_BODY.pack(
                    request.info_hash,
                    request.peer_id,
                    request.bytes_downloaded,
                    request.bytes_left,
                    request.bytes_uploaded,
                    request.event.to_wire(),
                    ip,
                    request.key,
                    request.peers_wanted,
                    request.port,
                )
                return header + body
            case ScrapeRequest():
                header = _HEADER.pack(
                    request.connection_id, _ACTION_SCRAPE, request.transaction_id
                )
                return header + b"".join(request.info_hashes)
            case _:
                raise TypeError(f"not a request: {request!r}")
    except struct.error as exc:
        raise ValueError(f"request field out of range: {exc}") from exc


def _full_chunks(data: bytes, size: int) -> Iterator[bytes]:
    for start in range(0, len(data) - size + 1, size):
        yield data[start : start + size]


def parse_request(data: bytes, max_scrape_torrents: int) -> Request:
    """Parse a request from its wire form.

    At most ``max_scrape_torrents`` info hashes are kept from a scrape request.
    """
    data = bytes(data)
    if len(data) < _HEADER.size:
        raise RequestParseError("request too short to hold a header")

    connection_id, action, transaction_id = _HEADER.unpack_from(data)
    body = data[_HEADER.size :]
    ids = {"connection_id": connection_id, "transaction_id": transaction_id}

    match action:
        case 0:
            if connection_id != PROTOCOL_IDENTIFIER:
                raise RequestParseError("Protocol identifier missing")
            return ConnectRequest(transaction_id=transaction_id)
        case 1:
            if len(body) < _ANNOUNCE_BODY.size:
                raise RequestParseError("announce request truncated", **ids)
            (
                info_hash,
                peer_id,
                bytes_downloaded,
                bytes_left,
                bytes_uploaded,
                event,
                ip,
                key,
                peers_wanted,
                port,
            ) = _ANNOUNCE_BODY.unpack_from(body)
            return AnnounceRequest(
                connection_id=connection_id,
                transaction_id=transaction_id,
                info_hash=info_hash,
                peer_id=peer_id,
                bytes_downloaded=bytes_downloaded,
                bytes_uploaded=bytes_uploaded,
                bytes_left=bytes_left,
                event=AnnounceEvent.from_wire(event),
                ip_address=None if ip == bytes(4) else IPv4Address(ip),
                key=key,
                peers_wanted=peers_wanted,
                port=port,
            )
        case 2:
            info_hashes = tuple(
                islice(_full_chunks(body, ID_LENGTH), max_scrape_torrents)
            )
            if not info_hashes:
                raise RequestParseError("Full scrapes are not allowed", **ids)
            return ScrapeRequest(
                connection_id=connection_id,
                transaction_id=transaction_id,
                info_hashes=info_hashes,
            )
        case _:
            raise RequestParseError("Invalid action", **ids)