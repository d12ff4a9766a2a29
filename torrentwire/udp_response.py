"""Responses of the UDP tracker protocol and their wire encoding."""

from __future__ import annotations

import struct
from collections.abc import Iterator
from dataclasses import dataclass
from ipaddress import IPv4Address, IPv6Address

from torrentwire.udp_common import ResponsePeer

_ACTION_CONNECT = 0
_ACTION_ANNOUNCE = 1
_ACTION_SCRAPE = 2
_ACTION_ERROR = 3

_HEADER = struct.Struct(">ii")
_CONNECTION_ID = struct.Struct(">q")
_ANNOUNCE_COUNTS = struct.Struct(">iii")
_SCRAPE_STATS = struct.Struct(">iii")
_PORT = struct.Struct(">H")

_IPV4_PEER_SIZE = 4 + _PORT.size
_IPV6_PEER_SIZE = 16 + _PORT.size


@dataclass(frozen=True, slots=True)
class TorrentScrapeStatistics:
    seeders: int
    completed: int
    leechers: int


@dataclass(frozen=True, slots=True)
class ConnectResponse:
    connection_id: int
    transaction_id: int


@dataclass(frozen=True, slots=True)
class AnnounceResponse:
    """Announce response; its peers are all IPv4 or all IPv6 addresses."""

    transaction_id: int
    announce_interval: int
    leechers: int
    seeders: int
    peers: tuple[ResponsePeer, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "peers", tuple(self.peers))


@dataclass(frozen=True, slots=True)
class ScrapeResponse:
    transaction_id: int
    torrent_stats: tuple[TorrentScrapeStatistics, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "torrent_stats", tuple(self.torrent_stats))


@dataclass(frozen=True, slots=True)
class ErrorResponse:
    transaction_id: int
    message: str


Response = ConnectResponse | AnnounceResponse | ScrapeResponse | ErrorResponse


class ResponseParseError(ValueError):
    """A response was too short to be parsed."""


def _encode_peer(peer: ResponsePeer) -> bytes:
    return peer.ip_address.packed + _PORT.pack(peer.port)


def encode_response(response: Response) -> bytes:
    """Encode a response into its wire form."""
    try:
        match response:
            case ConnectResponse():
                return _HEADER.pack(
                    _ACTION_CONNECT, response.transaction_id
                ) + _CONNECTION_ID.pack(response.connection_id)
            case AnnounceResponse():
                head = _HEADER.pack(_ACTION_ANNOUNCE, response.transaction_id)
                counts = _ANNOUNCE_COUNTS.pack(
                    response.announce_interval, response.leechers, response.seeders
                )
                return head + counts + b"".join(map(_encode_peer, response.peers))
            case ScrapeResponse():
                head = _HEADER.pack(_ACTION_SCRAPE, response.transaction_id)
                stats = b"".join(
                    _SCRAPE_STATS.pack(s.seeders, s.completed, s.leechers)
                    for s in response.torrent_stats
                )
                return head + stats
            case ErrorResponse():
                head = _HEADER.pack(_ACTION_ERROR, response.transaction_id)
                return head + response.message.encode("utf-8")
            case _:
                raise TypeError(f"not a response: {response!r}")
    except struct.error as exc:
        raise ValueError(f"response field out of range: {exc}") from exc


def _full_chunks(data: bytes, size: int) -> Iterator[bytes]:
    for start in range(0, len(data) - size + 1, size):
        yield data[start : start + size]


def _parse_peers(data: bytes, ipv4: bool) -> tuple[ResponsePeer, ...]:
    size, address_type = (
        (_IPV4_PEER_SIZE, IPv4Address) if ipv4 else (_IPV6_PEER_SIZE, IPv6Address)
    )
    address_length = size - _PORT.size
    return tuple(
        ResponsePeer(
            ip_address=address_type(chunk[:address_length]),
            port=_PORT.unpack(chunk[address_length:])[0],
        )
        for chunk in _full_chunks(data, size)
    )


def parse_response(data: bytes, ipv4: bool) -> Response:
    """Parse a response from its wire form.

    ``ipv4`` selects whether announce peers are read as IPv4 or IPv6 addresses.
    Trailing bytes that do not make up a whole peer or statistics entry are ignored.
    """
    data = bytes(data)
    if len(data) < _HEADER.size:
        raise ResponseParseError("response too short to hold a header")

    action, transaction_id = _HEADER.unpack_from(data)
    body = data[_HEADER.size :]

    match action:
        case 0:
            if len(body) < _CONNECTION_ID.size:
                raise ResponseParseError("connect response truncated")
            (connection_id,) = _CONNECTION_ID.unpack_from(body)
            return ConnectResponse(
                connection_id=connection_id, transaction_id=transaction_id
            )
        case 1:
            if len(body) < _ANNOUNCE_COUNTS.size:
                raise ResponseParseError("announce response truncated")
            interval, leechers, seeders = _ANNOUNCE_COUNTS.unpack_from(body)
            return AnnounceResponse(
                transaction_id=transaction_id,
                announce_interval=interval,
                leechers=leechers,
                seeders=seeders,
                peers=_parse_peers(body[_ANNOUNCE_COUNTS.size :], ipv4),
            )
        case 2:
            stats = tuple(
                TorrentScrapeStatistics(*_SCRAPE_STATS.unpack(chunk))
                for chunk in _full_chunks(body, _SCRAPE_STATS.size)
            )
            return ScrapeResponse(transaction_id=transaction_id, torrent_stats=stats)
        case 3:
            return ErrorResponse(
                transaction_id=transaction_id,
                message=body.decode("utf-8", errors="replace"),
            )
        case _:
            return ErrorResponse(transaction_id=transaction_id, message="Invalid action")