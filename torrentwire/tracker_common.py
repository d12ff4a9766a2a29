"""Types shared by the parts of the WebTorrent tracker."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from enum import Enum
from ipaddress import IPv4Address, IPv6Address

from torrentwire.ws_common import ID_LENGTH


class IpVersion(Enum):
    """Address family a peer is tracked under."""

    V4 = "v4"
    V6 = "v6"

    @classmethod
    def canonical_from_ip(cls, ip: IPv4Address | IPv6Address | str) -> IpVersion:
        """Address family of ``ip``; IPv4-mapped IPv6 addresses count as IPv4."""
        address = ip if isinstance(ip, (IPv4Address, IPv6Address)) else ipaddress.ip_address(ip)
        if isinstance(address, IPv4Address) or address.ipv4_mapped is not None:
            return cls.V4
        return cls.V6


@dataclass(frozen=True, slots=True)
class OutMessageMeta:
    """Routing data for a message on its way back to a connection.

    ``out_message_consumer_id`` names the socket worker that owns the connection.
    """

    out_message_consumer_id: int
    connection_id: int
    pending_scrape_id: int | None = None


@dataclass(frozen=True, slots=True)
class InMessageMeta:
    """Routing data attached to a message received from a connection."""

    out_message_consumer_id: int
    connection_id: int
    ip_version: IpVersion
    pending_scrape_id: int | None = None

    def to_out_meta(self) -> OutMessageMeta:
        """Meta for a reply to the connection this message came from."""
        return OutMessageMeta(
            out_message_consumer_id=self.out_message_consumer_id,
            connection_id=self.connection_id,
            pending_scrape_id=self.pending_scrape_id,
        )


@dataclass(frozen=True, slots=True)
class ConnectionClosed:
    """A connection that announced ``peer_id`` for ``info_hash`` has closed."""

    info_hash: bytes
    peer_id: bytes
    ip_version: IpVersion

    def __post_init__(self) -> None:
        for name in ("info_hash", "peer_id"):
            value = bytes(getattr(self, name))
            if len(value) != ID_LENGTH:
                raise ValueError(f"{name} must be {ID_LENGTH} bytes, got {len(value)}")
            object.__setattr__(self, name, value)