"""Types shared by the UDP tracker request and response codecs."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from ipaddress import IPv4Address, IPv6Address

ID_LENGTH = 20
"""Length in bytes of info hashes and peer ids."""

IpAddress = IPv4Address | IPv6Address


@dataclass(frozen=True, slots=True)
class ResponsePeer:
    """A peer address handed back to clients in an announce response."""

    ip_address: IpAddress
    port: int

    def __post_init__(self) -> None:
        if not isinstance(self.ip_address, (IPv4Address, IPv6Address)):
            object.__setattr__(self, "ip_address", ipaddress.ip_address(self.ip_address))
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise TypeError(f"port must be an int, got {self.port!r}")
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"port out of range: {self.port}")