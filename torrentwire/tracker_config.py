"""Configuration of the WebTorrent tracker."""

from __future__ import annotations

import ipaddress
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from ipaddress import IPv4Address, IPv6Address
from pathlib import Path
from typing import Any

_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1
_I32_MIN = -(2**31)
_I32_MAX = 2**31 - 1


def _int(default: int, low: int = 0, high: int = _U64_MAX) -> Any:
    return field(default=default, metadata={"kind": "int", "min": low, "max": high})


def _bool(default: bool) -> Any:
    return field(default=default, metadata={"kind": "bool"})


def _path(default: str) -> Any:
    return field(default_factory=lambda: Path(default), metadata={"kind": "path"})


def _section(cls: type) -> Any:
    return field(default_factory=cls, metadata={"kind": "section", "cls": cls})


def _check_socket_address(value: Any, name: str) -> str:
    """Validate ``host:port`` with IPv6 hosts in brackets."""
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a socket address string, got {value!r}")
    host, sep, port_text = value.rpartition(":")
    if not sep or not port_text.isdigit() or not 0 <= int(port_text) <= 0xFFFF:
        raise ValueError(f"{name}: invalid socket address {value!r}")
    bracketed = host.startswith("[") and host.endswith("]")
    if bracketed:
        host = host[1:-1]
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        raise ValueError(f"{name}: invalid socket address {value!r}") from None
    if bracketed != isinstance(address, IPv6Address):
        raise ValueError(f"{name}: invalid socket address {value!r}")
    return value


def _address_field(default: str) -> Any:
    return field(default=default, metadata={"kind": "address"})


def _convert(spec: Any, value: Any, name: str) -> Any:
    kind = spec.metadata.get("kind")
    match kind:
        case "int":
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer, got {value!r}")
            if not spec.metadata["min"] <= value <= spec.metadata["max"]:
                raise ValueError(f"{name} out of range: {value}")
            return value
        case "bool":
            if not isinstance(value, bool):
                raise ValueError(f"{name} must be a boolean, got {value!r}")
            return value
        case "path":
            if not isinstance(value, str):
                raise ValueError(f"{name} must be a path string, got {value!r}")
            return Path(value)
        case "address":
            return _check_socket_address(value, name)
        case "section":
            return _section_from_dict(spec.metadata["cls"], value, name)
        case _:
            raise TypeError(f"field {name} has no known kind")


def _section_from_dict(cls: type, data: Any, name: str) -> Any:
    if not isinstance(data, Mapping):
        raise ValueError(f"{name} must be a table, got {data!r}")
    known = {spec.name: spec for spec in fields(cls)}
    unknown = sorted(set(data) - known.keys())
    if unknown:
        raise ValueError(f"unknown field(s) in {name}: {', '.join(map(str, unknown))}")
    prefix = f"{name}." if name != "config" else ""
    return cls(
        **{key: _convert(known[key], value, prefix + key) for key, value in data.items()}
    )


def _section_to_dict(section: Any) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for spec in fields(section):
        value = getattr(section, spec.name)
        if is_dataclass(value):
            value = _section_to_dict(value)
        elif isinstance(value, Path):
            value = str(value)
        result[spec.name] = value
    return result


@dataclass(slots=True)
class NetworkConfig:
    """Listening socket, TLS and WebSocket limits.

    ``enable_http_health_checks`` answers ``GET /health`` with 200 Ok and
    cannot be combined with ``enable_tls``.
    """

    address: str = _address_field("0.0.0.0:3000")
    only_ipv6: bool = _bool(False)
    tcp_backlog: int = _int(1024, _I32_MIN, _I32_MAX)
    enable_tls: bool = _bool(False)
    tls_certificate_path: Path = _path("")
    tls_private_key_path: Path = _path("")
    websocket_max_message_size: int = _int(64 * 1024)
    websocket_max_frame_size: int = _int(16 * 1024)
    enable_http_health_checks: bool = _bool(False)

    def host_and_port(self) -> tuple[IPv4Address | IPv6Address, int]:
        """The bind address split into host and port."""
        host, _, port = self.address.rpartition(":")
        return ipaddress.ip_address(host.strip("[]")), int(port)


@dataclass(slots=True)
class ProtocolConfig:
    """Limits on requests and the announce interval in seconds."""

    max_scrape_torrents: int = _int(255)
    max_offers: int = _int(10)
    peer_announce_interval: int = _int(120)


@dataclass(slots=True)
class CleaningConfig:
    """Intervals and ages, all in seconds."""

    torrent_cleaning_interval: int = _int(30)
    max_peer_age: int = _int(1800, 0, _U32_MAX)
    connection_cleaning_interval: int = _int(30)
    max_connection_idle: int = _int(60 * 5, 0, _U32_MAX)


@dataclass(slots=True)
class Config:
    """Tracker configuration; every field has a default."""

    socket_workers: int = _int(1)
    swarm_workers: int = _int(1)
    network: NetworkConfig = _section(NetworkConfig)
    protocol: ProtocolConfig = _section(ProtocolConfig)
    cleaning: CleaningConfig = _section(CleaningConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Config:
        """Build a config from nested tables, rejecting unknown fields."""
        return _section_from_dict(cls, data, "config")

    def to_dict(self) -> dict[str, Any]:
        """Nested tables suitable for writing as TOML."""
        return _section_to_dict(self)


def load_config(path: str | Path) -> Config:
    """Read a config from a TOML file."""
    with open(path, "rb") as handle:
        return Config.from_dict(tomllib.load(handle))