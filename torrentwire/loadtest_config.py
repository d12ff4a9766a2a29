"""Configuration of the WebTorrent load tester."""

from __future__ import annotations

import dataclasses
import ipaddress
import tomllib
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from ipaddress import IPv4Address, IPv6Address
from pathlib import Path
from typing import Any

_U64_MAX = 2**64 - 1


def _usize(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if not 0 <= value <= _U64_MAX:
        raise ValueError(f"{name} out of range: {value}")
    return value


def _float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {value!r}")
    return float(value)


def _split_address(value: str) -> tuple[IPv4Address | IPv6Address, int]:
    host, sep, port_text = value.rpartition(":")
    if not sep or not port_text.isdigit() or not 0 <= int(port_text) <= 0xFFFF:
        raise ValueError(f"invalid socket address {value!r}")
    bracketed = host.startswith("[") and host.endswith("]")
    if bracketed:
        host = host[1:-1]
    address = ipaddress.ip_address(host)
    if bracketed != isinstance(address, IPv6Address):
        raise ValueError(f"invalid socket address {value!r}")
    return address, int(port_text)


def _address(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a socket address string, got {value!r}")
    try:
        _split_address(value)
    except ValueError:
        raise ValueError(f"{name}: invalid socket address {value!r}") from None
    return value


def _setting(default: Any, parse: Callable[[Any, str], Any]) -> Any:
    return field(default=default, metadata={"parse": parse})


def _from_dict(cls: type, data: Any, name: str) -> Any:
    if not isinstance(data, Mapping):
        raise ValueError(f"{name} must be a table, got {data!r}")
    known = {spec.name: spec for spec in fields(cls)}
    unknown = sorted(map(str, set(data) - known.keys()))
    if unknown:
        raise ValueError(f"unknown field(s) in {name}: {', '.join(unknown)}")
    prefix = "" if name == "config" else f"{name}."
    return cls(
        **{
            key: known[key].metadata["parse"](value, prefix + key)
            for key, value in data.items()
        }
    )


@dataclass(slots=True)
class TorrentConfig:
    """How fake peers pick torrents and requests.

    Torrents are chosen following a Pareto distribution of shape
    ``torrent_selection_pareto_shape``; the request kind is chosen by the
    relative weights ``weight_announce`` and ``weight_scrape``.
    """

    offers_per_request: int = _setting(10, _usize)
    number_of_torrents: int = _setting(10_000, _usize)
    torrent_selection_pareto_shape: float = _setting(2.0, _float)
    peer_seeder_probability: float = _setting(0.25, _float)
    weight_announce: int = _setting(5, _usize)
    weight_scrape: int = _setting(0, _usize)


def _torrents(value: Any, name: str) -> TorrentConfig:
    return _from_dict(TorrentConfig, value, name)


@dataclass(slots=True)
class LoadTestConfig:
    """Load tester configuration; ``duration`` 0 means run until stopped."""

    server_address: str = _setting("127.0.0.1:3000", _address)
    num_workers: int = _setting(1, _usize)
    num_connections_per_worker: int = _setting(16, _usize)
    connection_creation_interval_ms: int = _setting(10, _usize)
    duration: int = _setting(0, _usize)
    torrents: TorrentConfig = field(
        default_factory=TorrentConfig, metadata={"parse": _torrents}
    )

    def server_host_and_port(self) -> tuple[IPv4Address | IPv6Address, int]:
        """The server address split into host and port."""
        return _split_address(self.server_address)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LoadTestConfig:
        """Build a config from nested tables, rejecting unknown fields."""
        return _from_dict(cls, data, "config")

    def to_dict(self) -> dict[str, Any]:
        """Nested tables suitable for writing as TOML."""
        return dataclasses.asdict(self)


def load_loadtest_config(path: str | Path) -> LoadTestConfig:
    """Read a load tester config from a TOML file."""
    with open(path, "rb") as handle:
        return LoadTestConfig.from_dict(tomllib.load(handle))