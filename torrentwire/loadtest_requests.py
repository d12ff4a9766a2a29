"""Shared state of the load tester and generation of random requests."""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass, field
from enum import Enum

from torrentwire.loadtest_config import LoadTestConfig
from torrentwire.ws_common import ID_LENGTH
from torrentwire.ws_request import (
    AnnounceEvent,
    AnnounceRequest,
    AnnounceRequestOffer,
    InMessage,
    ScrapeRequest,
)

SDP_PLACEHOLDER = {
    "sdp": "abcdefg-abcdefg-abcdefg-abcdefg-abcdefg-abcdefg-abcdefg-abcdefg-"
    "abcdefg-abcdefg-abcdefg-abcdefg-abcdefg-abcdefg-abcdefg-"
}
"""Session description sent with every generated offer and answer."""

SCRAPE_INFO_HASHES = 5
_PARETO_CAP = 101.0

COUNTERS = (
    "requests",
    "response_peers",
    "responses_announce",
    "responses_offer",
    "responses_answer",
    "responses_scrape",
    "responses_error",
)


@dataclass(slots=True)
class Statistics:
    """Counters shared between load test workers."""

    requests: int = 0
    response_peers: int = 0
    responses_announce: int = 0
    responses_offer: int = 0
    responses_answer: int = 0
    responses_scrape: int = 0
    responses_error: int = 0
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    @staticmethod
    def _check(name: str) -> None:
        if name not in COUNTERS:
            raise ValueError(f"unknown counter {name!r}")

    def add(self, name: str, count: int = 1) -> None:
        """Increase a counter."""
        self._check(name)
        with self._lock:
            setattr(self, name, getattr(self, name) + count)

    def take(self, name: str) -> int:
        """Return a counter's value and reset it to zero."""
        self._check(name)
        with self._lock:
            value = getattr(self, name)
            setattr(self, name, 0)
            return value


@dataclass(frozen=True, slots=True)
class LoadTestState:
    """Torrents to announce for, shared statistics and the Pareto shape."""

    info_hashes: tuple[bytes, ...]
    statistics: Statistics
    pareto_shape: float

    @classmethod
    def create(cls, config: LoadTestConfig, rng: random.Random) -> LoadTestState:
        """Generate random info hashes for the configured number of torrents."""
        torrents = config.torrents
        shape = torrents.torrent_selection_pareto_shape
        if not shape > 0:
            raise ValueError(f"Pareto shape must be positive, got {shape}")
        if torrents.number_of_torrents == 0:
            raise ValueError("number_of_torrents must be at least 1")
        info_hashes = tuple(
            rng.randbytes(ID_LENGTH) for _ in range(torrents.number_of_torrents)
        )
        return cls(info_hashes=info_hashes, statistics=Statistics(), pareto_shape=shape)


class RequestType(Enum):
    ANNOUNCE = "announce"
    SCRAPE = "scrape"


def pareto_index(rng: random.Random, shape: float, max_index: int) -> int:
    """Pick an index in ``0..=max_index`` skewed towards low values."""
    sample = rng.paretovariate(shape)
    fraction = (min(sample, _PARETO_CAP) - 1.0) / 100.0
    return int(fraction * max_index)


def _select_info_hash(
    config: LoadTestConfig, state: LoadTestState, rng: random.Random
) -> bytes:
    index = pareto_index(rng, state.pareto_shape, config.torrents.number_of_torrents - 1)
    return state.info_hashes[index]


def _create_announce_request(
    config: LoadTestConfig, state: LoadTestState, rng: random.Random, peer_id: bytes
) -> AnnounceRequest:
    probability = config.torrents.peer_seeder_probability
    if not 0.0 <= probability <= 1.0:
        raise ValueError(f"peer_seeder_probability must be in [0, 1], got {probability}")
    if rng.random() < probability:
        event, bytes_left = AnnounceEvent.COMPLETED, 0
    else:
        event, bytes_left = AnnounceEvent.STARTED, 50

    info_hash = _select_info_hash(config, state, rng)
    offers = tuple(
        AnnounceRequestOffer(offer=dict(SDP_PLACEHOLDER), offer_id=rng.randbytes(ID_LENGTH))
        for _ in range(config.torrents.offers_per_request)
    )
    return AnnounceRequest(
        info_hash=info_hash,
        peer_id=peer_id,
        bytes_left=bytes_left,
        event=event,
        offers=offers,
        numwant=len(offers),
    )


def _create_scrape_request(
    config: LoadTestConfig, state: LoadTestState, rng: random.Random
) -> ScrapeRequest:
    info_hashes = tuple(
        _select_info_hash(config, state, rng) for _ in range(SCRAPE_INFO_HASHES)
    )
    return ScrapeRequest(info_hashes=info_hashes)


def create_random_request(
    config: LoadTestConfig, state: LoadTestState, rng: random.Random, peer_id: bytes
) -> InMessage:
    """Create an announce or scrape request, chosen by the configured weights."""
    weights = (config.torrents.weight_announce, config.torrents.weight_scrape)
    if sum(weights) == 0:
        raise ValueError("at least one request weight must be larger than zero")
    (request_type,) = rng.choices(list(RequestType), weights=weights)
    if request_type is RequestType.ANNOUNCE:
        return _create_announce_request(config, state, rng, peer_id)
    return _create_scrape_request(config, state, rng)