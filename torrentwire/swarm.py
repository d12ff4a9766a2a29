"""Swarm state of the WebTorrent tracker and the handling of requests."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum

from torrentwire.tracker_common import (
    ConnectionClosed,
    InMessageMeta,
    IpVersion,
    OutMessageMeta,
)
from torrentwire.tracker_config import Config
from torrentwire.ws_request import AnnounceEvent, AnnounceRequest, ScrapeRequest
from torrentwire.ws_response import (
    AnnounceResponse,
    MiddlemanAnswerToPeer,
    MiddlemanOfferToPeer,
    OutMessage,
    ScrapeResponse,
    ScrapeStatistics,
)

Outgoing = list[tuple[OutMessageMeta, OutMessage]]


class PeerStatus(Enum):
    SEEDING = "seeding"
    LEECHING = "leeching"
    STOPPED = "stopped"

    @classmethod
    def from_event_and_bytes_left(
        cls, event: AnnounceEvent, bytes_left: int | None
    ) -> PeerStatus:
        """Status implied by an announce event and the bytes left to download."""
        if event is AnnounceEvent.STOPPED:
            return cls.STOPPED
        if bytes_left == 0:
            return cls.SEEDING
        return cls.LEECHING


@dataclass(frozen=True, slots=True)
class Peer:
    """A peer in a swarm; it is valid while ``valid_until`` is after now."""

    consumer_id: int
    connection_id: int
    seeder: bool
    valid_until: float


@dataclass(slots=True)
class TorrentData:
    """Peers of one torrent, in insertion order, with seeder and leecher counts."""

    peers: dict[bytes, Peer] = field(default_factory=dict)
    num_seeders: int = 0
    num_leechers: int = 0

    def _count(self, peer: Peer, delta: int) -> None:
        if peer.seeder:
            self.num_seeders += delta
        else:
            self.num_leechers += delta

    def _insert_peer(self, peer_id: bytes, peer: Peer) -> None:
        previous = self.peers.get(peer_id)
        self.peers[peer_id] = peer
        self._count(peer, 1)
        if previous is not None:
            self._count(previous, -1)

    def remove_peer(self, peer_id: bytes) -> Peer | None:
        """Remove a peer if present and return it."""
        peer = self.peers.pop(peer_id, None)
        if peer is not None:
            self._count(peer, -1)
        return peer

    def _remove_expired(self, now: float) -> None:
        expired = [peer_id for peer_id, peer in self.peers.items() if not peer.valid_until > now]
        for peer_id in expired:
            self.remove_peer(peer_id)


@dataclass(slots=True)
class TorrentMaps:
    """Torrents keyed by info hash, kept apart for IPv4 and IPv6 peers."""

    ipv4: dict[bytes, TorrentData] = field(default_factory=dict)
    ipv6: dict[bytes, TorrentData] = field(default_factory=dict)

    def map_for(self, ip_version: IpVersion) -> dict[bytes, TorrentData]:
        return self.ipv4 if ip_version is IpVersion.V4 else self.ipv6

    def clean(self, now: float) -> None:
        """Drop peers no longer valid at ``now`` and torrents left without peers."""
        for torrent_map in (self.ipv4, self.ipv6):
            for info_hash, torrent_data in list(torrent_map.items()):
                torrent_data._remove_expired(now)
                if not torrent_data.peers:
                    del torrent_map[info_hash]


def _extract_response_peers(
    rng: random.Random, peers: dict[bytes, Peer], max_count: int, sender: bytes
) -> list[Peer]:
    candidates = [peer for peer_id, peer in peers.items() if peer_id != sender]
    return rng.sample(candidates, min(max_count, len(candidates)))


def handle_announce_request(
    config: Config,
    rng: random.Random,
    torrent_maps: TorrentMaps,
    valid_until: float,
    meta: InMessageMeta,
    request: AnnounceRequest,
) -> Outgoing:
    """Update the swarm for an announce and return the messages to send.

    A request using a peer id registered by another connection is ignored.
    """
    torrent_data = torrent_maps.map_for(meta.ip_version).setdefault(
        request.info_hash, TorrentData()
    )

    previous = torrent_data.peers.get(request.peer_id)
    if previous is not None and previous.connection_id != meta.connection_id:
        return []

    status = PeerStatus.from_event_and_bytes_left(
        request.event or AnnounceEvent.UPDATE, request.bytes_left
    )
    if status is PeerStatus.STOPPED:
        torrent_data.remove_peer(request.peer_id)
    else:
        torrent_data._insert_peer(
            request.peer_id,
            Peer(
                consumer_id=meta.out_message_consumer_id,
                connection_id=meta.connection_id,
                seeder=status is PeerStatus.SEEDING,
                valid_until=valid_until,
            ),
        )

    out_messages: Outgoing = []

    if request.offers is not None:
        max_take = min(len(request.offers), config.protocol.max_offers)
        receivers = _extract_response_peers(rng, torrent_data.peers, max_take, request.peer_id)
        for offer, receiver in zip(request.offers, receivers):
            out_messages.append(
                (
                    OutMessageMeta(
                        out_message_consumer_id=receiver.consumer_id,
                        connection_id=receiver.connection_id,
                    ),
                    MiddlemanOfferToPeer(
                        peer_id=request.peer_id,
                        info_hash=request.info_hash,
                        offer=offer.offer,
                        offer_id=offer.offer_id,
                    ),
                )
            )

    if (
        request.answer is not None
        and request.to_peer_id is not None
        and request.offer_id is not None
    ):
        receiver = torrent_data.peers.get(request.to_peer_id)
        if receiver is not None:
            out_messages.append(
                (
                    OutMessageMeta(
                        out_message_consumer_id=receiver.consumer_id,
                        connection_id=receiver.connection_id,
                    ),
                    MiddlemanAnswerToPeer(
                        peer_id=request.peer_id,
                        info_hash=request.info_hash,
                        answer=request.answer,
                        offer_id=request.offer_id,
                    ),
                )
            )

    out_messages.append(
        (
            meta.to_out_meta(),
            AnnounceResponse(
                info_hash=request.info_hash,
                complete=torrent_data.num_seeders,
                incomplete=torrent_data.num_leechers,
                announce_interval=config.protocol.peer_announce_interval,
            ),
        )
    )
    return out_messages


def handle_scrape_request(
    config: Config,
    torrent_maps: TorrentMaps,
    meta: InMessageMeta,
    request: ScrapeRequest,
) -> Outgoing:
    """Answer a scrape with statistics for the known torrents among those asked.

    Full scrapes (no info hashes) get no answer.
    """
    if request.info_hashes is None:
        return []

    info_hashes = request.info_hash_list()[: config.protocol.max_scrape_torrents]
    torrent_map = torrent_maps.map_for(meta.ip_version)

    files = {
        info_hash: ScrapeStatistics(
            complete=torrent_data.num_seeders,
            incomplete=torrent_data.num_leechers,
            downloaded=0,
        )
        for info_hash in info_hashes
        if (torrent_data := torrent_map.get(info_hash)) is not None
    }
    return [(meta.to_out_meta(), ScrapeResponse(files=files))]


def handle_control_message(torrent_maps: TorrentMaps, message: ConnectionClosed) -> None:
    """Remove the peer of a closed connection from its torrent."""
    torrent_data = torrent_maps.map_for(message.ip_version).get(message.info_hash)
    if torrent_data is not None:
        torrent_data.remove_peer(message.peer_id)