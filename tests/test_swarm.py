import random

import pytest

from torrentwire.swarm import (
    Peer,
    PeerStatus,
    TorrentData,
    TorrentMaps,
    handle_announce_request,
    handle_control_message,
    handle_scrape_request,
)
from torrentwire.tracker_common import (
    ConnectionClosed,
    InMessageMeta,
    IpVersion,
    OutMessageMeta,
)
from torrentwire.tracker_config import Config, ProtocolConfig
from torrentwire.ws_request import (
    AnnounceEvent,
    AnnounceRequest,
    AnnounceRequestOffer,
    ScrapeRequest,
)
from torrentwire.ws_response import (
    AnnounceResponse,
    MiddlemanAnswerToPeer,
    MiddlemanOfferToPeer,
    ScrapeResponse,
    ScrapeStatistics,
)

CONFIG = Config()
SDP = {"sdp": "test"}


def ident(n):
    return bytes([n]) * 20


INFO_HASH = ident(1)


def meta(connection_id, ip_version=IpVersion.V4, consumer_id=0):
    return InMessageMeta(
        out_message_consumer_id=consumer_id,
        connection_id=connection_id,
        ip_version=ip_version,
    )


def announce(peer_id, **kwargs):
    return AnnounceRequest(info_hash=INFO_HASH, peer_id=peer_id, **kwargs)


def run(maps, connection_id, request, config=CONFIG, valid_until=100, ip_version=IpVersion.V4):
    return handle_announce_request(
        config, random.Random(0), maps, valid_until, meta(connection_id, ip_version), request
    )


def check_counts(data):
    assert data.num_seeders == sum(p.seeder for p in data.peers.values())
    assert data.num_leechers == sum(not p.seeder for p in data.peers.values())


@pytest.mark.parametrize(
    "event, left, expected",
    [
        (AnnounceEvent.STOPPED, 0, PeerStatus.STOPPED),
        (AnnounceEvent.STOPPED, None, PeerStatus.STOPPED),
        (AnnounceEvent.COMPLETED, 0, PeerStatus.SEEDING),
        (AnnounceEvent.UPDATE, 0, PeerStatus.SEEDING),
        (AnnounceEvent.STARTED, 50, PeerStatus.LEECHING),
        (AnnounceEvent.UPDATE, None, PeerStatus.LEECHING),
    ],
)
def test_peer_status(event, left, expected):
    assert PeerStatus.from_event_and_bytes_left(event, left) is expected


def test_leecher_announce_gets_response():
    maps = TorrentMaps()
    out = run(maps, 1, announce(ident(10), bytes_left=50))
    assert out == [
        (
            OutMessageMeta(out_message_consumer_id=0, connection_id=1),
            AnnounceResponse(
                info_hash=INFO_HASH,
                complete=0,
                incomplete=1,
                announce_interval=CONFIG.protocol.peer_announce_interval,
            ),
        )
    ]
    assert maps.ipv4[INFO_HASH].peers[ident(10)] == Peer(
        consumer_id=0, connection_id=1, seeder=False, valid_until=100
    )


def test_leecher_becomes_seeder():
    maps = TorrentMaps()
    run(maps, 1, announce(ident(10), bytes_left=50))
    out = run(maps, 1, announce(ident(10), bytes_left=0))
    data = maps.ipv4[INFO_HASH]
    assert len(data.peers) == 1
    check_counts(data)
    response = out[-1][1]
    assert (response.complete, response.incomplete) == (data.num_seeders, data.num_leechers)
    assert data.peers[ident(10)].seeder is True


def test_stopped_removes_peer():
    maps = TorrentMaps()
    run(maps, 1, announce(ident(10), bytes_left=50))
    run(maps, 1, announce(ident(10), event=AnnounceEvent.STOPPED))
    data = maps.ipv4[INFO_HASH]
    assert data.peers == {}
    assert (data.num_seeders, data.num_leechers) == (0, 0)


def test_peer_id_of_other_connection_is_ignored():
    maps = TorrentMaps()
    run(maps, 1, announce(ident(10), bytes_left=50))
    out = run(maps, 2, announce(ident(10), event=AnnounceEvent.STOPPED))
    assert out == []
    assert maps.ipv4[INFO_HASH].peers[ident(10)].connection_id == 1


def test_many_peers_counted():
    maps = TorrentMaps()
    peer_ids = [ident(n) for n in range(10, 16)]
    for connection_id, peer_id in enumerate(peer_ids):
        run(maps, connection_id, announce(peer_id, bytes_left=connection_id % 2))
    data = maps.ipv4[INFO_HASH]
    assert list(data.peers) == peer_ids
    assert data.num_seeders + data.num_leechers == len(peer_ids)
    check_counts(data)


def test_offers_sent_to_other_peers():
    maps = TorrentMaps()
    for connection_id in (1, 2, 3):
        run(maps, connection_id, announce(ident(10 + connection_id), bytes_left=50))
    config = Config(protocol=ProtocolConfig(max_offers=2))
    sender = ident(99)
    offers = [AnnounceRequestOffer(offer=SDP, offer_id=ident(50 + n)) for n in range(5)]
    out = run(maps, 9, announce(sender, bytes_left=50, offers=offers), config=config)

    offer_messages = [(m, msg) for m, msg in out if isinstance(msg, MiddlemanOfferToPeer)]
    assert len(offer_messages) == config.protocol.max_offers
    receivers = [m.connection_id for m, _ in offer_messages]
    assert len(set(receivers)) == len(receivers)
    assert set(receivers) <= {1, 2, 3}
    for (_, message), offer in zip(offer_messages, offers):
        assert message.peer_id == sender
        assert message.offer_id == offer.offer_id
        assert message.offer == SDP
    assert isinstance(out[-1][1], AnnounceResponse)
    assert out[-1][0].connection_id == 9


def test_offers_limited_by_available_peers():
    maps = TorrentMaps()
    run(maps, 1, announce(ident(11), bytes_left=50))
    offers = [AnnounceRequestOffer(offer=SDP, offer_id=ident(50 + n)) for n in range(3)]
    out = run(maps, 2, announce(ident(12), bytes_left=50, offers=offers))
    offer_metas = [m for m, msg in out if isinstance(msg, MiddlemanOfferToPeer)]
    assert offer_metas == [OutMessageMeta(out_message_consumer_id=0, connection_id=1)]


def test_answer_forwarded_to_offering_peer():
    maps = TorrentMaps()
    offerer = ident(11)
    handle_announce_request(
        CONFIG, random.Random(0), maps, 100, meta(1, consumer_id=4), announce(offerer, bytes_left=50)
    )
    answerer = ident(12)
    request = announce(
        answerer, bytes_left=50, answer=SDP, to_peer_id=offerer, offer_id=ident(77)
    )
    out = run(maps, 2, request)
    assert out[0] == (
        OutMessageMeta(out_message_consumer_id=4, connection_id=1),
        MiddlemanAnswerToPeer(
            peer_id=answerer, info_hash=INFO_HASH, answer=SDP, offer_id=ident(77)
        ),
    )
    assert isinstance(out[1][1], AnnounceResponse)


def test_answer_to_unknown_peer_dropped():
    maps = TorrentMaps()
    request = announce(ident(12), bytes_left=50, answer=SDP, to_peer_id=ident(88), offer_id=ident(77))
    out = run(maps, 2, request)
    assert [type(msg) for _, msg in out] == [AnnounceResponse]


def test_ipv6_peers_tracked_separately():
    maps = TorrentMaps()
    run(maps, 1, announce(ident(10), bytes_left=50), ip_version=IpVersion.V6)
    assert INFO_HASH in maps.ipv6
    assert INFO_HASH not in maps.ipv4
    assert maps.map_for(IpVersion.V6) is maps.ipv6


def test_scrape_returns_known_torrents():
    maps = TorrentMaps()
    run(maps, 1, announce(ident(10), bytes_left=0))
    run(maps, 2, announce(ident(11), bytes_left=50))
    request = ScrapeRequest(info_hashes=(INFO_HASH, ident(2)))
    out = handle_scrape_request(CONFIG, maps, meta(3), request)
    data = maps.ipv4[INFO_HASH]
    assert out == [
        (
            OutMessageMeta(out_message_consumer_id=0, connection_id=3),
            ScrapeResponse(
                files={
                    INFO_HASH: ScrapeStatistics(
                        complete=data.num_seeders,
                        incomplete=data.num_leechers,
                        downloaded=0,
                    )
                }
            ),
        )
    ]


def test_full_scrape_gets_no_answer():
    assert handle_scrape_request(CONFIG, TorrentMaps(), meta(1), ScrapeRequest()) == []


def test_scrape_limited_to_max_torrents():
    maps = TorrentMaps()
    hashes = [ident(n) for n in range(20, 25)]
    for connection_id, info_hash in enumerate(hashes):
        handle_announce_request(
            CONFIG,
            random.Random(0),
            maps,
            100,
            meta(connection_id),
            AnnounceRequest(info_hash=info_hash, peer_id=ident(90), bytes_left=50),
        )
    config = Config(protocol=ProtocolConfig(max_scrape_torrents=2))
    out = handle_scrape_request(config, maps, meta(9), ScrapeRequest(info_hashes=tuple(hashes)))
    assert list(out[0][1].files) == hashes[:2]


def test_clean_drops_expired_peers_and_empty_torrents():
    maps = TorrentMaps()
    run(maps, 1, announce(ident(10), bytes_left=0), valid_until=10)
    run(maps, 2, announce(ident(11), bytes_left=50), valid_until=20)
    maps.clean(15)
    data = maps.ipv4[INFO_HASH]
    assert list(data.peers) == [ident(11)]
    check_counts(data)
    maps.clean(25)
    assert maps.ipv4 == {}


def test_control_message_removes_peer():
    maps = TorrentMaps()
    run(maps, 1, announce(ident(10), bytes_left=50))
    run(maps, 2, announce(ident(11), bytes_left=0))
    handle_control_message(
        maps, ConnectionClosed(info_hash=INFO_HASH, peer_id=ident(10), ip_version=IpVersion.V4)
    )
    data = maps.ipv4[INFO_HASH]
    assert list(data.peers) == [ident(11)]
    check_counts(data)


def test_control_message_for_unknown_torrent_is_harmless():
    maps = TorrentMaps()
    handle_control_message(
        maps, ConnectionClosed(info_hash=ident(3), peer_id=ident(10), ip_version=IpVersion.V6)
    )
    assert maps == TorrentMaps()


def test_remove_peer_returns_removed():
    data = TorrentData()
    peer = Peer(consumer_id=0, connection_id=1, seeder=True, valid_until=5)
    data._insert_peer(ident(10), peer)
    assert data.remove_peer(ident(11)) is None
    assert data.remove_peer(ident(10)) == peer
    assert (data.num_seeders, data.num_leechers, data.peers) == (0, 0, {})