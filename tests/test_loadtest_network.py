import pytest

from torrentwire.loadtest_config import LoadTestConfig, TorrentConfig
from torrentwire.loadtest_network import LoadTestConnection
from torrentwire.loadtest_requests import SDP_PLACEHOLDER, LoadTestState, Statistics
from torrentwire.ws_request import AnnounceRequest, ScrapeRequest, parse_in_message
from torrentwire.ws_response import (
    AnnounceResponse,
    ErrorResponse,
    MiddlemanAnswerToPeer,
    MiddlemanOfferToPeer,
    out_message_to_json,
)

INFO_HASHES = (b"a" * 20, b"b" * 20, b"c" * 20)
OWN_PEER_ID = b"p" * 20
OTHER_PEER_ID = b"q" * 20
OFFER_ID = b"o" * 20


def make_connection(weight_announce=1, weight_scrape=0):
    config = LoadTestConfig(
        torrents=TorrentConfig(
            offers_per_request=2,
            number_of_torrents=len(INFO_HASHES),
            weight_announce=weight_announce,
            weight_scrape=weight_scrape,
        )
    )
    state = LoadTestState(
        info_hashes=INFO_HASHES, statistics=Statistics(), pareto_shape=2.0
    )
    import random

    return LoadTestConnection(config, state, rng=random.Random(7), peer_id=OWN_PEER_ID)


def offer_json():
    return out_message_to_json(
        MiddlemanOfferToPeer(
            peer_id=OTHER_PEER_ID,
            info_hash=INFO_HASHES[0],
            offer={"sdp": "test"},
            offer_id=OFFER_ID,
        )
    )


def test_plain_announce_request_carries_offers():
    connection = make_connection()
    request = connection.next_request()
    assert isinstance(request, AnnounceRequest)
    assert request.peer_id == OWN_PEER_ID
    assert request.info_hash in INFO_HASHES
    assert len(request.offers) == 2
    assert request.numwant == 2
    assert request.answer is None


def test_offer_is_counted_and_remembered():
    connection = make_connection()
    connection.can_send = False
    message = connection.handle_message(offer_json())
    assert isinstance(message, MiddlemanOfferToPeer)
    assert connection.state.statistics.responses_offer == 1
    assert connection.send_answer == (OTHER_PEER_ID, OFFER_ID)
    assert connection.can_send is True


def test_announce_after_offer_becomes_answer():
    connection = make_connection()
    connection.handle_message(offer_json())
    request = connection.next_request()
    assert isinstance(request, AnnounceRequest)
    assert request.to_peer_id == OTHER_PEER_ID
    assert request.offer_id == OFFER_ID
    assert request.answer == SDP_PLACEHOLDER
    assert request.event is None
    assert request.offers is None
    assert connection.send_answer is None


def test_scrape_keeps_pending_answer():
    connection = make_connection(weight_announce=0, weight_scrape=1)
    connection.handle_message(offer_json())
    request = connection.next_request()
    assert isinstance(request, ScrapeRequest)
    assert connection.send_answer == (OTHER_PEER_ID, OFFER_ID)


@pytest.mark.parametrize(
    ("message", "counter"),
    [
        (
            AnnounceResponse(
                info_hash=INFO_HASHES[0], complete=1, incomplete=2, announce_interval=120
            ),
            "responses_announce",
        ),
        (
            MiddlemanAnswerToPeer(
                peer_id=OTHER_PEER_ID,
                info_hash=INFO_HASHES[0],
                answer={"sdp": "test"},
                offer_id=OFFER_ID,
            ),
            "responses_answer",
        ),
        (ErrorResponse(failure_reason="Invalid request"), "responses_error"),
    ],
)
def test_responses_are_counted(message, counter):
    connection = make_connection()
    connection.can_send = False
    parsed = connection.handle_message(out_message_to_json(message).encode("utf-8"))
    assert parsed == message
    assert getattr(connection.state.statistics, counter) == 1
    assert connection.can_send is True


def test_unparsable_message_changes_nothing():
    connection = make_connection()
    connection.can_send = False
    assert connection.handle_message("not json") is None
    assert connection.can_send is False
    statistics = connection.state.statistics
    assert statistics.responses_error == 0
    assert statistics.responses_announce == 0


class FakeWebSocket:
    def __init__(self, incoming):
        self.incoming = list(incoming)
        self.sent = []

    async def send(self, message):
        self.sent.append(message)

    async def recv(self):
        if not self.incoming:
            raise ConnectionError("stream finished")
        return self.incoming.pop(0)


@pytest.mark.asyncio
async def test_run_sends_one_request_per_response():
    connection = make_connection()
    response = out_message_to_json(
        AnnounceResponse(
            info_hash=INFO_HASHES[0], complete=0, incomplete=1, announce_interval=120
        )
    )
    websocket = FakeWebSocket([response, "garbage", response])
    with pytest.raises(ConnectionError):
        await connection.run(websocket)
    assert len(websocket.sent) == 3
    assert connection.state.statistics.requests == 3
    assert connection.state.statistics.responses_announce == 2
    assert all(isinstance(parse_in_message(text), AnnounceRequest) for text in websocket.sent)