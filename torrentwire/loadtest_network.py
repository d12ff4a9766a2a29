"""WebSocket connections opened by the load tester."""

from __future__ import annotations

import asyncio
import random
import ssl
import sys
from dataclasses import replace
from ipaddress import IPv6Address
from typing import Any, Protocol

import websockets

from torrentwire.loadtest_config import LoadTestConfig
from torrentwire.loadtest_requests import (
    SDP_PLACEHOLDER,
    LoadTestState,
    create_random_request,
)
from torrentwire.ws_common import ID_LENGTH, ProtocolError
from torrentwire.ws_request import AnnounceRequest, InMessage, in_message_to_json
from torrentwire.ws_response import (
    AnnounceResponse,
    ErrorResponse,
    MiddlemanAnswerToPeer,
    MiddlemanOfferToPeer,
    OutMessage,
    ScrapeResponse,
    parse_out_message,
)

TLS_SERVER_NAME = "example.com"


class _WebSocket(Protocol):
    async def send(self, message: str) -> Any: ...

    async def recv(self) -> str | bytes: ...


class LoadTestConnection:
    """One fake peer sending a request and waiting for a response in turn.

    After an offer arrives, the next announce request answers it.
    """

    def __init__(
        self,
        config: LoadTestConfig,
        state: LoadTestState,
        rng: random.Random | None = None,
        peer_id: bytes | None = None,
    ) -> None:
        self.config = config
        self.state = state
        self.rng = rng if rng is not None else random.Random()
        self.peer_id = peer_id if peer_id is not None else self.rng.randbytes(ID_LENGTH)
        self.can_send = True
        self.send_answer: tuple[bytes, bytes] | None = None

    def next_request(self) -> InMessage:
        """Create the next request, turning an announce into an answer if one is due."""
        request = create_random_request(self.config, self.state, self.rng, self.peer_id)
        if isinstance(request, AnnounceRequest):
            if self.send_answer is not None:
                to_peer_id, offer_id = self.send_answer
                request = replace(
                    request,
                    to_peer_id=to_peer_id,
                    offer_id=offer_id,
                    answer=dict(SDP_PLACEHOLDER),
                    event=None,
                    offers=None,
                )
            self.send_answer = None
        return request

    def handle_message(self, data: str | bytes) -> OutMessage | None:
        """Count a message from the tracker; return it, or None if it did not parse."""
        try:
            message = parse_out_message(data)
        except ProtocolError as exc:
            print(f"error deserializing message: {exc}", file=sys.stderr)
            return None

        statistics = self.state.statistics
        match message:
            case MiddlemanOfferToPeer():
                statistics.add("responses_offer")
                self.send_answer = (message.peer_id, message.offer_id)
            case MiddlemanAnswerToPeer():
                statistics.add("responses_answer")
            case AnnounceResponse():
                statistics.add("responses_announce")
            case ScrapeResponse():
                statistics.add("responses_scrape")
            case ErrorResponse():
                statistics.add("responses_error")
                print(
                    f"received error response: {message.failure_reason!r}",
                    file=sys.stderr,
                )
        self.can_send = True
        return message

    async def run(self, websocket: _WebSocket) -> None:
        """Exchange messages until receiving or sending fails."""
        while True:
            if self.can_send:
                request = self.next_request()
                await websocket.send(in_message_to_json(request))
                self.state.statistics.add("requests")
                self.can_send = False
            self.handle_message(await websocket.recv())


def _client_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def _server_uri(config: LoadTestConfig) -> str:
    host, port = config.server_host_and_port()
    host_text = f"[{host}]" if isinstance(host, IPv6Address) else str(host)
    return f"wss://{host_text}:{port}"


async def run_worker(config: LoadTestConfig, state: LoadTestState) -> None:
    """Keep opening connections until the configured number are active."""
    uri = _server_uri(config)
    ssl_context = _client_ssl_context()
    interval = config.connection_creation_interval_ms / 1000
    active = 0
    tasks: set[asyncio.Task[None]] = set()

    async def open_connection() -> None:
        nonlocal active
        try:
            async with websockets.connect(
                uri, ssl=ssl_context, server_hostname=TLS_SERVER_NAME
            ) as websocket:
                active += 1
                try:
                    await LoadTestConnection(config, state).run(websocket)
                except Exception as exc:
                    print(f"connection error: {exc}", file=sys.stderr)
                finally:
                    active -= 1
        except Exception as exc:
            print(f"connection creation error: {exc!r}", file=sys.stderr)

    while True:
        if active < config.num_connections_per_worker:
            task = asyncio.create_task(open_connection())
            tasks.add(task)
            task.add_done_callback(tasks.discard)
        await asyncio.sleep(interval)