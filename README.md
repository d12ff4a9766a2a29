# torrentwire

Wire protocols and tracker logic for BitTorrent trackers:

- the **UDP tracker protocol**: connect, announce and scrape requests and
  their responses, encoded to and parsed from network-byte-order datagrams;
- the **WebTorrent tracker protocol**: JSON messages exchanged over
  WebSockets, including offers and answers relayed between peers;
- the **swarm logic** of a WebTorrent tracker: seeder and leecher counts per
  torrent, offers relayed to random peers, scrape answers and removal of
  expired peers;
- a **load tester** that opens many WebSocket connections to a WebTorrent
  tracker and reports how many responses per second come back.

## Installation

```
pip install torrentwire
```

Python 3.11 or later is required. The only dependency is `websockets`,
used by the load tester.

## UDP tracker protocol

Requests (`torrentwire.udp_request`) and responses
(`torrentwire.udp_response`) are frozen dataclasses. `encode_request` and
`encode_response` turn them into bytes; `parse_request` and `parse_response`
go the other way.

```python
from torrentwire.udp_request import ConnectRequest, encode_request, parse_request

datagram = encode_request(ConnectRequest(transaction_id=42))
request = parse_request(datagram, 255)
assert request == ConnectRequest(transaction_id=42)
```

- `parse_request(data, max_scrape_torrents)` keeps at most
  `max_scrape_torrents` info hashes of a scrape request. A malformed request
  raises `RequestParseError`; when the connection and transaction ids could be
  read, the error carries them as `connection_id` and `transaction_id` and its
  `sendable` attribute is true, so an error response can still be addressed to
  the client. A scrape without info hashes is rejected with
  "Full scrapes are not allowed".
- `AnnounceEvent.from_wire` maps unknown event numbers to `AnnounceEvent.NONE`.
  An announce with the IP field all zeros has `ip_address` set to `None`.
- `parse_response(data, ipv4)` must be told whether announce peers are IPv4 or
  IPv6 addresses (`ResponsePeer` from `torrentwire.udp_common`). Trailing bytes
  that do not form a whole peer or statistics entry are ignored; an unknown
  action yields an `ErrorResponse` with the message "Invalid action". A
  response too short for its fixed fields raises `ResponseParseError`.

## WebTorrent protocol

Messages from peers to the tracker are `AnnounceRequest` and `ScrapeRequest`
in `torrentwire.ws_request`; messages from the tracker are
`MiddlemanOfferToPeer`, `MiddlemanAnswerToPeer`, `AnnounceResponse`,
`ScrapeResponse` (with `ScrapeStatistics`) and `ErrorResponse` (with
`ErrorResponseAction`) in `torrentwire.ws_response`.

```python
from torrentwire.ws_request import ScrapeRequest, in_message_to_json, parse_in_message

message = parse_in_message('{"action": "scrape", "info_hash": "aaaabbbbccccddddeeee"}')
assert isinstance(message, ScrapeRequest)
print(message.info_hash_list())

text = in_message_to_json(message)
```

`parse_in_message` and `parse_out_message` accept text or UTF-8 bytes and try
each message kind in turn; `in_message_to_json` and `out_message_to_json`
produce compact JSON. Every message class also has `to_json_obj` and
`from_json_obj` for working with already-decoded JSON.

Info hashes, peer ids and offer ids are 20 raw bytes. On the wire each byte
becomes one character in the range U+0000 to U+00FF, as WebTorrent clients
send them; `encode_id` and `decode_id` in `torrentwire.ws_common` do that
conversion. `decode_id` raises `ProtocolError` for strings shorter than 20
characters or holding wider characters. A scrape request's `info_hash` may be
a single string, an array of strings, or missing/null (`encode_info_hashes`
and `decode_info_hashes` handle the first two).

## Tracker swarm logic

`torrentwire.swarm` holds the state a WebTorrent tracker keeps per torrent in
`TorrentMaps`, with separate maps for IPv4 and IPv6 peers
(`IpVersion.canonical_from_ip` in `torrentwire.tracker_common` counts
IPv4-mapped IPv6 addresses as IPv4).

- `handle_announce_request(config, rng, torrent_maps, valid_until, meta, request)`
  registers, updates or removes the announcing peer, sends its offers on to
  randomly chosen peers of the same torrent (at most `protocol.max_offers`),
  forwards an answer to the peer it names, and returns a list of
  `(OutMessageMeta, message)` pairs ending with the announce response. A request
  using a peer id that another connection registered is ignored.
- `handle_scrape_request(config, torrent_maps, meta, request)` returns seeder
  and leecher counts for known torrents among at most
  `protocol.max_scrape_torrents` info hashes; a full scrape gets no answer.
- `handle_control_message(torrent_maps, message)` removes the peer of a
  `ConnectionClosed` message.
- `TorrentMaps.clean(now)` drops peers whose `valid_until` is not after `now`
  and torrents left without peers.

Tracker settings live in `torrentwire.tracker_config.Config`, with `network`,
`protocol` and `cleaning` sections. `load_config(path)` reads them from TOML,
`Config.from_dict` / `Config.to_dict` convert to and from nested tables, and
unknown keys or out-of-range values raise `ValueError`.

## Load testing a WebTorrent tracker

```
torrentwire-load-test --config loadtest.toml
torrentwire-load-test --help
```

Without `--config` the defaults of
`torrentwire.loadtest_config.LoadTestConfig` are used (server at
`127.0.0.1:3000`). The load tester generates random info hashes, starts
`num_workers` worker threads that each open WebSocket connections over TLS
(`wss://`, certificates not verified) at a steady pace up to
`num_connections_per_worker`, and sends announce and scrape requests whose
torrents are picked from a Pareto distribution. After receiving an offer, a
connection answers it with its next announce. Every five seconds it prints
requests sent and responses received per second, broken down by response
type; with a non-zero `duration` it stops after that many seconds and prints
the average. A configuration error exits with status 1.

The `torrents` table sets `number_of_torrents`, `offers_per_request`,
`torrent_selection_pareto_shape`, `peer_seeder_probability` and the relative
weights `weight_announce` and `weight_scrape`; at least one weight must be
above zero. The building blocks are available on their own:
`create_random_request`, `pareto_index`, `LoadTestState` and `Statistics` in
`torrentwire.loadtest_requests`, and `LoadTestConnection` and `run_worker` in
`torrentwire.loadtest_network`.

## What this package does not do

- It does not run a tracker. There is no UDP or WebSocket server, no socket
  listener, TLS setup or health-check endpoint; the `network` settings of
  `Config` are validated and stored but nothing here binds a socket. The swarm
  functions are meant to be called by a server you provide.
- There are no access lists (allowed or denied info hashes), no privilege
  dropping, no CPU pinning and no log-level setting.

## Running the tests

```
pip install "torrentwire[test]"
pytest
```