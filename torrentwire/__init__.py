"""BitTorrent UDP and WebTorrent tracker protocols, WebTorrent swarm logic and a load tester."""

__version__ = "0.1.0"