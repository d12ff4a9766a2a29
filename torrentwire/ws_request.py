"""Messages sent to a WebTorrent tracker and their JSON encoding."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from torrentwire.ws_common import (
    ANNOUNCE_ACTION,
    ID_LENGTH,
    SCRAPE_ACTION,
    ProtocolError,
    check_action,
    decode_id,
    encode_id,
)

_USIZE_MAX = 2**64 - 1


def _require_id(value: bytes, name: str) -> bytes:
    value = bytes(value)
    if len(value) != ID_LENGTH:
        raise ValueError(f"{name} must be {ID_LENGTH} bytes, got {len(value)}")
    return value


def _optional_id(value: bytes | None, name: str) -> bytes | None:
    return None if value is None else _require_id(value, name)


def _require_object(obj: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(obj, Mapping):
        raise ProtocolError(f"{what} must be a JSON object, got {obj!r}")
    return obj


def _required(obj: Mapping[str, Any], key: str) -> Any:
    try:
        return obj[key]
    except KeyError:
        raise ProtocolError(f"missing field {key!r}") from None


def _optional_usize(value: Any, key: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _USIZE_MAX:
        raise ProtocolError(f"field {key!r} must be a non-negative integer, got {value!r}")
    return value


def _reject_constant(name: str) -> Any:
    raise ProtocolError(f"invalid JSON number: {name}")


def _load_json(data: Any) -> Any:
    if isinstance(data, (bytes, bytearray, memoryview)):
        try:
            data = bytes(data).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProtocolError(f"binary message is not UTF-8: {exc}") from exc
    elif not isinstance(data, str):
        raise ProtocolError("Message is neither text nor binary")
    try:
        return json.loads(data, parse_constant=_reject_constant)
    except ValueError as exc:
        if isinstance(exc, ProtocolError):
            raise
        raise ProtocolError(f"invalid JSON: {exc}") from exc


def _dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


class AnnounceEvent(Enum):
    """Event of an announce request; a missing event means ``UPDATE``."""

    STARTED = "started"
    STOPPED = "stopped"
    COMPLETED = "completed"
    UPDATE = "update"


def _parse_event(value: Any) -> AnnounceEvent | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ProtocolError(f"event must be a string, got {value!r}")
    try:
        return AnnounceEvent(value)
    except ValueError:
        raise ProtocolError(f"unknown announce event {value!r}") from None


@dataclass(frozen=True, slots=True)
class AnnounceRequestOffer:
    """A WebRTC offer to be passed on to another peer."""

    offer: Any
    offer_id: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "offer_id", _require_id(self.offer_id, "offer_id"))

    def to_json_obj(self) -> dict[str, Any]:
        return {"offer": self.offer, "offer_id": encode_id(self.offer_id)}

    @classmethod
    def from_json_obj(cls, obj: Any) -> AnnounceRequestOffer:
        obj = _require_object(obj, "offer")
        return cls(
            offer=_required(obj, "offer"),
            offer_id=decode_id(_required(obj, "offer_id")),
        )


@dataclass(frozen=True, slots=True)
class AnnounceRequest:
    """Announce request; ``bytes_left`` is sent as ``left``."""

    info_hash: bytes
    peer_id: bytes
    bytes_left: int | None = None
    event: AnnounceEvent | None = None
    offers: tuple[AnnounceRequestOffer, ...] | None = None
    numwant: int | None = None
    answer: Any = None
    to_peer_id: bytes | None = None
    offer_id: bytes | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "info_hash", _require_id(self.info_hash, "info_hash"))
        object.__setattr__(self, "peer_id", _require_id(self.peer_id, "peer_id"))
        object.__setattr__(self, "to_peer_id", _optional_id(self.to_peer_id, "to_peer_id"))
        object.__setattr__(self, "offer_id", _optional_id(self.offer_id, "offer_id"))
        if self.offers is not None:
            object.__setattr__(self, "offers", tuple(self.offers))

    def to_json_obj(self) -> dict[str, Any]:
        obj: dict[str, Any] = {
            "action": ANNOUNCE_ACTION,
            "info_hash": encode_id(self.info_hash),
            "peer_id": encode_id(self.peer_id),
            "left": self.bytes_left,
        }
        if self.event is not None:
            obj["event"] = self.event.value
        obj["offers"] = (
            None if self.offers is None else [offer.to_json_obj() for offer in self.offers]
        )
        obj["numwant"] = self.numwant
        obj["answer"] = self.answer
        obj["to_peer_id"] = None if self.to_peer_id is None else encode_id(self.to_peer_id)
        obj["offer_id"] = None if self.offer_id is None else encode_id(self.offer_id)
        return obj

    @classmethod
    def from_json_obj(cls, obj: Any) -> AnnounceRequest:
        obj = _require_object(obj, "announce request")
        check_action(_required(obj, "action"), ANNOUNCE_ACTION)

        offers_value = obj.get("offers")
        if offers_value is None:
            offers = None
        elif isinstance(offers_value, list):
            offers = tuple(AnnounceRequestOffer.from_json_obj(o) for o in offers_value)
        else:
            raise ProtocolError(f"offers must be an array, got {offers_value!r}")

        to_peer_id = obj.get("to_peer_id")
        offer_id = obj.get("offer_id")
        return cls(
            info_hash=decode_id(_required(obj, "info_hash")),
            peer_id=decode_id(_required(obj, "peer_id")),
            bytes_left=_optional_usize(obj.get("left"), "left"),
            event=_parse_event(obj.get("event")),
            offers=offers,
            numwant=_optional_usize(obj.get("numwant"), "numwant"),
            answer=obj.get("answer"),
            to_peer_id=None if to_peer_id is None else decode_id(to_peer_id),
            offer_id=None if offer_id is None else decode_id(offer_id),
        )


InfoHashes = bytes | tuple[bytes, ...]


def encode_info_hashes(info_hashes: InfoHashes) -> str | list[str]:
    """Encode one info hash as a string, several as an array of strings."""
    if isinstance(info_hashes, (bytes, bytearray, memoryview)):
        return encode_id(info_hashes)
    return [encode_id(info_hash) for info_hash in info_hashes]


def decode_info_hashes(value: Any) -> InfoHashes:
    """Decode a single info hash string or an array of them."""
    if isinstance(value, str):
        return decode_id(value)
    if isinstance(value, list):
        return tuple(decode_id(item) for item in value)
    raise ProtocolError(f"info_hash must be a string or an array, got {value!r}")


@dataclass(frozen=True, slots=True)
class ScrapeRequest:
    """Scrape request.

    ``info_hashes`` is one info hash, a tuple of them, or ``None`` when the
    client asks for all torrents.
    """

    info_hashes: InfoHashes | None = None

    def __post_init__(self) -> None:
        value = self.info_hashes
        if value is None:
            return
        if isinstance(value, (bytes, bytearray, memoryview)):
            object.__setattr__(self, "info_hashes", _require_id(value, "info_hash"))
        else:
            object.__setattr__(
                self,
                "info_hashes",
                tuple(_require_id(info_hash, "info_hash") for info_hash in value),
            )

    def info_hash_list(self) -> list[bytes]:
        """The requested info hashes as a list; empty when none were given."""
        if self.info_hashes is None:
            return []
        if isinstance(self.info_hashes, bytes):
            return [self.info_hashes]
        return list(self.info_hashes)

    def to_json_obj(self) -> dict[str, Any]:
        return {
            "action": SCRAPE_ACTION,
            "info_hash": (
                None if self.info_hashes is None else encode_info_hashes(self.info_hashes)
            ),
        }

    @classmethod
    def from_json_obj(cls, obj: Any) -> ScrapeRequest:
        obj = _require_object(obj, "scrape request")
        check_action(_required(obj, "action"), SCRAPE_ACTION)
        value = obj.get("info_hash")
        return cls(info_hashes=None if value is None else decode_info_hashes(value))


InMessage = AnnounceRequest | ScrapeRequest


def in_message_to_json(message: InMessage) -> str:
    """Serialize a message sent to the tracker as JSON text."""
    if not isinstance(message, (AnnounceRequest, ScrapeRequest)):
        raise TypeError(f"not an in message: {message!r}")
    return _dumps(message.to_json_obj())


def parse_in_message(data: str | bytes) -> InMessage:
    """Parse a text or binary WebSocket payload into a message to the tracker."""
    obj = _load_json(data)
    errors = []
    for cls in (AnnounceRequest, ScrapeRequest):
        try:
            return cls.from_json_obj(obj)
        except ProtocolError as exc:
            errors.append(f"{cls.__name__}: {exc}")
    raise ProtocolError("data did not match any in message: " + "; ".join(errors))