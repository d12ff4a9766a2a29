"""Messages sent by a WebTorrent tracker and their JSON encoding."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
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


def _require_object(obj: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(obj, Mapping):
        raise ProtocolError(f"{what} must be a JSON object, got {obj!r}")
    return obj


def _required(obj: Mapping[str, Any], key: str) -> Any:
    try:
        return obj[key]
    except KeyError:
        raise ProtocolError(f"missing field {key!r}") from None


def _usize(obj: Mapping[str, Any], key: str) -> int:
    value = _required(obj, key)
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
        raise ProtocolError("Message is neither text nor bytes")
    try:
        return json.loads(data, parse_constant=_reject_constant)
    except ValueError as exc:
        if isinstance(exc, ProtocolError):
            raise
        raise ProtocolError(f"invalid JSON: {exc}") from exc


@dataclass(frozen=True, slots=True)
class MiddlemanOfferToPeer:
    """An offer passed on from the announcing peer ``peer_id``."""

    peer_id: bytes
    info_hash: bytes
    offer: Any
    offer_id: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "peer_id", _require_id(self.peer_id, "peer_id"))
        object.__setattr__(self, "info_hash", _require_id(self.info_hash, "info_hash"))
        object.__setattr__(self, "offer_id", _require_id(self.offer_id, "offer_id"))

    def to_json_obj(self) -> dict[str, Any]:
        return {
            "action": ANNOUNCE_ACTION,
            "peer_id": encode_id(self.peer_id),
            "info_hash": encode_id(self.info_hash),
            "offer": self.offer,
            "offer_id": encode_id(self.offer_id),
        }

    @classmethod
    def from_json_obj(cls, obj: Any) -> MiddlemanOfferToPeer:
        obj = _require_object(obj, "offer")
        check_action(_required(obj, "action"), ANNOUNCE_ACTION)
        return cls(
            peer_id=decode_id(_required(obj, "peer_id")),
            info_hash=decode_id(_required(obj, "info_hash")),
            offer=_required(obj, "offer"),
            offer_id=decode_id(_required(obj, "offer_id")),
        )


@dataclass(frozen=True, slots=True)
class MiddlemanAnswerToPeer:
    """An answer passed on to the peer that made the offer."""

    peer_id: bytes
    info_hash: bytes
    answer: Any
    offer_id: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "peer_id", _require_id(self.peer_id, "peer_id"))
        object.__setattr__(self, "info_hash", _require_id(self.info_hash, "info_hash"))
        object.__setattr__(self, "offer_id", _require_id(self.offer_id, "offer_id"))

    def to_json_obj(self) -> dict[str, Any]:
        return {
            "action": ANNOUNCE_ACTION,
            "peer_id": encode_id(self.peer_id),
            "info_hash": encode_id(self.info_hash),
            "answer": self.answer,
            "offer_id": encode_id(self.offer_id),
        }

    @classmethod
    def from_json_obj(cls, obj: Any) -> MiddlemanAnswerToPeer:
        obj = _require_object(obj, "answer")
        check_action(_required(obj, "action"), ANNOUNCE_ACTION)
        return cls(
            peer_id=decode_id(_required(obj, "peer_id")),
            info_hash=decode_id(_required(obj, "info_hash")),
            answer=_required(obj, "answer"),
            offer_id=decode_id(_required(obj, "offer_id")),
        )


@dataclass(frozen=True, slots=True)
class AnnounceResponse:
    """Swarm counts for a torrent; ``announce_interval`` is sent as ``interval``."""

    info_hash: bytes
    complete: int
    incomplete: int
    announce_interval: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "info_hash", _require_id(self.info_hash, "info_hash"))

    def to_json_obj(self) -> dict[str, Any]:
        return {
            "action": ANNOUNCE_ACTION,
            "info_hash": encode_id(self.info_hash),
            "complete": self.complete,
            "incomplete": self.incomplete,
            "interval": self.announce_interval,
        }

    @classmethod
    def from_json_obj(cls, obj: Any) -> AnnounceResponse:
        obj = _require_object(obj, "announce response")
        check_action(_required(obj, "action"), ANNOUNCE_ACTION)
        return cls(
            info_hash=decode_id(_required(obj, "info_hash")),
            complete=_usize(obj, "complete"),
            incomplete=_usize(obj, "incomplete"),
            announce_interval=_usize(obj, "interval"),
        )


@dataclass(frozen=True, slots=True)
class ScrapeStatistics:
    complete: int
    incomplete: int
    downloaded: int


def _stats_to_json(stats: ScrapeStatistics) -> dict[str, int]:
    return {
        "complete": stats.complete,
        "incomplete": stats.incomplete,
        "downloaded": stats.downloaded,
    }


def _stats_from_json(obj: Any) -> ScrapeStatistics:
    obj = _require_object(obj, "scrape statistics")
    return ScrapeStatistics(
        complete=_usize(obj, "complete"),
        incomplete=_usize(obj, "incomplete"),
        downloaded=_usize(obj, "downloaded"),
    )


@dataclass(frozen=True, slots=True)
class ScrapeResponse:
    """Statistics keyed by info hash."""

    files: dict[bytes, ScrapeStatistics] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "files",
            {_require_id(key, "info_hash"): stats for key, stats in self.files.items()},
        )

    def to_json_obj(self) -> dict[str, Any]:
        return {
            "action": SCRAPE_ACTION,
            "files": {
                encode_id(info_hash): _stats_to_json(stats)
                for info_hash, stats in self.files.items()
            },
        }

    @classmethod
    def from_json_obj(cls, obj: Any) -> ScrapeResponse:
        obj = _require_object(obj, "scrape response")
        check_action(_required(obj, "action"), SCRAPE_ACTION)
        files = _require_object(_required(obj, "files"), "files")
        return cls(
            files={decode_id(key): _stats_from_json(value) for key, value in files.items()}
        )


class ErrorResponseAction(Enum):
    """Action of the request an error response refers to."""

    ANNOUNCE = "announce"
    SCRAPE = "scrape"


@dataclass(frozen=True, slots=True)
class ErrorResponse:
    """Error sent back to a client; the reason is sent as ``failure reason``."""

    failure_reason: str
    action: ErrorResponseAction | None = None
    info_hash: bytes | None = None

    def __post_init__(self) -> None:
        if self.info_hash is not None:
            object.__setattr__(self, "info_hash", _require_id(self.info_hash, "info_hash"))

    def to_json_obj(self) -> dict[str, Any]:
        obj: dict[str, Any] = {"failure reason": self.failure_reason}
        if self.action is not None:
            obj["action"] = self.action.value
        if self.info_hash is not None:
            obj["info_hash"] = encode_id(self.info_hash)
        return obj

    @classmethod
    def from_json_obj(cls, obj: Any) -> ErrorResponse:
        obj = _require_object(obj, "error response")
        reason = _required(obj, "failure reason")
        if not isinstance(reason, str):
            raise ProtocolError(f"failure reason must be a string, got {reason!r}")

        action_value = obj.get("action")
        if action_value is None:
            action = None
        elif isinstance(action_value, str) and action_value in {a.value for a in ErrorResponseAction}:
            action = ErrorResponseAction(action_value)
        else:
            raise ProtocolError(f"unknown error response action {action_value!r}")

        info_hash = obj.get("info_hash")
        return cls(
            failure_reason=reason,
            action=action,
            info_hash=None if info_hash is None else decode_id(info_hash),
        )


OutMessage = (
    MiddlemanOfferToPeer
    | MiddlemanAnswerToPeer
    | AnnounceResponse
    | ScrapeResponse
    | ErrorResponse
)

_OUT_MESSAGE_TYPES = (
    MiddlemanOfferToPeer,
    MiddlemanAnswerToPeer,
    AnnounceResponse,
    ScrapeResponse,
    ErrorResponse,
)


def out_message_to_json(message: OutMessage) -> str:
    """Serialize a message sent by the tracker as JSON text."""
    if not isinstance(message, _OUT_MESSAGE_TYPES):
        raise TypeError(f"not an out message: {message!r}")
    return json.dumps(message.to_json_obj(), ensure_ascii=False, separators=(",", ":"))


def parse_out_message(data: str | bytes) -> OutMessage:
    """Parse a text or binary WebSocket payload into a message from the tracker.

    Kinds are tried in order: offer, answer, announce, scrape, error.
    """
    obj = _load_json(data)
    errors = []
    for cls in _OUT_MESSAGE_TYPES:
        try:
            return cls.from_json_obj(obj)
        except ProtocolError as exc:
            errors.append(f"{cls.__name__}: {exc}")
    raise ProtocolError("data did not match any out message: " + "; ".join(errors))