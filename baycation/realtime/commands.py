"""Typed inbound commands.

The socket binding never hands raw payloads to the dispatcher: each inbound
event is parsed here into one of the dataclasses below, which is what gets
queued for the session.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from baycation.realtime.exceptions import ValidationError
from baycation.realtime.rooms import RoomRef
from baycation.realtime.rooms import chat_room
from baycation.realtime.rooms import parse_room
from baycation.realtime.rooms import trip_room

DEFAULT_MAX_LENGTH = 2000

CLIENT_MESSAGE_TYPES = frozenset({"text", "image", "file", "question"})


@dataclass(frozen=True)
class JoinRoom:
    room: RoomRef


@dataclass(frozen=True)
class LeaveRoom:
    room: RoomRef


@dataclass(frozen=True)
class SendMessage:
    room: RoomRef
    content: str
    message_type: str = "text"


@dataclass(frozen=True)
class Typing:
    room: RoomRef
    is_typing: bool


@dataclass(frozen=True)
class UpdateItinerary:
    room: RoomRef
    itinerary: list[Any]
    change_info: dict[str, Any] | None = None
    expected_version: int | None = None


@dataclass(frozen=True)
class UpdateActivity:
    room: RoomRef | None = None


@dataclass(frozen=True)
class MarkRead:
    room: RoomRef


@dataclass(frozen=True)
class AnswerQuestion:
    message_id: int
    answer: str


Command = (
    JoinRoom
    | LeaveRoom
    | SendMessage
    | Typing
    | UpdateItinerary
    | UpdateActivity
    | MarkRead
    | AnswerQuestion
)


def clean_text(value: Any, *, field: str, max_length: int) -> str:
    if not isinstance(value, str) or not value.strip():
        msg = f"{field} is required"
        raise ValidationError(msg)
    value = value.strip()
    if len(value) > max_length:
        msg = f"{field} cannot exceed {max_length} characters"
        raise ValidationError(msg)
    return value


def _as_dict(data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = "Payload must be an object"
        raise ValidationError(msg)
    return data


def _room(data: dict[str, Any], *, required: bool = True) -> RoomRef | None:
    try:
        if data.get("roomId") is not None:
            return parse_room(data["roomId"])
        if data.get("tripId") is not None:
            return trip_room(data["tripId"])
        if data.get("chatId") is not None:
            return chat_room(data["chatId"])
    except (TypeError, ValueError):
        msg = "Invalid room id"
        raise ValidationError(msg) from None
    if required:
        msg = "roomId is required"
        raise ValidationError(msg)
    return None


def _bare_trip(data: Any) -> RoomRef:
    """``joinTrip``/``leaveTrip`` send a bare trip id or ``{tripId}``."""

    if isinstance(data, dict):
        return _room(data)
    try:
        return trip_room(data)
    except (TypeError, ValueError):
        msg = "tripId is required"
        raise ValidationError(msg) from None


def _optional_int(value: Any, field: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        msg = f"{field} must be an integer"
        raise ValidationError(msg)
    try:
        return int(value)
    except (TypeError, ValueError):
        msg = f"{field} must be an integer"
        raise ValidationError(msg) from None


def _join(data: Any, max_length: int) -> Command:
    return JoinRoom(_room(_as_dict(data)))


def _leave(data: Any, max_length: int) -> Command:
    return LeaveRoom(_room(_as_dict(data)))


def _join_trip(data: Any, max_length: int) -> Command:
    return JoinRoom(_bare_trip(data))


def _leave_trip(data: Any, max_length: int) -> Command:
    return LeaveRoom(_bare_trip(data))


def _send(data: Any, max_length: int) -> Command:
    data = _as_dict(data)
    room = _room(data)
    content = clean_text(
        data.get("content"), field="Message content", max_length=max_length
    )
    message_type = data.get("messageType") or "text"
    if message_type not in CLIENT_MESSAGE_TYPES:
        msg = f"Unsupported message type: {message_type}"
        raise ValidationError(msg)
    return SendMessage(room, content, message_type)


def _typing(data: Any, max_length: int) -> Command:
    data = _as_dict(data)
    return Typing(_room(data), is_typing=bool(data.get("isTyping")))


def _itinerary(data: Any, max_length: int) -> Command:
    data = _as_dict(data)
    room = _room(data)
    itinerary = data.get("itinerary")
    if not isinstance(itinerary, list):
        msg = "Itinerary must be a list of days"
        raise ValidationError(msg)
    change_info = data.get("changeInfo")
    if change_info is not None and not isinstance(change_info, dict):
        msg = "changeInfo must be an object"
        raise ValidationError(msg)
    return UpdateItinerary(
        room,
        itinerary,
        change_info=change_info,
        expected_version=_optional_int(data.get("version"), "version"),
    )


def _activity(data: Any, max_length: int) -> Command:
    return UpdateActivity(_room(_as_dict(data), required=False))


def _mark_read(data: Any, max_length: int) -> Command:
    if not isinstance(data, dict):
        data = {"chatId": data}
    return MarkRead(_room(data))


def _answer(data: Any, max_length: int) -> Command:
    data = _as_dict(data)
    message_id = _optional_int(data.get("messageId"), "messageId")
    if message_id is None:
        msg = "messageId is required"
        raise ValidationError(msg)
    answer = clean_text(data.get("answer"), field="Answer", max_length=max_length)
    return AnswerQuestion(message_id, answer)


_PARSERS = {
    "joinRoom": _join,
    "leaveRoom": _leave,
    "joinTrip": _join_trip,
    "leaveTrip": _leave_trip,
    "sendMessage": _send,
    "typing": _typing,
    "updateItinerary": _itinerary,
    "updateActivity": _activity,
    "markRead": _mark_read,
    "answerQuestion": _answer,
}

INBOUND_EVENTS = tuple(_PARSERS)


def parse_command(
    event: str,
    data: Any,
    *,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> Command:
    parser = _PARSERS.get(event)
    if parser is None:
        msg = f"Unknown event: {event}"
        raise ValidationError(msg)
    return parser(data, max_length)
