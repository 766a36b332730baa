"""Room naming.

Rooms are addressed on the wire by strings such as ``trip_12`` or ``chat_7``.
``trip-12`` is accepted too since older clients used dashes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from baycation.realtime.exceptions import ValidationError

_ROOM_RE = re.compile(r"^(?P<kind>trip|chat)[_-](?P<id>\d+)$")


class RoomKind(str, Enum):
    TRIP = "trip"
    CHAT = "chat"


@dataclass(frozen=True)
class RoomRef:
    kind: RoomKind
    object_id: int

    @property
    def name(self) -> str:
        return f"{self.kind.value}_{self.object_id}"

    @property
    def is_trip(self) -> bool:
        return self.kind is RoomKind.TRIP

    def id_payload(self) -> dict[str, Any]:
        """Identifiers echoed back in every room-scoped event."""

        key = "tripId" if self.is_trip else "chatId"
        return {"roomId": self.name, key: self.object_id}


def _as_id(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError
    return int(str(value).strip())


def trip_room(trip_id: Any) -> RoomRef:
    return RoomRef(RoomKind.TRIP, _as_id(trip_id))


def chat_room(chat_id: Any) -> RoomRef:
    return RoomRef(RoomKind.CHAT, _as_id(chat_id))


def room_for_trip(trip_id: Any) -> str:
    return trip_room(trip_id).name


def room_for_chat(chat_id: Any) -> str:
    return chat_room(chat_id).name


def room_for_chat_record(chat_type: str, chat_id: int, trip_id: int | None) -> str:
    """Trip chats are delivered through their trip's room."""

    if chat_type == "trip" and trip_id:
        return room_for_trip(trip_id)
    return room_for_chat(chat_id)


def parse_room(value: Any) -> RoomRef:
    if isinstance(value, RoomRef):
        return value
    if not isinstance(value, str):
        msg = "roomId is required"
        raise ValidationError(msg)
    match = _ROOM_RE.match(value.strip().lower())
    if match is None:
        msg = f"Unknown room: {value}"
        raise ValidationError(msg)
    return RoomRef(RoomKind(match["kind"]), int(match["id"]))
