from __future__ import annotations

from typing import TYPE_CHECKING
from typing import Any

from baycation.chat.api.serializers import MessageSerializer
from baycation.realtime.events import emit_event_to_room
from baycation.realtime.rooms import parse_room
from baycation.realtime.rooms import room_for_chat_record

if TYPE_CHECKING:  # import for type checking only
    from baycation.chat.models import Chat
    from baycation.chat.models import Message
    from baycation.users.models import User


def _chat_room(chat: Chat):
    return parse_room(room_for_chat_record(chat.chat_type, chat.pk, chat.trip_id))


def build_message_payload(message: Message) -> dict[str, Any]:
    return dict(MessageSerializer(message).data)


def publish_new_message(message: Message) -> None:
    room = _chat_room(message.chat)
    emit_event_to_room(
        room.name,
        "newMessage",
        {**room.id_payload(), "message": build_message_payload(message)},
    )


def publish_messages_read(chat: Chat, user: User, count: int) -> None:
    room = _chat_room(chat)
    emit_event_to_room(
        room.name,
        "messagesRead",
        {
            "chatId": chat.pk,
            "roomId": room.name,
            "user": {"id": user.pk, "name": user.display_name},
            "count": count,
        },
    )
