"""Chat persistence rules.

Everything that touches ``Chat``/``Message`` rows goes through here so the
HTTP views and the realtime store adapter share one set of invariants:

- one active direct chat per unordered pair of users
- unread counters only move through single-statement ``F()`` updates
- soft-deleted messages stay in the table but never show up in listings
- a question can be answered exactly once
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from typing import Any

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from baycation.chat.models import Chat
from baycation.chat.models import ChatParticipant
from baycation.chat.models import Message
from baycation.chat.models import MessageReaction
from baycation.chat.models import MessageReadReceipt
from baycation.realtime.commands import clean_text
from baycation.realtime.exceptions import AlreadyAnswered
from baycation.realtime.exceptions import AuthorizationError
from baycation.realtime.exceptions import NotFoundError
from baycation.realtime.exceptions import ValidationError
from baycation.trips import services as trip_services

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from baycation.trips.models import Trip
    from baycation.users.models import User

logger = logging.getLogger(__name__)

CLIENT_MESSAGE_TYPES = frozenset(
    {
        Message.Type.TEXT,
        Message.Type.IMAGE,
        Message.Type.FILE,
        Message.Type.QUESTION,
    }
)


def clean_content(content: Any, *, field: str = "Message content") -> str:
    return clean_text(content, field=field, max_length=settings.CHAT_MESSAGE_MAX_LENGTH)


def clean_message_type(message_type: Any) -> str:
    if message_type in (None, ""):
        return Message.Type.TEXT
    if message_type not in CLIENT_MESSAGE_TYPES:
        msg = f"Unsupported message type: {message_type}"
        raise ValidationError(msg)
    return str(message_type)


def _participant_role(user: User) -> str:
    role = getattr(user, "role", "") or ChatParticipant.Role.TRAVELER
    if role not in ChatParticipant.Role.values:
        return ChatParticipant.Role.TRAVELER
    return role


# Lookups
# ------------------------------------------------------------------------------


def get_chat(chat_id: Any) -> Chat:
    try:
        return Chat.objects.get(pk=int(chat_id))
    except (TypeError, ValueError, Chat.DoesNotExist):
        msg = "Chat not found"
        raise NotFoundError(msg) from None


def get_message(message_id: Any, *, include_deleted: bool = False) -> Message:
    manager = Message.all_objects if include_deleted else Message.objects
    try:
        return manager.select_related("chat").get(pk=int(message_id))
    except (TypeError, ValueError, Message.DoesNotExist):
        msg = "Message not found"
        raise NotFoundError(msg) from None


def participant_ids(chat: Chat) -> set[int]:
    return set(chat.participants.values_list("user_id", flat=True))


def is_chat_member(chat: Chat, user_id: int) -> bool:
    """Trip chats follow trip membership; every other chat its participant list."""

    if chat.chat_type == Chat.Type.TRIP and chat.trip_id:
        return trip_services.is_trip_member(chat.trip, user_id)
    return chat.participants.filter(user_id=user_id).exists()


def require_member(chat: Chat, user_id: int) -> None:
    if not is_chat_member(chat, user_id):
        msg = "Access denied to this chat"
        raise AuthorizationError(msg)


def chats_for_user(user_id: int) -> QuerySet[Chat]:
    return (
        Chat.objects.filter(participants__user_id=user_id, is_active=True)
        .select_related("last_message_sender")
        .prefetch_related("participants__user")
        .distinct()
    )


def unread_counts(chat: Chat) -> dict[int, int]:
    return dict(chat.participants.values_list("user_id", "unread_count"))


# Chat lifecycle
# ------------------------------------------------------------------------------


def get_or_create_direct_chat(user: User, other_id: Any) -> tuple[Chat, bool]:
    """Return the active direct chat between two users, creating it once.

    The lookup key is order independent so (a, b) and (b, a) resolve to the
    same chat.
    """

    try:
        other_pk = int(other_id)
    except (TypeError, ValueError):
        msg = "Participant ID is required"
        raise ValidationError(msg) from None
    if other_pk == user.pk:
        msg = "Cannot create chat with yourself"
        raise ValidationError(msg)

    other = get_user_model().objects.filter(pk=other_pk, is_active=True).first()
    if other is None:
        msg = "User not found"
        raise NotFoundError(msg)

    key = Chat.direct_key_for(user.pk, other.pk)
    existing = Chat.objects.filter(direct_key=key, is_active=True).first()
    if existing is not None:
        return existing, False

    try:
        with transaction.atomic():
            chat = Chat.objects.create(chat_type=Chat.Type.DIRECT, direct_key=key)
            ChatParticipant.objects.bulk_create(
                [
                    ChatParticipant(chat=chat, user=user, role=_participant_role(user)),
                    ChatParticipant(
                        chat=chat, user=other, role=_participant_role(other)
                    ),
                ]
            )
    except IntegrityError:
        # Lost a creation race for the same pair; the winner's chat is the one.
        return Chat.objects.get(direct_key=key), False

    logger.info("Direct chat %s created for users %s", chat.pk, key)
    return chat, True


def deactivate_chat(chat: Chat) -> Chat:
    """Soft-deactivate; frees the pair key so a new direct chat can be opened."""

    chat.is_active = False
    chat.direct_key = None
    chat.save(update_fields=["is_active", "direct_key", "updated_at"])
    return chat


def sync_trip_chat_participants(chat: Chat, trip: Trip) -> None:
    members = trip_services.member_ids(trip)
    existing = participant_ids(chat)
    missing = members - existing
    if missing:
        ChatParticipant.objects.bulk_create(
            [ChatParticipant(chat=chat, user_id=uid) for uid in sorted(missing)],
            ignore_conflicts=True,
        )


def get_or_create_trip_chat(trip: Trip) -> Chat:
    chat, created = Chat.objects.get_or_create(
        trip=trip,
        defaults={"chat_type": Chat.Type.TRIP, "title": trip.title},
    )
    if created:
        logger.info("Trip chat %s created for trip %s", chat.pk, trip.pk)
    sync_trip_chat_participants(chat, trip)
    return chat


# Messages
# ------------------------------------------------------------------------------


@transaction.atomic
def append_message(  # noqa: PLR0913
    chat: Chat,
    sender: User | int,
    content: Any,
    message_type: str = Message.Type.TEXT,
    *,
    reply_to: Message | None = None,
    metadata: dict[str, Any] | None = None,
) -> Message:
    """Persist a message, refresh the chat snapshot and bump unread counters."""

    sender_id = sender if isinstance(sender, int) else sender.pk
    body = clean_content(content)
    if chat.chat_type == Chat.Type.TRIP and chat.trip_id:
        sync_trip_chat_participants(chat, chat.trip)
    message = Message.objects.create(
        chat=chat,
        sender_id=sender_id,
        content=body,
        message_type=message_type,
        reply_to=reply_to,
        metadata=metadata or {},
    )
    Chat.objects.filter(pk=chat.pk).update(
        last_message_content=body,
        last_message_sender_id=sender_id,
        last_message_at=message.created_at,
        last_message_type=message_type,
        updated_at=timezone.now(),
    )
    # Per-row atomic increments; the sender's own counter never moves.
    ChatParticipant.objects.filter(chat=chat).exclude(user_id=sender_id).update(
        unread_count=F("unread_count") + 1
    )
    return message


@transaction.atomic
def mark_chat_read(chat: Chat, user: User | int) -> int:
    """Add read receipts for everything others sent and reset the counter."""

    user_id = user if isinstance(user, int) else user.pk
    unread_ids = list(
        Message.objects.filter(chat=chat)
        .exclude(sender_id=user_id)
        .exclude(read_receipts__user_id=user_id)
        .values_list("id", flat=True)
    )
    MessageReadReceipt.objects.bulk_create(
        [MessageReadReceipt(message_id=mid, user_id=user_id) for mid in unread_ids],
        ignore_conflicts=True,
    )
    ChatParticipant.objects.filter(chat=chat, user_id=user_id).update(
        unread_count=0, last_seen=timezone.now()
    )
    return len(unread_ids)


def list_messages(
    chat: Chat,
    *,
    page: int = 1,
    limit: int | None = None,
) -> tuple[list[Message], int]:
    """A page of visible messages, oldest first within the page."""

    limit = limit or settings.CHAT_PAGE_SIZE
    page = max(page, 1)
    qs = Message.objects.filter(chat=chat).select_related("sender", "reply_to")
    total = qs.count()
    offset = (page - 1) * limit
    newest_first = list(qs.order_by("-created_at", "-id")[offset : offset + limit])
    newest_first.reverse()
    return newest_first, total


def list_questions(trip: Trip, answered: bool | None = None) -> QuerySet[Message]:
    qs = Message.objects.filter(
        chat__trip=trip, message_type=Message.Type.QUESTION
    ).select_related("sender", "answered_by")
    if answered is not None:
        qs = qs.filter(is_answered=answered)
    return qs.order_by("-created_at")


def soft_delete_message(message_id: Any, user: User) -> Message:
    message = get_message(message_id)
    if message.sender_id != user.pk:
        msg = "Only the sender can delete this message"
        raise AuthorizationError(msg)
    message.is_deleted = True
    message.deleted_at = timezone.now()
    message.save(update_fields=["is_deleted", "deleted_at", "updated_at"])
    return message


def edit_message(message_id: Any, user: User, content: Any) -> Message:
    message = get_message(message_id)
    if message.sender_id != user.pk:
        msg = "Only the sender can edit this message"
        raise AuthorizationError(msg)
    message.content = clean_content(content)
    message.is_edited = True
    message.edited_at = timezone.now()
    message.save(update_fields=["content", "is_edited", "edited_at", "updated_at"])
    return message


def toggle_reaction(message_id: Any, user: User, emoji: Any) -> bool:
    """Add the reaction, or remove it if the user already reacted the same way."""

    if not isinstance(emoji, str) or not emoji.strip():
        msg = "Emoji is required"
        raise ValidationError(msg)
    message = get_message(message_id)
    require_member(message.chat, user.pk)
    removed, _ = MessageReaction.objects.filter(
        message=message, user=user, emoji=emoji.strip()
    ).delete()
    if removed:
        return False
    MessageReaction.objects.create(message=message, user=user, emoji=emoji.strip())
    return True


@transaction.atomic
def answer_question(message_id: Any, user: User | int, answer: Any) -> Message:
    """Answer a question message; only the first caller wins."""

    user_id = user if isinstance(user, int) else user.pk
    body = clean_content(answer, field="Answer")
    question = get_message(message_id)
    if question.message_type != Message.Type.QUESTION:
        msg = "This message is not a question"
        raise ValidationError(msg)
    require_member(question.chat, user_id)

    claimed = Message.objects.filter(pk=question.pk, is_answered=False).update(
        is_answered=True,
        answered_by_id=user_id,
        answered_at=timezone.now(),
        updated_at=timezone.now(),
    )
    if not claimed:
        raise AlreadyAnswered

    return append_message(
        question.chat,
        user_id,
        body,
        Message.Type.ANSWER,
        reply_to=question,
        metadata={"isAnswer": True},
    )


def seat_trip_chat_participant(trip: Trip, user_id: int) -> bool:
    """Give a newly confirmed member a row in the trip chat, if there is one."""

    chat = Chat.objects.filter(trip=trip).first()
    if chat is None:
        return False
    _, created = ChatParticipant.objects.get_or_create(chat=chat, user_id=user_id)
    return created


def drop_trip_chat_participant(trip: Trip, user_id: int) -> int:
    """Remove a departed member from the trip chat's participant rows."""

    deleted, _ = ChatParticipant.objects.filter(
        chat__trip=trip, user_id=user_id
    ).delete()
    return deleted


def post_message(chat: Chat, user: User, content: Any, message_type: Any = None) -> Message:
    """Client-originated message: membership and chat state are checked first."""

    if not chat.is_active:
        msg = "This chat is no longer active"
        raise AuthorizationError(msg)
    require_member(chat, user.pk)
    if chat.chat_type == Chat.Type.TRIP and chat.trip_id and not chat.trip.allow_discussions:
        msg = "Discussions not allowed for this trip"
        raise AuthorizationError(msg)
    return append_message(chat, user, content, clean_message_type(message_type))
