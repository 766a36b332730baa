"""Store interfaces consumed by the realtime core, and their Django versions.

The core only sees the Protocols and the frozen snapshots below. The Django
implementations run ORM work through ``database_sync_to_async``, so every call
into a store is a suspension point and nothing else is.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from dataclasses import field
from typing import TYPE_CHECKING
from typing import Any
from typing import Protocol

from channels.db import database_sync_to_async
from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.db import transaction
from django.utils import timezone

from baycation.realtime.exceptions import AuthorizationError
from baycation.realtime.exceptions import NotFoundError
from baycation.realtime.exceptions import TransientStoreError
from baycation.realtime.rooms import RoomRef
from baycation.realtime.rooms import chat_room
from baycation.realtime.rooms import trip_room

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserIdentity:
    user_id: int
    name: str = ""


@dataclass(frozen=True)
class TripMembership:
    trip_id: int
    organizer_id: int
    confirmed_ids: frozenset[int] = field(default_factory=frozenset)
    allow_discussions: bool = True
    allow_itinerary_editing: bool = True

    @property
    def room(self) -> RoomRef:
        return trip_room(self.trip_id)

    def is_member(self, user_id: int) -> bool:
        return user_id == self.organizer_id or user_id in self.confirmed_ids


@dataclass(frozen=True)
class ChatMembership:
    chat_id: int
    chat_type: str
    participant_ids: frozenset[int] = field(default_factory=frozenset)
    is_active: bool = True
    trip_id: int | None = None

    @property
    def room(self) -> RoomRef:
        if self.chat_type == "trip" and self.trip_id:
            return trip_room(self.trip_id)
        return chat_room(self.chat_id)


@dataclass(frozen=True)
class MessageRef:
    message_id: int
    chat_id: int
    message_type: str
    is_answered: bool
    room: RoomRef


@dataclass(frozen=True)
class ItineraryRecord:
    trip_id: int
    itinerary: list[Any]
    version: int


class IdentityStore(Protocol):
    async def find_user_by_id(self, user_id: int) -> UserIdentity | None: ...


class PresenceStore(Protocol):
    async def set_presence(self, user_id: int, *, is_online: bool) -> None: ...

    async def touch(self, user_ids: Iterable[int]) -> None: ...


class TripStore(Protocol):
    async def find_trips_for_user(self, user_id: int) -> list[TripMembership]: ...

    async def find_trip_by_id(self, trip_id: int) -> TripMembership | None: ...

    async def replace_itinerary(
        self,
        trip_id: int,
        itinerary: Any,
        user_id: int,
        expected_version: int | None = None,
    ) -> ItineraryRecord: ...


class ChatStore(Protocol):
    """Message store adapter.

    ``append_message`` is one transaction: it appends the message, refreshes
    the chat's ``lastMessage`` snapshot and increments the unread counter of
    every other participant. ``mark_read`` appends read receipts and resets the
    reader's counter.
    """

    async def find_chat_by_id(self, chat_id: int) -> ChatMembership | None: ...

    async def find_chats_for_user(self, user_id: int) -> list[ChatMembership]: ...

    async def append_message(  # noqa: PLR0913
        self,
        room: RoomRef,
        sender_id: int,
        content: str,
        message_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]: ...

    async def mark_read(self, chat_id: int, user_id: int) -> int: ...

    async def find_message(self, message_id: int) -> MessageRef | None: ...

    async def answer_question(
        self,
        message_id: int,
        user_id: int,
        answer: str,
    ) -> dict[str, Any]: ...


def _store_call(func):
    """Surface database outages as ``TransientStoreError``."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DatabaseError as exc:
            logger.exception("Store call %s failed", func.__name__)
            raise TransientStoreError from exc

    return wrapper


# Django implementations
# ------------------------------------------------------------------------------


def _trip_membership(trip) -> TripMembership:
    from baycation.trips.models import TripParticipant  # noqa: PLC0415

    confirmed = trip.participants.filter(
        status=TripParticipant.Status.CONFIRMED
    ).values_list("user_id", flat=True)
    return TripMembership(
        trip_id=trip.pk,
        organizer_id=trip.organizer_id,
        confirmed_ids=frozenset(confirmed),
        allow_discussions=trip.allow_discussions,
        allow_itinerary_editing=trip.allow_itinerary_editing,
    )


def _chat_membership(chat) -> ChatMembership:
    return ChatMembership(
        chat_id=chat.pk,
        chat_type=chat.chat_type,
        participant_ids=frozenset(chat.participants.values_list("user_id", flat=True)),
        is_active=chat.is_active,
        trip_id=chat.trip_id,
    )


def _serialize_message(message) -> dict[str, Any]:
    from baycation.chat.api.serializers import MessageSerializer  # noqa: PLC0415

    return dict(MessageSerializer(message).data)


class DjangoIdentityStore:
    @database_sync_to_async
    @_store_call
    def find_user_by_id(self, user_id: int) -> UserIdentity | None:
        user = get_user_model().objects.filter(pk=user_id, is_active=True).first()
        if user is None:
            return None
        return UserIdentity(user_id=user.pk, name=user.display_name)


class DjangoPresenceStore:
    @database_sync_to_async
    @_store_call
    def set_presence(self, user_id: int, *, is_online: bool) -> None:
        get_user_model().objects.filter(pk=user_id).update(
            is_online=is_online, last_seen=timezone.now()
        )

    @database_sync_to_async
    @_store_call
    def touch(self, user_ids: Iterable[int]) -> None:
        ids = list(user_ids)
        if ids:
            get_user_model().objects.filter(pk__in=ids).update(
                last_seen=timezone.now()
            )


class DjangoTripStore:
    @database_sync_to_async
    @_store_call
    def find_trips_for_user(self, user_id: int) -> list[TripMembership]:
        from baycation.trips import services  # noqa: PLC0415

        return [_trip_membership(t) for t in services.trips_for_user(user_id)]

    @database_sync_to_async
    @_store_call
    def find_trip_by_id(self, trip_id: int) -> TripMembership | None:
        from baycation.trips.models import Trip  # noqa: PLC0415

        trip = Trip.objects.filter(pk=trip_id).first()
        return _trip_membership(trip) if trip else None

    @database_sync_to_async
    @_store_call
    def replace_itinerary(
        self,
        trip_id: int,
        itinerary: Any,
        user_id: int,
        expected_version: int | None = None,
    ) -> ItineraryRecord:
        from baycation.trips import services  # noqa: PLC0415

        user = get_user_model().objects.get(pk=user_id)
        trip = services.replace_itinerary(trip_id, itinerary, user, expected_version)
        return ItineraryRecord(
            trip_id=trip.pk,
            itinerary=trip.itinerary,
            version=trip.itinerary_version,
        )


class DjangoChatStore:
    @database_sync_to_async
    @_store_call
    def find_chat_by_id(self, chat_id: int) -> ChatMembership | None:
        from baycation.chat.models import Chat  # noqa: PLC0415

        chat = Chat.objects.filter(pk=chat_id).first()
        return _chat_membership(chat) if chat else None

    @database_sync_to_async
    @_store_call
    def find_chats_for_user(self, user_id: int) -> list[ChatMembership]:
        from baycation.chat import services  # noqa: PLC0415

        return [_chat_membership(c) for c in services.chats_for_user(user_id)]

    @database_sync_to_async
    @_store_call
    def append_message(  # noqa: PLR0913
        self,
        room: RoomRef,
        sender_id: int,
        content: str,
        message_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        from baycation.chat import services  # noqa: PLC0415
        from baycation.trips import services as trip_services  # noqa: PLC0415

        with transaction.atomic():
            if room.is_trip:
                trip = trip_services.get_trip(room.object_id)
                if not trip.allow_discussions:
                    msg = "Discussions not allowed for this trip"
                    raise AuthorizationError(msg)
                chat = services.get_or_create_trip_chat(trip)
                trip.last_activity = timezone.now()
                trip.save(update_fields=["last_activity"])
            else:
                chat = services.get_chat(room.object_id)
            message = services.append_message(
                chat, sender_id, content, message_type, metadata=metadata
            )
        return _serialize_message(message)

    @database_sync_to_async
    @_store_call
    def mark_read(self, chat_id: int, user_id: int) -> int:
        from baycation.chat import services  # noqa: PLC0415

        return services.mark_chat_read(services.get_chat(chat_id), user_id)

    @database_sync_to_async
    @_store_call
    def find_message(self, message_id: int) -> MessageRef | None:
        from baycation.chat.models import Message  # noqa: PLC0415

        message = Message.objects.select_related("chat").filter(pk=message_id).first()
        if message is None:
            return None
        return MessageRef(
            message_id=message.pk,
            chat_id=message.chat_id,
            message_type=message.message_type,
            is_answered=message.is_answered,
            room=_chat_membership(message.chat).room,
        )

    @database_sync_to_async
    @_store_call
    def answer_question(
        self,
        message_id: int,
        user_id: int,
        answer: str,
    ) -> dict[str, Any]:
        from baycation.chat import services  # noqa: PLC0415

        try:
            answer_message = services.answer_question(message_id, user_id, answer)
        except NotFoundError:
            msg = "Question not found"
            raise NotFoundError(msg) from None
        return _serialize_message(answer_message)
