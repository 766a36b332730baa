"""In-memory stores for driving the realtime core without a database."""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import replace
from typing import Any

from baycation.realtime.exceptions import AlreadyAnswered
from baycation.realtime.exceptions import AuthError
from baycation.realtime.exceptions import AuthorizationError
from baycation.realtime.exceptions import ConflictError
from baycation.realtime.exceptions import NotFoundError
from baycation.realtime.exceptions import TransientStoreError
from baycation.realtime.hub import RealtimeHub
from baycation.realtime.stores import ChatMembership
from baycation.realtime.stores import ItineraryRecord
from baycation.realtime.stores import MessageRef
from baycation.realtime.stores import TripMembership
from baycation.realtime.stores import UserIdentity


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def decode_token(token: str) -> int:
    """Tokens look like ``token-<user id>``."""

    prefix, _, user_id = token.partition("-")
    if prefix != "token" or not user_id.isdigit():
        raise AuthError
    return int(user_id)


class FakeIdentityStore:
    def __init__(self, *users: UserIdentity):
        self.users = {u.user_id: u for u in users}

    async def find_user_by_id(self, user_id: int) -> UserIdentity | None:
        await asyncio.sleep(0)
        return self.users.get(user_id)


class FakePresenceStore:
    def __init__(self):
        self.online: dict[int, bool] = {}
        self.writes: list[tuple[int, bool]] = []
        self.touched: list[int] = []
        self.fail = False

    async def set_presence(self, user_id: int, *, is_online: bool) -> None:
        await asyncio.sleep(0)
        if self.fail:
            raise TransientStoreError
        self.online[user_id] = is_online
        self.writes.append((user_id, is_online))

    async def touch(self, user_ids) -> None:
        await asyncio.sleep(0)
        if self.fail:
            raise TransientStoreError
        self.touched.extend(user_ids)


class FakeTripStore:
    def __init__(self, *trips: TripMembership):
        self.trips = {t.trip_id: t for t in trips}
        self.itineraries: dict[int, ItineraryRecord] = {}
        self.fail = False

    def confirm(self, trip_id: int, user_id: int) -> None:
        trip = self.trips[trip_id]
        self.trips[trip_id] = replace(
            trip, confirmed_ids=trip.confirmed_ids | {user_id}
        )

    def cancel(self, trip_id: int, user_id: int) -> None:
        trip = self.trips[trip_id]
        self.trips[trip_id] = replace(
            trip, confirmed_ids=trip.confirmed_ids - {user_id}
        )

    async def find_trips_for_user(self, user_id: int) -> list[TripMembership]:
        await asyncio.sleep(0)
        if self.fail:
            raise TransientStoreError
        return [t for t in self.trips.values() if t.is_member(user_id)]

    async def find_trip_by_id(self, trip_id: int) -> TripMembership | None:
        await asyncio.sleep(0)
        if self.fail:
            raise TransientStoreError
        return self.trips.get(trip_id)

    async def replace_itinerary(
        self,
        trip_id: int,
        itinerary: Any,
        user_id: int,
        expected_version: int | None = None,
    ) -> ItineraryRecord:
        await asyncio.sleep(0)
        if self.fail:
            raise TransientStoreError
        current = self.itineraries.get(trip_id, ItineraryRecord(trip_id, [], 0))
        if expected_version is not None and expected_version != current.version:
            raise ConflictError
        record = ItineraryRecord(trip_id, list(itinerary), current.version + 1)
        self.itineraries[trip_id] = record
        return record


class FakeChatStore:
    """Chats plus messages; trip rooms post into an implicit trip chat."""

    def __init__(self, *chats: ChatMembership, trips: FakeTripStore | None = None):
        self.chats = {c.chat_id: c for c in chats}
        self.trips = trips
        self.messages: dict[int, dict[str, Any]] = {}
        self.unread: dict[tuple[int, int], int] = {}
        self.last_message: dict[int, dict[str, Any]] = {}
        self.read_receipts: set[tuple[int, int]] = set()
        self._ids = itertools.count(1)
        self.fail = False

    async def find_chat_by_id(self, chat_id: int) -> ChatMembership | None:
        await asyncio.sleep(0)
        if self.fail:
            raise TransientStoreError
        return self.chats.get(chat_id)

    async def find_chats_for_user(self, user_id: int) -> list[ChatMembership]:
        await asyncio.sleep(0)
        if self.fail:
            raise TransientStoreError
        return [
            c
            for c in self.chats.values()
            if c.is_active and c.chat_type != "trip" and user_id in c.participant_ids
        ]

    def _chat_key(self, room) -> int:
        if room.is_trip:
            return -room.object_id
        return room.object_id

    def _participants(self, room) -> frozenset[int]:
        if room.is_trip:
            trip = self.trips.trips[room.object_id]
            return trip.confirmed_ids | {trip.organizer_id}
        return self.chats[room.object_id].participant_ids

    async def append_message(
        self,
        room,
        sender_id: int,
        content: str,
        message_type: str,
        metadata: dict[str, Any] | None = None,
        reply_to: int | None = None,
    ) -> dict[str, Any]:
        await asyncio.sleep(0)
        if self.fail:
            raise TransientStoreError
        chat_key = self._chat_key(room)
        message = {
            "id": next(self._ids),
            "chat": chat_key,
            "room": room.name,
            "sender": sender_id,
            "content": content,
            "message_type": message_type,
            "metadata": metadata or {},
            "reply_to": reply_to,
            "is_answered": False,
        }
        self.messages[message["id"]] = message
        self.last_message[chat_key] = message
        for uid in self._participants(room):
            if uid != sender_id:
                self.unread[(chat_key, uid)] = self.unread.get((chat_key, uid), 0) + 1
        return dict(message)

    async def mark_read(self, chat_id: int, user_id: int) -> int:
        await asyncio.sleep(0)
        if self.fail:
            raise TransientStoreError
        unread = [
            m["id"]
            for m in self.messages.values()
            if m["chat"] == chat_id
            and m["sender"] != user_id
            and (m["id"], user_id) not in self.read_receipts
        ]
        self.read_receipts.update((mid, user_id) for mid in unread)
        self.unread[(chat_id, user_id)] = 0
        return len(unread)

    async def find_message(self, message_id: int) -> MessageRef | None:
        await asyncio.sleep(0)
        message = self.messages.get(message_id)
        if message is None:
            return None
        chat = self.chats[message["chat"]]
        return MessageRef(
            message_id=message_id,
            chat_id=chat.chat_id,
            message_type=message["message_type"],
            is_answered=message["is_answered"],
            room=chat.room,
        )

    async def answer_question(
        self,
        message_id: int,
        user_id: int,
        answer: str,
    ) -> dict[str, Any]:
        await asyncio.sleep(0)
        question = self.messages.get(message_id)
        if question is None:
            raise NotFoundError
        chat = self.chats[question["chat"]]
        if user_id not in chat.participant_ids:
            raise AuthorizationError
        if question["is_answered"]:
            raise AlreadyAnswered
        question["is_answered"] = True
        question["answered_by"] = user_id
        return await self.append_message(
            chat.room, user_id, answer, "answer", reply_to=message_id
        )


def build_hub(
    *,
    users: list[UserIdentity],
    trips: list[TripMembership] = (),
    chats: list[ChatMembership] = (),
    clock: FakeClock | None = None,
    **options: Any,
) -> RealtimeHub:
    trip_store = FakeTripStore(*trips)
    chat_store = FakeChatStore(*chats, trips=trip_store)
    presence_store = FakePresenceStore()
    hub = RealtimeHub(
        identities=FakeIdentityStore(*users),
        trips=trip_store,
        chats=chat_store,
        presence_store=presence_store,
        decode=decode_token,
        clock=clock or FakeClock(),
        **options,
    )
    hub.trip_store = trip_store
    hub.chat_store = chat_store
    hub.presence_store = presence_store
    return hub


def events(session, name: str | None = None) -> list[tuple[str, Any]]:
    """Drain a session's outbox, optionally keeping one event name."""

    drained = session.drain()
    if name is None:
        return drained
    return [(event, payload) for event, payload in drained if event == name]
