"""Room membership rules.

Authoritative membership lives in the trip and chat stores; the registry only
mirrors it for live sessions. Every room-scoped action is re-checked here.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from baycation.realtime.exceptions import AuthorizationError
from baycation.realtime.exceptions import NotFoundError
from baycation.realtime.rooms import RoomRef
from baycation.realtime.rooms import trip_room

if TYPE_CHECKING:
    from baycation.realtime.stores import ChatMembership
    from baycation.realtime.stores import ChatStore
    from baycation.realtime.stores import TripMembership
    from baycation.realtime.stores import TripStore

logger = logging.getLogger(__name__)


class Action(str, Enum):
    JOIN = "join"
    POST = "post"
    TYPING = "typing"
    ITINERARY = "itinerary"
    READ = "read"
    ANSWER = "answer"


class MembershipAuthorizer:
    def __init__(self, trips: TripStore, chats: ChatStore):
        self._trips = trips
        self._chats = chats

    async def check(
        self,
        user_id: int,
        room: RoomRef,
        action: Action,
    ) -> TripMembership | ChatMembership:
        """Return the membership record backing ``room`` or raise.

        Raises ``NotFoundError`` for an unknown room and ``AuthorizationError``
        when the user may not perform ``action`` there.
        """

        if room.is_trip:
            return await self._check_trip(user_id, room.object_id, action)

        chat = await self._chats.find_chat_by_id(room.object_id)
        if chat is None:
            msg = "Chat not found"
            raise NotFoundError(msg)
        if not chat.is_active:
            msg = "This chat is no longer active"
            raise AuthorizationError(msg)
        if chat.chat_type == "trip" and chat.trip_id:
            await self._check_trip(user_id, chat.trip_id, action)
        elif user_id not in chat.participant_ids:
            msg = "Access denied to this chat"
            raise AuthorizationError(msg)
        return chat

    async def authorize(self, user_id: int, room: RoomRef, action: Action) -> bool:
        try:
            await self.check(user_id, room, action)
        except (AuthorizationError, NotFoundError):
            return False
        return True

    async def _check_trip(
        self,
        user_id: int,
        trip_id: int,
        action: Action,
    ) -> TripMembership:
        trip = await self._trips.find_trip_by_id(trip_id)
        if trip is None:
            msg = "Trip not found"
            raise NotFoundError(msg)
        if not trip.is_member(user_id):
            msg = f"Access denied to this room: {trip_room(trip_id).name}"
            raise AuthorizationError(msg)
        if action is Action.POST and not trip.allow_discussions:
            msg = "Discussions not allowed for this trip"
            raise AuthorizationError(msg)
        if action is Action.ITINERARY and not trip.allow_itinerary_editing:
            msg = "Itinerary editing not allowed"
            raise AuthorizationError(msg)
        return trip
