"""Inbound event handlers.

Each handler receives the originating session plus an already parsed command,
checks membership, persists through the stores and only then fans out through
the registry. Nothing is broadcast for a change that failed to persist.
"""

from __future__ import annotations

import contextlib
import logging
from datetime import UTC
from datetime import datetime
from typing import TYPE_CHECKING
from typing import Any

from baycation.realtime.authorizer import Action
from baycation.realtime.commands import DEFAULT_MAX_LENGTH
from baycation.realtime.commands import AnswerQuestion
from baycation.realtime.commands import JoinRoom
from baycation.realtime.commands import LeaveRoom
from baycation.realtime.commands import MarkRead
from baycation.realtime.commands import SendMessage
from baycation.realtime.commands import Typing
from baycation.realtime.commands import UpdateActivity
from baycation.realtime.commands import UpdateItinerary
from baycation.realtime.commands import parse_command
from baycation.realtime.exceptions import AlreadyAnswered
from baycation.realtime.exceptions import AuthorizationError
from baycation.realtime.exceptions import NotFoundError
from baycation.realtime.exceptions import RealtimeError
from baycation.realtime.exceptions import TransientStoreError
from baycation.realtime.exceptions import ValidationError

if TYPE_CHECKING:
    from baycation.realtime.authorizer import MembershipAuthorizer
    from baycation.realtime.commands import Command
    from baycation.realtime.presence import PresenceTracker
    from baycation.realtime.registry import RoomRegistry
    from baycation.realtime.rooms import RoomRef
    from baycation.realtime.sessions import Session
    from baycation.realtime.stores import ChatStore
    from baycation.realtime.stores import TripStore
    from baycation.realtime.typing_status import TypingTracker

logger = logging.getLogger(__name__)


def now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def typing_payload(session: Session, room: RoomRef, *, is_typing: bool) -> dict:
    return {**room.id_payload(), "user": session.user_payload, "isTyping": is_typing}


class EventDispatcher:
    def __init__(  # noqa: PLR0913
        self,
        *,
        registry: RoomRegistry,
        authorizer: MembershipAuthorizer,
        presence: PresenceTracker,
        typing: TypingTracker,
        trips: TripStore,
        chats: ChatStore,
        max_length: int = DEFAULT_MAX_LENGTH,
    ):
        self.registry = registry
        self.authorizer = authorizer
        self.presence = presence
        self.typing = typing
        self.trips = trips
        self.chats = chats
        self.max_length = max_length
        self._handlers = {
            JoinRoom: self.join_room,
            LeaveRoom: self.leave_room,
            SendMessage: self.send_message,
            Typing: self.set_typing,
            UpdateItinerary: self.update_itinerary,
            UpdateActivity: self.update_activity,
            MarkRead: self.mark_read,
            AnswerQuestion: self.answer_question,
        }

    async def dispatch(self, session: Session, event: str, data: Any) -> dict:
        """Run one inbound event to completion and return its ack.

        Domain errors go back to ``session`` only, as an ``error`` event.
        """

        try:
            command = parse_command(event, data, max_length=self.max_length)
            return await self.handle(session, command)
        except RealtimeError as exc:
            return self._report(session, event, exc)
        except Exception:
            logger.exception(
                "Unhandled error for %s from session %s", event, session.session_id
            )
            return self._report(session, event, TransientStoreError())

    async def handle(self, session: Session, command: Command) -> dict:
        handler = self._handlers[type(command)]
        return await handler(session, command)

    def _report(self, session: Session, event: str, exc: RealtimeError) -> dict:
        if isinstance(exc, AuthorizationError):
            logger.warning(
                "Denied %s for user %s: %s", event, session.user_id, exc.message
            )
        payload = {**exc.as_payload(), "event": event}
        session.deliver("error", payload)
        return {"ok": False, **payload}

    async def _authorize(self, session: Session, room: RoomRef, action: Action):
        """Check membership; a session that lost it also loses its subscription."""

        try:
            return await self.authorizer.check(session.user_id, room, action)
        except (AuthorizationError, NotFoundError):
            if not self.registry.is_subscribed(session, room.name):
                raise
            still_member = action is not Action.JOIN and await self.authorizer.authorize(
                session.user_id, room, Action.JOIN
            )
            if not still_member and self.registry.leave(session, room.name):
                logger.info(
                    "Evicted session %s from %s", session.session_id, room.name
                )
            raise

    async def _canonical(self, room: RoomRef) -> RoomRef:
        """Trip chats are addressed through their trip's room."""

        if room.is_trip:
            return room
        chat = await self.chats.find_chat_by_id(room.object_id)
        if chat is None:
            msg = "Chat not found"
            raise NotFoundError(msg)
        return chat.room

    def _require_subscribed(self, session: Session, room: RoomRef) -> None:
        if not self.registry.is_subscribed(session, room.name):
            msg = f"Join {room.name} before sending to it"
            raise AuthorizationError(msg)

    async def join_room(self, session: Session, command: JoinRoom) -> dict:
        room = await self._canonical(command.room)
        try:
            await self._authorize(session, room, Action.JOIN)
        except AuthorizationError:
            msg = "Access denied to this room"
            raise AuthorizationError(msg) from None
        self.registry.join(session, room.name)
        ack = room.id_payload()
        session.deliver("joinedTrip" if room.is_trip else "joinedChat", ack)
        logger.info("User %s joined %s", session.user_id, room.name)
        return {"ok": True, **ack}

    async def leave_room(self, session: Session, command: LeaveRoom) -> dict:
        room = command.room
        if not self.registry.is_subscribed(session, room.name):
            with contextlib.suppress(NotFoundError):
                room = await self._canonical(room)
        self.registry.leave(session, room.name)
        if self.typing.is_typing(session, room.name):
            self.typing.update(session, room.name, is_typing=False)
            self.registry.broadcast(
                room.name,
                "typingStatus",
                typing_payload(session, room, is_typing=False),
                exclude=session,
            )
        ack = room.id_payload()
        session.deliver("leftTrip" if room.is_trip else "leftChat", ack)
        return {"ok": True, **ack}

    async def send_message(self, session: Session, command: SendMessage) -> dict:
        room = await self._canonical(command.room)
        self._require_subscribed(session, room)
        await self._authorize(session, room, Action.POST)
        message = await self.chats.append_message(
            room, session.user_id, command.content, command.message_type
        )
        self.typing.update(session, room.name, is_typing=False)
        self.registry.broadcast(
            room.name,
            "newMessage",
            {**room.id_payload(), "message": message},
            exclude=session,
        )
        return {"ok": True, **room.id_payload(), "message": message}

    async def set_typing(self, session: Session, command: Typing) -> dict:
        room = await self._canonical(command.room)
        self._require_subscribed(session, room)
        await self._authorize(session, room, Action.TYPING)
        self.typing.update(session, room.name, is_typing=command.is_typing)
        self.registry.broadcast(
            room.name,
            "typingStatus",
            typing_payload(session, room, is_typing=command.is_typing),
            exclude=session,
        )
        return {"ok": True}

    async def update_itinerary(
        self,
        session: Session,
        command: UpdateItinerary,
    ) -> dict:
        room = command.room
        if not room.is_trip:
            msg = "Itineraries belong to trip rooms"
            raise ValidationError(msg)
        trip = await self._authorize(session, room, Action.ITINERARY)
        record = await self.trips.replace_itinerary(
            room.object_id,
            command.itinerary,
            session.user_id,
            command.expected_version,
        )
        payload = {
            **room.id_payload(),
            "itinerary": record.itinerary,
            "version": record.version,
            "updatedBy": session.user_payload,
            "changeInfo": command.change_info,
        }
        self.registry.broadcast(room.name, "itineraryUpdated", payload, exclude=session)

        if command.change_info and trip.allow_discussions:
            await self._announce_change(session, room, command.change_info)
        return {"ok": True, "version": record.version}

    async def _announce_change(
        self,
        session: Session,
        room: RoomRef,
        change_info: dict[str, Any],
    ) -> None:
        action = str(change_info.get("action", "updated")).strip()
        description = str(change_info.get("description", "the itinerary")).strip()
        content = " ".join(p for p in (session.user_name, action, description) if p)
        message = await self.chats.append_message(
            room,
            session.user_id,
            content[: self.max_length],
            "itinerary_update",
            metadata={"itineraryChange": change_info},
        )
        self.registry.broadcast(
            room.name, "newMessage", {**room.id_payload(), "message": message}
        )

    async def update_activity(self, session: Session, command: UpdateActivity) -> dict:
        await self.presence.touch(session.user_id)
        room = command.room
        if room is not None and room.is_trip:
            self._require_subscribed(session, room)
            self.registry.broadcast(
                room.name,
                "userActivity",
                {
                    **room.id_payload(),
                    "user": session.user_payload,
                    "lastSeen": now_iso(),
                },
                exclude=session,
            )
        return {"ok": True}

    async def mark_read(self, session: Session, command: MarkRead) -> dict:
        room = command.room
        if room.is_trip:
            msg = "markRead expects a chatId"
            raise ValidationError(msg)
        chat = await self._authorize(session, room, Action.READ)
        count = await self.chats.mark_read(room.object_id, session.user_id)
        self.registry.broadcast(
            chat.room.name,
            "messagesRead",
            {
                "chatId": room.object_id,
                "roomId": chat.room.name,
                "user": session.user_payload,
                "count": count,
            },
            exclude=session,
        )
        return {"ok": True, "chatId": room.object_id, "count": count}

    async def answer_question(self, session: Session, command: AnswerQuestion) -> dict:
        question = await self.chats.find_message(command.message_id)
        if question is None:
            msg = "Message not found"
            raise NotFoundError(msg)
        await self._authorize(session, question.room, Action.ANSWER)
        if question.message_type != "question":
            msg = "This message is not a question"
            raise ValidationError(msg)
        if question.is_answered:
            raise AlreadyAnswered
        answer = await self.chats.answer_question(
            command.message_id, session.user_id, command.answer
        )
        room = question.room
        self.registry.broadcast(
            room.name,
            "newMessage",
            {**room.id_payload(), "message": answer, "questionId": question.message_id},
            exclude=session,
        )
        return {"ok": True, **room.id_payload(), "message": answer}
