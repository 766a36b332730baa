"""Session lifecycle: connect, queue inbound events, disconnect, reap."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING
from typing import Any

from baycation.realtime.dispatcher import now_iso
from baycation.realtime.dispatcher import typing_payload
from baycation.realtime.exceptions import AuthError
from baycation.realtime.exceptions import TransientStoreError
from baycation.realtime.rooms import parse_room
from baycation.realtime.sessions import CLOSE
from baycation.realtime.sessions import Session

if TYPE_CHECKING:
    from collections.abc import Callable

    from baycation.realtime.dispatcher import EventDispatcher
    from baycation.realtime.identity import IdentityVerifier
    from baycation.realtime.presence import PresenceTracker
    from baycation.realtime.registry import RoomRegistry
    from baycation.realtime.stores import ChatStore
    from baycation.realtime.stores import TripStore
    from baycation.realtime.typing_status import TypingTracker

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Owns every live ``Session`` of the process.

    Inbound events for a session go through its ``inbox`` and are handled by a
    single worker task, so one sender's events are processed (and therefore
    broadcast) in the order they arrived. Different sessions interleave freely.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        verifier: IdentityVerifier,
        registry: RoomRegistry,
        presence: PresenceTracker,
        typing: TypingTracker,
        dispatcher: EventDispatcher,
        trips: TripStore,
        chats: ChatStore,
        auto_join_chats: bool = True,
        idle_timeout: float = 120,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.verifier = verifier
        self.registry = registry
        self.presence = presence
        self.typing = typing
        self.dispatcher = dispatcher
        self.trips = trips
        self.chats = chats
        self.auto_join_chats = auto_join_chats
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._workers: dict[str, asyncio.Task] = {}

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def sessions_for_user(self, user_id: int) -> list[Session]:
        return [s for s in self._sessions.values() if s.user_id == user_id]

    async def connect(self, session_id: str, credential: Any) -> Session:
        """Authenticate and register a new session.

        Raises ``AuthError`` (no session is created). Joining the rooms the user
        is entitled to is silent: nobody else hears about it.
        """

        identity = await self.verifier.verify(credential)
        now = self._clock()
        session = Session(
            session_id=session_id,
            user_id=identity.user_id,
            user_name=identity.name,
            connected_at=now,
            last_activity=now,
        )
        self._sessions[session_id] = session
        worker = asyncio.create_task(self._work(session))
        self._workers[session_id] = worker
        worker.add_done_callback(lambda _: self._workers.pop(session_id, None))
        try:
            await self.presence.session_opened(session.user_id)
            for room in await self._entitled_rooms(session.user_id):
                self.registry.join(session, room)
        except Exception:
            logger.exception("Session %s failed while connecting", session_id)
            await self.disconnect(session_id, reason="connect failed")
            raise
        logger.info(
            "Session %s connected for user %s (%d rooms)",
            session_id,
            session.user_id,
            len(session.rooms),
        )
        return session

    async def _entitled_rooms(self, user_id: int) -> list[str]:
        try:
            rooms = [t.room.name for t in await self.trips.find_trips_for_user(user_id)]
            if self.auto_join_chats:
                rooms += [
                    c.room.name for c in await self.chats.find_chats_for_user(user_id)
                ]
        except TransientStoreError:
            logger.warning("Auto-join skipped for user %s", user_id)
            return []
        return sorted(set(rooms))

    async def submit(self, session_id: str, event: str, data: Any = None) -> dict:
        """Queue an inbound event for the session and wait for its ack."""

        session = self._sessions.get(session_id)
        if session is None or session.closed:
            return {"ok": False, **AuthError("Session is not connected").as_payload()}
        session.touch(self._clock())
        future = asyncio.get_running_loop().create_future()
        session.inbox.put_nowait((event, data, future))
        return await future

    async def _work(self, session: Session) -> None:
        while True:
            item = await session.inbox.get()
            if item is CLOSE:
                break
            event, data, future = item
            ack = await self.dispatcher.dispatch(session, event, data)
            if not future.done():
                future.set_result(ack)

    async def disconnect(self, session_id: str, reason: str = "") -> Session | None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return None
        session.close()
        session.inbox.put_nowait(CLOSE)

        rooms = self.registry.leave_all(session)
        for room_name in self.typing.clear_session(session):
            room = parse_room(room_name)
            self.registry.broadcast(
                room_name, "typingStatus", typing_payload(session, room, is_typing=False)
            )

        last = await self.presence.session_closed(session.user_id)
        if last:
            await self._announce_offline(session, rooms)
        logger.info(
            "Session %s of user %s disconnected (%s)",
            session_id,
            session.user_id,
            reason or "client",
        )
        return session

    async def _announce_offline(self, session: Session, rooms: list[str]) -> None:
        trip_rooms = {r for r in rooms if r.startswith("trip_")}
        try:
            trips = await self.trips.find_trips_for_user(session.user_id)
        except TransientStoreError:
            logger.warning("Using joined rooms for offline notice of %s", session.user_id)
        else:
            trip_rooms |= {t.room.name for t in trips}

        last_seen = now_iso()
        for room_name in sorted(trip_rooms):
            room = parse_room(room_name)
            self.registry.broadcast(
                room_name,
                "userOffline",
                {
                    **room.id_payload(),
                    "user": session.user_payload,
                    "lastSeen": last_seen,
                },
            )

    async def reap(self, now: float | None = None) -> list[str]:
        """Disconnect idle sessions and clear stale typing indicators.

        Returns the ids of the sessions that were dropped so the transport can
        close them too.
        """

        now = self._clock() if now is None else now
        idle = [
            s.session_id
            for s in self._sessions.values()
            if now - s.last_activity > self.idle_timeout
        ]
        for session_id in idle:
            await self.disconnect(session_id, reason="idle")

        for session, room_name in self.typing.expire(now):
            self.registry.broadcast(
                room_name,
                "typingStatus",
                typing_payload(session, parse_room(room_name), is_typing=False),
                exclude=session,
            )
        return idle

    async def shutdown(self) -> None:
        for session_id in list(self._sessions):
            await self.disconnect(session_id, reason="shutdown")
