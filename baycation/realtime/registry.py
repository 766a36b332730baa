"""Room registry: which live sessions receive which room's events."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING
from typing import Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from baycation.realtime.sessions import Session

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Maps room names to the sessions subscribed to them.

    Every method is synchronous; broadcast only enqueues on session outboxes,
    so a join/leave can never interleave with a half-finished fan-out. The
    lock covers callers that reach the registry from worker threads.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, set[Session]] = {}
        self._lock = threading.RLock()

    def join(self, session: Session, room: str) -> bool:
        """Subscribe ``session`` to ``room``. Returns False if it already was."""

        with self._lock:
            if session.closed:
                return False
            members = self._rooms.setdefault(room, set())
            if session in members:
                return False
            members.add(session)
            session.rooms.add(room)
        logger.debug("Session %s joined %s", session.session_id, room)
        return True

    def leave(self, session: Session, room: str) -> bool:
        with self._lock:
            members = self._rooms.get(room)
            session.rooms.discard(room)
            if not members or session not in members:
                return False
            members.discard(session)
            if not members:
                del self._rooms[room]
        logger.debug("Session %s left %s", session.session_id, room)
        return True

    def leave_all(self, session: Session) -> list[str]:
        with self._lock:
            rooms = sorted(session.rooms)
            for room in rooms:
                self.leave(session, room)
        return rooms

    def evict_user(self, room: str, user_id: int) -> list[Session]:
        """Remove every session of ``user_id`` from ``room``."""

        with self._lock:
            evicted = [s for s in self._rooms.get(room, ()) if s.user_id == user_id]
            for session in evicted:
                self.leave(session, room)
        return evicted

    def is_subscribed(self, session: Session, room: str) -> bool:
        with self._lock:
            return session in self._rooms.get(room, ())

    def subscribers(self, room: str) -> frozenset[Session]:
        with self._lock:
            return frozenset(self._rooms.get(room, ()))

    def rooms(self) -> dict[str, frozenset[Session]]:
        with self._lock:
            return {room: frozenset(members) for room, members in self._rooms.items()}

    def broadcast(
        self,
        room: str,
        event: str,
        payload: Any,
        exclude: Session | None = None,
    ) -> int:
        """Queue ``event`` for every current subscriber except ``exclude``.

        Best effort: sessions that join after this call never see the event.
        """

        with self._lock:
            targets = [s for s in self._rooms.get(room, ()) if s is not exclude]
        return self._deliver(targets, event, payload)

    def broadcast_all(
        self,
        sessions: Iterable[Session],
        event: str,
        payload: Any,
    ) -> int:
        return self._deliver(list(sessions), event, payload)

    @staticmethod
    def _deliver(targets: list[Session], event: str, payload: Any) -> int:
        delivered = 0
        for session in targets:
            if session.deliver(event, payload):
                delivered += 1
        return delivered
