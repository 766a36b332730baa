from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from baycation.realtime.sessions import Session


class TypingTracker:
    """Remembers who is typing where so stale indicators can be cleared."""

    def __init__(self, timeout: float, clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self._clock = clock
        self._active: dict[tuple[str, str], tuple[Session, float]] = {}

    def update(self, session: Session, room: str, *, is_typing: bool) -> None:
        key = (room, session.session_id)
        if is_typing:
            self._active[key] = (session, self._clock() + self.timeout)
        else:
            self._active.pop(key, None)

    def is_typing(self, session: Session, room: str) -> bool:
        return (room, session.session_id) in self._active

    def clear_session(self, session: Session) -> list[str]:
        """Forget every indicator of ``session``; returns the affected rooms."""

        keys = [key for key in self._active if key[1] == session.session_id]
        for key in keys:
            del self._active[key]
        return sorted(room for room, _ in keys)

    def expire(self, now: float | None = None) -> list[tuple[Session, str]]:
        now = self._clock() if now is None else now
        expired = [
            (session, room)
            for (room, _), (session, deadline) in self._active.items()
            if deadline <= now
        ]
        for session, room in expired:
            del self._active[(room, session.session_id)]
        return expired
