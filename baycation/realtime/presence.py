"""Per-user online state, reference counted across live sessions."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from baycation.realtime.exceptions import TransientStoreError

if TYPE_CHECKING:
    from baycation.realtime.stores import PresenceStore

logger = logging.getLogger(__name__)


class PresenceTracker:
    """A user is online while at least one of their sessions is live.

    Counts change synchronously; the store write happens afterwards under a
    per-user lock that re-reads the count, so an open racing a close always
    persists whatever the count says once both are done.
    """

    def __init__(self, store: PresenceStore):
        self._store = store
        self._sessions: dict[int, int] = {}
        self._persisted: dict[int, bool] = {}
        self._locks: dict[int, asyncio.Lock] = {}

    def session_count(self, user_id: int) -> int:
        return self._sessions.get(user_id, 0)

    def is_online(self, user_id: int) -> bool:
        return self.session_count(user_id) > 0

    def online_user_ids(self) -> set[int]:
        return {uid for uid, count in self._sessions.items() if count > 0}

    async def session_opened(self, user_id: int) -> bool:
        """Returns True when this was the user's first live session."""

        count = self._sessions.get(user_id, 0) + 1
        self._sessions[user_id] = count
        await self._sync(user_id)
        return count == 1

    async def session_closed(self, user_id: int) -> bool:
        """Returns True when the user has no live session left."""

        count = max(self._sessions.get(user_id, 0) - 1, 0)
        if count:
            self._sessions[user_id] = count
        else:
            self._sessions.pop(user_id, None)
        await self._sync(user_id)
        return count == 0

    async def touch(self, user_id: int) -> None:
        if not self.is_online(user_id):
            return
        try:
            await self._store.touch([user_id])
        except TransientStoreError:
            logger.warning("Could not refresh last_seen for user %s", user_id)

    async def refresh(self) -> int:
        """Bump ``last_seen`` for every online user; returns how many."""

        user_ids = sorted(self.online_user_ids())
        if not user_ids:
            return 0
        try:
            await self._store.touch(user_ids)
        except TransientStoreError:
            logger.warning("Presence refresh failed for %d users", len(user_ids))
            return 0
        return len(user_ids)

    async def _sync(self, user_id: int) -> None:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            online = self.is_online(user_id)
            if self._persisted.get(user_id) is online:
                return
            try:
                await self._store.set_presence(user_id, is_online=online)
            except TransientStoreError:
                logger.exception("Could not persist presence for user %s", user_id)
                return
            self._persisted[user_id] = online
        logger.info("User %s is now %s", user_id, "online" if online else "offline")
