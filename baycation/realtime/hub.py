"""Composition root for the realtime core.

One ``RealtimeHub`` is built per process. The Socket.IO binding drives its
``connections``; synchronous Django code reaches it through the publishers in
``baycation.realtime.events``.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING
from typing import Any

from django.conf import settings

from baycation.realtime.authorizer import MembershipAuthorizer
from baycation.realtime.connections import ConnectionManager
from baycation.realtime.dispatcher import EventDispatcher
from baycation.realtime.identity import IdentityVerifier
from baycation.realtime.identity import decode_access_token
from baycation.realtime.presence import PresenceTracker
from baycation.realtime.registry import RoomRegistry
from baycation.realtime.rooms import parse_room
from baycation.realtime.stores import DjangoChatStore
from baycation.realtime.stores import DjangoIdentityStore
from baycation.realtime.stores import DjangoPresenceStore
from baycation.realtime.stores import DjangoTripStore
from baycation.realtime.typing_status import TypingTracker

if TYPE_CHECKING:
    from collections.abc import Callable

    from baycation.realtime.stores import ChatStore
    from baycation.realtime.stores import IdentityStore
    from baycation.realtime.stores import PresenceStore
    from baycation.realtime.stores import TripStore

logger = logging.getLogger(__name__)


class RealtimeHub:
    def __init__(  # noqa: PLR0913
        self,
        *,
        identities: IdentityStore,
        trips: TripStore,
        chats: ChatStore,
        presence_store: PresenceStore,
        decode: Callable[[str], int] = decode_access_token,
        idle_timeout: float = 120,
        typing_timeout: float = 8,
        auto_join_chats: bool = True,
        max_length: int = 2000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = RoomRegistry()
        self.presence = PresenceTracker(presence_store)
        self.typing = TypingTracker(typing_timeout, clock)
        self.authorizer = MembershipAuthorizer(trips, chats)
        self.verifier = IdentityVerifier(identities, decode)
        self.dispatcher = EventDispatcher(
            registry=self.registry,
            authorizer=self.authorizer,
            presence=self.presence,
            typing=self.typing,
            trips=trips,
            chats=chats,
            max_length=max_length,
        )
        self.connections = ConnectionManager(
            verifier=self.verifier,
            registry=self.registry,
            presence=self.presence,
            typing=self.typing,
            dispatcher=self.dispatcher,
            trips=trips,
            chats=chats,
            auto_join_chats=auto_join_chats,
            idle_timeout=idle_timeout,
            clock=clock,
        )

    @classmethod
    def from_settings(cls) -> RealtimeHub:
        return cls(
            identities=DjangoIdentityStore(),
            trips=DjangoTripStore(),
            chats=DjangoChatStore(),
            presence_store=DjangoPresenceStore(),
            idle_timeout=settings.REALTIME_IDLE_TIMEOUT_SECONDS,
            typing_timeout=settings.REALTIME_TYPING_TIMEOUT_SECONDS,
            auto_join_chats=settings.REALTIME_AUTO_JOIN_CHATS,
            max_length=settings.CHAT_MESSAGE_MAX_LENGTH,
        )

    async def publish(self, room: str, event: str, payload: dict[str, Any]) -> int:
        """Fan out an event produced outside the socket handlers."""

        return self.registry.broadcast(room, event, payload)

    async def publish_all(self, event: str, payload: dict[str, Any]) -> int:
        return self.registry.broadcast_all(self.connections.sessions(), event, payload)

    async def evict_user(self, room: str, user_id: int) -> int:
        """Drop a user's live subscriptions to ``room`` after losing access."""

        ref = parse_room(room)
        evicted = self.registry.evict_user(ref.name, user_id)
        event = "leftTrip" if ref.is_trip else "leftChat"
        for session in evicted:
            session.deliver(event, {**ref.id_payload(), "reason": "removed"})
        if evicted:
            logger.info(
                "Evicted %d sessions of user %s from %s", len(evicted), user_id, room
            )
        return len(evicted)


_hub: RealtimeHub | None = None


def get_hub() -> RealtimeHub:
    """The process-wide hub, built from settings on first use."""

    global _hub  # noqa: PLW0603
    if _hub is None:
        _hub = RealtimeHub.from_settings()
    return _hub


def set_hub(hub: RealtimeHub | None) -> None:
    global _hub  # noqa: PLW0603
    _hub = hub
