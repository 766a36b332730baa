"""Domain-specific realtime publishers.

These modules contain *publish* helpers only (build payload + emit) for
synchronous Django code. Call them from ``transaction.on_commit`` so nothing
is broadcast before it is persisted.
"""

from __future__ import annotations

from typing import Any

from asgiref.sync import async_to_sync

from baycation.realtime.hub import get_hub


def emit_event_to_room(room: str, event: str, payload: dict[str, Any]) -> int:
    """Emit an event to a room from sync Django code."""

    return async_to_sync(get_hub().publish)(room, event, payload)


def emit_event_to_all(event: str, payload: dict[str, Any]) -> int:
    return async_to_sync(get_hub().publish_all)(event, payload)


def evict_user_from_room(room: str, user_id: int) -> int:
    return async_to_sync(get_hub().evict_user)(room, user_id)
