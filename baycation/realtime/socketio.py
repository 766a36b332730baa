"""Socket.IO binding for the realtime hub.

Frontend convention:
- Socket.IO path: ``settings.REALTIME_SOCKETIO_PATH`` (``/ws/realtime/``)
- Auth: ``query.token`` or ``auth.token`` (JWT access token)

This module only moves frames: it authenticates through the hub, queues every
inbound event on the session and pumps each session's outbox to its socket.
Room bookkeeping lives in the hub, not in Socket.IO rooms.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import parse_qs

import socketio
from django.conf import settings
from socketio import exceptions as sio_exceptions

from baycation.realtime.commands import INBOUND_EVENTS
from baycation.realtime.exceptions import AuthError
from baycation.realtime.exceptions import TokenExpiredError
from baycation.realtime.hub import get_hub
from baycation.realtime.sessions import CLOSE

logger = logging.getLogger(__name__)


_origins = list(settings.REALTIME_CORS_ALLOWED_ORIGINS)

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*" if "*" in _origins else _origins,
    logger=False,
    engineio_logger=False,
)

hub = get_hub()

_reaper: dict[str, Any] = {"started": False}


def _extract_token(environ: dict[str, Any], auth: Any | None) -> str | None:
    """Extract JWT token from Socket.IO environ/auth."""

    scope: Any = environ
    if isinstance(environ, dict) and isinstance(environ.get("asgi.scope"), dict):
        scope = environ["asgi.scope"]

    query_string: str | bytes = ""
    if isinstance(scope, dict):
        query_string = scope.get("query_string") or scope.get("QUERY_STRING") or ""
    if isinstance(query_string, (bytes, bytearray)):
        query_string = query_string.decode(errors="ignore")

    token = parse_qs(str(query_string)).get("token", [None])[0]
    if isinstance(token, str) and token:
        return token

    # Allow `auth: { token }` as fallback.
    if isinstance(auth, dict):
        auth_token = auth.get("token")
        if isinstance(auth_token, str) and auth_token:
            return auth_token

    return None


async def _pump(session) -> None:
    """Write a session's outbound events to its socket until it closes."""

    while True:
        item = await session.outbox.get()
        if item is CLOSE:
            break
        event, payload = item
        await sio.emit(event, payload, to=session.session_id)


async def _reap_forever() -> None:
    interval = settings.REALTIME_REAPER_INTERVAL_SECONDS
    refresh_every = max(int(settings.REALTIME_PRESENCE_REFRESH_SECONDS // interval), 1)
    ticks = 0
    while True:
        await asyncio.sleep(interval)
        ticks += 1
        try:
            for sid in await hub.connections.reap():
                await sio.disconnect(sid)
            if ticks % refresh_every == 0:
                await hub.presence.refresh()
        except Exception:
            logger.exception("Realtime reaper pass failed")


def _ensure_reaper() -> None:
    if not _reaper["started"]:
        _reaper["started"] = True
        sio.start_background_task(_reap_forever)


@sio.event
async def connect(sid: str, environ: dict[str, Any], auth: Any | None = None):
    token = _extract_token(environ, auth)
    try:
        session = await hub.connections.connect(sid, token)
    except TokenExpiredError as exc:
        msg = "jwt_expired"
        raise sio_exceptions.ConnectionRefusedError(msg) from exc
    except AuthError as exc:
        msg = "unauthorized"
        raise sio_exceptions.ConnectionRefusedError(msg) from exc
    except Exception as exc:
        logger.exception("Socket.IO connect error")
        msg = "server_error"
        raise sio_exceptions.ConnectionRefusedError(msg) from exc

    await sio.save_session(sid, {"user_id": session.user_id})
    sio.start_background_task(_pump, session)
    _ensure_reaper()


@sio.event
async def disconnect(sid: str, reason: Any = None):
    await hub.connections.disconnect(sid, reason=str(reason or ""))


def _register(event: str) -> None:
    async def handler(sid: str, data: Any = None):
        return await hub.connections.submit(sid, event, data)

    handler.__name__ = f"on_{event}"
    sio.on(event, handler)


for _event in INBOUND_EVENTS:
    _register(_event)
