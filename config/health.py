from __future__ import annotations

from typing import Any

import redis
from django.conf import settings
from django.db import connection
from django.http import JsonResponse

from baycation.realtime.hub import get_hub


def check_db() -> dict[str, Any]:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1;")
            cursor.fetchone()
    except Exception as exc:  # noqa: BLE001
        return {"ok": False, "error": str(exc)}
    return {"ok": True}


def check_redis() -> dict[str, Any]:
    url = getattr(settings, "REDIS_URL", None)
    if not url:
        return {"ok": False, "error": "REDIS_URL not configured"}
    try:
        redis.Redis.from_url(url, socket_timeout=0.5, socket_connect_timeout=0.5).ping()
    except Exception as exc:  # noqa: BLE001
        return {"ok": False, "error": str(exc)}
    return {"ok": True}


def realtime_stats() -> dict[str, int]:
    """Live sessions and rooms of this process only."""

    hub = get_hub()
    return {
        "sessions": len(hub.connections.sessions()),
        "rooms": len(hub.registry.rooms()),
        "online_users": len(hub.presence.online_user_ids()),
    }


def health(request):
    components = {"db": check_db(), "redis": check_redis()}
    oks = [c["ok"] for c in components.values()]
    if all(oks):
        status = "ok"
    elif any(oks):
        status = "degraded"
    else:
        status = "down"
    return JsonResponse(
        {"status": status, "components": components, "realtime": realtime_stats()},
        status=200 if all(oks) else 503,
    )
