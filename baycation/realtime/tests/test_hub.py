import datetime as dt

import pytest
from django.utils import timezone

from baycation.realtime import events
from baycation.realtime.hub import get_hub
from baycation.realtime.sessions import Session
from baycation.realtime.tasks import sweep_stale_presence
from baycation.users.models import User
from tests.factories import make_user


def subscribe(hub, user_id: int, room: str) -> Session:
    session = Session(session_id=f"s{user_id}", user_id=user_id)
    hub.registry.join(session, room)
    return session


def test_publishers_reach_room_subscribers_only(realtime_hub):
    member = subscribe(realtime_hub, 1, "trip_5")
    other = subscribe(realtime_hub, 2, "trip_6")

    assert get_hub() is realtime_hub
    assert events.emit_event_to_room("trip_5", "userJoined", {"tripId": 5}) == 1
    assert member.drain() == [("userJoined", {"tripId": 5})]
    assert other.drain() == []


def test_eviction_tells_the_evicted_session(realtime_hub):
    session = subscribe(realtime_hub, 7, "chat_3")

    assert events.evict_user_from_room("chat_3", 7) == 1
    assert session.drain() == [
        ("leftChat", {"roomId": "chat_3", "chatId": 3, "reason": "removed"})
    ]
    assert realtime_hub.registry.subscribers("chat_3") == frozenset()
    assert events.evict_user_from_room("chat_3", 7) == 0


@pytest.mark.django_db
def test_sweep_marks_stale_users_offline(settings):
    settings.PRESENCE_STALE_AFTER_MINUTES = 10
    stale = make_user("stale", is_online=True)
    fresh = make_user("fresh", is_online=True)
    never = make_user("never", is_online=True)
    now = timezone.now()
    User.objects.filter(pk=stale.pk).update(last_seen=now - dt.timedelta(minutes=30))
    User.objects.filter(pk=fresh.pk).update(last_seen=now)
    User.objects.filter(pk=never.pk).update(last_seen=None)

    assert sweep_stale_presence() == 2
    online = User.objects.filter(is_online=True).values_list("username", flat=True)
    assert list(online) == ["fresh"]
