import asyncio

import pytest
from asgiref.sync import async_to_sync

from baycation.realtime.exceptions import AuthError
from baycation.realtime.stores import ChatMembership
from baycation.realtime.stores import TripMembership
from baycation.realtime.stores import UserIdentity
from baycation.realtime.tests.fakes import FakeClock
from baycation.realtime.tests.fakes import build_hub
from baycation.realtime.tests.fakes import events

USERS = [UserIdentity(1, "Olga"), UserIdentity(2, "Marco"), UserIdentity(3, "Nadia")]
TRIPS = [
    TripMembership(10, 1, frozenset({2})),
    TripMembership(12, 3, frozenset()),
]
CHATS = [
    ChatMembership(20, "direct", frozenset({1, 2})),
    ChatMembership(21, "direct", frozenset({1, 3}), is_active=False),
]


def run(scenario):
    return async_to_sync(scenario)()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def hub(clock):
    return build_hub(
        users=USERS, trips=TRIPS, chats=CHATS, clock=clock, idle_timeout=120
    )


@pytest.mark.parametrize("credential", [None, "", "token-99", "bearer-1"])
def test_refused_connection_leaves_no_trace(hub, credential):
    async def scenario():
        with pytest.raises(AuthError):
            await hub.connections.connect("s1", credential)

    run(scenario)
    assert hub.connections.sessions() == []
    assert hub.presence_store.writes == []
    assert hub.registry.rooms() == {}


def test_connect_joins_entitled_rooms_silently(hub):
    async def scenario():
        olga = await hub.connections.connect("s1", "token-1")
        marco = await hub.connections.connect("s2", "token-2")
        return olga, marco

    olga, marco = run(scenario)
    assert olga.rooms == {"trip_10", "chat_20"}
    assert marco.rooms == {"trip_10", "chat_20"}
    assert events(olga) == []
    assert hub.presence_store.online == {1: True, 2: True}


def test_auto_join_can_be_limited_to_trips(clock):
    hub = build_hub(
        users=USERS, trips=TRIPS, chats=CHATS, clock=clock, auto_join_chats=False
    )

    async def scenario():
        return await hub.connections.connect("s1", "token-1")

    assert run(scenario).rooms == {"trip_10"}


def test_connect_survives_a_store_outage_without_rooms(hub):
    hub.trip_store.fail = True

    async def scenario():
        return await hub.connections.connect("s2", "token-2")

    marco = run(scenario)
    assert marco.rooms == set()
    assert hub.connections.get("s2") is marco


def test_unexpected_failure_while_connecting_is_rolled_back(hub, monkeypatch):
    async def broken(user_id):
        raise RuntimeError("boom")

    monkeypatch.setattr(hub.chat_store, "find_chats_for_user", broken)

    async def scenario():
        with pytest.raises(RuntimeError):
            await hub.connections.connect("s1", "token-1")

    run(scenario)
    assert hub.connections.sessions() == []
    assert not hub.presence.is_online(1)
    assert hub.presence_store.online == {1: False}
    assert hub.registry.rooms() == {}


def test_presence_follows_the_last_session(hub):
    async def scenario():
        await hub.connections.connect("s1", "token-1")
        marco_phone = await hub.connections.connect("s2a", "token-2")
        await hub.connections.connect("s2b", "token-2")
        olga = hub.connections.get("s1")
        olga.drain()

        await hub.connections.disconnect("s2a")
        assert hub.presence.is_online(2)
        assert events(olga, "userOffline") == []
        assert marco_phone.closed

        await hub.connections.disconnect("s2b")
        return olga

    olga = run(scenario)
    assert not hub.presence.is_online(2)
    assert hub.presence_store.writes.count((2, True)) == 1
    assert hub.presence_store.writes[-1] == (2, False)
    offline = events(olga, "userOffline")
    assert [p["roomId"] for _, p in offline] == ["trip_10"]
    assert offline[0][1]["user"] == {"id": 2, "name": "Marco"}


def test_disconnect_clears_typing_for_the_rest_of_the_room(hub):
    async def scenario():
        olga = await hub.connections.connect("s1", "token-1")
        await hub.connections.connect("s2", "token-2")
        await hub.connections.submit("s2", "typing", {"chatId": 20, "isTyping": True})
        olga.drain()
        await hub.connections.disconnect("s2")
        return olga

    olga = run(scenario)
    typing = events(olga, "typingStatus")
    assert typing == [
        (
            "typingStatus",
            {
                "roomId": "chat_20",
                "chatId": 20,
                "user": {"id": 2, "name": "Marco"},
                "isTyping": False,
            },
        )
    ]


def test_submit_after_disconnect_is_refused(hub):
    async def scenario():
        await hub.connections.connect("s1", "token-1")
        await hub.connections.disconnect("s1")
        return await hub.connections.submit("s1", "typing", {"chatId": 20})

    ack = run(scenario)
    assert ack["ok"] is False
    assert ack["code"] == "unauthorized"


def test_events_from_one_sender_arrive_in_order(hub):
    async def scenario():
        olga = await hub.connections.connect("s1", "token-1")
        await hub.connections.connect("s2", "token-2")
        await asyncio.gather(
            *(
                hub.connections.submit(
                    "s2", "sendMessage", {"chatId": 20, "content": str(n)}
                )
                for n in range(5)
            )
        )
        return olga

    olga = run(scenario)
    received = [p["message"]["content"] for _, p in events(olga, "newMessage")]
    assert received == ["0", "1", "2", "3", "4"]


def test_reap_drops_idle_sessions_only(hub, clock):
    async def scenario():
        await hub.connections.connect("s1", "token-1")
        await hub.connections.connect("s2", "token-2")
        clock.advance(100)
        await hub.connections.submit("s2", "updateActivity", {})
        clock.advance(30)
        return await hub.connections.reap()

    idle = run(scenario)
    assert idle == ["s1"]
    assert hub.connections.get("s1") is None
    assert hub.connections.get("s2") is not None
    assert not hub.presence.is_online(1)


def test_reap_expires_stale_typing(clock):
    hub = build_hub(
        users=USERS, trips=TRIPS, chats=CHATS, clock=clock, typing_timeout=8
    )

    async def scenario():
        olga = await hub.connections.connect("s1", "token-1")
        await hub.connections.connect("s2", "token-2")
        await hub.connections.submit("s2", "typing", {"tripId": 10, "isTyping": True})
        olga.drain()
        clock.advance(9)
        await hub.connections.reap()
        return olga

    olga = run(scenario)
    typing = events(olga, "typingStatus")
    assert len(typing) == 1
    assert typing[0][1]["isTyping"] is False
    assert not hub.typing.is_typing(hub.connections.get("s2"), "trip_10")


def test_shutdown_closes_every_session(hub):
    async def scenario():
        await hub.connections.connect("s1", "token-1")
        await hub.connections.connect("s2", "token-2")
        await hub.connections.shutdown()

    run(scenario)
    assert hub.connections.sessions() == []
    assert hub.registry.rooms() == {}
    assert hub.presence.online_user_ids() == set()
