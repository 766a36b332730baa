import pytest
from asgiref.sync import async_to_sync
from django.db import DatabaseError

from baycation.chat import services as chat_services
from baycation.chat.models import ChatParticipant
from baycation.realtime.exceptions import AlreadyAnswered
from baycation.realtime.exceptions import AuthorizationError
from baycation.realtime.exceptions import TransientStoreError
from baycation.realtime.rooms import chat_room
from baycation.realtime.rooms import trip_room
from baycation.realtime.stores import DjangoChatStore
from baycation.realtime.stores import DjangoIdentityStore
from baycation.realtime.stores import DjangoPresenceStore
from baycation.realtime.stores import DjangoTripStore
from baycation.trips.models import Trip
from tests.factories import add_participant
from tests.factories import make_trip
from tests.factories import make_user

pytestmark = pytest.mark.django_db(transaction=True)


def test_identity_lookup_skips_inactive_users():
    olga = make_user("olga")
    gone = make_user("gone", is_active=False)
    store = DjangoIdentityStore()
    identity = async_to_sync(store.find_user_by_id)(olga.pk)
    assert identity.user_id == olga.pk
    assert identity.name == "Olga"
    assert async_to_sync(store.find_user_by_id)(gone.pk) is None


def test_presence_is_written_to_the_user_row():
    olga = make_user("olga")
    async_to_sync(DjangoPresenceStore().set_presence)(olga.pk, is_online=True)
    olga.refresh_from_db()
    assert olga.is_online is True
    assert olga.last_seen is not None


def test_trip_membership_snapshot():
    olga, marco = make_user("olga"), make_user("marco")
    trip = make_trip(olga, allow_itinerary_editing=False)
    add_participant(trip, marco)
    store = DjangoTripStore()

    membership = async_to_sync(store.find_trip_by_id)(trip.pk)
    assert membership.room.name == f"trip_{trip.pk}"
    assert membership.is_member(marco.pk)
    assert membership.allow_itinerary_editing is False
    assert [t.trip_id for t in async_to_sync(store.find_trips_for_user)(marco.pk)] == [
        trip.pk
    ]
    assert async_to_sync(store.find_trip_by_id)(trip.pk + 1000) is None


def test_trip_room_messages_land_in_the_trip_chat():
    olga, marco = make_user("olga"), make_user("marco")
    trip = make_trip(olga)
    add_participant(trip, marco)

    message = async_to_sync(DjangoChatStore().append_message)(
        trip_room(trip.pk), marco.pk, "tickets booked", "text"
    )

    assert message["content"] == "tickets booked"
    assert message["sender"]["id"] == marco.pk
    trip.refresh_from_db()
    assert trip.last_activity is not None
    assert ChatParticipant.objects.get(chat=trip.chat, user=olga).unread_count == 1


def test_trip_room_messages_respect_the_discussion_flag():
    olga = make_user("olga")
    trip = make_trip(olga)
    Trip.objects.filter(pk=trip.pk).update(allow_discussions=False)
    with pytest.raises(AuthorizationError):
        async_to_sync(DjangoChatStore().append_message)(
            trip_room(trip.pk), olga.pk, "anyone?", "text"
        )


def test_question_answered_through_the_store():
    olga, marco = make_user("olga"), make_user("marco")
    chat, _ = chat_services.get_or_create_direct_chat(olga, marco.pk)
    store = DjangoChatStore()
    question = async_to_sync(store.append_message)(
        chat_room(chat.pk), olga.pk, "Window or aisle?", "question"
    )

    ref = async_to_sync(store.find_message)(question["id"])
    assert ref.message_type == "question"
    assert ref.room.name == f"chat_{chat.pk}"

    answer = async_to_sync(store.answer_question)(question["id"], marco.pk, "Window")
    assert answer["reply_to"] == question["id"]
    with pytest.raises(AlreadyAnswered):
        async_to_sync(store.answer_question)(question["id"], olga.pk, "Aisle")

    assert async_to_sync(store.mark_read)(chat.pk, olga.pk) == 1


def test_database_errors_surface_as_transient(monkeypatch):
    def broken(*args, **kwargs):
        raise DatabaseError("connection reset")

    monkeypatch.setattr("baycation.trips.services.trips_for_user", broken)
    with pytest.raises(TransientStoreError):
        async_to_sync(DjangoTripStore().find_trips_for_user)(1)
