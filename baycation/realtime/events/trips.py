from __future__ import annotations

from typing import TYPE_CHECKING
from typing import Any

from baycation.realtime.events import emit_event_to_all
from baycation.realtime.events import emit_event_to_room
from baycation.realtime.events import evict_user_from_room
from baycation.realtime.rooms import trip_room

if TYPE_CHECKING:  # import for type checking only
    from baycation.trips.models import Trip
    from baycation.users.models import User


def build_user_payload(user: User) -> dict[str, Any]:
    return {"id": user.pk, "name": user.display_name}


def build_trip_payload(trip: Trip) -> dict[str, Any]:
    return {
        "id": trip.pk,
        "title": trip.title,
        "destination": trip.destination,
        "status": trip.status,
        "startDate": trip.start_date.isoformat() if trip.start_date else None,
        "endDate": trip.end_date.isoformat() if trip.end_date else None,
        "currentParticipants": trip.current_participants,
        "maxParticipants": trip.max_participants,
        "organizer": trip.organizer_id,
    }


def publish_user_joined(trip: Trip, user: User) -> None:
    room = trip_room(trip.pk)
    trip_payload = build_trip_payload(trip)
    emit_event_to_room(
        room.name,
        "userJoined",
        {**room.id_payload(), "trip": trip_payload, "user": build_user_payload(user)},
    )
    emit_event_to_all("tripUpdated", {"trip": trip_payload})


def publish_user_left(trip: Trip, user: User) -> None:
    """Announce a departure; the leaver's live sessions stop receiving the room."""

    room = trip_room(trip.pk)
    evict_user_from_room(room.name, user.pk)
    trip_payload = build_trip_payload(trip)
    emit_event_to_room(
        room.name,
        "userLeft",
        {**room.id_payload(), "trip": trip_payload, "user": build_user_payload(user)},
    )
    emit_event_to_all("tripUpdated", {"trip": trip_payload})


def publish_trip_created(trip: Trip) -> None:
    """Sent to everyone once an admin approves a trip."""

    emit_event_to_all(
        "tripCreated",
        {
            "trip": build_trip_payload(trip),
            "organizer": build_user_payload(trip.organizer),
        },
    )


def publish_itinerary_updated(
    trip: Trip,
    user: User,
    change_info: dict[str, Any] | None = None,
) -> None:
    room = trip_room(trip.pk)
    emit_event_to_room(
        room.name,
        "itineraryUpdated",
        {
            **room.id_payload(),
            "itinerary": trip.itinerary,
            "version": trip.itinerary_version,
            "updatedBy": build_user_payload(user),
            "changeInfo": change_info,
        },
    )
