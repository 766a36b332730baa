"""Trip membership rules and the state changes that feed trip rooms."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from typing import Any

from django.db import transaction
from django.db.models import F
from django.db.models import Q
from django.utils import timezone

from baycation.realtime.exceptions import AlreadyJoined
from baycation.realtime.exceptions import AuthorizationError
from baycation.realtime.exceptions import ConflictError
from baycation.realtime.exceptions import NotFoundError
from baycation.realtime.exceptions import ValidationError
from baycation.trips.models import Trip
from baycation.trips.models import TripParticipant

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from baycation.users.models import User

logger = logging.getLogger(__name__)

_CLOSED_STATUSES = (Trip.Status.COMPLETED, Trip.Status.CANCELLED)


def trips_for_user(user_id: int) -> QuerySet[Trip]:
    """Trips the user organizes or is a confirmed participant of."""

    return Trip.objects.filter(
        Q(organizer_id=user_id)
        | Q(
            participants__user_id=user_id,
            participants__status=TripParticipant.Status.CONFIRMED,
        )
    ).distinct()


def is_trip_member(trip: Trip, user_id: int) -> bool:
    if trip.organizer_id == user_id:
        return True
    return trip.participants.filter(
        user_id=user_id, status=TripParticipant.Status.CONFIRMED
    ).exists()


def member_ids(trip: Trip) -> set[int]:
    """Organizer plus confirmed participants."""

    ids = set(
        trip.participants.filter(
            status=TripParticipant.Status.CONFIRMED
        ).values_list("user_id", flat=True)
    )
    ids.add(trip.organizer_id)
    return ids


def get_trip(trip_id: Any) -> Trip:
    try:
        return Trip.objects.get(pk=int(trip_id))
    except (TypeError, ValueError, Trip.DoesNotExist):
        msg = "Trip not found"
        raise NotFoundError(msg) from None


@transaction.atomic
def join_trip(trip_id: Any, user: User) -> Trip:
    trip = get_trip(trip_id)
    trip = Trip.objects.select_for_update().get(pk=trip.pk)

    if not trip.is_approved:
        msg = "This trip is pending approval and not open for joining yet"
        raise ValidationError(msg)
    if trip.status in _CLOSED_STATUSES:
        msg = "This trip is not accepting participants"
        raise ValidationError(msg)
    if trip.organizer_id == user.pk:
        msg = "You cannot join your own trip"
        raise ValidationError(msg)

    participant = trip.participants.filter(user=user).first()
    if participant and participant.status == TripParticipant.Status.CONFIRMED:
        raise AlreadyJoined
    if trip.current_participants >= trip.max_participants:
        msg = "Trip is full"
        raise ValidationError(msg)

    if participant is None:
        TripParticipant.objects.create(
            trip=trip, user=user, status=TripParticipant.Status.CONFIRMED
        )
    else:
        # Re-joining after a cancellation re-confirms the existing row.
        participant.status = TripParticipant.Status.CONFIRMED
        participant.save(update_fields=["status"])

    trip.update_participant_count()
    trip.last_activity = timezone.now()
    trip.save(
        update_fields=["current_participants", "status", "last_activity", "updated_at"]
    )
    logger.info("User %s joined trip %s", user.pk, trip.pk)
    return trip


@transaction.atomic
def leave_trip(trip_id: Any, user: User) -> Trip:
    trip = get_trip(trip_id)
    trip = Trip.objects.select_for_update().get(pk=trip.pk)
    if trip.organizer_id == user.pk:
        msg = "Trip organizer cannot leave the trip. Delete the trip instead."
        raise ValidationError(msg)

    updated = trip.participants.filter(user=user).exclude(
        status=TripParticipant.Status.CANCELLED
    ).update(status=TripParticipant.Status.CANCELLED)
    if not updated:
        msg = "You are not a participant of this trip"
        raise NotFoundError(msg)

    trip.update_participant_count()
    trip.save(update_fields=["current_participants", "status", "updated_at"])
    logger.info("User %s left trip %s", user.pk, trip.pk)
    return trip


def approve_trip(trip_id: Any, approver: User) -> Trip:
    if not approver.is_admin:
        msg = "Admin access required"
        raise AuthorizationError(msg)
    trip = get_trip(trip_id)
    trip.is_approved = True
    trip.approved_at = timezone.now()
    trip.approved_by = approver
    if trip.status == Trip.Status.PLANNING:
        trip.status = Trip.Status.OPEN
    trip.save(
        update_fields=["is_approved", "approved_at", "approved_by", "status", "updated_at"]
    )
    return trip


def _stamp_itinerary(itinerary: Any, user_id: int) -> list[dict[str, Any]]:
    if not isinstance(itinerary, list):
        msg = "Itinerary must be a list of days"
        raise ValidationError(msg)

    now = timezone.now().isoformat()
    stamped: list[dict[str, Any]] = []
    for day in itinerary:
        if not isinstance(day, dict):
            msg = "Each itinerary day must be an object"
            raise ValidationError(msg)
        activities = day.get("activities") or []
        if not isinstance(activities, list):
            msg = "Itinerary activities must be a list"
            raise ValidationError(msg)
        stamped.append(
            {
                **day,
                "activities": [
                    {
                        **activity,
                        "addedBy": activity.get("addedBy") or user_id,
                        "addedAt": activity.get("addedAt") or now,
                    }
                    for activity in activities
                    if isinstance(activity, dict)
                ],
            }
        )
    return stamped


def replace_itinerary(
    trip_id: Any,
    itinerary: Any,
    user: User,
    expected_version: int | None = None,
) -> Trip:
    """Replace the whole itinerary document.

    Without ``expected_version`` the last writer wins. With it, the write only
    lands if nobody else replaced the itinerary in between.
    """

    trip = get_trip(trip_id)
    if not trip.allow_itinerary_editing:
        msg = "Itinerary editing not allowed"
        raise AuthorizationError(msg)
    if not is_trip_member(trip, user.pk):
        msg = "Only trip organizer or participants can update itinerary"
        raise AuthorizationError(msg)

    stamped = _stamp_itinerary(itinerary, user.pk)
    qs = Trip.objects.filter(pk=trip.pk)
    if expected_version is not None:
        qs = qs.filter(itinerary_version=expected_version)
    now = timezone.now()
    updated = qs.update(
        itinerary=stamped,
        itinerary_version=F("itinerary_version") + 1,
        last_activity=now,
        updated_at=now,
    )
    if not updated:
        msg = "Itinerary was changed by someone else; reload and retry"
        raise ConflictError(msg)
    trip.refresh_from_db()
    return trip
