from __future__ import annotations

from django.db import transaction
from django.db.models import Q
from drf_spectacular.utils import OpenApiParameter
from drf_spectacular.utils import extend_schema
from drf_spectacular.utils import extend_schema_view
from rest_framework import mixins
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from baycation.chat import services as chat_services
from baycation.chat.api.serializers import MessageSerializer
from baycation.realtime.exceptions import AuthorizationError
from baycation.realtime.events import trips as trip_events
from baycation.trips import services
from baycation.trips.models import Trip

from .serializers import ItinerarySerializer
from .serializers import TripSerializer

_ANSWERED_FILTERS = {"true": True, "false": False, "all": None}


@extend_schema_view(
    list=extend_schema(tags=["Trips"]),
    retrieve=extend_schema(tags=["Trips"]),
    create=extend_schema(tags=["Trips"]),
)
class TripViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    GenericViewSet,
):
    """Trips visible to the caller.

    Approved trips are public; unapproved ones are visible to their organizer
    and to admins only. Membership changes made here are pushed to the trip's
    realtime room once the transaction commits.
    """

    serializer_class = TripSerializer

    def get_queryset(self):
        qs = Trip.objects.select_related("organizer").prefetch_related(
            "participants__user"
        )
        if getattr(self, "swagger_fake_view", False):
            return qs.none()
        user = self.request.user
        if user.is_admin:
            return qs
        return qs.filter(Q(is_approved=True) | Q(organizer=user))

    def perform_create(self, serializer):
        serializer.save(organizer=self.request.user)

    @extend_schema(tags=["Trips"], request=None, responses=TripSerializer)
    @action(detail=True, methods=["post"])
    def join(self, request, pk=None):
        trip = services.join_trip(pk, request.user)
        chat_services.seat_trip_chat_participant(trip, request.user.pk)
        transaction.on_commit(lambda: trip_events.publish_user_joined(trip, request.user))
        return Response(self._trip_data(trip), status=status.HTTP_200_OK)

    @extend_schema(tags=["Trips"], request=None, responses=TripSerializer)
    @action(detail=True, methods=["post"])
    def leave(self, request, pk=None):
        trip = services.leave_trip(pk, request.user)
        chat_services.drop_trip_chat_participant(trip, request.user.pk)
        transaction.on_commit(lambda: trip_events.publish_user_left(trip, request.user))
        return Response(self._trip_data(trip), status=status.HTTP_200_OK)

    @extend_schema(tags=["Trips"], request=None, responses=TripSerializer)
    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):
        trip = services.approve_trip(pk, request.user)
        transaction.on_commit(lambda: trip_events.publish_trip_created(trip))
        return Response(self._trip_data(trip), status=status.HTTP_200_OK)

    @extend_schema(tags=["Trips"], request=ItinerarySerializer, responses=TripSerializer)
    @action(detail=True, methods=["put"])
    def itinerary(self, request, pk=None):
        serializer = ItinerarySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        trip = services.replace_itinerary(
            pk, data["itinerary"], request.user, data.get("version")
        )
        change_info = data.get("change_info")
        transaction.on_commit(
            lambda: trip_events.publish_itinerary_updated(
                trip, request.user, change_info
            )
        )
        return Response(self._trip_data(trip), status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Trips"],
        parameters=[
            OpenApiParameter("answered", str, enum=["true", "false", "all"]),
        ],
        responses=MessageSerializer(many=True),
    )
    @action(detail=True, methods=["get"])
    def questions(self, request, pk=None):
        trip = services.get_trip(pk)
        if not services.is_trip_member(trip, request.user.pk):
            msg = "Only trip members can view questions"
            raise AuthorizationError(msg)
        raw = request.query_params.get("answered", "all").lower()
        if raw not in _ANSWERED_FILTERS:
            raise ValidationError({"answered": "Use true, false or all."})
        qs = chat_services.list_questions(trip, _ANSWERED_FILTERS[raw])
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(MessageSerializer(page, many=True).data)
        return Response(MessageSerializer(qs, many=True).data)

    def _trip_data(self, trip: Trip) -> dict:
        trip = self.get_queryset().get(pk=trip.pk)
        return TripSerializer(trip, context=self.get_serializer_context()).data
