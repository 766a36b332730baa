from __future__ import annotations

from rest_framework import serializers

from baycation.trips.models import Trip
from baycation.trips.models import TripParticipant
from baycation.users.api.serializers import UserSummarySerializer


class TripParticipantSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)

    class Meta:
        model = TripParticipant
        fields = ("user", "status", "joined_at")
        read_only_fields = fields


class TripSerializer(serializers.ModelSerializer):
    organizer = UserSummarySerializer(read_only=True)
    participants = TripParticipantSerializer(many=True, read_only=True)

    class Meta:
        model = Trip
        fields = (
            "id",
            "title",
            "description",
            "destination",
            "organizer",
            "participants",
            "start_date",
            "end_date",
            "max_participants",
            "current_participants",
            "status",
            "is_approved",
            "approved_at",
            "itinerary",
            "itinerary_version",
            "allow_discussions",
            "allow_itinerary_editing",
            "last_activity",
            "created_at",
            "updated_at",
        )
        read_only_fields = (
            "id",
            "organizer",
            "participants",
            "current_participants",
            "status",
            "is_approved",
            "approved_at",
            "itinerary",
            "itinerary_version",
            "last_activity",
            "created_at",
            "updated_at",
        )

    def validate(self, attrs):
        start = attrs.get("start_date", getattr(self.instance, "start_date", None))
        end = attrs.get("end_date", getattr(self.instance, "end_date", None))
        if start and end and end <= start:
            raise serializers.ValidationError(
                {"end_date": "End date must be after start date."}
            )
        return attrs


class ItinerarySerializer(serializers.Serializer):
    itinerary = serializers.ListField(child=serializers.DictField())
    version = serializers.IntegerField(required=False, allow_null=True)
    change_info = serializers.DictField(required=False, allow_null=True)
