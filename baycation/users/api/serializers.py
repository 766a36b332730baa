from rest_framework import serializers

from baycation.users.models import User


class UserSerializer(serializers.ModelSerializer[User]):
    display_name = serializers.CharField(read_only=True)

    # Presence is maintained by the realtime layer only.
    is_online = serializers.BooleanField(read_only=True)
    last_seen = serializers.DateTimeField(read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "name",
            "display_name",
            "email",
            "role",
            "is_online",
            "last_seen",
        ]
        read_only_fields = ["id", "username", "email", "role"]


class UserSummarySerializer(serializers.ModelSerializer[User]):
    """Compact user shape embedded in chat and trip payloads."""

    display_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = ["id", "username", "display_name", "is_online", "last_seen"]
        read_only_fields = fields
