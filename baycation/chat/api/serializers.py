from __future__ import annotations

from rest_framework import serializers

from baycation.chat.models import Chat
from baycation.chat.models import ChatParticipant
from baycation.chat.models import Message
from baycation.realtime.rooms import room_for_chat_record
from baycation.users.api.serializers import UserSummarySerializer


class ChatParticipantSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)

    class Meta:
        model = ChatParticipant
        fields = ("user", "role", "joined_at", "last_seen")
        read_only_fields = fields


class LastMessageSerializer(serializers.Serializer):
    content = serializers.CharField(source="last_message_content")
    sender = serializers.IntegerField(source="last_message_sender_id", allow_null=True)
    timestamp = serializers.DateTimeField(source="last_message_at", allow_null=True)
    message_type = serializers.CharField(source="last_message_type")


class ChatSerializer(serializers.ModelSerializer):
    """Read serializer for chats, including the denormalized last message."""

    participants = ChatParticipantSerializer(many=True, read_only=True)
    last_message = serializers.SerializerMethodField()
    unread_count = serializers.SerializerMethodField()
    room = serializers.SerializerMethodField()

    class Meta:
        model = Chat
        fields = (
            "id",
            "chat_type",
            "title",
            "trip",
            "is_active",
            "participants",
            "last_message",
            "unread_count",
            "room",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_last_message(self, obj: Chat) -> dict | None:
        if obj.last_message_at is None:
            return None
        return LastMessageSerializer(obj).data

    def get_unread_count(self, obj: Chat) -> dict[str, int]:
        # JSON object keys are strings.
        return {
            str(p.user_id): p.unread_count for p in obj.participants.all()
        }

    def get_room(self, obj: Chat) -> str:
        return room_for_chat_record(obj.chat_type, obj.pk, obj.trip_id)


class MessageSerializer(serializers.ModelSerializer):
    """Wire shape of a message, shared by HTTP responses and socket events."""

    sender = UserSummarySerializer(read_only=True)
    read_by = serializers.SerializerMethodField()
    reactions = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = (
            "id",
            "chat",
            "sender",
            "content",
            "message_type",
            "attachments",
            "reply_to",
            "is_edited",
            "edited_at",
            "is_answered",
            "answered_by",
            "answered_at",
            "priority",
            "metadata",
            "read_by",
            "reactions",
            "created_at",
        )
        read_only_fields = fields

    def get_read_by(self, obj: Message) -> list[dict]:
        return [
            {"user": r.user_id, "read_at": r.read_at.isoformat()}
            for r in obj.read_receipts.all()
        ]

    def get_reactions(self, obj: Message) -> list[dict]:
        return [{"user": r.user_id, "emoji": r.emoji} for r in obj.reactions.all()]


class DirectChatCreateSerializer(serializers.Serializer):
    participant_id = serializers.IntegerField()


class MessageCreateSerializer(serializers.Serializer):
    content = serializers.CharField(trim_whitespace=False, allow_blank=True)
    message_type = serializers.CharField(required=False, default=Message.Type.TEXT)


class MessageEditSerializer(serializers.Serializer):
    content = serializers.CharField(trim_whitespace=False, allow_blank=True)


class ReactionSerializer(serializers.Serializer):
    emoji = serializers.CharField(max_length=32)


class AnswerSerializer(serializers.Serializer):
    answer = serializers.CharField(trim_whitespace=False, allow_blank=True)
