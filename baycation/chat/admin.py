from django.contrib import admin

from baycation.chat import models


class ChatParticipantInline(admin.TabularInline):
    model = models.ChatParticipant
    extra = 0
    readonly_fields = ["unread_count", "last_seen"]


@admin.register(models.Chat)
class ChatAdmin(admin.ModelAdmin):
    list_display = ["id", "chat_type", "title", "trip", "is_active", "last_message_at"]
    list_filter = ["chat_type", "is_active"]
    inlines = [ChatParticipantInline]


@admin.register(models.Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ["id", "chat", "sender", "message_type", "is_deleted", "created_at"]
    list_filter = ["message_type", "is_deleted", "is_answered"]
    search_fields = ["content"]

    def get_queryset(self, request):
        # Soft-deleted rows stay reachable for audit.
        return models.Message.all_objects.select_related("chat", "sender")
