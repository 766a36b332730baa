from django.contrib import admin

from baycation.trips import models


class TripParticipantInline(admin.TabularInline):
    model = models.TripParticipant
    extra = 0


@admin.register(models.Trip)
class TripAdmin(admin.ModelAdmin):
    list_display = ["id", "title", "organizer", "status", "is_approved"]
    search_fields = ["title", "destination"]
    list_filter = ["status", "is_approved", "created_at"]
    inlines = [TripParticipantInline]
