from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator
from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _


class Trip(models.Model):
    class Status(models.TextChoices):
        PLANNING = "planning", _("Planning")
        OPEN = "open", _("Open")
        FULL = "full", _("Full")
        ONGOING = "ongoing", _("Ongoing")
        COMPLETED = "completed", _("Completed")
        CANCELLED = "cancelled", _("Cancelled")

    title = models.CharField(max_length=100)
    description = models.TextField(max_length=1000)
    destination = models.CharField(max_length=255)
    organizer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="organized_trips",
    )
    start_date = models.DateField()
    end_date = models.DateField()
    max_participants = models.PositiveIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(50)],
    )
    current_participants = models.PositiveIntegerField(default=0)
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.PLANNING
    )

    # Approval workflow
    is_approved = models.BooleanField(default=False)
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_trips",
    )

    # Collaboration
    itinerary = models.JSONField(default=list, blank=True)
    itinerary_version = models.PositiveIntegerField(default=0)
    allow_discussions = models.BooleanField(default=True)
    allow_itinerary_editing = models.BooleanField(default=True)
    last_activity = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.title

    def clean(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValidationError(_("End date must be after start date."))

    def update_participant_count(self) -> None:
        """Recount confirmed participants and flip between open/full."""

        self.current_participants = self.participants.filter(
            status=TripParticipant.Status.CONFIRMED
        ).count()
        if self.current_participants >= self.max_participants:
            self.status = self.Status.FULL
        elif self.status == self.Status.FULL:
            self.status = self.Status.OPEN


class TripParticipant(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        CONFIRMED = "confirmed", _("Confirmed")
        CANCELLED = "cancelled", _("Cancelled")

    trip = models.ForeignKey(Trip, on_delete=models.CASCADE, related_name="participants")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="trip_memberships",
    )
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.PENDING
    )
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["trip", "user"], name="uniq_trip_participant"
            ),
        ]

    def __str__(self):
        return f"{self.user_id} @ {self.trip_id} ({self.status})"
