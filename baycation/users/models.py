from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import CharField
from django.db.models import EmailField
from django.utils.translation import gettext_lazy as _


class User(AbstractUser):
    """
    Default custom user model for baycation.

    ``is_online`` and ``last_seen`` are owned by the realtime presence tracker;
    the rest of the system only reads them.
    """

    class Role(models.TextChoices):
        TRAVELER = "traveler", _("Traveler")
        GUIDE = "guide", _("Guide")
        ADMIN = "admin", _("Admin")

    # First and last name do not cover name patterns around the globe
    name = CharField(_("Name of User"), blank=True, max_length=255)
    email = EmailField(_("email address"), unique=True)
    role = CharField(
        _("Role"),
        max_length=20,
        choices=Role.choices,
        default=Role.TRAVELER,
    )
    # Presence
    is_online = models.BooleanField(default=False)
    last_seen = models.DateTimeField(null=True, blank=True)
    # Audit timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def display_name(self) -> str:
        return self.name or self.get_full_name() or self.username

    @property
    def is_admin(self) -> bool:
        return bool(self.is_staff or self.role == self.Role.ADMIN)
