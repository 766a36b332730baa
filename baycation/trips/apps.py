from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class TripsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "baycation.trips"
    verbose_name = _("Trips")
