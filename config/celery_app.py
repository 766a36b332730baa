import os

from celery import Celery
from celery.signals import setup_logging

# Tests and local dev set DJANGO_SETTINGS_MODULE explicitly, so this default
# only applies to deployed workers.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.production")

app = Celery("baycation")

# namespace='CELERY' means all celery-related configuration keys
# should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")


@setup_logging.connect
def config_loggers(*args, **kwargs):
    from logging.config import dictConfig  # noqa: PLC0415

    from django.conf import settings  # noqa: PLC0415

    dictConfig(settings.LOGGING)


app.autodiscover_tasks()
