import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Q
from django.utils import timezone

logger = logging.getLogger(__name__)


@shared_task(name="realtime.sweep_stale_presence")
def sweep_stale_presence() -> int:
    """Mark users offline whose online flag outlived the process that set it.

    Live sessions refresh ``last_seen`` periodically, so a stale timestamp
    means the connection is gone without a disconnect being recorded.
    """

    cutoff = timezone.now() - timedelta(minutes=settings.PRESENCE_STALE_AFTER_MINUTES)
    swept = (
        get_user_model()
        .objects.filter(is_online=True)
        .filter(Q(last_seen__lt=cutoff) | Q(last_seen__isnull=True))
        .update(is_online=False)
    )
    if swept:
        logger.info("Marked %d stale users offline", swept)
    return swept
