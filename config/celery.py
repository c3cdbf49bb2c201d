import os

from celery import Celery
from celery.schedules import crontab  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("screen_reservations")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Accepted -> live on booked days - every hour
    "start-live-reservations": {
        "task": "reservations.start_live_reservations",
        "schedule": crontab(minute=0),
    },
    # Live -> completed after the last booked day - every hour
    "complete-finished-reservations": {
        "task": "reservations.complete_finished_reservations",
        "schedule": crontab(minute=15),
    },
    # Failed compensating refunds - every 30 minutes
    "retry-failed-refunds": {
        "task": "reservations.retry_failed_refunds",
        "schedule": crontab(minute="*/30"),
    },
}
