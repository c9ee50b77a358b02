import os

from celery import Celery
from celery.schedules import crontab  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("reservation_engine")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Expire unpaid bookings and reclaim expired holds - every minute
    "sweep-expired-reservations": {
        "task": "bookings.sweep_expired_reservations",
        "schedule": 60.0,
        "options": {"expires": 50},
    },
    # Repair hotel ratings that missed a recompute - every hour
    "reconcile-hotel-ratings": {
        "task": "reviews.reconcile_hotel_ratings",
        "schedule": crontab(minute=30),
    },
}
