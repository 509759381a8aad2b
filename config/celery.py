import os

from celery import Celery
from celery.schedules import crontab  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("ebt_booking_core")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Paid bookings whose provider order failed - every 5 minutes
    "reconcile-unconfirmed-orders": {
        "task": "bookings.reconcile_unconfirmed_orders",
        "schedule": 300.0,
        "options": {"expires": 240},
    },
    # Bookings that never reached payment - every hour
    "expire-abandoned-bookings": {
        "task": "bookings.expire_abandoned_bookings",
        "schedule": crontab(minute=30),
    },
    # Vouchers past their expiry date - daily
    "expire-vouchers": {
        "task": "vouchers.expire_vouchers",
        "schedule": crontab(minute=0, hour=3),
    },
}

app.conf.timezone = "UTC"
