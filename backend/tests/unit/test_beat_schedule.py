from datetime import timedelta

from celery.schedules import crontab

from beautonomi.tasks.beat_schedule import CELERYBEAT_SCHEDULE, get_beat_schedule


def test_outbox_dispatch_runs_every_minute():
    entry = CELERYBEAT_SCHEDULE["dispatch-outbox-events"]

    assert entry["task"] == "outbox.dispatch_pending"
    assert entry["schedule"] == timedelta(minutes=1)
    assert entry["options"]["queue"] == "notifications"


def test_stale_gift_card_release_runs_every_fifteen_minutes():
    entry = CELERYBEAT_SCHEDULE["release-stale-gift-card-reservations"]

    assert entry["task"] == "payments.release_stale_gift_card_reservations"
    assert isinstance(entry["schedule"], crontab)
    assert entry["options"]["queue"] == "payments"


def test_test_environment_has_no_periodic_jobs():
    assert get_beat_schedule("test") == {}
    assert set(get_beat_schedule("production")) == set(CELERYBEAT_SCHEDULE)
