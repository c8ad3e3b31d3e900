"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from budgetly.core.config import settings
from budgetly.core.logging import setup_logging

celery_app = Celery(
    "budgetly",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "budgetly.tasks.recurring",
        "budgetly.tasks.goals",
    ],
)


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    """Replace Celery's default handlers with the JSON formatter."""
    setup_logging()


# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.CATCH_UP_LOCK_TIMEOUT_SECONDS,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)

# Scheduled tasks (Celery Beat)
celery_app.conf.beat_schedule = {
    # === Recurring transactions ===
    "run-recurring-catch-up": {
        "task": "budgetly.tasks.recurring.run_recurring_catch_up",
        "schedule": crontab(hour=0, minute=5),  # Every day at 00:05 UTC
    },
    "remind-upcoming-recurring": {
        "task": "budgetly.tasks.recurring.remind_upcoming_recurring",
        "schedule": crontab(hour=8, minute=0),  # Every day at 08:00 UTC
    },
    # === Goals ===
    "check-goal-milestones": {
        "task": "budgetly.tasks.goals.check_goal_milestones",
        "schedule": crontab(hour=9, minute=0),  # Every day at 09:00 UTC
    },
}
