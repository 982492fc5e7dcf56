"""Celery application configuration for CardSearch Worker."""

import os

from celery import Celery
from celery.schedules import crontab

# Celery configuration from environment
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/2")

app = Celery(
    "cardsearch_worker",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=[
        "cardsearch_worker.tasks.index",
    ],
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Time limits (seconds); a full reindex is the long pole
    task_soft_time_limit=900,
    task_time_limit=1200,
    # Retry settings
    task_default_retry_delay=60,
    task_max_retries=3,
    # Queue routing
    task_routes={
        "index.*": {"queue": "index"},
    },
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Nightly full rebuild at 3 AM UTC picks up anything a missed event skipped
    "nightly-reindex": {
        "task": "index.reindex_all",
        "schedule": crontab(hour=3, minute=0),
        "args": (),
    },
}


if __name__ == "__main__":
    app.start()
