"""Celery application and beat schedule for the ingestion trigger."""

from __future__ import annotations

import os
from typing import Optional

from celery import Celery
from celery.schedules import crontab

DEFAULT_SCRAPE_SCHEDULE = "0 * * * *"
INGESTION_TASK_NAME = "story_crawler.run_ingestion_pass"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _sqla_broker_from_db(db_url: Optional[str]) -> Optional[str]:
    if not db_url:
        return None
    return db_url if db_url.startswith("sqla+") else f"sqla+{db_url}"


def parse_cron_schedule(expression: str) -> crontab:
    """Convert a five-field cron expression into a Celery ``crontab``."""

    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Cron schedule must have 5 fields (got {expression!r})")
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
    )


def create_celery_app() -> Celery:
    """Instantiate the Celery app with environment driven configuration."""

    broker_url = os.getenv("CRAWLER_CELERY_BROKER_URL")
    backend_url = os.getenv("CRAWLER_CELERY_RESULT_BACKEND")

    if broker_url is None:
        broker_url = _sqla_broker_from_db(os.getenv("CRAWLER_BROKER_DATABASE_URL"))
    if broker_url is None:
        broker_url = "memory://"
    if backend_url is None:
        backend_url = "cache+memory://"

    schedule = os.getenv("SCRAPE_SCHEDULE", DEFAULT_SCRAPE_SCHEDULE).strip() or DEFAULT_SCRAPE_SCHEDULE

    app = Celery("story_crawler", broker=broker_url, backend=backend_url, include=["story_crawler.tasks"])
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        task_always_eager=_env_bool("CRAWLER_CELERY_TASK_ALWAYS_EAGER", False),
        worker_prefetch_multiplier=1,
        broker_connection_retry_on_startup=True,
        beat_schedule={
            "scheduled-story-ingestion": {
                "task": INGESTION_TASK_NAME,
                "schedule": parse_cron_schedule(schedule),
            }
        },
    )
    return app


celery_app = create_celery_app()


__all__ = ["celery_app", "create_celery_app", "parse_cron_schedule"]
