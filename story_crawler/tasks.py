"""Celery task wrapping the scheduled ingestion pass."""

from __future__ import annotations

import logging

from .celery_app import INGESTION_TASK_NAME, celery_app
from .runner import run_ingestion_pass

LOGGER = logging.getLogger(__name__)


# No autoretry: a failed pass is retried by the next beat trigger.
@celery_app.task(name=INGESTION_TASK_NAME, ignore_result=True)
def run_ingestion_pass_task() -> None:
    LOGGER.info("Scheduled trigger fired: running the ingestion pass")
    run_ingestion_pass()


__all__ = ["run_ingestion_pass_task"]
