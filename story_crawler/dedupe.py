from __future__ import annotations

import logging
from typing import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import Story

from .parsers import StoryCandidate

LOGGER = logging.getLogger(__name__)

# Keep IN (...) lists below SQLite's bound-parameter limit.
_URL_CHUNK_SIZE = 500


def load_synopsized_urls(session: Session, urls: Iterable[str] | None = None) -> set[str]:
    """Return URLs whose stored story already has a non-empty synopsis.

    When ``urls`` is provided only those URLs are checked.
    """

    base = select(Story.url).where(Story.synopsis.is_not(None), Story.synopsis != "")
    if urls is None:
        return {row[0] for row in session.execute(base)}

    wanted = list(dict.fromkeys(urls))
    found: set[str] = set()
    for start in range(0, len(wanted), _URL_CHUNK_SIZE):
        chunk = wanted[start : start + _URL_CHUNK_SIZE]
        found.update(row[0] for row in session.execute(base.where(Story.url.in_(chunk))))
    return found


def filter_pending(candidates: Sequence[StoryCandidate], synopsized: set[str]) -> list[StoryCandidate]:
    """Drop candidates that already have a synopsis or repeat an earlier URL."""

    pending: list[StoryCandidate] = []
    seen: set[str] = set()
    skipped_existing = 0
    skipped_duplicate = 0
    for candidate in candidates:
        if candidate.url in seen:
            skipped_duplicate += 1
            continue
        seen.add(candidate.url)
        if candidate.url in synopsized:
            skipped_existing += 1
            continue
        pending.append(candidate)

    LOGGER.info(
        "Filtered %d candidates: pending=%d skipped_existing=%d skipped_duplicate=%d",
        len(candidates),
        len(pending),
        skipped_existing,
        skipped_duplicate,
    )
    return pending
