"""Rate-limited synopsis fetching for individual stories."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import httpx

from .config import DEFAULT_SYNOPSIS_SELECTOR
from .parsers import StoryCandidate, StoryRecord
from .provider import ProviderError, RenderScrapeClient

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SynopsisStats:
    fetched: int = 0
    empty: int = 0
    failed: int = 0


class SynopsisFetcher:
    """Fetch one story's synopsis at a time, sleeping before each request."""

    def __init__(
        self,
        client: RenderScrapeClient,
        *,
        delay: float,
        sleep: Callable[[float], None] = time.sleep,
        selector: str = DEFAULT_SYNOPSIS_SELECTOR,
        failure_log: Path | None = None,
    ) -> None:
        self._client = client
        self._delay = max(0.0, float(delay))
        self._sleep = sleep
        self._selector = selector
        self._failure_log = failure_log
        self.stats = SynopsisStats()

    def fetch(self, candidate: StoryCandidate) -> StoryRecord:
        if self._delay > 0:
            LOGGER.debug("Waiting %.1fs before fetching synopsis for %s", self._delay, candidate.url)
            self._sleep(self._delay)

        try:
            fragments = self._client.scrape(candidate.url, [self._selector])
        except (ProviderError, httpx.HTTPError) as exc:
            LOGGER.error("Failed to scrape synopsis for %s (%s): %s", candidate.title, candidate.url, exc)
            self.stats.failed += 1
            self._record_failure(candidate, exc)
            return StoryRecord.from_candidate(candidate, "")

        synopsis = fragments[0].text.strip() if fragments else ""
        if synopsis:
            self.stats.fetched += 1
        else:
            self.stats.empty += 1
            LOGGER.info("No synopsis section found for %s", candidate.url)
        return StoryRecord.from_candidate(candidate, synopsis)

    def _record_failure(self, candidate: StoryCandidate, exc: Exception) -> None:
        if self._failure_log is None:
            return

        payload = {
            "url": candidate.url,
            "title": candidate.title,
            "error": str(exc),
            "error_type": type(exc).__name__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self._failure_log.parent.mkdir(parents=True, exist_ok=True)
            with self._failure_log.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(payload, ensure_ascii=False) + "\n")
        except OSError as file_error:  # pragma: no cover - filesystem failure path
            LOGGER.warning("Failed to record synopsis failure for %s: %s", candidate.url, file_error)
