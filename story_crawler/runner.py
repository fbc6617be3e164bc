"""Orchestration of a single scheduled ingestion pass."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

from sqlalchemy.orm import sessionmaker

from .categories import CategoryDefinition, load_category_catalog
from .config import ConfigurationError, IngestConfig, load_config_from_env
from .database import build_engine, ensure_schema
from .dedupe import filter_pending, load_synopsized_urls
from .parsers import ParsingError, StoryRecord
from .parsers.listing import ListingParser
from .persistence import StoryPersistence, StoryPersistenceError
from .provider import ProviderError, RenderScrapeClient
from .scheduler import CategoryScheduler, ScheduledCategory
from .synopsis import SynopsisFetcher

LOGGER = logging.getLogger(__name__)

_RUN_LOCK = threading.Lock()


class RunStage(str, Enum):
    START = "start"
    FETCH_INDEX = "fetch_index"
    PARSE = "parse"
    FILTER = "filter"
    FETCH_SYNOPSIS = "fetch_synopsis"
    PERSIST = "persist"
    ADVANCE = "advance"
    END = "end"
    ERROR = "error"


@dataclass(slots=True)
class RunResult:
    stage: RunStage = RunStage.START
    failed_stage: RunStage | None = None
    error: str | None = None
    category_key: str | None = None
    category_index: int | None = None
    listed: int = 0
    candidates: int = 0
    pending: int = 0
    synopsis_failures: int = 0
    persisted: int = 0
    batch_sizes: list[int] = field(default_factory=list)
    advanced: bool = False

    @property
    def succeeded(self) -> bool:
        return self.stage == RunStage.END


class ScrapeRunner:
    """Runs one category pass: index, parse, filter, synopses, batches, advance.

    Any whole-category failure ends the pass in ``RunStage.ERROR`` without
    moving the rotation pointer, so the same category is retried by the next
    scheduled invocation. Exceptions never escape :meth:`run`.
    """

    def __init__(
        self,
        config: IngestConfig,
        *,
        session_factory: sessionmaker,
        categories: Sequence[CategoryDefinition],
        client: RenderScrapeClient | None = None,
        persistence: StoryPersistence | None = None,
        parser: ListingParser | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._session_factory = session_factory
        self._categories = list(categories)
        self._client = client
        self._persistence = persistence or StoryPersistence(session_factory)
        self._parser = parser or ListingParser()
        self._sleep = sleep

    def run(self) -> RunResult:
        result = RunResult()
        try:
            scheduler = CategoryScheduler(self._categories, self._session_factory)
            client = self._client or RenderScrapeClient(self._config)
        except ConfigurationError as exc:
            return self._fail(result, exc)

        try:
            return self._run_pass(result, scheduler, client)
        except Exception as exc:
            LOGGER.exception("Unhandled error during %s stage", result.stage.value)
            return self._fail(result, exc)
        finally:
            if self._client is None:
                client.close()

    def _run_pass(
        self,
        result: RunResult,
        scheduler: CategoryScheduler,
        client: RenderScrapeClient,
    ) -> RunResult:
        category = scheduler.next()
        result.category_key = category.key
        result.category_index = category.index
        LOGGER.info("Starting scheduled scrape for category #%d: [%s]", category.index, category.key.upper())

        result.stage = RunStage.FETCH_INDEX
        try:
            fragments = client.scrape(category.index_url, [self._config.provider.index_selector])
        except ProviderError as exc:
            return self._fail(result, exc)
        result.listed = len(fragments)

        result.stage = RunStage.PARSE
        try:
            candidates = self._parser.parse(fragments, category.index_url)
        except ParsingError as exc:
            return self._fail(result, exc)
        result.candidates = len(candidates)

        result.stage = RunStage.FILTER
        with self._session_factory() as session:
            synopsized = load_synopsized_urls(session, [candidate.url for candidate in candidates])
        pending = filter_pending(candidates, synopsized)
        result.pending = len(pending)
        LOGGER.info(
            "Index page has %d stories; %d new synopses will be scraped",
            len(candidates),
            len(pending),
        )

        if not pending:
            LOGGER.info("No new stories for category [%s]; moving on next run", category.key.upper())
            return self._advance(result, scheduler, category)

        fetcher = SynopsisFetcher(
            client,
            delay=self._config.rate_limit.synopsis_delay,
            sleep=self._sleep,
            selector=self._config.provider.synopsis_selector,
            failure_log=self._config.synopsis_failure_log(),
        )
        batch_size = max(1, self._config.batch_size)
        batch: list[StoryRecord] = []
        for position, candidate in enumerate(pending, start=1):
            result.stage = RunStage.FETCH_SYNOPSIS
            LOGGER.info("Scraping synopsis %d/%d: %s", position, len(pending), candidate.title)
            batch.append(fetcher.fetch(candidate))
            result.synopsis_failures = fetcher.stats.failed

            if len(batch) >= batch_size or position == len(pending):
                result.stage = RunStage.PERSIST
                try:
                    result.persisted += self._persistence.upsert_batch(batch)
                except StoryPersistenceError as exc:
                    return self._fail(result, exc)
                result.batch_sizes.append(len(batch))
                batch = []

        return self._advance(result, scheduler, category)

    def _advance(
        self,
        result: RunResult,
        scheduler: CategoryScheduler,
        category: ScheduledCategory,
    ) -> RunResult:
        result.stage = RunStage.ADVANCE
        scheduler.advance(category.index)
        result.advanced = True
        result.stage = RunStage.END
        LOGGER.info(
            "Scrape of category [%s] complete: persisted=%d batches=%d synopsis_failures=%d",
            category.key.upper(),
            result.persisted,
            len(result.batch_sizes),
            result.synopsis_failures,
        )
        return result

    @staticmethod
    def _fail(result: RunResult, exc: BaseException) -> RunResult:
        result.failed_stage = result.stage
        result.stage = RunStage.ERROR
        result.error = str(exc)
        LOGGER.error(
            "Scrape pass for category %s failed during %s: %s",
            result.category_key or "<unscheduled>",
            result.failed_stage.value,
            exc,
        )
        return result


def run_configured_pass(config: IngestConfig, *, sleep: Callable[[float], None] = time.sleep) -> RunResult:
    """Open the store described by ``config`` and run one pass against it."""

    try:
        categories = load_category_catalog(config.categories_file)
    except ConfigurationError as exc:
        return ScrapeRunner._fail(RunResult(), exc)

    config.ensure_directories()
    engine = build_engine(config.db_url)
    try:
        ensure_schema(engine)
        runner = ScrapeRunner(
            config,
            session_factory=sessionmaker(bind=engine),
            categories=categories,
            sleep=sleep,
        )
        return runner.run()
    finally:
        engine.dispose()


def run_ingestion_pass() -> None:
    """Run one ingestion pass from environment configuration.

    Called by the scheduled trigger. Failures are logged and never raised.
    """

    if not _RUN_LOCK.acquire(blocking=False):
        LOGGER.warning("Previous ingestion pass is still running; skipping this trigger")
        return

    try:
        config = load_config_from_env()
        result = run_configured_pass(config)
        if not result.succeeded:
            LOGGER.warning(
                "Ingestion pass ended without advancing (category=%s, stage=%s)",
                result.category_key,
                result.failed_stage.value if result.failed_stage else None,
            )
    except Exception:
        LOGGER.exception("Error in scheduled ingestion pass")
    finally:
        _RUN_LOCK.release()


__all__ = [
    "RunResult",
    "RunStage",
    "ScrapeRunner",
    "run_configured_pass",
    "run_ingestion_pass",
]
