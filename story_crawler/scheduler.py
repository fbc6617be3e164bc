"""Durable round-robin rotation over the configured categories."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from models import INITIAL_CATEGORY_INDEX, SCRAPE_STATE_ID, ScrapeState

from .categories import CategoryDefinition
from .config import ConfigurationError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScrapeStateRecord:
    last_scraped_category_index: object = INITIAL_CATEGORY_INDEX


@dataclass(frozen=True, slots=True)
class ScheduledCategory:
    index: int
    key: str
    index_url: str


def sanitize_pointer(raw_value: object, category_count: int) -> int:
    """Return a usable pointer, or -1 when the stored value is corrupt."""

    if raw_value is None or isinstance(raw_value, bool):
        return INITIAL_CATEGORY_INDEX
    if isinstance(raw_value, int):
        value = raw_value
    elif isinstance(raw_value, str):
        try:
            value = int(raw_value.strip())
        except ValueError:
            return INITIAL_CATEGORY_INDEX
    elif isinstance(raw_value, float) and raw_value.is_integer():
        value = int(raw_value)
    else:
        return INITIAL_CATEGORY_INDEX

    if value < INITIAL_CATEGORY_INDEX or value >= category_count:
        return INITIAL_CATEGORY_INDEX
    return value


def next_category(state: ScrapeStateRecord, categories: Sequence[CategoryDefinition]) -> ScheduledCategory:
    if not categories:
        raise ConfigurationError("No categories configured for scraping")

    count = len(categories)
    pointer = sanitize_pointer(state.last_scraped_category_index, count)
    if pointer != state.last_scraped_category_index:
        LOGGER.warning(
            "Scrape state pointer %r is invalid for %d categories; restarting rotation",
            state.last_scraped_category_index,
            count,
        )
    index = (pointer + 1) % count
    category = categories[index]
    return ScheduledCategory(index=index, key=category.key, index_url=category.index_url)


def load_state(session: Session) -> ScrapeStateRecord:
    raw_value = session.execute(
        select(ScrapeState.last_scraped_category_index).where(ScrapeState.id == SCRAPE_STATE_ID)
    ).scalar_one_or_none()
    if raw_value is None:
        return ScrapeStateRecord()
    return ScrapeStateRecord(last_scraped_category_index=raw_value)


def save_state(session: Session, index: int) -> None:
    session.merge(ScrapeState(id=SCRAPE_STATE_ID, last_scraped_category_index=index))


class CategoryScheduler:
    """Reads and advances the persisted rotation pointer."""

    def __init__(self, categories: Sequence[CategoryDefinition], session_factory: sessionmaker) -> None:
        if not categories:
            raise ConfigurationError("No categories configured for scraping")
        self._categories = list(categories)
        self._session_factory = session_factory

    @property
    def categories(self) -> list[CategoryDefinition]:
        return list(self._categories)

    def load_state(self) -> ScrapeStateRecord:
        with self._session_factory() as session:
            return load_state(session)

    def next(self) -> ScheduledCategory:
        return next_category(self.load_state(), self._categories)

    def advance(self, index: int) -> None:
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(self._categories):
            raise ValueError(f"Category index {index!r} is outside the configured rotation")
        with self._session_factory() as session, session.begin():
            save_state(session, index)
        LOGGER.info("Advanced scrape pointer to category #%d (%s)", index, self._categories[index].key)
