"""Database persistence helpers for scraped stories."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from models import Story

from .parsers import StoryRecord

LOGGER = logging.getLogger(__name__)

BATCH_SIZE = 10


class StoryPersistenceError(RuntimeError):
    """Raised when a batch of stories cannot be committed."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def serialize_categories(categories: Iterable[str]) -> str:
    return ",".join(categories)


def deserialize_categories(value: str | None) -> list[str]:
    if not value:
        return []
    return [tag for tag in value.split(",") if tag]


def _insert_for(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite.insert
    if dialect == "postgresql":
        return postgresql.insert
    raise StoryPersistenceError(f"Unsupported database dialect '{dialect}' for story upserts")


class StoryPersistence:
    """Commits story batches with insert-or-overwrite semantics."""

    def __init__(self, session_factory: sessionmaker, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def upsert_batch(self, records: Sequence[StoryRecord]) -> int:
        """Persist ``records`` in a single transaction and return the row count."""

        if not records:
            return 0

        try:
            with self._session_factory() as session, session.begin():
                self._upsert_batch(session, records)
        except StoryPersistenceError:
            raise
        except Exception as exc:
            LOGGER.error("Story batch of %d rolled back: %s", len(records), exc)
            raise StoryPersistenceError(str(exc)) from exc

        LOGGER.info("Committed batch of %d stories", len(records))
        return len(records)

    def _upsert_batch(self, session: Session, records: Sequence[StoryRecord]) -> None:
        insert = _insert_for(session)
        scraped_at = self._clock()
        for record in records:
            statement = insert(Story).values(
                url=record.url,
                title=record.title,
                synopsis=record.synopsis,
                categories=serialize_categories(record.categories),
                last_scraped_at=scraped_at,
            )
            statement = statement.on_conflict_do_update(
                index_elements=["url"],
                set_={
                    "title": statement.excluded.title,
                    "synopsis": statement.excluded.synopsis,
                    "categories": statement.excluded.categories,
                    "last_scraped_at": statement.excluded.last_scraped_at,
                },
            )
            session.execute(statement)
