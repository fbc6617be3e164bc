"""Engine and session helpers for the story store."""

from __future__ import annotations

import logging

from sqlalchemy import create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from models import INITIAL_CATEGORY_INDEX, SCRAPE_STATE_ID, Base, ScrapeState

LOGGER = logging.getLogger(__name__)


def _enable_sqlite_wal(dbapi_connection, _connection_record) -> None:
    # WAL keeps readers of the search path unblocked while a batch commits.
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA busy_timeout=5000;")
    finally:
        cursor.close()


def build_engine(db_url: str) -> Engine:
    engine = create_engine(db_url)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_wal)
    return engine


def ensure_schema(engine: Engine) -> None:
    """Create the tables and seed the singleton scrape state row."""

    Base.metadata.create_all(engine)
    with Session(engine) as session, session.begin():
        existing = session.execute(
            select(ScrapeState.id).where(ScrapeState.id == SCRAPE_STATE_ID)
        ).scalar_one_or_none()
        if existing is None:
            session.add(ScrapeState(id=SCRAPE_STATE_ID, last_scraped_category_index=INITIAL_CATEGORY_INDEX))
            LOGGER.info("Initialised scrape state at index %d", INITIAL_CATEGORY_INDEX)


def build_session_factory(db_url: str) -> sessionmaker:
    engine = build_engine(db_url)
    ensure_schema(engine)
    return sessionmaker(bind=engine)
