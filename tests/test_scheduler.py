import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from models import ScrapeState
from story_crawler.categories import CategoryDefinition
from story_crawler.config import ConfigurationError
from story_crawler.database import build_engine, ensure_schema
from story_crawler.scheduler import (
    CategoryScheduler,
    ScrapeStateRecord,
    next_category,
    sanitize_pointer,
)

CATEGORIES = [
    CategoryDefinition(key="adventure", index_url="https://stories.example.com/Tags/adventure.html"),
    CategoryDefinition(key="fantasy", index_url="https://stories.example.com/Tags/fantasy.html"),
    CategoryDefinition(key="humor", index_url="https://stories.example.com/Tags/humor.html"),
]


class CategorySchedulerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        engine = build_engine(f"sqlite:///{Path(tmpdir.name) / 'stories.sqlite'}")
        self.addCleanup(engine.dispose)
        ensure_schema(engine)
        self.session_factory = sessionmaker(bind=engine)
        self.scheduler = CategoryScheduler(CATEGORIES, self.session_factory)

    def _set_raw_pointer(self, value) -> None:
        with self.session_factory() as session, session.begin():
            session.execute(
                text("UPDATE scrape_state SET last_scraped_category_index = :value WHERE id = 1"),
                {"value": value},
            )

    def test_rotation_visits_each_category_once_then_wraps(self) -> None:
        visited = []
        for _ in range(len(CATEGORIES)):
            upcoming = self.scheduler.next()
            visited.append(upcoming.key)
            self.scheduler.advance(upcoming.index)

        self.assertEqual(visited, ["adventure", "fantasy", "humor"])
        wrapped = self.scheduler.next()
        self.assertEqual(wrapped.index, 0)
        self.assertEqual(wrapped.key, "adventure")
        self.assertEqual(wrapped.index_url, CATEGORIES[0].index_url)

    def test_next_does_not_mutate_state(self) -> None:
        self.scheduler.next()
        self.scheduler.next()
        self.assertEqual(self.scheduler.load_state().last_scraped_category_index, -1)

    def test_out_of_range_pointer_restarts_rotation(self) -> None:
        for corrupt in (7, 3, -5):
            with self.subTest(pointer=corrupt):
                self._set_raw_pointer(corrupt)
                self.assertEqual(self.scheduler.next().index, 0)

    def test_non_numeric_pointer_restarts_rotation(self) -> None:
        self._set_raw_pointer("garbage")
        self.assertEqual(self.scheduler.next().index, 0)

    def test_missing_state_row_restarts_rotation_and_advance_recreates_it(self) -> None:
        with self.session_factory() as session, session.begin():
            session.query(ScrapeState).delete()

        self.assertEqual(self.scheduler.next().index, 0)
        self.scheduler.advance(0)

        with self.session_factory() as session:
            rows = session.query(ScrapeState).all()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].last_scraped_category_index, 0)

    def test_advance_rejects_index_outside_rotation(self) -> None:
        for invalid in (-1, 3, True):
            with self.subTest(index=invalid):
                with self.assertRaises(ValueError):
                    self.scheduler.advance(invalid)
        self.assertEqual(self.scheduler.load_state().last_scraped_category_index, -1)

    def test_empty_catalog_is_a_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            CategoryScheduler([], self.session_factory)


class NextCategoryTestCase(unittest.TestCase):
    def test_pure_rotation_from_record(self) -> None:
        self.assertEqual(next_category(ScrapeStateRecord(1), CATEGORIES).key, "humor")
        self.assertEqual(next_category(ScrapeStateRecord(2), CATEGORIES).key, "adventure")

    def test_sanitize_pointer(self) -> None:
        self.assertEqual(sanitize_pointer(None, 3), -1)
        self.assertEqual(sanitize_pointer("2", 3), 2)
        self.assertEqual(sanitize_pointer(2.0, 3), 2)
        self.assertEqual(sanitize_pointer(2.5, 3), -1)
        self.assertEqual(sanitize_pointer(False, 3), -1)
        self.assertEqual(sanitize_pointer(-1, 3), -1)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
