import unittest
from datetime import datetime
from pathlib import Path
from tempfile import TemporaryDirectory

from sqlalchemy.orm import sessionmaker

from models import Story
from story_crawler.database import build_engine, ensure_schema
from story_crawler.dedupe import filter_pending, load_synopsized_urls
from story_crawler.parsers import StoryCandidate

URL_DONE = "https://stories.example.com/Done/index.html"
URL_EMPTY = "https://stories.example.com/Empty/index.html"
URL_NEW = "https://stories.example.com/New/index.html"


class DedupeTestCase(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        engine = build_engine(f"sqlite:///{Path(tmpdir.name) / 'stories.sqlite'}")
        self.addCleanup(engine.dispose)
        ensure_schema(engine)
        self.session_factory = sessionmaker(bind=engine)

        scraped_at = datetime(2026, 10, 1, 8, 30)
        with self.session_factory() as session, session.begin():
            session.add_all(
                [
                    Story(url=URL_DONE, title="Done", synopsis="Already fetched.", categories="fa", last_scraped_at=scraped_at),
                    Story(url=URL_EMPTY, title="Empty", synopsis="", categories="fa", last_scraped_at=scraped_at),
                ]
            )

    def test_only_non_empty_synopses_are_reported(self) -> None:
        with self.session_factory() as session:
            self.assertEqual(load_synopsized_urls(session), {URL_DONE})
            self.assertEqual(load_synopsized_urls(session, [URL_EMPTY, URL_NEW]), set())
            self.assertEqual(load_synopsized_urls(session, [URL_DONE, URL_NEW]), {URL_DONE})

    def test_filter_excludes_synopsized_and_repeated_urls(self) -> None:
        candidates = [
            StoryCandidate(title="Done", url=URL_DONE, categories=("fa",)),
            StoryCandidate(title="Empty", url=URL_EMPTY, categories=("fa",)),
            StoryCandidate(title="New", url=URL_NEW, categories=()),
            StoryCandidate(title="New again", url=URL_NEW, categories=()),
        ]
        with self.session_factory() as session:
            synopsized = load_synopsized_urls(session, [candidate.url for candidate in candidates])

        pending = filter_pending(candidates, synopsized)

        self.assertEqual([candidate.title for candidate in pending], ["Empty", "New"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
