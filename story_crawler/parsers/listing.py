"""Parser for category index pages rendered by the provider."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from . import ParsingError, ScrapedFragment, StoryCandidate

LOGGER = logging.getLogger(__name__)

# Listing rows also link to author and tag index pages; those are not stories.
_EXCLUDED_PATH_SEGMENTS = ("/Authors/", "/Tags/")
_FIELD_DELIMITER = "\t"


@dataclass(slots=True)
class ParseStats:
    total: int = 0
    accepted: int = 0
    skipped: int = 0


class _FragmentRejected(ValueError):
    pass


def _is_absolute_http_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def parse_category_tags(text: str) -> tuple[str, ...]:
    """Return lowercase tags from the second tab-separated field of ``text``."""

    parts = text.split(_FIELD_DELIMITER)
    if len(parts) < 2:
        return ()

    tags: list[str] = []
    for token in parts[1].split():
        tag = token.lower()
        if tag not in tags:
            tags.append(tag)
    return tuple(tags)


class ListingParser:
    """Turn index-page fragments into candidate stories."""

    def __init__(self, excluded_segments: Sequence[str] = _EXCLUDED_PATH_SEGMENTS) -> None:
        self._excluded_segments = tuple(excluded_segments)
        self.stats = ParseStats()

    def parse(self, fragments: Sequence[ScrapedFragment], base_url: str) -> list[StoryCandidate]:
        if not isinstance(base_url, str) or not _is_absolute_http_url(base_url):
            raise ParsingError(f"Listing base URL must be an absolute http(s) URL (got {base_url!r})")
        if isinstance(fragments, (str, bytes)) or not isinstance(fragments, Sequence):
            raise ParsingError(f"Listing fragments must be a sequence (got {type(fragments).__name__})")

        self.stats = ParseStats()
        candidates: list[StoryCandidate] = []
        for position, fragment in enumerate(fragments, start=1):
            self.stats.total += 1
            try:
                candidate = self._parse_fragment(fragment, base_url)
            except _FragmentRejected as exc:
                LOGGER.warning("Skipping listing fragment #%d from %s: %s", position, base_url, exc)
                self.stats.skipped += 1
                continue
            except Exception as exc:
                LOGGER.warning("Skipping invalid listing fragment #%d from %s: %s", position, base_url, exc)
                self.stats.skipped += 1
                continue

            candidates.append(candidate)
            self.stats.accepted += 1

        LOGGER.info(
            "Parsed listing %s: accepted=%d skipped=%d",
            base_url,
            self.stats.accepted,
            self.stats.skipped,
        )
        return candidates

    def _parse_fragment(self, fragment: ScrapedFragment, base_url: str) -> StoryCandidate:
        soup = BeautifulSoup(fragment.html or "", "html.parser")
        anchor = soup.find("a")
        if anchor is None:
            raise _FragmentRejected("no anchor element")

        href = anchor.get("href")
        if not isinstance(href, str) or not href.strip():
            raise _FragmentRejected("anchor has no href")

        cite = anchor.find("cite")
        title = cite.get_text().strip() if cite is not None else ""
        if not title:
            title = anchor.get_text().strip()
        if not title:
            raise _FragmentRejected("anchor has no title text")

        url = urljoin(base_url, href.strip())
        if not _is_absolute_http_url(url):
            raise _FragmentRejected(f"unsupported link {url!r}")
        for segment in self._excluded_segments:
            if segment in url:
                raise _FragmentRejected(f"link {url} is a listing page, not a story")

        return StoryCandidate(
            title=title,
            url=url,
            categories=parse_category_tags(fragment.text or ""),
        )
