"""Parser interfaces and data models for story ingestion."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ScrapedFragment:
    """One element extracted by the render provider."""

    html: str
    text: str


@dataclass(frozen=True, slots=True)
class StoryCandidate:
    title: str
    url: str
    categories: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class StoryRecord:
    title: str
    url: str
    categories: tuple[str, ...]
    synopsis: str

    @classmethod
    def from_candidate(cls, candidate: StoryCandidate, synopsis: str) -> "StoryRecord":
        """Combine a listing entry with its fetched synopsis."""

        return cls(
            title=candidate.title,
            url=candidate.url,
            categories=candidate.categories,
            synopsis=synopsis,
        )


class ParsingError(RuntimeError):
    """Raised when a whole listing page cannot be parsed."""


__all__ = ["ParsingError", "ScrapedFragment", "StoryCandidate", "StoryRecord"]
