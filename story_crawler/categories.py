"""Category catalog loading for the scrape rotation."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from .config import ConfigurationError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CategoryDefinition:
    key: str
    index_url: str


def _validate_entry(key: object, index_url: object) -> CategoryDefinition:
    if not isinstance(key, str) or not key.strip():
        raise ConfigurationError("Category catalog entries must include a non-empty 'key'")
    cleaned_key = key.strip()
    if not isinstance(index_url, str) or not index_url.strip():
        raise ConfigurationError(f"Category '{cleaned_key}' has no index URL")
    cleaned_url = index_url.strip()
    parsed = urlparse(cleaned_url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ConfigurationError(f"Category '{cleaned_key}' index URL must be absolute: {cleaned_url!r}")
    return CategoryDefinition(key=cleaned_key, index_url=cleaned_url)


def build_category_catalog(records: object) -> list[CategoryDefinition]:
    """Validate catalog records, keeping their order.

    ``records`` is either a mapping of key to index URL or a list of objects
    with ``key`` and ``index_url`` fields.
    """

    if isinstance(records, dict):
        pairs = list(records.items())
    elif isinstance(records, list):
        pairs = []
        for entry in records:
            if not isinstance(entry, dict):
                raise ConfigurationError("Category catalog list entries must be objects")
            pairs.append((entry.get("key"), entry.get("index_url")))
    else:
        raise ConfigurationError("Category catalog must be a JSON object or list")

    catalog: list[CategoryDefinition] = []
    seen: set[str] = set()
    for key, index_url in pairs:
        definition = _validate_entry(key, index_url)
        if definition.key in seen:
            raise ConfigurationError(f"Duplicate category key '{definition.key}' in catalog")
        seen.add(definition.key)
        catalog.append(definition)

    if not catalog:
        raise ConfigurationError("Category catalog is empty")
    return catalog


def load_category_catalog(catalog_path: Path) -> list[CategoryDefinition]:
    try:
        raw_payload = catalog_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Category catalog not found: {catalog_path}") from exc

    try:
        records = json.loads(raw_payload)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid category catalog {catalog_path}: {exc}") from exc

    catalog = build_category_catalog(records)
    LOGGER.debug("Loaded %d categories from %s", len(catalog), catalog_path)
    return catalog
