"""Configuration utilities shared by the ingestion pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_CATEGORIES_FILE = Path("data/categories.json")
DEFAULT_DATABASE_PATH = Path("database/stories.sqlite")
DEFAULT_LOG_DIR = Path("storage/logs")

DEFAULT_USER_AGENT = "story-ingestor/1.0"
DEFAULT_PROVIDER_API_BASE = "https://api.cloudflare.com/client/v4"
DEFAULT_INDEX_SELECTOR = "tr"
DEFAULT_SYNOPSIS_SELECTOR = "section.synopsis"
DEFAULT_BATCH_SIZE = 10

_ACCOUNT_ID_ENV = "CLOUDFLARE_ACCOUNT_ID"
_API_TOKEN_ENV = "CLOUDFLARE_API_TOKEN"
_API_BASE_ENV = "CLOUDFLARE_API_BASE"
_DATABASE_URL_ENV = "DATABASE_URL"
_DATABASE_PATH_ENV = "DATABASE_PATH"
_CATEGORIES_ENV = "STORY_CATEGORIES_FILE"
_DELAY_ENV = "SYNOPSIS_DELAY_SECONDS"
_BATCH_SIZE_ENV = "SCRAPE_BATCH_SIZE"
_LOG_DIR_ENV = "STORY_LOG_DIR"


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing or invalid."""


@dataclass(slots=True)
class RateLimitConfig:
    # Seconds slept before every synopsis request to stay under provider quotas.
    synopsis_delay: float = 15.0


@dataclass(slots=True)
class TimeoutConfig:
    request_timeout: float = 60.0


@dataclass(slots=True)
class ProviderConfig:
    """Credentials and selectors for the render-and-extract service."""

    account_id: Optional[str] = None
    api_token: Optional[str] = None
    api_base: str = DEFAULT_PROVIDER_API_BASE
    index_selector: str = DEFAULT_INDEX_SELECTOR
    synopsis_selector: str = DEFAULT_SYNOPSIS_SELECTOR

    def has_credentials(self) -> bool:
        return bool(self.account_id and self.api_token)

    def require_credentials(self) -> None:
        if not self.has_credentials():
            raise ConfigurationError(
                f"Provider credentials are not set; define {_ACCOUNT_ID_ENV} and {_API_TOKEN_ENV}"
            )

    @property
    def scrape_endpoint(self) -> str:
        self.require_credentials()
        base = self.api_base.rstrip("/")
        return f"{base}/accounts/{self.account_id}/browser-rendering/scrape"


@dataclass(slots=True)
class IngestConfig:
    db_url: str = f"sqlite:///{DEFAULT_DATABASE_PATH}"
    categories_file: Path = DEFAULT_CATEGORIES_FILE
    batch_size: int = DEFAULT_BATCH_SIZE
    user_agent: str = DEFAULT_USER_AGENT
    log_dir: Path = DEFAULT_LOG_DIR
    failure_log_enabled: bool = True
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)

    def ensure_directories(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        database_path = sqlite_database_path(self.db_url)
        if database_path is not None:
            database_path.parent.mkdir(parents=True, exist_ok=True)

    def synopsis_failure_log(self) -> Path | None:
        if not self.failure_log_enabled:
            return None
        return self.log_dir / "synopsis_failures.ndjson"


def sqlite_database_path(db_url: str) -> Path | None:
    """Return the file path of a file-backed SQLite URL, if any."""

    prefix = "sqlite:///"
    if not db_url.startswith(prefix):
        return None
    raw_path = db_url[len(prefix):]
    if not raw_path or raw_path == ":memory:":
        return None
    return Path(raw_path)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def _coerce_positive_float(name: str, raw_value: str | None, default: float) -> float:
    cleaned = _clean(raw_value)
    if cleaned is None:
        return default
    try:
        value = float(cleaned)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid {name} {cleaned!r}") from exc
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative (got {cleaned!r})")
    return value


def _coerce_positive_int(name: str, raw_value: str | None, default: int) -> int:
    cleaned = _clean(raw_value)
    if cleaned is None:
        return default
    try:
        value = int(cleaned)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid {name} {cleaned!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive (got {cleaned!r})")
    return value


def load_config_from_env(environ: Mapping[str, str] | None = None) -> IngestConfig:
    """Build an :class:`IngestConfig` from environment variables.

    Missing provider credentials are not an error here; they are checked when
    the provider client is built so the run can log and end at its start.
    """

    env = os.environ if environ is None else environ
    config = IngestConfig()

    db_url = _clean(env.get(_DATABASE_URL_ENV))
    db_path = _clean(env.get(_DATABASE_PATH_ENV))
    if db_url:
        config.db_url = db_url
    elif db_path:
        config.db_url = f"sqlite:///{db_path}"

    categories_file = _clean(env.get(_CATEGORIES_ENV))
    if categories_file:
        config.categories_file = Path(categories_file).expanduser()

    log_dir = _clean(env.get(_LOG_DIR_ENV))
    if log_dir:
        config.log_dir = Path(log_dir).expanduser()

    config.batch_size = _coerce_positive_int(_BATCH_SIZE_ENV, env.get(_BATCH_SIZE_ENV), config.batch_size)
    config.rate_limit.synopsis_delay = _coerce_positive_float(
        _DELAY_ENV, env.get(_DELAY_ENV), config.rate_limit.synopsis_delay
    )

    config.provider.account_id = _clean(env.get(_ACCOUNT_ID_ENV))
    config.provider.api_token = _clean(env.get(_API_TOKEN_ENV))
    api_base = _clean(env.get(_API_BASE_ENV))
    if api_base:
        config.provider.api_base = api_base
    return config
