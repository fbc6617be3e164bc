"""HTTP client for the render-and-extract provider."""

from __future__ import annotations

import logging
import re
from typing import Sequence

import httpx

from .config import IngestConfig
from .parsers import ScrapedFragment

LOGGER = logging.getLogger(__name__)

_ACCOUNT_PATH_RE = re.compile(r"/accounts/(?P<account>[^/\s]+)/")


class ProviderError(RuntimeError):
    """Raised when the provider returns no usable data for a request."""


def _mask_account_id(text: str) -> str:
    return _ACCOUNT_PATH_RE.sub("/accounts/<redacted>/", text)


class _HttpxAccountFilter(logging.Filter):
    """Redact provider account ids from httpx request logs."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - exercised indirectly
        try:
            message = record.getMessage()
        except Exception:
            return True
        masked = _mask_account_id(message)
        if masked != message:
            record.msg = masked
            record.args = ()
        return True


def _ensure_httpx_filter() -> None:
    logger = logging.getLogger("httpx")
    if any(isinstance(f, _HttpxAccountFilter) for f in logger.filters):
        return
    logger.addFilter(_HttpxAccountFilter())


_ensure_httpx_filter()


def _coerce_text(value: object, field_name: str, url: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ProviderError(f"Provider returned non-string '{field_name}' for {url}")
    return value


def parse_scrape_payload(payload: object, url: str) -> list[ScrapedFragment]:
    """Validate a provider response body and flatten it into fragments."""

    if not isinstance(payload, dict):
        raise ProviderError(f"Provider returned a malformed body for {url}")

    results = payload.get("result")
    if not isinstance(results, list) or not results:
        raise ProviderError(f"Provider returned no usable data for {url}")

    fragments: list[ScrapedFragment] = []
    for element in results:
        if not isinstance(element, dict):
            raise ProviderError(f"Provider returned a malformed element result for {url}")
        matches = element.get("results")
        if matches is None:
            continue
        if not isinstance(matches, list):
            raise ProviderError(f"Provider returned malformed matches for {url}")
        for match in matches:
            if not isinstance(match, dict):
                raise ProviderError(f"Provider returned a malformed match for {url}")
            fragments.append(
                ScrapedFragment(
                    html=_coerce_text(match.get("html"), "html", url),
                    text=_coerce_text(match.get("text"), "text", url),
                )
            )
    return fragments


class RenderScrapeClient:
    """Synchronous client for the provider's scrape endpoint."""

    def __init__(
        self,
        config: IngestConfig,
        *,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        config.provider.require_credentials()
        self._config = config
        self._endpoint = config.provider.scrape_endpoint
        self._transport = transport
        self._client = client or self._build_client()
        self._owns_client = client is None

    def _build_client(self) -> httpx.Client:
        headers = {
            "Authorization": f"Bearer {self._config.provider.api_token}",
            "User-Agent": self._config.user_agent,
        }
        kwargs: dict[str, object] = {
            "timeout": self._config.timeout.request_timeout,
            "headers": headers,
        }
        if self._transport:
            kwargs["transport"] = self._transport
        return httpx.Client(**kwargs)

    def scrape(self, url: str, selectors: Sequence[str]) -> list[ScrapedFragment]:
        body = {"url": url, "elements": [{"selector": selector} for selector in selectors]}
        try:
            response = self._client.post(self._endpoint, json=body)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Failed to scrape {url}: {_mask_account_id(str(exc))}") from exc

        if not response.is_success:
            raise ProviderError(
                f"Failed to scrape {url}. Status: {response.status_code}, Details: {response.text[:500]}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(f"Provider returned invalid JSON for {url}") from exc

        fragments = parse_scrape_payload(payload, url)
        LOGGER.debug("Provider returned %d fragments for %s", len(fragments), url)
        return fragments

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "RenderScrapeClient":
        return self

    def __exit__(self, *_exc_info) -> None:
        self.close()
