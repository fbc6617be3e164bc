import json
import unittest
from collections import deque

import httpx

from story_crawler.config import ConfigurationError, IngestConfig, ProviderConfig
from story_crawler.parsers import ScrapedFragment
from story_crawler.provider import ProviderError, RenderScrapeClient, _mask_account_id, parse_scrape_payload


def _config() -> IngestConfig:
    return IngestConfig(provider=ProviderConfig(account_id="acct-123", api_token="secret-token"))


class RenderScrapeClientTestCase(unittest.TestCase):
    def test_scrape_posts_selectors_and_flattens_results(self) -> None:
        calls = deque()

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "result": [
                        {
                            "selector": "tr",
                            "results": [
                                {"html": "<td>one</td>", "text": "one", "top": 0},
                                {"html": "<td>two</td>", "text": None},
                            ],
                        },
                        {"selector": "tfoot", "results": []},
                    ],
                },
            )

        client = RenderScrapeClient(_config(), transport=httpx.MockTransport(handler))
        try:
            fragments = client.scrape("https://stories.example.com/Tags/alpha.html", ["tr", "tfoot"])
        finally:
            client.close()

        self.assertEqual(
            fragments,
            [ScrapedFragment(html="<td>one</td>", text="one"), ScrapedFragment(html="<td>two</td>", text="")],
        )
        self.assertEqual(len(calls), 1)
        request = calls[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(
            str(request.url),
            "https://api.cloudflare.com/client/v4/accounts/acct-123/browser-rendering/scrape",
        )
        self.assertEqual(request.headers["Authorization"], "Bearer secret-token")
        self.assertEqual(
            json.loads(request.content),
            {
                "url": "https://stories.example.com/Tags/alpha.html",
                "elements": [{"selector": "tr"}, {"selector": "tfoot"}],
            },
        )

    def test_non_success_status_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, text="rate limited")

        client = RenderScrapeClient(_config(), transport=httpx.MockTransport(handler))
        try:
            with self.assertRaises(ProviderError) as ctx:
                client.scrape("https://stories.example.com/story.html", ["section.synopsis"])
        finally:
            client.close()

        self.assertIn("429", str(ctx.exception))

    def test_empty_result_list_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": True, "result": []})

        client = RenderScrapeClient(_config(), transport=httpx.MockTransport(handler))
        try:
            with self.assertRaises(ProviderError):
                client.scrape("https://stories.example.com/story.html", ["section.synopsis"])
        finally:
            client.close()

    def test_invalid_json_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        client = RenderScrapeClient(_config(), transport=httpx.MockTransport(handler))
        try:
            with self.assertRaises(ProviderError):
                client.scrape("https://stories.example.com/story.html", ["section.synopsis"])
        finally:
            client.close()

    def test_transport_error_is_wrapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = RenderScrapeClient(_config(), transport=httpx.MockTransport(handler))
        try:
            with self.assertRaises(ProviderError) as ctx:
                client.scrape("https://stories.example.com/story.html", ["section.synopsis"])
        finally:
            client.close()

        self.assertIsInstance(ctx.exception.__cause__, httpx.ConnectError)

    def test_missing_credentials_raise_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            RenderScrapeClient(IngestConfig(provider=ProviderConfig(account_id="acct-123")))


class ParseScrapePayloadTestCase(unittest.TestCase):
    def test_rejects_malformed_shapes(self) -> None:
        url = "https://stories.example.com/story.html"
        for payload in (
            [],
            {"result": None},
            {"result": "nope"},
            {"result": ["not-an-object"]},
            {"result": [{"results": "nope"}]},
            {"result": [{"results": [42]}]},
            {"result": [{"results": [{"html": 5, "text": ""}]}]},
        ):
            with self.subTest(payload=payload):
                with self.assertRaises(ProviderError):
                    parse_scrape_payload(payload, url)

    def test_element_without_matches_yields_no_fragments(self) -> None:
        fragments = parse_scrape_payload({"result": [{"selector": "section.synopsis"}]}, "https://x.example.com/")
        self.assertEqual(fragments, [])

    def test_account_id_is_masked(self) -> None:
        message = "HTTP Request: POST https://api.cloudflare.com/client/v4/accounts/acct-123/browser-rendering/scrape"
        self.assertNotIn("acct-123", _mask_account_id(message))


if __name__ == "__main__":
    unittest.main()
