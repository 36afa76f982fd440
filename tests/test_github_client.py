import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock

import aiohttp

from src.domain.exceptions import (
    InvalidSearchQueryException,
    RateLimitExceededException,
    UpstreamAuthException,
    UpstreamException,
    UpstreamTimeoutException,
)
from src.infrastructure.github_client import GitHubSearchClient
from tests.fakes import make_item


def _response(status: int, payload=None, headers=None) -> AsyncMock:
    resp = AsyncMock()
    resp.status = status
    resp.headers = headers or {}
    resp.json = AsyncMock(return_value=payload)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


def _session(*responses) -> AsyncMock:
    session = AsyncMock()
    session.get = MagicMock(side_effect=list(responses))
    return session


async def _search(client: GitHubSearchClient, session):
    return await client.search_repositories(session, "python", 1, 30, "stars", "desc")


class TestGitHubSearchClient(unittest.TestCase):
    def test_requests_are_unauthenticated(self) -> None:
        client = GitHubSearchClient()

        self.assertNotIn("Authorization", client.headers)
        self.assertIn("User-Agent", client.headers)
        self.assertIn("Accept", client.headers)

    def test_api_url_trailing_slash_is_stripped(self) -> None:
        client = GitHubSearchClient(api_url="https://ghe.example.com/api/v3/")

        self.assertEqual(client.api_url, "https://ghe.example.com/api/v3")


class TestSearchRepositories(unittest.IsolatedAsyncioTestCase):
    async def test_success_returns_items_and_rate_limit(self) -> None:
        payload = {"total_count": 2, "incomplete_results": False, "items": [make_item(1), make_item(2)]}
        headers = {"X-RateLimit-Limit": "60", "X-RateLimit-Remaining": "59", "X-RateLimit-Reset": "1700000000"}
        session = _session(_response(200, payload, headers))
        client = GitHubSearchClient()

        items, total, incomplete, rate_limit = await _search(client, session)

        self.assertEqual([item["id"] for item in items], [1, 2])
        self.assertEqual(total, 2)
        self.assertFalse(incomplete)
        self.assertEqual(rate_limit.remaining, 59)
        self.assertEqual(rate_limit.reset, 1700000000)

        args, kwargs = session.get.call_args
        self.assertEqual(args[0], "https://api.github.com/search/repositories")
        self.assertEqual(kwargs["params"]["q"], "python")
        self.assertEqual(kwargs["params"]["per_page"], 30)

    async def test_403_is_rate_limit_with_reset_time(self) -> None:
        session = _session(_response(403, headers={"X-RateLimit-Reset": "1700000000", "X-RateLimit-Remaining": "0"}))

        with self.assertRaises(RateLimitExceededException) as ctx:
            await _search(GitHubSearchClient(), session)

        self.assertEqual(ctx.exception.reset_at, "1700000000")
        self.assertEqual(ctx.exception.reset_time, "22:13:20 UTC")
        self.assertIn("22:13:20 UTC", ctx.exception.message)

    async def test_rate_limit_without_reset_header(self) -> None:
        session = _session(_response(429))

        with self.assertRaises(RateLimitExceededException) as ctx:
            await _search(GitHubSearchClient(), session)

        self.assertEqual(ctx.exception.reset_time, "unknown")

    async def test_422_is_invalid_query(self) -> None:
        session = _session(_response(422, {"message": "Validation Failed"}))

        with self.assertRaises(InvalidSearchQueryException):
            await _search(GitHubSearchClient(), session)

    async def test_401_is_auth_error(self) -> None:
        session = _session(_response(401))

        with self.assertRaises(UpstreamAuthException):
            await _search(GitHubSearchClient(), session)

    async def test_other_errors_are_upstream_errors(self) -> None:
        session = _session(_response(503))

        with self.assertRaises(UpstreamException) as ctx:
            await _search(GitHubSearchClient(), session)

        self.assertEqual(ctx.exception.status, 503)

    async def test_timeout_is_classified(self) -> None:
        session = AsyncMock()
        session.get = MagicMock(side_effect=asyncio.TimeoutError())

        with self.assertRaises(UpstreamTimeoutException):
            await _search(GitHubSearchClient(), session)

    async def test_connection_failure_is_classified_as_timeout(self) -> None:
        session = AsyncMock()
        session.get = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))

        with self.assertRaises(UpstreamTimeoutException):
            await _search(GitHubSearchClient(), session)
