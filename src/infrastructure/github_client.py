import aiohttp
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from src.domain.exceptions import (
    InvalidSearchQueryException,
    RateLimitExceededException,
    UpstreamAuthException,
    UpstreamException,
    UpstreamTimeoutException,
)
from src.domain.models import RateLimitInfo

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT_SECONDS = 15.0
# Limit concurrent connections to avoid overwhelming GitHub's servers
CONNECTOR_LIMIT = 10

SearchResult = Tuple[List[Dict[str, Any]], int, bool, RateLimitInfo]


def _header_int(headers, name: str) -> Optional[int]:
    value = headers.get(name)
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def create_session(timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> aiohttp.ClientSession:
    """Builds the shared client session used for every GitHub call of the process."""
    return aiohttp.ClientSession(
        connector=aiohttp.TCPConnector(limit=CONNECTOR_LIMIT),
        timeout=aiohttp.ClientTimeout(total=timeout_seconds),
    )


class GitHubSearchClient:
    """
    Client for the GitHub REST repository search endpoint.
    Calls are unauthenticated; upstream failures are classified into explorer exceptions.
    """

    def __init__(self, api_url: str = DEFAULT_API_URL, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        self.headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "GitHub-Repository-Explorer",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        self.api_url = api_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def search_repositories(
        self,
        session: aiohttp.ClientSession,
        query: str,
        page: int,
        per_page: int,
        sort: str,
        order: str,
    ) -> SearchResult:
        """
        Fetches a single page of repository search results.

        Returns:
            Tuple of (items, total_count, incomplete_results, rate_limit).
        """
        params = {"q": query, "page": page, "per_page": per_page, "sort": sort, "order": order}
        try:
            async with session.get(
                f"{self.api_url}/search/repositories",
                params=params,
                headers=self.headers,
                timeout=self.timeout,
            ) as response:
                rate_limit = RateLimitInfo(
                    limit=_header_int(response.headers, "X-RateLimit-Limit"),
                    remaining=_header_int(response.headers, "X-RateLimit-Remaining"),
                    reset=_header_int(response.headers, "X-RateLimit-Reset"),
                )

                if response.status in {403, 429}:
                    reset_at = response.headers.get("X-RateLimit-Reset")
                    logger.warning(f"GitHub rate limit hit ({response.status}) for '{query}'. Resets at {reset_at}.")
                    raise RateLimitExceededException(reset_at=reset_at)

                if response.status == 422:
                    logger.warning(f"GitHub rejected search query '{query}' (422).")
                    raise InvalidSearchQueryException()

                if response.status == 401:
                    logger.error("GitHub answered 401 to an unauthenticated search request.")
                    raise UpstreamAuthException()

                if response.status >= 400:
                    logger.warning(f"GitHub search failed with status {response.status} for '{query}'.")
                    raise UpstreamException(status=response.status)

                data = await response.json()

        except (asyncio.TimeoutError, aiohttp.ServerTimeoutError, aiohttp.ClientConnectionError) as e:
            logger.warning(f"GitHub search for '{query}' timed out or could not connect: {e!r}")
            raise UpstreamTimeoutException() from e
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning(f"GitHub search for '{query}' failed: {e!r}")
            raise UpstreamException() from e

        if not isinstance(data, dict):
            raise UpstreamException("GitHub returned an unexpected response.")

        items = data.get('items') or []
        total_count = data.get('total_count', 0)
        incomplete = bool(data.get('incomplete_results', False))

        return items, total_count, incomplete, rate_limit
