import logging
from typing import Optional

import aiohttp
from pydantic import ValidationError

from src.application.pagination import effective_page, effective_per_page, is_descending, total_pages
from src.domain.exceptions import InvalidInputException
from src.domain.models import MAX_QUERY_LENGTH, SearchPage
from src.infrastructure.acl import GitHubTranslator
from src.infrastructure.github_client import GitHubSearchClient

logger = logging.getLogger(__name__)

# GitHub search returns at most 1,000 results per query
MAX_SEARCH_RESULTS = 1_000
SEARCH_SORT_FIELDS = {"stars", "forks", "help-wanted-issues", "updated"}
DEFAULT_SEARCH_SORT = "stars"


class SearchService:
    """
    Gateway to GitHub repository search. Normalises the request, calls GitHub and
    maps the results to the local record shape. Persisting the results is left to
    the caller.
    """

    def __init__(self, github_client: GitHubSearchClient):
        self.github_client = github_client

    @staticmethod
    def _sort_field(sort: Optional[str]) -> str:
        sort = (sort or "").strip().lower()
        return sort if sort in SEARCH_SORT_FIELDS else DEFAULT_SEARCH_SORT

    async def search(
        self,
        session: aiohttp.ClientSession,
        query: Optional[str],
        page: Optional[int] = None,
        per_page: Optional[int] = None,
        sort: Optional[str] = None,
        order: Optional[str] = None,
    ) -> SearchPage:
        query = (query or "").strip()
        if not query:
            raise InvalidInputException('Query parameter "q" is required. Please provide a search keyword.')
        if len(query) > MAX_QUERY_LENGTH:
            raise InvalidInputException(f'Query parameter "q" must be at most {MAX_QUERY_LENGTH} characters.')

        page = effective_page(page)
        per_page = effective_per_page(per_page)
        sort = self._sort_field(sort)
        order = "desc" if is_descending(order) else "asc"

        items, total_count, incomplete, rate_limit = await self.github_client.search_repositories(
            session, query, page, per_page, sort, order
        )
        repositories = []
        for item in items:
            if not item:
                continue
            try:
                repositories.append(GitHubTranslator.to_domain(item, query))
            except ValidationError as e:
                logger.warning(f"Skipping malformed search item {item.get('id')!r}: {e.error_count()} errors")

        logger.info(f"Search '{query}' page {page}: {len(repositories)} of {total_count} repositories.")

        return SearchPage(
            query=query,
            repositories=repositories,
            total_count=total_count,
            incomplete_results=incomplete,
            current_page=page,
            per_page=per_page,
            total_pages=total_pages(min(total_count, MAX_SEARCH_RESULTS), per_page),
            rate_limit=rate_limit,
        )
