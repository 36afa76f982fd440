import logging
from typing import Optional

from src.application.pagination import effective_page, effective_per_page, is_descending, total_pages
from src.domain.exceptions import RepositoryNotFoundException
from src.domain.models import (
    DEFAULT_SORT_FIELD,
    SORT_FIELD_ALIASES,
    SORTABLE_FIELDS,
    RepositoryPage,
    RepositoryStats,
    StoredRepository,
)
from src.infrastructure.database import PostgresRepository

logger = logging.getLogger(__name__)

TOP_LANGUAGES = 10


def sort_field(sort_by: Optional[str]) -> str:
    """Maps a requested sort column onto the allow-list, falling back to the default."""
    name = (sort_by or "").strip().lower()
    name = SORT_FIELD_ALIASES.get(name, name)
    return name if name in SORTABLE_FIELDS else DEFAULT_SORT_FIELD


class CatalogService:
    """Read and delete operations served straight from the local store."""

    def __init__(self, repository: PostgresRepository):
        self.repository = repository

    async def list_repositories(
        self,
        page: Optional[int] = None,
        per_page: Optional[int] = None,
        keyword: Optional[str] = None,
        sort_by: Optional[str] = None,
        order: Optional[str] = None,
    ) -> RepositoryPage:
        page = effective_page(page)
        per_page = effective_per_page(per_page)
        keyword = (keyword or "").strip() or None

        rows, total = await self.repository.list_page(
            limit=per_page,
            offset=(page - 1) * per_page,
            keyword=keyword,
            sort_by=sort_field(sort_by),
            descending=is_descending(order),
        )
        return RepositoryPage(
            repositories=rows,
            total_count=total,
            current_page=page,
            per_page=per_page,
            total_pages=total_pages(total, per_page),
        )

    async def stats(self) -> RepositoryStats:
        return await self.repository.stats(top_n=TOP_LANGUAGES)

    async def delete(self, row_id: int) -> StoredRepository:
        deleted = await self.repository.delete(row_id)
        if deleted is None:
            raise RepositoryNotFoundException(row_id)
        logger.info(f"Deleted repository {deleted.external_id} ({deleted.full_name}), row {row_id}.")
        return deleted
