"""
Repository explorer API endpoints.
"""

from datetime import datetime, timezone
from typing import Optional

import aiohttp
from fastapi import APIRouter, BackgroundTasks, Depends, Query

from src.application.catalog_service import CatalogService
from src.application.reconciler import Reconciler
from src.application.search_service import SearchService
from src.domain.models import MAX_QUERY_LENGTH, RepositoryEntity, RepositoryPage, RepositoryStats, SearchPage
from src.api import dependencies
from src.infrastructure.database import PostgresRepository

router = APIRouter()


@router.get("/health")
async def health() -> dict:
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/test-db")
async def test_db(
    repository: PostgresRepository = Depends(dependencies.get_repository),
) -> dict:
    count = await repository.count()
    return {"status": "Database connected", "repository_count": count}


@router.post("/repositories")
async def add_repository(
    entity: RepositoryEntity,
    reconciler: Reconciler = Depends(dependencies.get_reconciler),
) -> dict:
    stored = await reconciler.reconcile_one(entity)
    return {"message": "Repository stored successfully", "repository": stored}


@router.get("/search/repositories", response_model=SearchPage)
async def search_repositories(
    background_tasks: BackgroundTasks,
    q: Optional[str] = Query(default=None, max_length=MAX_QUERY_LENGTH),
    page: Optional[int] = Query(default=None),
    per_page: Optional[int] = Query(default=None),
    sort: Optional[str] = Query(default=None),
    order: Optional[str] = Query(default=None),
    service: SearchService = Depends(dependencies.get_search_service),
    reconciler: Reconciler = Depends(dependencies.get_reconciler),
    session: aiohttp.ClientSession = Depends(dependencies.get_http_session),
) -> SearchPage:
    result = await service.search(session, q, page=page, per_page=per_page, sort=sort, order=order)
    # Persisting runs after the response is sent and never changes its outcome.
    if result.repositories:
        background_tasks.add_task(reconciler.reconcile_quietly, result.repositories, result.query)
    return result


@router.get("/repositories", response_model=RepositoryPage)
async def list_repositories(
    page: Optional[int] = Query(default=None),
    per_page: Optional[int] = Query(default=None),
    keyword: Optional[str] = Query(default=None, max_length=MAX_QUERY_LENGTH),
    sort_by: Optional[str] = Query(default=None),
    order: Optional[str] = Query(default=None),
    service: CatalogService = Depends(dependencies.get_catalog_service),
) -> RepositoryPage:
    return await service.list_repositories(
        page=page, per_page=per_page, keyword=keyword, sort_by=sort_by, order=order
    )


@router.get("/repositories/stats", response_model=RepositoryStats)
async def repository_stats(
    service: CatalogService = Depends(dependencies.get_catalog_service),
) -> RepositoryStats:
    return await service.stats()


@router.delete("/repositories/{row_id}")
async def delete_repository(
    row_id: int,
    service: CatalogService = Depends(dependencies.get_catalog_service),
) -> dict:
    deleted = await service.delete(row_id)
    return {"message": "Repository deleted successfully", "deleted_repository": deleted}
