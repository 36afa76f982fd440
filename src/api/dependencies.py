"""
Request-scoped accessors for the process-wide services wired in the app lifespan.
Tests replace them through `app.dependency_overrides`.
"""

import aiohttp
from fastapi import Request

from src.application.catalog_service import CatalogService
from src.application.reconciler import Reconciler
from src.application.search_service import SearchService
from src.infrastructure.database import PostgresRepository


def get_repository(request: Request) -> PostgresRepository:
    return request.app.state.repository


def get_reconciler(request: Request) -> Reconciler:
    return request.app.state.reconciler


def get_search_service(request: Request) -> SearchService:
    return request.app.state.search_service


def get_catalog_service(request: Request) -> CatalogService:
    return request.app.state.catalog_service


def get_http_session(request: Request) -> aiohttp.ClientSession:
    return request.app.state.http_session
