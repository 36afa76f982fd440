import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.application.catalog_service import CatalogService
from src.application.reconciler import Reconciler
from src.application.search_service import SearchService
from src.config import Settings
from src.domain.exceptions import ExplorerException
from src.infrastructure.database import PostgresRepository
from src.infrastructure.github_client import GitHubSearchClient, create_session
from src.api.routes import router

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


def _error(status_code: int, error: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message, **extra})


async def explorer_exception_handler(request: Request, exc: ExplorerException) -> JSONResponse:
    return _error(exc.status_code, exc.error, exc.message, **exc.extra())


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        if loc:
            fields.append(".".join(loc))
    return _error(
        400,
        "validation_error",
        "Missing or invalid fields: " + ", ".join(fields) if fields else "Invalid request",
        fields=fields,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return _error(404, "route_not_found", "The requested endpoint does not exist")
    return _error(exc.status_code, "http_error", str(exc.detail))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return _error(500, "internal_error", "Internal server error")


def create_app(settings: Settings) -> FastAPI:
    """Builds the FastAPI application; process-wide resources live for the lifespan of the app."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        repository = PostgresRepository(
            db_url=settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
        )
        http_session = create_session(settings.github_timeout)
        try:
            await repository.create_schema()
            app.state.repository = repository
            app.state.http_session = http_session
            app.state.reconciler = Reconciler(repository, settings.keyword_policy)
            app.state.search_service = SearchService(
                GitHubSearchClient(api_url=settings.github_api_url, timeout_seconds=settings.github_timeout)
            )
            app.state.catalog_service = CatalogService(repository)
            logger.info(f"Keyword policy: {settings.keyword_policy.value}.")
            yield
        finally:
            logger.info("Shutting down: closing HTTP session and database pool.")
            await http_session.close()
            await repository.dispose()

    app = FastAPI(title="GitHub Repository Explorer", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ExplorerException, explorer_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(router, prefix=API_PREFIX, tags=["repositories"])
    return app
