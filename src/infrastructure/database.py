import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy import (
    Table, Column, Integer, String, Text, DateTime, MetaData, Index,
    case, delete, func, literal, select,
)

from src.domain.exceptions import DatabaseException
from src.domain.models import (
    DEFAULT_SORT_FIELD,
    SORTABLE_FIELDS,
    KeywordPolicy,
    LanguageCount,
    RepositoryEntity,
    RepositoryStats,
    StatsOverview,
    StoredRepository,
)

logger = logging.getLogger(__name__)

# Separator used by the accumulate keyword policy
KEYWORD_SEPARATOR = ","

# SQLAlchemy core Table definition
metadata = MetaData()
repos_table = Table(
    'repositories', metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('external_id', Integer, nullable=False, unique=True),
    Column('name', String(255), nullable=False),
    Column('full_name', String(255), nullable=False),
    Column('description', Text),
    Column('url', String(500), nullable=False),
    Column('star_count', Integer, nullable=False, server_default='0'),
    Column('fork_count', Integer, nullable=False, server_default='0'),
    Column('primary_language', String(100)),
    Column('owner_login', String(255), nullable=False),
    Column('owner_avatar_url', String(500)),
    # Text: the accumulate keyword policy grows this value over time
    Column('search_keyword', Text, nullable=False),
    Column('created_at', DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column('updated_at', DateTime(timezone=True), nullable=False, server_default=func.now()),
    Index('ix_repositories_search_keyword', 'search_keyword'),
    Index('ix_repositories_star_count', 'star_count'),
)

# Fixed lookup of orderable columns; user input only ever selects a key here.
SORT_COLUMNS = {field: repos_table.c[field] for field in SORTABLE_FIELDS}


def normalize_database_url(url: str) -> str:
    """
    Points plain PostgreSQL URLs at the asyncpg driver and drops libpq-only
    query parameters that asyncpg rejects.
    """
    if url.startswith("postgres://"):
        url = "postgresql+asyncpg://" + url[len("postgres://"):]
    elif url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://"):]

    parts = urlsplit(url)
    if not parts.query:
        return url
    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k not in ("sslmode", "channel_binding")]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(params), parts.fragment))


def _keyword_update(policy: KeywordPolicy, excluded_keyword):
    """Value assigned to search_keyword when an existing row is touched again, or None to leave it."""
    if policy == KeywordPolicy.OVERWRITE:
        return excluded_keyword
    if policy == KeywordPolicy.ACCUMULATE:
        current = repos_table.c.search_keyword
        already_present = func.strpos(
            literal(KEYWORD_SEPARATOR) + current + literal(KEYWORD_SEPARATOR),
            literal(KEYWORD_SEPARATOR) + excluded_keyword + literal(KEYWORD_SEPARATOR),
        ) > 0
        return case(
            (already_present, current),
            else_=current + literal(KEYWORD_SEPARATOR) + excluded_keyword,
        )
    return None


def build_upsert_statement(entity: RepositoryEntity, policy: KeywordPolicy = KeywordPolicy.KEEP):
    """
    Builds the atomic insert-or-update statement for one repository.

    Only star_count, fork_count and updated_at (plus search_keyword, depending on
    the policy) change on conflict; identity fields and created_at are left alone.
    """
    stmt = insert(repos_table).values(
        external_id=entity.external_id,
        name=entity.name,
        full_name=entity.full_name,
        description=entity.description,
        url=entity.url,
        star_count=entity.star_count,
        fork_count=entity.fork_count,
        primary_language=entity.primary_language,
        owner_login=entity.owner_login,
        owner_avatar_url=entity.owner_avatar_url,
        search_keyword=entity.search_keyword,
    )

    set_ = {
        'star_count': stmt.excluded.star_count,
        'fork_count': stmt.excluded.fork_count,
        'updated_at': func.now(),
    }
    keyword = _keyword_update(policy, stmt.excluded.search_keyword)
    if keyword is not None:
        set_['search_keyword'] = keyword

    return stmt.on_conflict_do_update(index_elements=['external_id'], set_=set_).returning(repos_table)


def build_filter(keyword: Optional[str]):
    if not keyword:
        return None
    return repos_table.c.search_keyword.icontains(keyword, autoescape=True)


class PostgresRepository:
    """
    Repository class for interacting with the PostgreSQL database.
    Owns the connection pool; every operation checks a connection out for its own duration.
    """

    def __init__(self, db_url: str, pool_size: int = 5, max_overflow: int = 5, pool_timeout: float = 30.0):
        self.engine = create_async_engine(
            normalize_database_url(db_url),
            echo=False,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_pre_ping=True,
        )

    @asynccontextmanager
    async def _connection(self, failure_message: str, transactional: bool = False) -> AsyncIterator[AsyncConnection]:
        """Checks out a pooled connection, translating driver errors into DatabaseException."""
        try:
            if transactional:
                async with self.engine.begin() as conn:
                    yield conn
            else:
                async with self.engine.connect() as conn:
                    yield conn
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"{failure_message}: {e}", exc_info=True)
            raise DatabaseException(failure_message) from e

    async def create_schema(self) -> None:
        """Creates the repositories table and its indexes if they do not exist yet."""
        async with self._connection("Failed to initialize database", transactional=True) as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Database schema ready.")

    async def count(self) -> int:
        async with self._connection("Failed to query database") as conn:
            result = await conn.execute(select(func.count()).select_from(repos_table))
            return int(result.scalar_one())

    async def upsert(self, entity: RepositoryEntity, policy: KeywordPolicy = KeywordPolicy.KEEP) -> StoredRepository:
        """
        Inserts a repository or refreshes its mutable fields in a single statement.
        Each call is its own transaction.
        """
        async with self._connection("Failed to store repository", transactional=True) as conn:
            result = await conn.execute(build_upsert_statement(entity, policy))
            row = result.mappings().one()
        return StoredRepository.model_validate(dict(row))

    async def list_page(
        self,
        limit: int,
        offset: int,
        keyword: Optional[str] = None,
        sort_by: str = DEFAULT_SORT_FIELD,
        descending: bool = True,
    ) -> Tuple[List[StoredRepository], int]:
        """
        Returns one page of stored repositories and the total number matching the same filter.
        """
        sort_column = SORT_COLUMNS.get(sort_by, SORT_COLUMNS[DEFAULT_SORT_FIELD])
        ordering = sort_column.desc() if descending else sort_column.asc()
        tiebreak = repos_table.c.id.desc() if descending else repos_table.c.id.asc()

        page_query = select(repos_table).order_by(ordering, tiebreak).limit(limit).offset(offset)
        count_query = select(func.count()).select_from(repos_table)
        predicate = build_filter(keyword)
        if predicate is not None:
            page_query = page_query.where(predicate)
            count_query = count_query.where(predicate)

        async with self._connection("Failed to fetch repositories from database") as conn:
            rows = (await conn.execute(page_query)).mappings().all()
            total = (await conn.execute(count_query)).scalar_one()

        return [StoredRepository.model_validate(dict(row)) for row in rows], int(total)

    async def stats(self, top_n: int = 10) -> RepositoryStats:
        overview_query = select(
            func.count().label('total_repositories'),
            func.count(repos_table.c.search_keyword.distinct()).label('unique_keywords'),
            func.coalesce(func.avg(repos_table.c.star_count), 0).label('avg_stars'),
            func.coalesce(func.max(repos_table.c.star_count), 0).label('max_stars'),
            func.count(repos_table.c.primary_language.distinct()).label('unique_languages'),
        ).select_from(repos_table)

        language_count = func.count().label('count')
        languages_query = (
            select(repos_table.c.primary_language.label('language'), language_count)
            .where(repos_table.c.primary_language.is_not(None))
            .group_by(repos_table.c.primary_language)
            .order_by(language_count.desc(), repos_table.c.primary_language.asc())
            .limit(top_n)
        )

        async with self._connection("Failed to fetch repository statistics") as conn:
            overview = (await conn.execute(overview_query)).mappings().one()
            languages = (await conn.execute(languages_query)).mappings().all()

        return RepositoryStats(
            overview=StatsOverview(
                total_repositories=overview['total_repositories'],
                unique_keywords=overview['unique_keywords'],
                avg_stars=round(float(overview['avg_stars']), 2),
                max_stars=overview['max_stars'],
                unique_languages=overview['unique_languages'],
            ),
            top_languages=[LanguageCount(language=row['language'], count=row['count']) for row in languages],
        )

    async def delete(self, row_id: int) -> Optional[StoredRepository]:
        """Deletes by internal row id. Returns the deleted row, or None when it did not exist."""
        stmt = delete(repos_table).where(repos_table.c.id == row_id).returning(repos_table)
        async with self._connection("Failed to delete repository", transactional=True) as conn:
            row = (await conn.execute(stmt)).mappings().one_or_none()
        return StoredRepository.model_validate(dict(row)) if row is not None else None

    async def dispose(self) -> None:
        await self.engine.dispose()
