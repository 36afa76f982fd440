import logging
from typing import Iterable, Optional, Set

from src.domain.exceptions import ExplorerException, ReconciliationException
from src.domain.models import KeywordPolicy, RepositoryEntity, StoredRepository
from src.infrastructure.database import PostgresRepository

logger = logging.getLogger(__name__)


class Reconciler:
    """
    Persists externally fetched repositories into the local store with
    insert-or-refresh semantics.

    Every record is upserted in its own transaction: a failing record does not
    roll back the ones before it, and the rest of the batch is still attempted.
    Concurrent reconciliation of the same repository relies on the store's atomic
    upsert, so no locking happens here.
    """

    def __init__(self, repository: PostgresRepository, keyword_policy: KeywordPolicy = KeywordPolicy.KEEP):
        self.repository = repository
        self.keyword_policy = keyword_policy

    async def reconcile_one(self, entity: RepositoryEntity) -> StoredRepository:
        return await self.repository.upsert(entity, self.keyword_policy)

    async def reconcile(self, entities: Iterable[RepositoryEntity], keyword: Optional[str] = None) -> int:
        """
        Upserts every entity, tagging it with the keyword that produced it.

        Returns:
            int: Number of distinct repositories written.

        Raises:
            ReconciliationException: If any record failed. The first failure is chained
                as the cause; records written before and after it stay committed.
        """
        keyword = (keyword or "").strip()
        written: Set[int] = set()
        first_failure: Optional[ExplorerException] = None
        failed = 0

        for entity in entities:
            if keyword and entity.search_keyword != keyword:
                entity = entity.model_copy(update={'search_keyword': keyword})
            try:
                await self.repository.upsert(entity, self.keyword_policy)
            except ExplorerException as e:
                failed += 1
                if first_failure is None:
                    first_failure = e
                logger.error(f"Failed to reconcile repository {entity.external_id} ({entity.full_name}): {e}")
                continue
            written.add(entity.external_id)

        if first_failure is not None:
            raise ReconciliationException(written=len(written), failed=failed) from first_failure

        return len(written)

    async def reconcile_quietly(self, entities: Iterable[RepositoryEntity], keyword: Optional[str] = None) -> None:
        """Best-effort reconciliation used after a search; failures are logged, never raised."""
        try:
            count = await self.reconcile(entities, keyword)
        except ExplorerException as e:
            logger.error(f"Reconciliation for '{keyword}' incomplete: {e}", exc_info=True)
            return
        logger.info(f"Reconciled {count} repositories for '{keyword}'.")
