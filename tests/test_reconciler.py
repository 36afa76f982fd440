import unittest

from src.application.reconciler import Reconciler
from src.domain.exceptions import DatabaseException, ReconciliationException
from src.domain.models import KeywordPolicy
from tests.fakes import InMemoryRepository, make_entity, unreachable_repository


class TestReconciler(unittest.IsolatedAsyncioTestCase):
    async def test_same_repository_twice_keeps_one_row_with_latest_counts(self) -> None:
        store = InMemoryRepository()
        reconciler = Reconciler(store)

        await reconciler.reconcile([make_entity(1, stars=10, fork_count=1)], "python")
        first = store.rows[1]
        await reconciler.reconcile([make_entity(1, stars=25, fork_count=4)], "python")
        second = store.rows[1]

        self.assertEqual(len(store.rows), 1)
        self.assertEqual(second.star_count, 25)
        self.assertEqual(second.fork_count, 4)
        self.assertEqual(second.created_at, first.created_at)
        self.assertGreater(second.updated_at, first.updated_at)
        self.assertEqual(second.id, first.id)

    async def test_batch_row_count_is_idempotent(self) -> None:
        store = InMemoryRepository()
        reconciler = Reconciler(store)
        batch = [make_entity(i, stars=i) for i in range(1, 6)]

        self.assertEqual(await reconciler.reconcile(batch, "python"), 5)
        self.assertEqual(await reconciler.reconcile(batch, "python"), 5)
        self.assertEqual(len(store.rows), 5)

    async def test_duplicate_ids_in_one_batch_count_once(self) -> None:
        store = InMemoryRepository()
        reconciler = Reconciler(store)

        written = await reconciler.reconcile([make_entity(1, stars=1), make_entity(1, stars=2)], "python")

        self.assertEqual(written, 1)
        self.assertEqual(store.rows[1].star_count, 2)

    async def test_keyword_tags_records(self) -> None:
        store = InMemoryRepository()
        reconciler = Reconciler(store)

        await reconciler.reconcile([make_entity(1, keyword="ignored")], "  rust ")

        self.assertEqual(store.rows[1].search_keyword, "rust")

    async def test_keep_policy_keeps_original_keyword(self) -> None:
        store = InMemoryRepository()
        reconciler = Reconciler(store, KeywordPolicy.KEEP)

        await reconciler.reconcile([make_entity(1)], "python")
        await reconciler.reconcile([make_entity(1)], "django")

        self.assertEqual(store.rows[1].search_keyword, "python")

    async def test_overwrite_policy_takes_latest_keyword(self) -> None:
        store = InMemoryRepository()
        reconciler = Reconciler(store, KeywordPolicy.OVERWRITE)

        await reconciler.reconcile([make_entity(1)], "python")
        await reconciler.reconcile([make_entity(1)], "django")

        self.assertEqual(store.rows[1].search_keyword, "django")

    async def test_failure_is_surfaced_after_attempting_the_rest(self) -> None:
        store = InMemoryRepository(failing_ids={2})
        reconciler = Reconciler(store)
        batch = [make_entity(1), make_entity(2), make_entity(3)]

        with self.assertRaises(ReconciliationException) as ctx:
            await reconciler.reconcile(batch, "python")

        self.assertEqual(sorted(store.rows), [1, 3])
        self.assertEqual(ctx.exception.written, 2)
        self.assertEqual(ctx.exception.failed, 1)
        self.assertIsInstance(ctx.exception.__cause__, DatabaseException)

    async def test_reconcile_quietly_swallows_store_failures(self) -> None:
        store = InMemoryRepository(failing_ids={1})
        reconciler = Reconciler(store)

        with self.assertLogs("src.application.reconciler", level="ERROR"):
            await reconciler.reconcile_quietly([make_entity(1)], "python")

        self.assertEqual(store.rows, {})

    async def test_reconcile_one_returns_stored_row(self) -> None:
        store = InMemoryRepository()
        reconciler = Reconciler(store)

        stored = await reconciler.reconcile_one(make_entity(9, stars=3, keyword="go"))

        self.assertEqual(stored.external_id, 9)
        self.assertEqual(stored.search_keyword, "go")
        self.assertEqual(await store.count(), 1)

    async def test_accumulate_policy_collects_distinct_keywords(self) -> None:
        store = InMemoryRepository()
        reconciler = Reconciler(store, KeywordPolicy.ACCUMULATE)

        await reconciler.reconcile([make_entity(1, stars=1)], "python")
        await reconciler.reconcile([make_entity(1, stars=2)], "web")
        await reconciler.reconcile([make_entity(1, stars=3)], "python")

        self.assertEqual(store.rows[1].search_keyword, "python,web")
        self.assertEqual(store.rows[1].star_count, 3)

    async def test_unreachable_store_attempts_every_record(self) -> None:
        repository, engine = unreachable_repository()
        reconciler = Reconciler(repository)

        with self.assertLogs("src.application.reconciler", level="ERROR"):
            with self.assertRaises(ReconciliationException) as ctx:
                await reconciler.reconcile([make_entity(1), make_entity(2)], "python")

        self.assertEqual(engine.attempts, 2)
        self.assertEqual(ctx.exception.written, 0)
        self.assertEqual(ctx.exception.failed, 2)
        self.assertIsInstance(ctx.exception.__cause__, DatabaseException)
        self.assertIsInstance(ctx.exception.__cause__.__cause__, ConnectionRefusedError)

    async def test_reconcile_quietly_logs_unreachable_store(self) -> None:
        repository, engine = unreachable_repository()
        reconciler = Reconciler(repository)

        with self.assertLogs("src.application.reconciler", level="ERROR") as logs:
            await reconciler.reconcile_quietly([make_entity(1), make_entity(2)], "python")

        self.assertEqual(engine.attempts, 2)
        self.assertTrue(any("incomplete" in line for line in logs.output))
