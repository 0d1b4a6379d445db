"""Integration tests for the scheduled backfill sweep"""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
from apscheduler.jobstores.base import JobLookupError

from src.config import AppConfig
from src.services.backfill_scheduler import JOB_ID, BackfillScheduler
from src.services.db_manager import DatabaseManager
from src.services.embedding_store import EmbeddingStore
from src.services.message_store import MessageStore


async def seed(db_path: str, exchanges: dict[int, list[tuple[str, str]]]) -> None:
    """Store user/AI pairs for each user without any embeddings"""
    db = DatabaseManager(db_path)
    await db.initialize()
    store = MessageStore(db)
    for user_id, pairs in exchanges.items():
        conversation = await store.create_conversation(user_id)
        for user_text, ai_text in pairs:
            await store.save_message_pair(conversation.id, user_text, ai_text, "model")
    db.close()


async def coverage(db_path: str, user_id: int) -> float:
    db = DatabaseManager(db_path)
    stats = await EmbeddingStore(db).get_stats(user_id, current_model="stub-embed")
    db.close()
    return stats.coverage_percentage


class TestBackfillScheduler:
    """Test sweep execution and scheduler wiring"""

    @pytest.fixture
    def config(self, tmp_path):
        return AppConfig(db_path=str(tmp_path / "data" / "chat.db"))

    def test_backfill_once_sweeps_every_user(self, config, make_embedder):
        asyncio.run(
            seed(
                config.db_path,
                {
                    1: [("first question", "first answer")],
                    2: [("second question", "second answer"), ("third question", "ok")],
                },
            )
        )

        with patch(
            "src.services.backfill_scheduler.Embedder",
            side_effect=lambda cfg: make_embedder(default=[1.0, 0.0]),
        ):
            result = BackfillScheduler(config).backfill_once()

        assert result.success is True
        assert result.error is None
        assert result.users_processed == 2
        # "ok" is too short to embed and is never picked up
        assert result.total_processed == 5
        assert result.success_count == 5
        assert result.fail_count == 0
        assert result.end_time >= result.start_time
        assert asyncio.run(coverage(config.db_path, 1)) == 100.0

    def test_backfill_once_respects_limit(self, config, make_embedder):
        asyncio.run(seed(config.db_path, {1: [("question one", "answer one")] * 3}))

        with patch(
            "src.services.backfill_scheduler.Embedder",
            side_effect=lambda cfg: make_embedder(default=[1.0]),
        ):
            result = BackfillScheduler(config).backfill_once(limit=4)

        assert result.total_processed == 4

    def test_backfill_once_with_nothing_pending(self, config, make_embedder):
        with patch(
            "src.services.backfill_scheduler.Embedder",
            side_effect=lambda cfg: make_embedder(default=[1.0]),
        ):
            result = BackfillScheduler(config).backfill_once()

        assert result.success is True
        assert result.users_processed == 0
        assert result.total_processed == 0

    def test_item_failures_do_not_fail_the_sweep(self, config, make_embedder):
        asyncio.run(seed(config.db_path, {1: [("question one", "answer one")]}))

        with patch(
            "src.services.backfill_scheduler.Embedder",
            side_effect=lambda cfg: make_embedder(),
        ):
            result = BackfillScheduler(config).backfill_once()

        assert result.success is True
        assert result.fail_count == 2
        assert result.success_count == 0

    def test_backfill_once_reports_exceptions(self, config):
        """Test that a crashing sweep is reported instead of raised"""
        with patch(
            "src.services.backfill_scheduler.Embedder",
            side_effect=RuntimeError("cannot build client"),
        ):
            result = BackfillScheduler(config).backfill_once()

        assert result.success is False
        assert result.error == "cannot build client"
        assert result.duration_seconds >= 0

    def test_configure_scheduler_registers_job(self, config):
        scheduler = MagicMock()
        backfill_scheduler = BackfillScheduler(config)

        backfill_scheduler.configure_scheduler_sync(scheduler, interval_hours=6)

        scheduler.add_job.assert_called_once()
        args, kwargs = scheduler.add_job.call_args
        assert args[0] == backfill_scheduler.backfill_once
        assert kwargs["id"] == JOB_ID
        assert kwargs["max_instances"] == 1
        assert kwargs["replace_existing"] is True
        assert kwargs["trigger"].interval.total_seconds() == 6 * 3600

    def test_stop_scheduler_removes_job(self, config):
        scheduler = MagicMock()
        backfill_scheduler = BackfillScheduler(config)
        backfill_scheduler.configure_scheduler_sync(scheduler, interval_hours=1)

        backfill_scheduler.stop_scheduler_sync()

        scheduler.remove_job.assert_called_once_with(JOB_ID)

    def test_stop_scheduler_tolerates_missing_job(self, config):
        scheduler = MagicMock()
        scheduler.remove_job.side_effect = JobLookupError(JOB_ID)
        backfill_scheduler = BackfillScheduler(config)
        backfill_scheduler.configure_scheduler_sync(scheduler, interval_hours=1)

        # Should not raise
        backfill_scheduler.stop_scheduler_sync()

    def test_stop_without_scheduler_is_noop(self, config):
        BackfillScheduler(config).stop_scheduler_sync()
