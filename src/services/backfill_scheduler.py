"""Periodic backfill of missing embeddings across all users"""

import asyncio
import logging
from datetime import datetime

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.config import AppConfig
from src.models.backfill import BackfillSweepResult
from src.services.backfill import BackfillJob
from src.services.db_manager import DatabaseManager
from src.services.embedder import Embedder
from src.services.embedding_store import EmbeddingStore

logger = logging.getLogger(__name__)

JOB_ID = "embedding_backfill"


class BackfillScheduler:
    """Runs BackfillJob for every user with unembedded messages"""

    def __init__(self, config: AppConfig):
        self.config = config
        self.scheduler: BackgroundScheduler | None = None

    def configure_scheduler_sync(
        self,
        scheduler: BackgroundScheduler,
        interval_hours: int,
        max_concurrent_jobs: int = 1,
    ) -> None:
        """
        Register the sweep on a BackgroundScheduler

        Args:
            scheduler: Initialized BackgroundScheduler instance
            interval_hours: Sweep interval in hours
            max_concurrent_jobs: Maximum concurrent sweeps
        """
        self.scheduler = scheduler

        trigger = IntervalTrigger(
            hours=interval_hours,
            start_date=datetime.now(),
        )

        self.scheduler.add_job(
            self.backfill_once,
            trigger=trigger,
            id=JOB_ID,
            name="Embedding Backfill Sweep",
            max_instances=max_concurrent_jobs,
            replace_existing=True,
        )

        logger.info(f"Scheduled embedding backfill every {interval_hours} hours")

    def stop_scheduler_sync(self) -> None:
        """Remove the sweep job from the scheduler"""
        if self.scheduler:
            try:
                self.scheduler.remove_job(JOB_ID)
                logger.info("Stopped backfill scheduler")
            except JobLookupError:
                logger.warning("Backfill job not found during shutdown")

    def backfill_once(self, limit: int | None = None) -> BackfillSweepResult:
        """
        Execute a single sweep

        Runs on a scheduler worker thread, so the async sweep is driven by
        its own asyncio.run() with its own connections and HTTP client.

        Returns:
            BackfillSweepResult: Aggregated counts; errors are reported, not raised
        """
        start_time = datetime.now()

        try:
            logger.info("Starting embedding backfill sweep")
            result = asyncio.run(self.sweep(limit))
        except Exception as e:
            logger.error(f"Backfill sweep failed with exception: {e}", exc_info=True)
            end_time = datetime.now()
            return BackfillSweepResult(
                success=False,
                start_time=start_time,
                end_time=end_time,
                duration_seconds=(end_time - start_time).total_seconds(),
                error=str(e),
            )

        end_time = datetime.now()
        duration_seconds = (end_time - start_time).total_seconds()
        logger.info(
            f"Backfill sweep completed in {duration_seconds:.2f}s: "
            f"{result['success_count']}/{result['total_processed']} embedded "
            f"for {result['users_processed']} users"
        )

        return BackfillSweepResult(
            success=True,
            start_time=start_time,
            end_time=end_time,
            duration_seconds=duration_seconds,
            **result,
        )

    async def sweep(self, limit: int | None = None) -> dict[str, int]:
        """Backfill every user that still has unembedded messages"""
        db = DatabaseManager(self.config.db_path)
        embedding_store = EmbeddingStore(db)
        embedder = Embedder(self.config)
        job = BackfillJob(self.config, embedder, embedding_store)

        totals = {"users_processed": 0, "total_processed": 0, "success_count": 0, "fail_count": 0}
        try:
            await db.initialize()
            for user_id in await embedding_store.users_with_unembedded_messages():
                result = await job.run(user_id, limit=limit)
                totals["users_processed"] += 1
                totals["total_processed"] += result.total_processed
                totals["success_count"] += result.success_count
                totals["fail_count"] += result.fail_count
        finally:
            await embedder.close()
            db.close()

        return totals
