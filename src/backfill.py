"""CLI command for backfilling missing message embeddings"""

import argparse
import asyncio
import logging
import sqlite3
import sys

from src.config import AppConfig, get_config
from src.services.backfill import BackfillJob
from src.services.backfill_scheduler import BackfillScheduler
from src.services.db_manager import DatabaseManager
from src.services.embedder import Embedder
from src.services.embedding_store import EmbeddingStore


def setup_logging() -> None:
    """Configure logging for CLI (stdout for K8s)"""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate embeddings for unembedded messages")
    parser.add_argument("--user-id", type=int, help="Only backfill this user (default: all users)")
    parser.add_argument("--limit", type=int, help="Maximum messages per user (default: 100)")
    return parser.parse_args(argv)


async def backfill_user(config: AppConfig, user_id: int, limit: int | None) -> int:
    """Run a single user's backfill; returns the number of failed messages"""
    db = DatabaseManager(config.db_path)
    embedder = Embedder(config)
    try:
        await db.initialize()
        job = BackfillJob(config, embedder, EmbeddingStore(db))
        result = await job.run(user_id, limit=limit)
    finally:
        await embedder.close()
        db.close()

    logger = logging.getLogger(__name__)
    logger.info(
        f"User {user_id}: {result.success_count}/{result.total_processed} embedded, "
        f"{result.fail_count} failed"
    )
    for item in result.errors:
        logger.info(f"  message {item.message_id}: {item.error}")
    return result.fail_count


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the backfill CLI command

    Returns:
        int: Exit code (0 for success, 1 for failure)
    """
    setup_logging()
    logger = logging.getLogger(__name__)
    args = parse_args(argv)

    if args.limit is not None and args.limit < 1:
        logger.error(f"--limit must be positive, got: {args.limit}")
        return 1

    config = get_config()

    try:
        if args.user_id is not None:
            logger.info(f"Starting backfill for user {args.user_id}")
            failed = asyncio.run(backfill_user(config, args.user_id, args.limit))
            return 1 if failed else 0

        logger.info("Starting backfill sweep over all users")
        result = BackfillScheduler(config).backfill_once(limit=args.limit)
        if not result.success:
            logger.error(f"Backfill sweep failed: {result.error}")
            return 1
        return 1 if result.fail_count else 0
    except sqlite3.Error as e:
        logger.error(f"Database error: {e}")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
