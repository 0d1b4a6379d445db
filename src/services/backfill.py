"""Backfill embeddings for messages stored without one"""

import logging

from src.config import AppConfig
from src.models.backfill import BackfillItemError, BackfillResult
from src.services.embedder import Embedder
from src.services.embedding_store import EmbeddingStore

logger = logging.getLogger(__name__)


class EmbeddingGenerationError(Exception):
    """Raised when the provider produced no embedding for a message"""

    def __init__(self, message_id: int):
        self.message_id = message_id
        super().__init__(f"Embedding generation failed for message {message_id}")


class BackfillJob:
    """Generate missing embeddings for one user's messages, one at a time"""

    def __init__(self, config: AppConfig, embedder: Embedder, embedding_store: EmbeddingStore):
        self.config = config
        self.embedder = embedder
        self.embedding_store = embedding_store

    async def run(self, user_id: int, limit: int | None = None) -> BackfillResult:
        """
        Embed up to ``limit`` of the user's newest unembedded messages

        Messages are processed sequentially to bound load on the provider.
        A failure only affects its own message: it is counted, the first few
        are reported, and the run continues. Earlier successes are kept.

        Args:
            user_id: Owner of the messages
            limit: Maximum number of messages (default from config)

        Returns:
            BackfillResult: Counts and the first reported errors

        Raises:
            ValueError: If limit is given and less than 1
        """
        if limit is None:
            limit = self.config.backfill_default_limit
        elif limit < 1:
            raise ValueError(f"limit must be positive, got: {limit}")

        logger.info(f"Generating missing embeddings for user {user_id} (limit: {limit})")

        messages = await self.embedding_store.fetch_unembedded(user_id, limit)
        logger.info(f"Found {len(messages)} messages without embeddings")

        if not messages:
            return BackfillResult(
                message="All messages already have embeddings",
                total_processed=0,
                success_count=0,
                fail_count=0,
                embedding_model=self.embedder.model_name,
            )

        success_count = 0
        fail_count = 0
        errors: list[BackfillItemError] = []

        for message in messages:
            try:
                vector = await self.embedder.generate(message.content)
                if vector is None:
                    raise EmbeddingGenerationError(message.id)
                await self.embedding_store.upsert(message.id, vector, self.embedder.model_name)
                success_count += 1
            except Exception as e:
                logger.error(f"Failed for message {message.id}: {e}")
                fail_count += 1
                if len(errors) < self.config.backfill_max_errors:
                    errors.append(BackfillItemError(message_id=message.id, error=str(e)))

        logger.info(
            f"Embedding generation complete: {success_count}/{len(messages)} successful"
        )

        return BackfillResult(
            total_processed=len(messages),
            success_count=success_count,
            fail_count=fail_count,
            embedding_model=self.embedder.model_name,
            errors=errors,
        )
