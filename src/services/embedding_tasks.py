"""Background embedding generation for freshly saved messages"""

import asyncio
import logging

from src.services.embedder import Embedder
from src.services.embedding_store import EmbeddingStore

logger = logging.getLogger(__name__)


class EmbeddingTaskRunner:
    """
    Launch detached generate-and-store tasks

    Callers get control back immediately; a task's outcome is only logged.
    Provider calls from these tasks are capped by a semaphore, but the number
    of scheduled tasks is not. Nothing deduplicates concurrent tasks for the
    same message: the store's upsert keeps one row either way.
    """

    def __init__(
        self, embedder: Embedder, embedding_store: EmbeddingStore, max_concurrent: int = 8
    ):
        self.embedder = embedder
        self.embedding_store = embedding_store
        self._semaphore = asyncio.Semaphore(max_concurrent)
        # The event loop only keeps weak references to tasks
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, message_id: int, content: str) -> asyncio.Task:
        """Start embedding a message in the background (must run inside an event loop)"""
        task = asyncio.create_task(
            self.generate_and_store(message_id, content),
            name=f"embed-message-{message_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def generate_and_store(self, message_id: int, content: str) -> bool:
        """
        Generate and persist the embedding of one message

        Returns:
            bool: True if an embedding was stored
        """
        try:
            async with self._semaphore:
                vector = await self.embedder.generate(content)
            if vector is None:
                logger.info(f"No embedding produced for message {message_id}")
                return False

            await self.embedding_store.upsert(message_id, vector, self.embedder.model_name)
            logger.info(f"Embedding stored for message {message_id}")
            return True
        except Exception as e:
            logger.warning(f"Embedding task failed for message {message_id}: {e}")
            return False

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info(f"Embedding task {task.get_name()} was cancelled")

    async def drain(self) -> None:
        """Wait for every scheduled task (shutdown and tests only)"""
        while pending := [task for task in self._tasks if not task.done()]:
            await asyncio.gather(*pending, return_exceptions=True)
