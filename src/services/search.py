"""Search service for querying a user's chat history"""

import logging
import time
from collections import OrderedDict
from collections.abc import Iterable

from src.config import AppConfig
from src.models.embedding import MessageRecord
from src.models.search_result import (
    ConversationResultGroup,
    SearchHit,
    SearchResponse,
    SearchType,
)
from src.services.embedder import Embedder
from src.services.embedding_store import EmbeddingStore
from src.services.message_store import MessageStore
from src.services.similarity import rank

logger = logging.getLogger(__name__)


class QueryValidationError(ValueError):
    """Raised when a search query is too short to be meaningful"""

    pass


def group_by_conversation(
    scored: Iterable[tuple[MessageRecord, float]],
) -> list[ConversationResultGroup]:
    """
    Partition ordered hits into per-conversation groups

    A group is positioned where its first hit appears in ``scored``, and
    collects its hits in encounter order. Groups are not re-sorted.
    """
    groups: OrderedDict[int, ConversationResultGroup] = OrderedDict()

    for record, similarity in scored:
        group = groups.get(record.conversation_id)
        if group is None:
            group = ConversationResultGroup(
                conversation_id=record.conversation_id,
                conversation_title=record.conversation_title,
            )
            groups[record.conversation_id] = group

        group.messages.append(
            SearchHit(
                id=record.id,
                conversation_id=record.conversation_id,
                role=record.role,
                content=record.content,
                created_at=record.created_at,
                similarity=similarity,
            )
        )

    return list(groups.values())


class SearchService:
    """Semantic search over a user's messages with keyword fallback"""

    def __init__(
        self,
        config: AppConfig,
        embedder: Embedder,
        embedding_store: EmbeddingStore,
        message_store: MessageStore,
    ):
        self.config = config
        self.embedder = embedder
        self.embedding_store = embedding_store
        self.message_store = message_store

    def validate_query(self, query: str | None) -> str:
        """
        Raises:
            QueryValidationError: If the trimmed query is too short
        """
        if not query or len(query.strip()) < self.config.min_text_length:
            raise QueryValidationError("Search query too short")
        return query

    async def search(self, user_id: int, query: str) -> SearchResponse:
        """
        Search a user's messages

        The query is embedded and ranked against stored message embeddings.
        When no query embedding can be produced, the user has no embeddings,
        or nothing passes the similarity threshold, a keyword search is used
        instead.

        Args:
            user_id: Owner of the messages to search
            query: Free-text query

        Returns:
            SearchResponse: Hits grouped by conversation

        Raises:
            QueryValidationError: If the query is too short (no provider call is made)
        """
        query = self.validate_query(query)
        start_time = time.time()

        query_embedding = await self.embedder.generate(query)

        if query_embedding is None:
            logger.warning("Could not generate query embedding, falling back to keyword search")
            response = await self._keyword_search(user_id, query)
        else:
            response = await self._semantic_search(user_id, query, query_embedding)

        query_time_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Search for user {user_id} returned {response.total_messages} messages "
            f"({response.search_type.value}, {query_time_ms:.1f}ms)"
        )
        return response

    async def _semantic_search(
        self, user_id: int, query: str, query_embedding: list[float]
    ) -> SearchResponse:
        candidates = await self.embedding_store.fetch_all_for_user(user_id)
        logger.debug(f"Found {len(candidates)} messages with embeddings")

        if not candidates:
            logger.info("No embeddings found, falling back to keyword search")
            return await self._keyword_search(user_id, query)

        ranked = rank(
            query_embedding,
            candidates,
            threshold=self.config.similarity_threshold,
            top_k=self.config.search_result_limit,
        )

        if not ranked:
            logger.info(
                f"No messages above similarity {self.config.similarity_threshold}, "
                "trying keyword search"
            )
            return await self._keyword_search(user_id, query)

        return SearchResponse(
            conversations=group_by_conversation(ranked),
            total_messages=len(ranked),
            search_type=SearchType.SEMANTIC,
            embedding_model=self.embedder.model_name,
        )

    async def _keyword_search(self, user_id: int, query: str) -> SearchResponse:
        records = await self.message_store.keyword_search(
            user_id, query, limit=self.config.search_result_limit
        )
        # No vector comparison happened, so every hit gets the same placeholder
        placeholder = self.config.keyword_similarity_placeholder
        scored = [(record, placeholder) for record in records]

        return SearchResponse(
            conversations=group_by_conversation(scored),
            total_messages=len(records),
            search_type=SearchType.KEYWORD,
        )
