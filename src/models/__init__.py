"""Data models for the chat search service"""

from src.models.backfill import BackfillItemError, BackfillResult, BackfillSweepResult
from src.models.embedding import (
    EmbeddingCandidate,
    EmbeddingStats,
    MessageEmbedding,
    MessageRecord,
    ModelCount,
    UnembeddedMessage,
)
from src.models.message import Conversation, Message, MessageRole, SaveChatMessagesResult
from src.models.search_result import (
    ConversationResultGroup,
    SearchHit,
    SearchResponse,
    SearchType,
)

__all__ = [
    "BackfillItemError",
    "BackfillResult",
    "BackfillSweepResult",
    "Conversation",
    "ConversationResultGroup",
    "EmbeddingCandidate",
    "EmbeddingStats",
    "Message",
    "MessageEmbedding",
    "MessageRecord",
    "MessageRole",
    "ModelCount",
    "SaveChatMessagesResult",
    "SearchHit",
    "SearchResponse",
    "SearchType",
    "UnembeddedMessage",
]
