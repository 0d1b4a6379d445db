"""Search result models"""

from datetime import datetime
from enum import Enum

from pydantic import Field

from src.models.base import CamelModel
from src.models.message import MessageRole


class SearchType(str, Enum):
    """How the hits of a search were found"""

    SEMANTIC = "semantic"
    KEYWORD = "keyword"


class SearchHit(CamelModel):
    """A message matched by a search, with its relevance"""

    id: int = Field(description="Message identifier")
    conversation_id: int
    role: MessageRole
    content: str
    created_at: datetime
    similarity: float = Field(
        ge=-1.0, le=1.0, description="Cosine similarity, or a fixed placeholder for keyword hits"
    )


class ConversationResultGroup(CamelModel):
    """Hits belonging to one conversation, in ranking order"""

    conversation_id: int
    conversation_title: str
    messages: list[SearchHit] = Field(default_factory=list)


class SearchResponse(CamelModel):
    """Complete output of a message search"""

    conversations: list[ConversationResultGroup]
    total_messages: int = Field(ge=0, description="Number of hits across all groups")
    search_type: SearchType
    embedding_model: str | None = Field(
        default=None, description="Model used for the query embedding (semantic only)"
    )
