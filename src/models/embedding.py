"""Message embedding data models"""

from datetime import datetime

from pydantic import BaseModel, Field

from src.models.message import MessageRole


class MessageEmbedding(BaseModel):
    """Numerical vector representation of a stored message"""

    message_id: int = Field(description="Foreign key to Message.id (unique)")
    embedding: list[float] = Field(min_length=1, description="Vector representation")
    model_name: str = Field(description="Embedding model that produced the vector")
    created_at: datetime = Field(description="When the embedding was first stored")
    updated_at: datetime = Field(description="When the embedding was last overwritten")


class MessageRecord(BaseModel):
    """A user's message joined with its conversation, as read for search"""

    id: int
    conversation_id: int
    conversation_title: str
    role: MessageRole
    content: str
    created_at: datetime


class EmbeddingCandidate(MessageRecord):
    """A message that currently has a stored, decodable embedding"""

    embedding: list[float]


class UnembeddedMessage(BaseModel):
    """A message still waiting for an embedding"""

    id: int
    content: str


class ModelCount(BaseModel):
    """Number of embeddings produced by one model"""

    model_name: str
    count: int = Field(ge=0)


class EmbeddingStats(BaseModel):
    """Embedding coverage for one user"""

    total_messages: int = Field(ge=0)
    messages_with_embeddings: int = Field(ge=0)
    messages_without_embeddings: int = Field(ge=0)
    coverage_percentage: float = Field(ge=0.0, le=100.0)
    models: list[ModelCount] = Field(default_factory=list)
    current_model: str
