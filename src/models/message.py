"""Conversation and message data models"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from src.models.base import CamelModel


class MessageRole(str, Enum):
    """Who sent a message"""

    USER = "user"
    AI = "ai"
    SYSTEM = "system"


class Conversation(BaseModel):
    """A chat conversation owned by a single user"""

    id: int = Field(description="Conversation identifier")
    user_id: int = Field(description="Owning user")
    title: str = Field(description="Display title")
    model_used: str | None = Field(default=None, description="Chat model last used")
    message_count: int = Field(default=0, ge=0, description="Number of stored messages")
    is_pinned: bool = Field(default=False, description="Pinned by the user")
    created_at: datetime
    updated_at: datetime


class Message(BaseModel):
    """A single stored chat message (immutable once created)"""

    model_config = {"frozen": True}

    id: int = Field(description="Message identifier")
    conversation_id: int = Field(description="Owning conversation")
    role: MessageRole = Field(description="Sender role")
    content: str = Field(description="Message text")
    model_used: str | None = Field(default=None, description="Chat model tag")
    created_at: datetime


class SaveChatMessagesResult(CamelModel):
    """Response of saving a user/AI message pair"""

    success: bool = True
    conversation_id: int
    user_message_id: int
    ai_message_id: int
    message: str = "Messages saved successfully"
    model_used: str
    embedding_status: str = Field(
        default="generating", description="Embeddings are produced in the background"
    )
