"""Models for embedding backfill runs"""

from datetime import datetime

from pydantic import BaseModel, Field

from src.models.base import CamelModel


class BackfillItemError(CamelModel):
    """A message the backfill could not embed"""

    message_id: int
    error: str


class BackfillResult(CamelModel):
    """Outcome of a backfill run for one user"""

    success: bool = True
    message: str | None = None
    total_processed: int = Field(ge=0)
    success_count: int = Field(ge=0)
    fail_count: int = Field(ge=0)
    embedding_model: str
    errors: list[BackfillItemError] = Field(default_factory=list)


class BackfillSweepResult(BaseModel):
    """Result of a scheduled backfill sweep over all users"""

    success: bool = Field(description="Whether the sweep completed")
    start_time: datetime = Field(description="When the sweep started")
    end_time: datetime = Field(description="When the sweep ended")
    duration_seconds: float = Field(description="Duration in seconds")
    users_processed: int = Field(default=0, ge=0)
    total_processed: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    fail_count: int = Field(default=0, ge=0)
    error: str | None = Field(default=None, description="Error message if failed")
