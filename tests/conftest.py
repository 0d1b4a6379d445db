"""Shared fixtures: in-memory database, stores and a scripted embedder"""

from datetime import UTC, datetime, timedelta

import pytest

from src.config import AppConfig
from src.services.db_manager import DatabaseManager
from src.services.embedding_store import EmbeddingStore
from src.services.message_store import MessageStore

BASE_TIME = datetime(2026, 1, 1, tzinfo=UTC)


class StubEmbedder:
    """Embedder double returning scripted vectors without any network call"""

    model_name = "stub-embed"

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        default: list[float] | None = None,
        errors: dict[str, Exception] | None = None,
    ):
        self.vectors = vectors or {}
        self.default = default
        self.errors = errors or {}
        self.calls: list[str] = []

    async def generate(self, text):
        self.calls.append(text)
        if text in self.errors:
            raise self.errors[text]
        if not text or len(text.strip()) < 3:
            return None
        return self.vectors.get(text, self.default)

    async def close(self):
        pass


@pytest.fixture
def config():
    return AppConfig(db_path=":memory:")


@pytest.fixture
async def db():
    manager = DatabaseManager(":memory:")
    await manager.initialize()
    yield manager
    manager.close()


@pytest.fixture
def embedding_store(db):
    return EmbeddingStore(db)


@pytest.fixture
def message_store(db):
    return MessageStore(db)


@pytest.fixture
def make_embedder():
    return StubEmbedder


@pytest.fixture
def add_conversation(db):
    """Insert a conversation and return its id"""

    def _add(user_id: int, title: str = "New Chat") -> int:
        conn = db.get_connection()
        now = BASE_TIME.isoformat()
        cursor = conn.execute(
            "INSERT INTO conversations (user_id, title, created_at, updated_at) "
            "VALUES (?, ?, ?, ?)",
            (user_id, title, now, now),
        )
        conn.commit()
        return cursor.lastrowid

    return _add


@pytest.fixture
def add_message(db):
    """Insert a message created ``minutes`` after BASE_TIME and return its id"""

    def _add(conversation_id: int, content: str, minutes: int = 0, role: str = "user") -> int:
        conn = db.get_connection()
        created_at = (BASE_TIME + timedelta(minutes=minutes)).isoformat()
        cursor = conn.execute(
            "INSERT INTO messages (conversation_id, sender, content, created_at) "
            "VALUES (?, ?, ?, ?)",
            (conversation_id, role, content, created_at),
        )
        conn.commit()
        return cursor.lastrowid

    return _add
