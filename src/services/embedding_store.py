"""SQLite store for message embeddings"""

import json
import logging
import sqlite3
from datetime import UTC, datetime

from src.models.embedding import (
    EmbeddingCandidate,
    EmbeddingStats,
    MessageEmbedding,
    ModelCount,
    UnembeddedMessage,
)
from src.services.db_manager import DatabaseManager

logger = logging.getLogger(__name__)

def serialize_vector(vector: list[float]) -> str:
    """Encode a vector as a JSON array (float repr round-trips exactly)"""
    return json.dumps([float(x) for x in vector])


def deserialize_vector(raw: str | bytes) -> list[float]:
    """
    Decode a stored vector

    Raises:
        ValueError: If the stored value is not a non-empty JSON array of numbers
    """
    data = json.loads(raw)
    if not isinstance(data, list) or not data:
        raise ValueError("stored embedding is not a non-empty array")
    if not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in data):
        raise ValueError("stored embedding contains non-numeric values")
    return [float(x) for x in data]


class EmbeddingStore:
    """Persist and read message embeddings on top of the relational store"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def upsert(
        self,
        message_id: int,
        vector: list[float],
        model_name: str,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        """
        Insert or overwrite the embedding of a message

        Repeated calls for the same message leave exactly one row holding the
        last written vector and model name; created_at is kept and updated_at
        refreshed.

        Args:
            message_id: Owning message
            vector: Embedding vector
            model_name: Model that produced the vector
            conn: Optional connection (for transactions)
        """
        conn, should_close = self.db.ensure_connection(conn)

        try:
            now = datetime.now(UTC).isoformat()
            conn.execute(
                """
                INSERT INTO embeddings (
                    message_id, embedding_vector, model_name, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (message_id) DO UPDATE SET
                    embedding_vector = excluded.embedding_vector,
                    model_name = excluded.model_name,
                    updated_at = excluded.updated_at
            """,
                (message_id, serialize_vector(vector), model_name, now, now),
            )
            conn.commit()
            logger.debug(f"Embedding stored for message {message_id}")
        finally:
            if should_close:
                conn.close()

    async def get_embedding(
        self, message_id: int, conn: sqlite3.Connection | None = None
    ) -> MessageEmbedding | None:
        conn, should_close = self.db.ensure_connection(conn)

        try:
            row = conn.execute(
                """
                SELECT message_id, embedding_vector, model_name, created_at, updated_at
                FROM embeddings
                WHERE message_id = ?
            """,
                (message_id,),
            ).fetchone()
            if not row:
                return None

            return MessageEmbedding(
                message_id=row["message_id"],
                embedding=deserialize_vector(row["embedding_vector"]),
                model_name=row["model_name"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            )
        finally:
            if should_close:
                conn.close()

    async def fetch_all_for_user(
        self, user_id: int, conn: sqlite3.Connection | None = None
    ) -> list[EmbeddingCandidate]:
        """
        Every message of the user that has a stored embedding, newest first

        Rows whose stored vector cannot be decoded are skipped with a warning.
        """
        conn, should_close = self.db.ensure_connection(conn)

        try:
            cursor = conn.execute(
                """
                SELECT
                    m.id, m.conversation_id, m.sender, m.content, m.created_at,
                    c.title AS conversation_title,
                    e.embedding_vector
                FROM messages m
                JOIN conversations c ON m.conversation_id = c.id
                JOIN embeddings e ON m.id = e.message_id
                WHERE c.user_id = ?
                ORDER BY m.created_at DESC, m.id DESC
            """,
                (user_id,),
            )

            candidates: list[EmbeddingCandidate] = []
            for row in cursor.fetchall():
                try:
                    vector = deserialize_vector(row["embedding_vector"])
                except (ValueError, TypeError) as e:
                    logger.warning(f"Skipping corrupt embedding for message {row['id']}: {e}")
                    continue

                candidates.append(
                    EmbeddingCandidate(
                        id=row["id"],
                        conversation_id=row["conversation_id"],
                        conversation_title=row["conversation_title"],
                        role=row["sender"],
                        content=row["content"],
                        created_at=row["created_at"],
                        embedding=vector,
                    )
                )

            return candidates
        finally:
            if should_close:
                conn.close()

    async def fetch_unembedded(
        self, user_id: int, limit: int, conn: sqlite3.Connection | None = None
    ) -> list[UnembeddedMessage]:
        """
        Messages of the user with no embedding and at least 3 non-blank characters

        Args:
            user_id: Owner of the conversations
            limit: Maximum number of messages

        Returns:
            Messages, newest first
        """
        conn, should_close = self.db.ensure_connection(conn)

        try:
            cursor = conn.execute(
                """
                SELECT m.id, m.content
                FROM messages m
                JOIN conversations c ON m.conversation_id = c.id
                LEFT JOIN embeddings e ON m.id = e.message_id
                WHERE c.user_id = ?
                  AND e.id IS NULL
                  AND LENGTH(strip(m.content)) >= 3
                ORDER BY m.created_at DESC, m.id DESC
                LIMIT ?
            """,
                (user_id, limit),
            )
            return [
                UnembeddedMessage(id=row["id"], content=row["content"])
                for row in cursor.fetchall()
            ]
        finally:
            if should_close:
                conn.close()

    async def users_with_unembedded_messages(
        self, conn: sqlite3.Connection | None = None
    ) -> list[int]:
        """Ids of users owning at least one message still waiting for an embedding"""
        conn, should_close = self.db.ensure_connection(conn)

        try:
            cursor = conn.execute("""
                SELECT DISTINCT c.user_id
                FROM messages m
                JOIN conversations c ON m.conversation_id = c.id
                LEFT JOIN embeddings e ON m.id = e.message_id
                WHERE e.id IS NULL AND LENGTH(strip(m.content)) >= 3
                ORDER BY c.user_id
            """)
            return [row[0] for row in cursor.fetchall()]
        finally:
            if should_close:
                conn.close()

    async def get_stats(
        self, user_id: int, current_model: str, conn: sqlite3.Connection | None = None
    ) -> EmbeddingStats:
        """Embedding coverage and per-model counts for a user (read-only)"""
        conn, should_close = self.db.ensure_connection(conn)

        try:
            totals = conn.execute(
                """
                SELECT
                    COUNT(m.id) AS total_messages,
                    COUNT(e.id) AS messages_with_embeddings
                FROM messages m
                JOIN conversations c ON m.conversation_id = c.id
                LEFT JOIN embeddings e ON m.id = e.message_id
                WHERE c.user_id = ?
            """,
                (user_id,),
            ).fetchone()

            model_rows = conn.execute(
                """
                SELECT e.model_name, COUNT(*) AS count
                FROM embeddings e
                JOIN messages m ON e.message_id = m.id
                JOIN conversations c ON m.conversation_id = c.id
                WHERE c.user_id = ?
                GROUP BY e.model_name
                ORDER BY e.model_name
            """,
                (user_id,),
            ).fetchall()
        finally:
            if should_close:
                conn.close()

        total = totals["total_messages"] or 0
        embedded = totals["messages_with_embeddings"] or 0
        coverage = round(embedded * 100.0 / total, 2) if total else 0.0

        return EmbeddingStats(
            total_messages=total,
            messages_with_embeddings=embedded,
            messages_without_embeddings=total - embedded,
            coverage_percentage=coverage,
            models=[
                ModelCount(model_name=row["model_name"], count=row["count"]) for row in model_rows
            ],
            current_model=current_model,
        )
