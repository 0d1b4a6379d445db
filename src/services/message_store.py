"""Conversation and message persistence used by the search pipeline"""

import logging
import sqlite3
from datetime import UTC, datetime

from src.models.embedding import MessageRecord
from src.models.message import Conversation, Message, MessageRole
from src.services.db_manager import DatabaseManager

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _row_to_conversation(row: sqlite3.Row) -> Conversation:
    return Conversation(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        model_used=row["model_used"],
        message_count=row["message_count"],
        is_pinned=bool(row["is_pinned"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class MessageStore:
    """Read/write access to conversations and their messages"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def create_conversation(
        self,
        user_id: int,
        title: str = "New Chat",
        model_used: str | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> Conversation:
        conn, should_close = self.db.ensure_connection(conn)

        try:
            now = _now()
            cursor = conn.execute(
                """
                INSERT INTO conversations (user_id, title, model_used, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
            """,
                (user_id, title, model_used, now, now),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM conversations WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
            return _row_to_conversation(row)
        finally:
            if should_close:
                conn.close()

    async def get_conversation(
        self, conversation_id: int, user_id: int, conn: sqlite3.Connection | None = None
    ) -> Conversation | None:
        """Return the conversation if it exists and belongs to user_id"""
        conn, should_close = self.db.ensure_connection(conn)

        try:
            row = conn.execute(
                "SELECT * FROM conversations WHERE id = ? AND user_id = ?",
                (conversation_id, user_id),
            ).fetchone()
            return _row_to_conversation(row) if row else None
        finally:
            if should_close:
                conn.close()

    async def save_message_pair(
        self,
        conversation_id: int,
        user_content: str,
        ai_content: str,
        model_used: str,
        conn: sqlite3.Connection | None = None,
    ) -> tuple[Message, Message]:
        """
        Store a user message and the AI reply in one transaction

        Also records the model on the conversation and bumps its message count.

        Returns:
            Tuple of (user_message, ai_message)
        """
        conn, should_close = self.db.ensure_connection(conn)

        try:
            pair = ((MessageRole.USER, user_content), (MessageRole.AI, ai_content))
            saved: list[Message] = []
            with conn:
                for role, content in pair:
                    created_at = _now()
                    cursor = conn.execute(
                        """
                        INSERT INTO messages (
                            conversation_id, sender, content, model_used, created_at
                        ) VALUES (?, ?, ?, ?, ?)
                    """,
                        (conversation_id, role.value, content, model_used, created_at),
                    )
                    saved.append(
                        Message(
                            id=cursor.lastrowid,
                            conversation_id=conversation_id,
                            role=role,
                            content=content,
                            model_used=model_used,
                            created_at=created_at,
                        )
                    )

                conn.execute(
                    """
                    UPDATE conversations
                    SET model_used = ?, message_count = message_count + 2, updated_at = ?
                    WHERE id = ?
                """,
                    (model_used, _now(), conversation_id),
                )

            return saved[0], saved[1]
        finally:
            if should_close:
                conn.close()

    async def list_messages(
        self, conversation_id: int, user_id: int, conn: sqlite3.Connection | None = None
    ) -> list[Message]:
        """Messages of a user's conversation, oldest first"""
        conn, should_close = self.db.ensure_connection(conn)

        try:
            cursor = conn.execute(
                """
                SELECT m.id, m.conversation_id, m.sender, m.content, m.model_used, m.created_at
                FROM messages m
                JOIN conversations c ON m.conversation_id = c.id
                WHERE m.conversation_id = ? AND c.user_id = ?
                ORDER BY m.created_at ASC, m.id ASC
            """,
                (conversation_id, user_id),
            )
            return [
                Message(
                    id=row["id"],
                    conversation_id=row["conversation_id"],
                    role=row["sender"],
                    content=row["content"],
                    model_used=row["model_used"],
                    created_at=row["created_at"],
                )
                for row in cursor.fetchall()
            ]
        finally:
            if should_close:
                conn.close()

    async def delete_conversation(
        self, conversation_id: int, user_id: int, conn: sqlite3.Connection | None = None
    ) -> bool:
        """Delete a conversation; its messages and embeddings cascade"""
        conn, should_close = self.db.ensure_connection(conn)

        try:
            cursor = conn.execute(
                "DELETE FROM conversations WHERE id = ? AND user_id = ?",
                (conversation_id, user_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            if should_close:
                conn.close()

    async def keyword_search(
        self,
        user_id: int,
        query_text: str,
        limit: int = 50,
        conn: sqlite3.Connection | None = None,
    ) -> list[MessageRecord]:
        """
        Case-insensitive substring match over the user's messages

        The query is matched literally (no wildcard characters).

        Args:
            user_id: Owner of the conversations to search
            query_text: Substring to look for
            limit: Maximum number of results

        Returns:
            Matching messages, newest first
        """
        conn, should_close = self.db.ensure_connection(conn)

        try:
            cursor = conn.execute(
                """
                SELECT
                    m.id, m.conversation_id, m.sender, m.content, m.created_at,
                    c.title AS conversation_title
                FROM messages m
                JOIN conversations c ON m.conversation_id = c.id
                WHERE c.user_id = ? AND instr(casefold(m.content), ?) > 0
                ORDER BY m.created_at DESC, m.id DESC
                LIMIT ?
            """,
                (user_id, query_text.casefold(), limit),
            )
            return [
                MessageRecord(
                    id=row["id"],
                    conversation_id=row["conversation_id"],
                    conversation_title=row["conversation_title"],
                    role=row["sender"],
                    content=row["content"],
                    created_at=row["created_at"],
                )
                for row in cursor.fetchall()
            ]
        finally:
            if should_close:
                conn.close()
