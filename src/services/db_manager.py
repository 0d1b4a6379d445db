"""SQLite connection management and schema for conversations, messages and embeddings"""

import logging
import os
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

REQUIRED_TABLES = {"conversations", "messages", "embeddings"}


class IntegrityCheckError(Exception):
    """Raised when the database fails its integrity check"""

    pass


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None


def _strip(value: str | None) -> str | None:
    return value.strip() if value is not None else None


class DatabaseManager:
    """Owns the database path, connection setup and schema"""

    def __init__(self, db_path: str):
        self.db_path = db_path
        # Every sqlite3.connect(":memory:") opens a fresh empty database, so one
        # connection is kept for the lifetime of the manager
        self._memory_conn: sqlite3.Connection | None = None

    @property
    def is_memory(self) -> bool:
        return self.db_path == ":memory:"

    def _configure(self, conn: sqlite3.Connection) -> sqlite3.Connection:
        conn.row_factory = sqlite3.Row
        # Embedding rows must disappear with their message
        conn.execute("PRAGMA foreign_keys = ON")
        conn.create_function("casefold", 1, _casefold, deterministic=True)
        # Same whitespace rules as the embedder's min-length check
        conn.create_function("strip", 1, _strip, deterministic=True)
        return conn

    def get_connection(self) -> sqlite3.Connection:
        """
        Open a configured connection

        File databases get a new connection per call; :memory: always
        returns the one shared connection.

        Returns:
            Configured sqlite3.Connection with row_factory, foreign keys and
            the casefold() and strip() SQL functions
        """
        if self.is_memory:
            if self._memory_conn is None:
                self._memory_conn = self._configure(sqlite3.connect(self.db_path))
            return self._memory_conn

        return self._configure(sqlite3.connect(self.db_path))

    def ensure_connection(
        self, conn: sqlite3.Connection | None
    ) -> tuple[sqlite3.Connection, bool]:
        """
        Reuse the caller's connection or open one

        Returns:
            Tuple of (connection, should_close); should_close is True only
            for a connection opened here on a file database
        """
        if conn is not None:
            return conn, False

        new_conn = self.get_connection()
        return new_conn, not self.is_memory

    async def initialize(self) -> None:
        """Create the database file (if needed) and schema"""
        if not self.is_memory:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        conn, should_close = self.ensure_connection(None)
        try:
            self._create_tables(conn)
        finally:
            if should_close:
                conn.close()

        logger.info(f"Database initialized: {self.db_path}")

    def _create_tables(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                title TEXT NOT NULL DEFAULT 'New Chat',
                model_used TEXT,
                message_count INTEGER NOT NULL DEFAULT 0,
                is_pinned INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                CHECK(message_count >= 0)
            )
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_conversations_user_id
            ON conversations(user_id)
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id INTEGER NOT NULL,
                sender TEXT NOT NULL,
                content TEXT NOT NULL,
                model_used TEXT,
                created_at TIMESTAMP NOT NULL,
                CHECK(sender IN ('user', 'ai', 'system')),
                FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
            )
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_conversation_id
            ON messages(conversation_id)
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_created_at
            ON messages(created_at)
        """)

        # At most one embedding per message; vectors are JSON arrays
        conn.execute("""
            CREATE TABLE IF NOT EXISTS embeddings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                message_id INTEGER NOT NULL UNIQUE,
                embedding_vector TEXT NOT NULL,
                model_name TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                FOREIGN KEY (message_id) REFERENCES messages(id) ON DELETE CASCADE
            )
        """)

        conn.commit()

    def check_integrity(self) -> bool:
        """
        Verify the database passes PRAGMA integrity_check and has all tables

        Raises:
            IntegrityCheckError: If the file is missing, corrupt or incomplete
        """
        if not self.is_memory and not os.path.exists(self.db_path):
            error_msg = f"Database file does not exist: {self.db_path}"
            logger.error(error_msg)
            raise IntegrityCheckError(error_msg)

        conn, should_close = self.ensure_connection(None)
        try:
            result = conn.execute("PRAGMA integrity_check").fetchone()
            if not result or result[0] != "ok":
                error_msg = f"Database integrity check failed: {result[0] if result else None}"
                logger.error(error_msg)
                raise IntegrityCheckError(error_msg)

            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' "
                "AND name IN ('conversations', 'messages', 'embeddings')"
            )
            tables = {row[0] for row in cursor.fetchall()}
            if not REQUIRED_TABLES.issubset(tables):
                missing = REQUIRED_TABLES - tables
                error_msg = f"Missing required tables: {missing}"
                logger.error(error_msg)
                raise IntegrityCheckError(error_msg)

            return True
        finally:
            if should_close:
                conn.close()

    def close(self) -> None:
        """Release the shared :memory: connection (file connections are per call)"""
        if self._memory_conn is not None:
            self._memory_conn.close()
            self._memory_conn = None
