"""Database schema and repository implementations."""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional

from ..models.bounce_record import BounceRecord
from ..models.incoming_email import IncomingEmailRecord


class DatabaseConnection:
    """Database connection and schema management."""

    SCHEMA_VERSION = "1.0"

    def __init__(self, db_path: Path, timeout: float = 30.0):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait for a competing writer
        """
        self.db_path = db_path
        self.timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        """
        Establish database connection.

        Returns:
            SQLite connection object
        """
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

            self._conn = sqlite3.connect(self.db_path, timeout=self.timeout)
            self._conn.row_factory = sqlite3.Row

        return self._conn

    def execute_schema(self) -> None:
        """Create database tables if they don't exist."""
        conn = self.connect()

        # Audit record per ingested message
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS incoming_emails (
                message_id TEXT NOT NULL PRIMARY KEY,
                raw TEXT NOT NULL,
                subject TEXT NOT NULL,
                from_address TEXT,
                to_addresses TEXT,
                cc_addresses TEXT,
                user_id INTEGER,
                topic_id INTEGER,
                post_id INTEGER,
                is_bounce BOOLEAN NOT NULL DEFAULT 0,
                is_auto_generated BOOLEAN NOT NULL DEFAULT 0,
                outcome TEXT,
                error TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_incoming_topic
            ON incoming_emails(topic_id)
        """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS bounce_records (
                email TEXT NOT NULL PRIMARY KEY,
                score INTEGER NOT NULL DEFAULT 0,
                reset_after TEXT
            )
        """
        )

        # Exactly-once keys (locks and per-day markers)
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS once_keys (
                key TEXT NOT NULL PRIMARY KEY,
                expires_at REAL NOT NULL
            )
        """
        )

        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_once_keys_expires
            ON once_keys(expires_at)
        """
        )

        conn.commit()

    def migrate(self) -> None:
        """Run database migrations if needed."""
        # V1.0 only needs the schema to exist
        self.execute_schema()

    def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None


class IncomingEmailRepository:
    """Repository for IncomingEmailRecord entities."""

    UPDATABLE_COLUMNS = frozenset(
        {
            "user_id",
            "topic_id",
            "post_id",
            "is_bounce",
            "is_auto_generated",
            "outcome",
            "error",
        }
    )

    def __init__(self, db: DatabaseConnection):
        """
        Initialize repository.

        Args:
            db: Database connection
        """
        self.db = db

    def create(self, record: IncomingEmailRecord) -> None:
        """
        Insert a new audit record.

        Raises:
            sqlite3.IntegrityError: If a record with the same message_id exists
        """
        conn = self.db.connect()

        conn.execute(
            """
            INSERT INTO incoming_emails
            (message_id, raw, subject, from_address, to_addresses, cc_addresses,
             user_id, topic_id, post_id, is_bounce, is_auto_generated, outcome, error,
             created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                record.message_id,
                record.raw,
                record.subject,
                record.from_address,
                record.to_addresses,
                record.cc_addresses,
                record.user_id,
                record.topic_id,
                record.post_id,
                record.is_bounce,
                record.is_auto_generated,
                record.outcome,
                record.error,
                record.created_at.isoformat(),
            ),
        )

        conn.commit()

    def exists(self, message_id: str) -> bool:
        conn = self.db.connect()
        cursor = conn.execute("SELECT 1 FROM incoming_emails WHERE message_id = ?", (message_id,))
        return cursor.fetchone() is not None

    def find_by_message_id(self, message_id: str) -> Optional[IncomingEmailRecord]:
        """
        Find audit record by Message-ID.

        Args:
            message_id: Message-ID to search for

        Returns:
            IncomingEmailRecord if found, None otherwise
        """
        conn = self.db.connect()

        cursor = conn.execute("SELECT * FROM incoming_emails WHERE message_id = ?", (message_id,))
        row = cursor.fetchone()

        if row is None:
            return None

        return self._row_to_record(row)

    def update_columns(self, message_id: str, **columns) -> None:
        """
        Update selected columns of an existing record.

        Raises:
            ValueError: If a column is not updatable
        """
        if not columns:
            return

        unknown = set(columns) - self.UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")

        assignments = ", ".join(f"{name} = ?" for name in columns)
        conn = self.db.connect()
        conn.execute(
            f"UPDATE incoming_emails SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE message_id = ?",
            (*columns.values(), message_id),
        )
        conn.commit()

    def post_ids_for_message_ids(self, message_ids: Iterable[str]) -> list[int]:
        """Post ids created by the given messages."""
        message_ids = list(message_ids)
        if not message_ids:
            return []

        placeholders = ", ".join("?" for _ in message_ids)
        conn = self.db.connect()
        cursor = conn.execute(
            f"SELECT post_id FROM incoming_emails WHERE message_id IN ({placeholders}) AND post_id IS NOT NULL",
            message_ids,
        )
        return [row["post_id"] for row in cursor.fetchall()]

    def find_by_topic(self, topic_id: int) -> Iterator[IncomingEmailRecord]:
        """
        Find all records that created a post in a topic.

        Yields:
            IncomingEmailRecord instances
        """
        conn = self.db.connect()

        cursor = conn.execute(
            "SELECT * FROM incoming_emails WHERE topic_id = ? AND post_id IS NOT NULL",
            (topic_id,),
        )

        for row in cursor.fetchall():
            yield self._row_to_record(row)

    def _row_to_record(self, row: sqlite3.Row) -> IncomingEmailRecord:
        """Convert database row to IncomingEmailRecord."""
        return IncomingEmailRecord(
            message_id=row["message_id"],
            raw=row["raw"],
            subject=row["subject"],
            from_address=row["from_address"],
            to_addresses=row["to_addresses"],
            cc_addresses=row["cc_addresses"],
            user_id=row["user_id"],
            topic_id=row["topic_id"],
            post_id=row["post_id"],
            is_bounce=bool(row["is_bounce"]),
            is_auto_generated=bool(row["is_auto_generated"]),
            outcome=row["outcome"],
            error=row["error"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


class BounceRecordRepository:
    """Repository for BounceRecord entities."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def find(self, email: str) -> Optional[BounceRecord]:
        conn = self.db.connect()

        cursor = conn.execute("SELECT * FROM bounce_records WHERE email = ?", (email.lower(),))
        row = cursor.fetchone()

        if row is None:
            return None

        return BounceRecord(
            email=row["email"],
            score=row["score"],
            reset_after=datetime.fromisoformat(row["reset_after"]) if row["reset_after"] else None,
        )

    def save(self, record: BounceRecord) -> None:
        conn = self.db.connect()

        conn.execute(
            """
            INSERT OR REPLACE INTO bounce_records (email, score, reset_after)
            VALUES (?, ?, ?)
        """,
            (
                record.email,
                record.score,
                record.reset_after.isoformat() if record.reset_after else None,
            ),
        )

        conn.commit()
