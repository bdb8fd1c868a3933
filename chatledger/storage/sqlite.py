# chatledger/storage/sqlite.py
import logging
import os
import sqlite3
from pathlib import Path
from typing import List, Optional

from chatledger.core.types import ChatId, ChatInfo, Message, User, UserId
from . import StorageBackend

logger = logging.getLogger(__name__)


class SQLiteStorage(StorageBackend):
    """SQLite persistent storage for identities, conversations and message logs."""

    def __init__(self, db_path: str | Path | None = None):
        super().__init__()
        if db_path is None:
            env_path = os.environ.get("CHATLEDGER_DB_PATH")
            db_path = env_path if env_path else Path.cwd() / "chatledger.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = self.db_path.resolve()

        self._conn: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self):
        # Autocommit mode; transactions are opened explicitly in _begin()
        self._conn = sqlite3.connect(str(self.db_path), isolation_level=None, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._create_schema()
        logger.debug("Opened SQLite storage at %s", self.db_path)

    def _create_schema(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS identities (
                user_id         TEXT    PRIMARY KEY,
                public_key      TEXT    NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                chat_id         TEXT    PRIMARY KEY,
                participant1    TEXT    NOT NULL REFERENCES identities(user_id),
                participant2    TEXT    NOT NULL REFERENCES identities(user_id),
                message_count   INTEGER NOT NULL DEFAULT 0 CHECK (message_count >= 0)
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                chat_id         TEXT    NOT NULL REFERENCES conversations(chat_id),
                sequence_index  INTEGER NOT NULL,
                sender          TEXT    NOT NULL,
                content         BLOB    NOT NULL,
                timestamp       TEXT    NOT NULL,
                prev_hash       TEXT    NOT NULL,
                message_hash    TEXT    NOT NULL,
                PRIMARY KEY (chat_id, sequence_index)
            )
        """)
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_sender ON messages(sender)")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Storage connection is closed")
        return self._conn

    def _begin(self) -> None:
        # IMMEDIATE takes the write lock up front so concurrent writers serialize
        self.conn.execute("BEGIN IMMEDIATE")

    def _commit(self) -> None:
        self.conn.execute("COMMIT")

    def _rollback(self) -> None:
        if self._conn is not None and self._conn.in_transaction:
            self._conn.execute("ROLLBACK")

    def insert_identity(self, user: User) -> None:
        self._require_transaction()
        self.conn.execute(
            "INSERT INTO identities (user_id, public_key) VALUES (?, ?)",
            (user.id.value, user.public_key)
        )

    def get_public_key(self, user_id: UserId) -> Optional[str]:
        row = self.conn.execute(
            "SELECT public_key FROM identities WHERE user_id = ?",
            (user_id.value,)
        ).fetchone()
        return row[0] if row else None

    def list_identities(self) -> List[UserId]:
        cursor = self.conn.execute("SELECT user_id FROM identities ORDER BY user_id ASC")
        return [UserId(row[0]) for row in cursor.fetchall()]

    def insert_conversation(self, info: ChatInfo) -> None:
        self._require_transaction()
        self.conn.execute("""
            INSERT INTO conversations (chat_id, participant1, participant2, message_count)
            VALUES (?, ?, ?, ?)
        """, (info.chat_id.value, info.participant1.value, info.participant2.value, info.message_count))

    def get_conversation(self, chat_id: ChatId) -> Optional[ChatInfo]:
        row = self.conn.execute("""
            SELECT participant1, participant2, message_count
            FROM conversations WHERE chat_id = ?
        """, (chat_id.value,)).fetchone()
        if row is None:
            return None
        p1, p2, count = row
        return ChatInfo(chat_id, UserId(p1), UserId(p2), count)

    def set_message_count(self, chat_id: ChatId, count: int) -> None:
        self._require_transaction()
        self.conn.execute(
            "UPDATE conversations SET message_count = ? WHERE chat_id = ?",
            (count, chat_id.value)
        )

    def list_conversations(self) -> List[ChatInfo]:
        cursor = self.conn.execute("""
            SELECT chat_id, participant1, participant2, message_count
            FROM conversations ORDER BY chat_id ASC
        """)
        return [
            ChatInfo(ChatId(cid), UserId(p1), UserId(p2), count)
            for cid, p1, p2, count in cursor.fetchall()
        ]

    def insert_message(self, msg: Message, msg_hash: str) -> None:
        self._require_transaction()
        self.conn.execute("""
            INSERT INTO messages
            (chat_id, sequence_index, sender, content, timestamp, prev_hash, message_hash)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            msg.chat_id.value, msg.sequence_index, msg.sender.value,
            sqlite3.Binary(msg.encrypted_content), msg.timestamp, msg.prev_hash, msg_hash
        ))

    def get_message(self, chat_id: ChatId, index: int) -> Optional[Message]:
        row = self.conn.execute("""
            SELECT sequence_index, sender, content, timestamp, prev_hash
            FROM messages WHERE chat_id = ? AND sequence_index = ?
        """, (chat_id.value, index)).fetchone()
        return self._row_to_message(chat_id, row) if row else None

    def load_messages(self, chat_id: ChatId, from_index: int = 0, limit: Optional[int] = None) -> List[Message]:
        cursor = self.conn.execute("""
            SELECT sequence_index, sender, content, timestamp, prev_hash
            FROM messages
            WHERE chat_id = ? AND sequence_index >= ?
            ORDER BY sequence_index ASC
            LIMIT ?
        """, (chat_id.value, from_index, -1 if limit is None else limit))
        return [self._row_to_message(chat_id, row) for row in cursor]

    def get_stored_hash(self, chat_id: ChatId, index: int) -> Optional[str]:
        row = self.conn.execute(
            "SELECT message_hash FROM messages WHERE chat_id = ? AND sequence_index = ?",
            (chat_id.value, index)
        ).fetchone()
        return row[0] if row else None

    @staticmethod
    def _row_to_message(chat_id: ChatId, row) -> Message:
        seq, sender, content, ts, prev = row
        return Message(
            chat_id=chat_id,
            sender=UserId(sender),
            encrypted_content=bytes(content),
            sequence_index=seq,
            timestamp=ts,
            prev_hash=prev
        )

    def close(self) -> None:
        if self._conn:
            self._rollback()
            self._conn.close()
            self._conn = None
            logger.debug("Closed SQLite storage at %s", self.db_path)
