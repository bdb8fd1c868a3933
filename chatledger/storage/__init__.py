# chatledger/storage/__init__.py
"""
Storage backends for the identity, conversation and message tables.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from chatledger.core.types import ChatId, ChatInfo, Message, User, UserId

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """
    Abstract base for the three durable key-value tables.

    Writes are only made inside ``transaction()``. Transactions are re-entrant:
    a nested block joins the outermost one, so a multi-step effect commits or
    rolls back as a whole.
    """

    def __init__(self):
        self._tx_depth = 0

    @contextmanager
    def transaction(self) -> Iterator["StorageBackend"]:
        outermost = self._tx_depth == 0
        if outermost:
            self._begin()
        self._tx_depth += 1
        try:
            yield self
        except BaseException:
            self._tx_depth -= 1
            if outermost:
                self._rollback()
                logger.debug("Transaction rolled back")
            raise
        else:
            self._tx_depth -= 1
            if outermost:
                try:
                    self._commit()
                except BaseException:
                    self._rollback()
                    logger.debug("Commit failed, transaction rolled back")
                    raise

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

    @abstractmethod
    def _begin(self) -> None:
        pass

    @abstractmethod
    def _commit(self) -> None:
        pass

    @abstractmethod
    def _rollback(self) -> None:
        pass

    # identities
    @abstractmethod
    def insert_identity(self, user: User) -> None:
        pass

    @abstractmethod
    def get_public_key(self, user_id: UserId) -> Optional[str]:
        pass

    @abstractmethod
    def list_identities(self) -> List[UserId]:
        pass

    # conversations
    @abstractmethod
    def insert_conversation(self, info: ChatInfo) -> None:
        pass

    @abstractmethod
    def get_conversation(self, chat_id: ChatId) -> Optional[ChatInfo]:
        pass

    @abstractmethod
    def set_message_count(self, chat_id: ChatId, count: int) -> None:
        pass

    @abstractmethod
    def list_conversations(self) -> List[ChatInfo]:
        pass

    # messages
    @abstractmethod
    def insert_message(self, msg: Message, msg_hash: str) -> None:
        pass

    @abstractmethod
    def get_message(self, chat_id: ChatId, index: int) -> Optional[Message]:
        pass

    @abstractmethod
    def get_stored_hash(self, chat_id: ChatId, index: int) -> Optional[str]:
        """Hash recorded when the message was appended."""

    @abstractmethod
    def load_messages(self, chat_id: ChatId, from_index: int = 0, limit: Optional[int] = None) -> List[Message]:
        """Messages with index in [from_index, from_index + limit), ascending."""

    @abstractmethod
    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _require_transaction(self) -> None:
        if not self.in_transaction:
            raise RuntimeError("Writes must run inside storage.transaction()")


def create_storage(uri: str) -> StorageBackend:
    if uri.startswith("sqlite://"):
        from .sqlite import SQLiteStorage
        # sqlite:///abs/path.db is absolute, sqlite://rel.db is relative to the cwd
        raw_path = uri[len("sqlite://"):]
        if not raw_path:
            raise ValueError(f"Missing database path in storage URI: {uri}")

        absolute_path = Path(raw_path).resolve()
        return SQLiteStorage(absolute_path)

    elif uri.startswith("memory:"):
        from .memory import MemoryStorage
        return MemoryStorage()
    else:
        raise ValueError(f"Unsupported storage URI: {uri}")


from .memory import MemoryStorage
from .sqlite import SQLiteStorage

__all__ = ["StorageBackend", "create_storage", "MemoryStorage", "SQLiteStorage"]
