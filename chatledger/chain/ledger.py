# chatledger/chain/ledger.py
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional, Union

from chatledger.chain.log import MessageLog
from chatledger.core.encoding import Content
from chatledger.core.types import ChatId, ChatInfo, Message, User, UserId
from chatledger.registry.conversation import ConversationRegistry
from chatledger.registry.identity import IdentityRegistry
from chatledger.storage import MemoryStorage, StorageBackend, create_storage

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


@dataclass
class ChatLedger:
    """
    The store object: identities, conversations and message logs behind one lock.

    Every public call runs to completion (resolve → validate → write) before the
    next one starts, and each write is a single storage transaction. Storage may
    be a backend instance, a URI ("sqlite://...", "memory://"), a plain file
    path (SQLite) or None (in-memory).
    """
    storage: Optional[Union[StorageBackend, str]] = None
    clock: Callable[[], str] = utc_now
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def __post_init__(self):
        if isinstance(self.storage, str):
            stripped = self.storage.strip()
            if stripped.startswith(("sqlite://", "memory:")):
                self.storage = create_storage(stripped)
            elif stripped:
                # Plain file path → SQLite
                self.storage = create_storage(f"sqlite://{stripped}")
            else:
                self.storage = None
        if self.storage is None:
            self.storage = MemoryStorage()

        self.identities = IdentityRegistry(self.storage)
        self.conversations = ConversationRegistry(self.storage, self.identities)
        self.log = MessageLog(self.storage, self.conversations)
        logger.debug("Ledger opened on %s", type(self.storage).__name__)

    # identities

    def register_user(self, user_id: Union[UserId, str], public_key: str) -> User:
        with self._lock:
            return self.identities.register(user_id, public_key)

    def get_public_key(self, user_id: Union[UserId, str]) -> str:
        with self._lock:
            return self.identities.get_public_key(user_id)

    def list_users(self) -> List[UserId]:
        with self._lock:
            return self.identities.list_users()

    # conversations

    def create_chat(
        self,
        chat_id: Union[ChatId, str],
        participant1_id: Union[UserId, str],
        participant2_id: Union[UserId, str],
        initial_content: Content,
    ) -> ChatInfo:
        with self._lock:
            return self.conversations.create(
                chat_id, participant1_id, participant2_id, initial_content,
                log=self.log, timestamp=self.clock()
            )

    def get_chat_info(self, chat_id: Union[ChatId, str]) -> ChatInfo:
        with self._lock:
            return self.conversations.get(chat_id)

    def list_chats(self) -> List[ChatId]:
        with self._lock:
            return self.conversations.list_chats()

    def chats_for(self, user_id: Union[UserId, str]) -> List[ChatInfo]:
        with self._lock:
            return self.conversations.chats_for(user_id)

    # messages

    def send_message(
        self,
        chat_id: Union[ChatId, str],
        content: Content,
        sender_id: Union[UserId, str],
    ) -> Message:
        with self._lock:
            return self.log.append(chat_id, sender_id, content, self.clock())

    def get_messages(self, chat_id: Union[ChatId, str], from_index: int = 0) -> List[Message]:
        with self._lock:
            return self.log.read(chat_id, from_index)

    def iter_messages(
        self,
        chat_id: Union[ChatId, str],
        from_index: int = 0,
        page_size: int = 100,
    ) -> Iterator[Message]:
        """
        Lazy variant of get_messages. Errors surface immediately; each page is
        read under the lock, up to the message count seen at call time.
        """
        with self._lock:
            pages = self.log.iter_pages(chat_id, from_index, page_size)
        return self._drain(pages)

    def _drain(self, pages: Iterator[List[Message]]) -> Iterator[Message]:
        while True:
            with self._lock:
                page = next(pages, None)
            if page is None:
                return
            yield from page

    # lifecycle

    def close(self) -> None:
        with self._lock:
            if self.storage is not None:
                self.storage.close()
                logger.debug("Ledger storage closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
