# chatledger/storage/memory.py
from typing import Dict, List, Optional, Tuple

from chatledger.core.types import ChatId, ChatInfo, Message, User, UserId
from . import StorageBackend


class MemoryStorage(StorageBackend):
    """
    In-process tables. Rollback restores a snapshot taken when the outermost
    transaction began; stored messages are immutable so per-chat list copies
    are enough.
    """

    def __init__(self):
        super().__init__()
        self._identities: Dict[UserId, str] = {}
        self._conversations: Dict[ChatId, ChatInfo] = {}
        self._messages: Dict[ChatId, List[Tuple[Message, str]]] = {}
        self._snapshot = None
        self._closed = False

    def _check_open(self):
        if self._closed:
            raise RuntimeError("Storage is closed")

    def _begin(self) -> None:
        self._check_open()
        self._snapshot = (
            dict(self._identities),
            dict(self._conversations),
            {cid: list(entries) for cid, entries in self._messages.items()},
        )

    def _commit(self) -> None:
        self._snapshot = None

    def _rollback(self) -> None:
        if self._snapshot is not None:
            self._identities, self._conversations, self._messages = self._snapshot
            self._snapshot = None

    def insert_identity(self, user: User) -> None:
        self._check_open()
        self._require_transaction()
        if user.id in self._identities:
            raise KeyError(f"identity {user.id} already stored")
        self._identities[user.id] = user.public_key

    def get_public_key(self, user_id: UserId) -> Optional[str]:
        self._check_open()
        return self._identities.get(user_id)

    def list_identities(self) -> List[UserId]:
        self._check_open()
        return sorted(self._identities, key=str)

    def insert_conversation(self, info: ChatInfo) -> None:
        self._check_open()
        self._require_transaction()
        if info.chat_id in self._conversations:
            raise KeyError(f"conversation {info.chat_id} already stored")
        self._conversations[info.chat_id] = info
        self._messages[info.chat_id] = []

    def get_conversation(self, chat_id: ChatId) -> Optional[ChatInfo]:
        self._check_open()
        return self._conversations.get(chat_id)

    def set_message_count(self, chat_id: ChatId, count: int) -> None:
        self._check_open()
        self._require_transaction()
        info = self._conversations[chat_id]
        self._conversations[chat_id] = ChatInfo(
            info.chat_id, info.participant1, info.participant2, count
        )

    def list_conversations(self) -> List[ChatInfo]:
        self._check_open()
        return [self._conversations[cid] for cid in sorted(self._conversations, key=str)]

    def insert_message(self, msg: Message, msg_hash: str) -> None:
        self._check_open()
        self._require_transaction()
        entries = self._messages[msg.chat_id]
        if msg.sequence_index != len(entries):
            raise KeyError(f"slot {msg.sequence_index} of {msg.chat_id} is not the next free slot")
        entries.append((msg, msg_hash))

    def get_message(self, chat_id: ChatId, index: int) -> Optional[Message]:
        self._check_open()
        entries = self._messages.get(chat_id, [])
        if 0 <= index < len(entries):
            return entries[index][0]
        return None

    def get_stored_hash(self, chat_id: ChatId, index: int) -> Optional[str]:
        self._check_open()
        entries = self._messages.get(chat_id, [])
        if 0 <= index < len(entries):
            return entries[index][1]
        return None

    def load_messages(self, chat_id: ChatId, from_index: int = 0, limit: Optional[int] = None) -> List[Message]:
        self._check_open()
        entries = self._messages.get(chat_id, [])
        end = len(entries) if limit is None else from_index + limit
        return [msg for msg, _ in entries[from_index:end]]

    def close(self) -> None:
        self._closed = True
