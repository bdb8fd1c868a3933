# chatledger/core/types.py
from dataclasses import dataclass, asdict
from typing import Union

from chatledger.core.encoding import b64url_encode


@dataclass(frozen=True)
class UserId:
    """Opaque identifier of a registered identity."""
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not self.value:
            raise ValueError("UserId cannot be empty")

    @classmethod
    def of(cls, raw: Union["UserId", str]) -> "UserId":
        return raw if isinstance(raw, cls) else cls(raw)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ChatId:
    """Opaque identifier of a two-party conversation."""
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not self.value:
            raise ValueError("ChatId cannot be empty")

    @classmethod
    def of(cls, raw: Union["ChatId", str]) -> "ChatId":
        return raw if isinstance(raw, cls) else cls(raw)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class User:
    id: UserId
    public_key: str                 # opaque, never parsed by the ledger


@dataclass(frozen=True)
class ChatInfo:
    """Conversation record: fixed participants plus a running message count."""
    chat_id: ChatId
    participant1: UserId
    participant2: UserId
    message_count: int = 0

    def has_participant(self, user_id: UserId) -> bool:
        return user_id in (self.participant1, self.participant2)

    def to_dict(self) -> dict:
        return {
            "chat_id": str(self.chat_id),
            "participant1": str(self.participant1),
            "participant2": str(self.participant2),
            "message_count": self.message_count,
        }


@dataclass(frozen=True)
class Message:
    """Single entry in a conversation's append-only log."""
    chat_id: ChatId
    sender: UserId
    encrypted_content: bytes
    sequence_index: int             # 0-based, dense, assigned by the store
    timestamp: str = ""             # ISO 8601 UTC with millis
    prev_hash: str = ""             # hex(sha256) of the previous entry, empty for index 0

    def to_dict(self) -> dict:
        """JSON-safe form; content is base64url since it is arbitrary bytes."""
        d = asdict(self)
        d["chat_id"] = str(self.chat_id)
        d["sender"] = str(self.sender)
        d["encrypted_content"] = b64url_encode(self.encrypted_content)
        return d
