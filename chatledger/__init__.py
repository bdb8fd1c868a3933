# chatledger/__init__.py
"""
chatledger — identity and message ledger for two-party encrypted conversations.
Append-only, hash-chained message logs behind a single serialized store.
"""

from chatledger.core.types import UserId, ChatId, User, ChatInfo, Message
from chatledger.core.errors import (
    LedgerError,
    DuplicateIdentity,
    UnknownIdentity,
    DuplicateConversation,
    UnknownConversation,
    NotAParticipant,
)
from chatledger.chain.ledger import ChatLedger

__version__ = "0.1.0-dev"

__all__ = [
    "ChatLedger",
    "UserId",
    "ChatId",
    "User",
    "ChatInfo",
    "Message",
    "LedgerError",
    "DuplicateIdentity",
    "UnknownIdentity",
    "DuplicateConversation",
    "UnknownConversation",
    "NotAParticipant",
]
