# chatledger/registry/conversation.py
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Union

from chatledger.core.encoding import Content
from chatledger.core.errors import DuplicateConversation, UnknownConversation, UnknownIdentity
from chatledger.core.types import ChatId, ChatInfo, UserId
from chatledger.registry.identity import IdentityRegistry
from chatledger.storage import StorageBackend

if TYPE_CHECKING:
    from chatledger.chain.log import MessageLog

logger = logging.getLogger(__name__)


class ConversationRegistry:
    """
    Two-party conversation records. Participants are fixed at creation;
    the message count only ever grows, one step per appended message.
    """

    def __init__(self, storage: StorageBackend, identities: IdentityRegistry):
        self.storage = storage
        self.identities = identities

    def create(
        self,
        chat_id: Union[ChatId, str],
        participant1: Union[UserId, str],
        participant2: Union[UserId, str],
        initial_content: Content,
        log: MessageLog,
        timestamp: str,
    ) -> ChatInfo:
        """
        Create the record and append the creator's first message as one
        transaction: callers never see a conversation with zero messages.
        """
        chat_id = ChatId.of(chat_id)
        participant1 = UserId.of(participant1)
        participant2 = UserId.of(participant2)

        with self.storage.transaction():
            if self.storage.get_conversation(chat_id) is not None:
                logger.warning("Rejected duplicate chat id %s", chat_id)
                raise DuplicateConversation(chat_id)
            try:
                self.identities.require(participant1, participant2)
            except UnknownIdentity as e:
                logger.warning("Rejected chat %s: unknown participant %s", chat_id, e.user_id)
                raise

            self.storage.insert_conversation(ChatInfo(chat_id, participant1, participant2, 0))
            log.append(chat_id, participant1, initial_content, timestamp)
            info = self.get(chat_id)

        logger.info("Created chat %s between %s and %s", chat_id, participant1, participant2)
        return info

    def get(self, chat_id: Union[ChatId, str]) -> ChatInfo:
        chat_id = ChatId.of(chat_id)
        info = self.storage.get_conversation(chat_id)
        if info is None:
            raise UnknownConversation(chat_id)
        return info

    def exists(self, chat_id: Union[ChatId, str]) -> bool:
        return self.storage.get_conversation(ChatId.of(chat_id)) is not None

    def record_append(self, info: ChatInfo) -> ChatInfo:
        """Bump the count after a message was stored at slot info.message_count."""
        updated = ChatInfo(info.chat_id, info.participant1, info.participant2, info.message_count + 1)
        self.storage.set_message_count(info.chat_id, updated.message_count)
        return updated

    def list_chats(self) -> List[ChatId]:
        return [info.chat_id for info in self.storage.list_conversations()]

    def chats_for(self, user_id: Union[UserId, str]) -> List[ChatInfo]:
        user_id = UserId.of(user_id)
        self.identities.require(user_id)
        return [info for info in self.storage.list_conversations() if info.has_participant(user_id)]
