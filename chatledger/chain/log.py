# chatledger/chain/log.py
import logging
from typing import Iterator, List, Union

from chatledger.core.canon import message_hash
from chatledger.core.encoding import Content, as_content_bytes
from chatledger.core.errors import NotAParticipant
from chatledger.core.types import ChatId, Message, UserId
from chatledger.registry.conversation import ConversationRegistry
from chatledger.storage import StorageBackend

logger = logging.getLogger(__name__)


class MessageLog:
    """
    Append-only, per-conversation message sequence.
    Indices are dense: slot n is written exactly once, right after slot n-1,
    and each entry carries the hash of its predecessor.
    """

    def __init__(self, storage: StorageBackend, conversations: ConversationRegistry):
        self.storage = storage
        self.conversations = conversations

    def append(
        self,
        chat_id: Union[ChatId, str],
        sender_id: Union[UserId, str],
        content: Content,
        timestamp: str,
    ) -> Message:
        """
        Resolve conversation → check membership → store at the next slot → bump count.
        Returns the stored message.
        """
        chat_id = ChatId.of(chat_id)
        sender_id = UserId.of(sender_id)
        payload = as_content_bytes(content)

        with self.storage.transaction():
            info = self.conversations.get(chat_id)
            if not info.has_participant(sender_id):
                logger.warning("Rejected message from %s to chat %s: not a participant", sender_id, chat_id)
                raise NotAParticipant(chat_id, sender_id)

            index = info.message_count
            prev_hash = ""
            if index > 0:
                prev_hash = self.storage.get_stored_hash(chat_id, index - 1)
                if prev_hash is None:
                    raise RuntimeError(f"Chat {chat_id} is missing message {index - 1}")

            msg = Message(
                chat_id=chat_id,
                sender=sender_id,
                encrypted_content=payload,
                sequence_index=index,
                timestamp=timestamp,
                prev_hash=prev_hash,
            )
            self.storage.insert_message(msg, message_hash(msg))
            self.conversations.record_append(info)

        logger.info("Appended message %d to chat %s from %s", index, chat_id, sender_id)
        return msg

    def read(self, chat_id: Union[ChatId, str], from_index: int = 0) -> List[Message]:
        """All messages at or after from_index, ascending. Past the end → []."""
        info = self.conversations.get(chat_id)
        _check_index(from_index)
        if from_index >= info.message_count:
            return []
        return self.storage.load_messages(info.chat_id, from_index, info.message_count - from_index)

    def iter_pages(
        self,
        chat_id: Union[ChatId, str],
        from_index: int = 0,
        page_size: int = 100,
    ) -> Iterator[List[Message]]:
        """
        Lazily yield pages of messages. The end is fixed at the count observed
        when iteration starts, so later appends are not picked up mid-read.
        """
        info = self.conversations.get(chat_id)
        _check_index(from_index)
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        return self._pages(info.chat_id, from_index, info.message_count, page_size)

    def _pages(self, chat_id: ChatId, start: int, end: int, page_size: int) -> Iterator[List[Message]]:
        cursor = start
        while cursor < end:
            page = self.storage.load_messages(chat_id, cursor, min(page_size, end - cursor))
            if not page:
                return
            yield page
            cursor += len(page)

    def tail(self, chat_id: Union[ChatId, str], limit: int = 20) -> List[Message]:
        """The last `limit` messages, oldest first."""
        info = self.conversations.get(chat_id)
        if limit <= 0:
            return []
        return self.read(info.chat_id, max(0, info.message_count - limit))


def _check_index(from_index: int) -> None:
    if from_index < 0:
        raise ValueError("from_index must be >= 0")
