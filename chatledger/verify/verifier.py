# chatledger/verify/verifier.py
from typing import List, Optional, Union
from dataclasses import dataclass, field

from chatledger.core.canon import message_hash
from chatledger.core.types import ChatId, ChatInfo, Message
from chatledger.storage import StorageBackend


@dataclass
class VerificationFailure:
    index: int
    message: str
    category: str = "general"  # "sequence", "count", "chat", "membership", "hash_chain", "storage"


@dataclass
class VerificationResult:
    is_valid: bool
    message: str = ""
    failures: List[VerificationFailure] = field(default_factory=list)

    @property
    def first_failure(self) -> Optional[VerificationFailure]:
        return self.failures[0] if self.failures else None

    def fail(self, index: int, message: str, category: str) -> None:
        self.failures.append(VerificationFailure(index, message, category))
        self.is_valid = False

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return "Chat log is valid ✓"
        lines = [f"Verification FAILED ({len(self.failures)} issues):"]
        for f in self.failures:
            lines.append(f"  • [{f.index}] {f.category}: {f.message}")
        return "\n".join(lines)


class LedgerVerifier:
    """
    Offline integrity check of one conversation: dense indices, count
    agreement, sender membership and the prev_hash chain.
    """

    def verify(
        self,
        info: ChatInfo,
        messages: List[Message],
        stored_hashes: Optional[List[Optional[str]]] = None,
    ) -> VerificationResult:
        result = VerificationResult(True)

        if len(messages) != info.message_count:
            result.fail(-1, f"Chat records {info.message_count} messages, log holds {len(messages)}", "count")

        for i, msg in enumerate(messages):
            if msg.chat_id != info.chat_id:
                result.fail(i, f"Chat mismatch: {msg.chat_id}", "chat")
            if msg.sequence_index != i:
                result.fail(i, f"Sequence mismatch: expected {i}, got {msg.sequence_index}", "sequence")
            if not info.has_participant(msg.sender):
                result.fail(i, f"Sender '{msg.sender}' is not a participant", "membership")

        for i, msg in enumerate(messages):
            expected_prev = "" if i == 0 else message_hash(messages[i - 1])
            if msg.prev_hash != expected_prev:
                result.fail(i, "prev_hash does not match previous message hash", "hash_chain")
            if stored_hashes is not None and stored_hashes[i] != message_hash(msg):
                result.fail(i, "Stored hash does not match message contents", "hash_chain")

        result.message = "Valid chat log" if result.is_valid else f"Failed with {len(result.failures)} issues"
        return result

    def verify_from_storage(self, chat_id: Union[ChatId, str], storage: StorageBackend) -> VerificationResult:
        """Load a conversation from storage and verify it. Load errors become a 'storage' failure."""
        chat_id = ChatId.of(chat_id)
        try:
            info = storage.get_conversation(chat_id)
            if info is None:
                raise LookupError(f"Chat '{chat_id}' does not exist")
            messages = storage.load_messages(chat_id)
            stored = [storage.get_stored_hash(chat_id, m.sequence_index) for m in messages]
        except Exception as e:
            return VerificationResult(
                False,
                f"Failed to load chat '{chat_id}' from storage: {str(e)}",
                [VerificationFailure(-1, str(e), "storage")]
            )

        return self.verify(info, messages, stored)
