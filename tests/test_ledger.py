# tests/test_ledger.py
import random
import threading
from pathlib import Path

import pytest

from chatledger import (
    ChatLedger,
    ChatId,
    DuplicateConversation,
    DuplicateIdentity,
    NotAParticipant,
    UnknownConversation,
    UnknownIdentity,
    UserId,
)
from chatledger.storage import MemoryStorage, SQLiteStorage


@pytest.fixture(params=["memory", "sqlite"])
def ledger(request, tmp_path: Path) -> ChatLedger:
    storage = None if request.param == "memory" else f"sqlite://{tmp_path / 'ledger.db'}"
    instance = ChatLedger(storage)
    yield instance
    instance.close()


@pytest.fixture
def chat(ledger: ChatLedger) -> ChatLedger:
    """Ledger with user1/user2 registered and chat1 opened with "Hello!"."""
    ledger.register_user("user1", "publicKeyUser1")
    ledger.register_user("user2", "publicKeyUser2")
    ledger.create_chat("chat1", "user1", "user2", "Hello!")
    return ledger


def test_storage_argument_forms(tmp_path: Path):
    assert isinstance(ChatLedger().storage, MemoryStorage)
    assert isinstance(ChatLedger("").storage, MemoryStorage)
    assert isinstance(ChatLedger("memory://").storage, MemoryStorage)
    plain = ChatLedger(str(tmp_path / "plain.db"))
    assert isinstance(plain.storage, SQLiteStorage)
    plain.close()


def test_register_user(ledger: ChatLedger):
    ledger.register_user("user1", "publicKeyUser1")
    assert ledger.get_public_key("user1") == "publicKeyUser1"
    assert ledger.list_users() == [UserId("user1")]


def test_register_twice_fails(ledger: ChatLedger):
    ledger.register_user("user1", "publicKeyUser1")
    with pytest.raises(DuplicateIdentity):
        ledger.register_user("user1", "otherKey")
    assert ledger.get_public_key("user1") == "publicKeyUser1"


def test_unknown_public_key(ledger: ChatLedger):
    with pytest.raises(UnknownIdentity):
        ledger.get_public_key("nobody")


def test_create_chat(chat: ChatLedger):
    info = chat.get_chat_info("chat1")
    assert info.participant1 == UserId("user1")
    assert info.participant2 == UserId("user2")
    assert info.message_count == 1

    msgs = chat.get_messages("chat1", 0)
    assert len(msgs) == 1
    assert msgs[0].encrypted_content == b"Hello!"
    assert msgs[0].sequence_index == 0
    assert msgs[0].sender == UserId("user1")


def test_create_chat_with_unregistered_participant(ledger: ChatLedger):
    ledger.register_user("user1", "publicKeyUser1")
    with pytest.raises(UnknownIdentity):
        ledger.create_chat("chat1", "user1", "user2", "Hello!")
    with pytest.raises(UnknownConversation):
        ledger.get_chat_info("chat1")


def test_create_chat_twice(chat: ChatLedger):
    chat.register_user("user3", "publicKeyUser3")
    with pytest.raises(DuplicateConversation):
        chat.create_chat("chat1", "user1", "user3", "Hi 3")
    info = chat.get_chat_info("chat1")
    assert info.participant2 == UserId("user2")
    assert info.message_count == 1


def test_create_chat_is_atomic(ledger: ChatLedger, monkeypatch):
    """A failure during the first append must not leave an empty conversation behind."""
    ledger.register_user("user1", "k1")
    ledger.register_user("user2", "k2")

    def broken_append(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(ledger.log, "append", broken_append)
    with pytest.raises(RuntimeError, match="disk full"):
        ledger.create_chat("chat1", "user1", "user2", "Hello!")
    monkeypatch.undo()

    with pytest.raises(UnknownConversation):
        ledger.get_chat_info("chat1")
    assert ledger.list_chats() == []

    # the id is still free afterwards
    ledger.create_chat("chat1", "user1", "user2", "Hello!")
    assert ledger.get_chat_info("chat1").message_count == 1


def test_send_message(chat: ChatLedger):
    msg = chat.send_message("chat1", "How are you?", "user1")
    assert msg.sequence_index == 1
    assert chat.get_chat_info("chat1").message_count == 2

    msgs = chat.get_messages("chat1", 0)
    assert [m.encrypted_content for m in msgs] == [b"Hello!", b"How are you?"]
    assert [m.sequence_index for m in msgs] == [0, 1]


def test_send_message_from_non_participant(chat: ChatLedger):
    chat.register_user("user3", "publicKeyUser3")
    with pytest.raises(NotAParticipant):
        chat.send_message("chat1", "intrusion", "user3")
    with pytest.raises(NotAParticipant):
        chat.send_message("chat1", "unregistered", "ghost")
    assert chat.get_chat_info("chat1").message_count == 1


def test_send_to_unknown_chat(chat: ChatLedger):
    with pytest.raises(UnknownConversation):
        chat.send_message("chat404", "hi", "user1")


def test_get_messages_past_end_is_empty(chat: ChatLedger):
    assert chat.get_messages("chat1", 1) == []
    assert chat.get_messages("chat1", 99) == []
    with pytest.raises(UnknownConversation):
        chat.get_messages("chat404", 0)


def test_reads_are_idempotent(chat: ChatLedger):
    chat.send_message("chat1", b"\x00\xff", "user2")
    assert chat.get_chat_info("chat1") == chat.get_chat_info("chat1")
    assert chat.get_messages("chat1", 0) == chat.get_messages("chat1", 0)
    assert chat.get_chat_info("chat1").message_count == 2


def test_indices_dense_under_interleaving(chat: ChatLedger):
    rng = random.Random(7)
    for i in range(30):
        chat.send_message("chat1", f"msg {i}", rng.choice(["user1", "user2"]))

    count = chat.get_chat_info("chat1").message_count
    indices = [m.sequence_index for m in chat.get_messages("chat1", 0)]
    assert count == 31
    assert indices == list(range(count))


def test_concurrent_senders_stay_dense(chat: ChatLedger):
    def worker(sender: str):
        for i in range(25):
            chat.send_message("chat1", f"{sender}-{i}", sender)

    threads = [threading.Thread(target=worker, args=(s,)) for s in ("user1", "user2", "user1", "user2")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    msgs = chat.get_messages("chat1", 0)
    assert chat.get_chat_info("chat1").message_count == 101
    assert [m.sequence_index for m in msgs] == list(range(101))


def test_chats_are_independent(chat: ChatLedger):
    chat.register_user("user3", "k3")
    chat.create_chat("chat2", "user2", "user3", "other")
    chat.send_message("chat2", "more", "user3")

    assert chat.get_chat_info("chat1").message_count == 1
    assert chat.get_chat_info("chat2").message_count == 2
    assert [c.chat_id for c in chat.chats_for("user2")] == [ChatId("chat1"), ChatId("chat2")]


def test_iter_messages(chat: ChatLedger):
    for i in range(9):
        chat.send_message("chat1", f"m{i}", "user2")
    streamed = list(chat.iter_messages("chat1", 3, page_size=4))
    assert [m.sequence_index for m in streamed] == list(range(3, 10))
    assert list(chat.iter_messages("chat1", 10)) == []
    with pytest.raises(UnknownConversation):
        chat.iter_messages("chat404")


def test_clock_is_used_for_timestamps():
    ledger = ChatLedger(clock=lambda: "2026-10-18T00:00:00.000Z")
    ledger.register_user("a", "ka")
    ledger.register_user("b", "kb")
    ledger.create_chat("c", "a", "b", "hi")
    assert ledger.get_messages("c")[0].timestamp == "2026-10-18T00:00:00.000Z"


def test_ledger_persists_across_reopen(tmp_path: Path):
    db = tmp_path / "persist.db"
    with ChatLedger(f"sqlite://{db}") as ledger:
        ledger.register_user("user1", "k1")
        ledger.register_user("user2", "k2")
        ledger.create_chat("chat1", "user1", "user2", "Hello!")
        ledger.send_message("chat1", "How are you?", "user2")

    with ChatLedger(f"sqlite://{db}") as reopened:
        assert reopened.get_public_key("user2") == "k2"
        assert reopened.get_chat_info("chat1").message_count == 2
        reopened.send_message("chat1", "Fine", "user1")
        assert [m.sequence_index for m in reopened.get_messages("chat1")] == [0, 1, 2]


def test_relative_plain_path_resolves_against_cwd(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with ChatLedger("rel.db") as ledger:
        assert ledger.storage.db_path == (tmp_path / "rel.db").resolve()
        ledger.register_user("user1", "k1")
    assert (tmp_path / "rel.db").exists()


def test_failed_commit_leaves_ledger_usable(ledger: ChatLedger, monkeypatch):
    real_commit = ledger.storage._commit
    calls = []

    def commit_once_fails():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("database is locked")
        real_commit()

    monkeypatch.setattr(ledger.storage, "_commit", commit_once_fails)

    with pytest.raises(RuntimeError, match="locked"):
        ledger.register_user("a", "ka")
    with pytest.raises(UnknownIdentity):
        ledger.get_public_key("a")

    ledger.register_user("b", "kb")
    assert ledger.list_users() == [UserId("b")]
