# tests/test_core.py
import json
import pytest

from chatledger.core.types import ChatId, ChatInfo, Message, UserId
from chatledger.core.encoding import as_content_bytes, b64url_decode, b64url_encode, display_content
from chatledger.core.canon import canonical_json, message_hash
from chatledger.core.errors import LedgerError, NotAParticipant, UnknownIdentity


@pytest.fixture
def sample_message():
    return Message(
        chat_id=ChatId("chat1"),
        sender=UserId("user1"),
        encrypted_content=b"\x00\x01ciphertext",
        sequence_index=0,
        timestamp="2026-10-18T12:00:00.000Z",
    )


def test_ids_reject_empty():
    with pytest.raises(ValueError):
        UserId("")
    with pytest.raises(ValueError):
        ChatId("")


def test_user_id_and_chat_id_never_equal():
    assert UserId("same") != ChatId("same")
    assert UserId("same") == UserId.of("same")
    assert UserId.of(UserId("a")) == UserId("a")


def test_message_immutable(sample_message):
    with pytest.raises(AttributeError):
        sample_message.sequence_index = 5


def test_message_to_dict_is_json_safe(sample_message):
    d = sample_message.to_dict()
    assert d["chat_id"] == "chat1"
    assert d["sender"] == "user1"
    assert d["sequence_index"] == 0
    assert d["prev_hash"] == ""
    assert b64url_decode(d["encrypted_content"]) == b"\x00\x01ciphertext"
    json.dumps(d)


def test_chat_info_membership():
    info = ChatInfo(ChatId("c"), UserId("a"), UserId("b"), 1)
    assert info.has_participant(UserId("a"))
    assert info.has_participant(UserId("b"))
    assert not info.has_participant(UserId("c"))


def test_base64url_has_no_padding():
    encoded = b64url_encode(b"ab")
    assert "=" not in encoded
    assert b64url_decode(encoded) == b"ab"


def test_content_coercion():
    assert as_content_bytes("Hello!") == b"Hello!"
    assert as_content_bytes(bytearray(b"\xff")) == b"\xff"
    with pytest.raises(TypeError):
        as_content_bytes(42)


def test_display_content_falls_back_to_b64():
    assert display_content(b"plain") == "plain"
    assert display_content(b"\xff\xfe").startswith("b64:")


def test_canonical_json_sorting():
    canon = canonical_json({"z": 1, "a": "hello"}).decode("utf-8")
    assert canon == '{"a":"hello","z":1}'


def test_message_hash_depends_on_content(sample_message):
    other = Message(**{**sample_message.__dict__, "encrypted_content": b"different"})
    assert message_hash(sample_message) == message_hash(Message(**sample_message.__dict__))
    assert message_hash(sample_message) != message_hash(other)
    assert len(message_hash(sample_message)) == 64


def test_errors_carry_ids():
    err = NotAParticipant(ChatId("c"), UserId("mallory"))
    assert isinstance(err, LedgerError)
    assert err.user_id == UserId("mallory")
    assert "mallory" in str(err)
    assert UnknownIdentity("ghost").message == "User 'ghost' is not registered"


def test_setup_logging_replaces_own_handlers(tmp_path, monkeypatch):
    import logging
    from chatledger.logging_config import setup_logging

    monkeypatch.setenv("CHATLEDGER_LOG_LEVEL", "debug")
    logger = setup_logging()
    assert logger.level == logging.DEBUG

    logger = setup_logging("info", log_file=str(tmp_path / "logs" / "ledger.log"))
    own = [h for h in logger.handlers if getattr(h, "_chatledger", False)]
    assert len(own) == 2
    assert logger.level == logging.INFO
    assert (tmp_path / "logs").is_dir()

    setup_logging("warning")
