# examples/two_party_demo.py
# Run with: python examples/two_party_demo.py
#
# Payloads stand in for ciphertext: the ledger stores bytes as given and
# never encrypts or decrypts anything itself.

import os
from tempfile import TemporaryDirectory

from chatledger import ChatLedger, NotAParticipant
from chatledger.logging_config import setup_logging
from chatledger.verify.verifier import LedgerVerifier


if __name__ == "__main__":
    setup_logging("INFO")

    with TemporaryDirectory() as tmpdir:
        db_path = os.path.join(tmpdir, "demo.db")

        with ChatLedger(f"sqlite://{db_path}") as ledger:
            ledger.register_user("alice", "alice-x25519-pub")
            ledger.register_user("bob", "bob-x25519-pub")
            ledger.register_user("eve", "eve-x25519-pub")

            ledger.create_chat("alice-bob", "alice", "bob", b"\x8f\x02 sealed hello")
            ledger.send_message("alice-bob", b"\x11\x7a sealed reply", "bob")

            try:
                ledger.send_message("alice-bob", b"injected", "eve")
            except NotAParticipant as e:
                print(f"Rejected: {e}")

            info = ledger.get_chat_info("alice-bob")
            print(f"\n{info.chat_id}: {info.participant1} <-> {info.participant2}, {info.message_count} messages")
            for msg in ledger.get_messages("alice-bob", 0):
                print(f"  #{msg.sequence_index} from {msg.sender}: {msg.encrypted_content!r}")

            result = LedgerVerifier().verify_from_storage("alice-bob", ledger.storage)
            print(f"\n{result}")
