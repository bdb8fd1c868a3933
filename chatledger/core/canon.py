# chatledger/core/canon.py
import hashlib
from typing import Any

import jcs

from chatledger.core.types import Message


def canonical_json(obj: Any) -> bytes:
    """
    Produce deterministic UTF-8 bytes according to RFC 8785 (JSON Canonicalization Scheme).
    Returns bytes ready for hashing.
    """
    return jcs.canonicalize(obj)


def message_hash(msg: Message) -> str:
    """hex(sha256) over the canonical form of a stored message."""
    return hashlib.sha256(canonical_json(msg.to_dict())).hexdigest()
