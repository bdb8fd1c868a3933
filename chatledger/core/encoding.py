# chatledger/core/encoding.py
import base64
from typing import Union

Content = Union[bytes, bytearray, memoryview, str]


def b64url_encode(data: bytes) -> str:
    """Encode bytes to base64url without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(s: str) -> bytes:
    padding = len(s) % 4
    if padding:
        s += "=" * (4 - padding)
    return base64.urlsafe_b64decode(s)


def as_content_bytes(content: Content) -> bytes:
    """
    Normalize a message payload to the bytes the ledger stores.
    Byte-like input is kept verbatim; text is stored as its UTF-8 encoding.
    """
    if isinstance(content, (bytes, bytearray, memoryview)):
        return bytes(content)
    if isinstance(content, str):
        return content.encode("utf-8")
    raise TypeError(f"Message content must be bytes or str, not {type(content).__name__}")


def display_content(content: bytes) -> str:
    """Best-effort printable form: UTF-8 text when it decodes, base64url otherwise."""
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        return "b64:" + b64url_encode(content)
