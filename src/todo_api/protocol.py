"""
Line-based text protocol spoken by the key-value cache.

Every command is a single UTF-8 line terminated by '\\n' and every reply is a
single line. Replies starting with 'ERR' signal a failure; for GET an empty
reply (or 'null' / 'nil') means the key is absent.
"""
from __future__ import annotations

from typing import Optional

SAVE_FLAG = "-&save"
ENCODING = "utf-8"
ERROR_PREFIX = "ERR"
_ABSENT_REPLIES = {"", "null", "nil"}


class ProtocolError(ValueError):
    """A key or value cannot be expressed on the wire."""


def validate_key(key: str) -> str:
    if not key or any(ch.isspace() for ch in key):
        raise ProtocolError(f"invalid key: {key!r}")
    return key


def _validate_value(value: str) -> str:
    if "\n" in value or "\r" in value:
        raise ProtocolError("value must be a single line")
    if not value.strip():
        raise ProtocolError("value must not be empty")
    return value


def _with_save(parts: list, durable: bool) -> list:
    if durable:
        parts.append(SAVE_FLAG)
    return parts


# PUBLIC_INTERFACE
def encode_get(key: str) -> bytes:
    """Encode `GET <key>`."""
    return _line(["GET", validate_key(key)])


# PUBLIC_INTERFACE
def encode_set(key: str, value: str, durable: bool = True) -> bytes:
    """Encode `SET <key> <value> [-&save]`. The value must be single-line text such as compact JSON."""
    return _line(_with_save(["SET", validate_key(key), _validate_value(value)], durable))


# PUBLIC_INTERFACE
def encode_delete(key: str, durable: bool = True) -> bytes:
    """Encode `DEL <key> [-&save]`."""
    return _line(_with_save(["DEL", validate_key(key)], durable))


def encode_login(username: str, password: Optional[str] = None) -> bytes:
    parts = ["LIN", validate_key(username)]
    if password:
        parts.append(validate_key(password))
    return _line(parts)


def encode_auth(token: str) -> bytes:
    return _line(["AUTH", validate_key(token)])


def _line(parts: list) -> bytes:
    return (" ".join(parts) + "\n").encode(ENCODING)


# PUBLIC_INTERFACE
def is_error(reply: str) -> bool:
    """Return True when a reply line reports a failure."""
    return reply.startswith(ERROR_PREFIX)


# PUBLIC_INTERFACE
def decode_value(reply: str) -> Optional[str]:
    """Turn a GET reply into the stored text, or None when the key is absent."""
    text = reply.strip()
    if text.lower() in _ABSENT_REPLIES:
        return None
    return text
