"""
Canonical encoding for everything Relay Reactor hashes or signs.

Order ids, requester and settler signatures, router command inputs and
replay-ledger chain hashes are all computed over RFC 8785 (JCS) bytes,
so two parties holding the same dict always derive the same id.

Token amounts are uint256-sized and do not survive a JSON number; they
are carried as decimal strings (encode_amount / decode_amount).
"""

import hashlib
import re
from typing import Any, Dict, Union

import jcs


_DECIMAL_RE = re.compile(r"\A[0-9]+\Z")


def canonicalize(obj: Dict[str, Any]) -> bytes:
    """RFC 8785 bytes of a JSON-primitive dict, independent of key order."""
    return jcs.canonicalize(obj)


def canonical_hash(obj: Dict[str, Any]) -> str:
    """Lowercase hex SHA-256 of canonicalize(obj)."""
    return hashlib.sha256(canonicalize(obj)).hexdigest()


def content_id(obj: Dict[str, Any]) -> str:
    """0x-prefixed content hash, the form order ids take."""
    return "0x" + canonical_hash(obj)


def encode_amount(amount: int) -> str:
    return str(amount)


def decode_amount(value: Union[int, str]) -> int:
    """
    Accept an int or the decimal string encode_amount() produced.
    Floats, bools and anything but plain ASCII digits raise ValueError.
    """
    if isinstance(value, bool):
        raise ValueError(f"amount must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _DECIMAL_RE.match(value):
        return int(value)
    raise ValueError(f"amount must be an int or a decimal string, got {value!r}")
