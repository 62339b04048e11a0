"""Typed field readers for decoded JSON objects."""

from __future__ import annotations

from typing import Any

from .types import HASH_SIZE, Difficulty, Hash
from .util import from_hex

_U32_MAX = (1 << 32) - 1
_U64_MAX = (1 << 64) - 1


def _field(obj: Any, name: str) -> Any:
    if not isinstance(obj, dict):
        raise ValueError(f"cannot read {name!r}: not a JSON object")
    if name not in obj:
        raise ValueError(f"field {name!r} not found")
    return obj[name]


def _is_uint(value: Any, limit: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= limit


def parse_string(obj: Any, name: str) -> str:
    """The string field ``name``; raises ValueError if missing or not a string."""
    value = _field(obj, name)
    if not isinstance(value, str):
        raise ValueError(f"field {name!r} is not a string")
    return value


def parse_uint8(obj: Any, name: str) -> int:
    """An unsigned 32-bit integer field, truncated to its low 8 bits."""
    value = _field(obj, name)
    if not _is_uint(value, _U32_MAX):
        raise ValueError(f"field {name!r} is not an unsigned 32-bit integer")
    return value & 0xFF


def parse_uint64(obj: Any, name: str) -> int:
    """An unsigned 64-bit integer field."""
    value = _field(obj, name)
    if not _is_uint(value, _U64_MAX):
        raise ValueError(f"field {name!r} is not an unsigned 64-bit integer")
    return value


def parse_bool(obj: Any, name: str) -> bool:
    """A boolean field."""
    value = _field(obj, name)
    if not isinstance(value, bool):
        raise ValueError(f"field {name!r} is not a boolean")
    return value


def parse_hash(obj: Any, name: str) -> Hash:
    """A hash given as exactly 64 hex digits."""
    s = parse_string(obj, name)
    if len(s) != HASH_SIZE * 2:
        raise ValueError(f"field {name!r} must have {HASH_SIZE * 2} hex digits")
    for c in s:
        from_hex(c)
    return Hash(bytes.fromhex(s))


def parse_difficulty(obj: Any, name: str) -> Difficulty:
    """A difficulty given as hex digits, with an optional ``0x`` prefix.

    The upper half is accumulated the way the daemon-side reader does it: it
    becomes 1 as soon as any bits spill past the lower 64, rather than the
    full shifted value.
    """
    s = parse_string(obj, name)
    if s.startswith("0x"):
        s = s[2:]

    lo = 0
    hi = 0
    for c in s:
        d = from_hex(c)
        hi = 1 if (((hi << 4) & _U64_MAX) or (lo >> 60)) else 0
        lo = ((lo << 4) | d) & _U64_MAX
    return Difficulty(lo, hi)