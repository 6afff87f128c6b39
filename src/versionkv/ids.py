"""Monotonic ULID generation for version and job identifiers.

A ULID is 26 Crockford base32 characters: 10 for a 48-bit millisecond
timestamp followed by 16 for an 80-bit random tail. Identifiers from one
generator sort strictly in call order. When several calls land in the same
millisecond (or the clock steps backwards) the previous tail is incremented
instead of drawing fresh entropy; a tail overflow borrows the next
millisecond.
"""

from __future__ import annotations

import os
import threading
import time
from collections.abc import Callable

# Crockford base32 alphabet
_ENCODING = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_DECODING = {c: i for i, c in enumerate(_ENCODING)}

_TIME_CHARS = 10
_RANDOM_CHARS = 16
_RANDOM_BITS = 80
_RANDOM_MAX = (1 << _RANDOM_BITS) - 1
_TIME_MAX = (1 << 48) - 1

ULID_LENGTH = _TIME_CHARS + _RANDOM_CHARS


def _encode_base32(value: int, length: int) -> str:
    """Encode integer to base32 string of fixed length."""
    result = []
    for _ in range(length):
        result.append(_ENCODING[value & 31])
        value >>= 5
    return "".join(reversed(result))


def _system_entropy() -> int:
    return int.from_bytes(os.urandom(_RANDOM_BITS // 8), "big")


def _wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


class IdGenerator:
    """Thread-safe monotonic ULID generator."""

    def __init__(
        self,
        *,
        clock: Callable[[], int] = _wall_clock_ms,
        entropy: Callable[[], int] = _system_entropy,
    ) -> None:
        self._clock = clock
        self._entropy = entropy
        self._lock = threading.Lock()
        self._last_ms = -1
        self._last_tail = 0

    def _fresh_tail(self) -> int | None:
        try:
            return self._entropy() & _RANDOM_MAX
        except OSError:
            return None

    def next(self) -> str:
        with self._lock:
            now = min(self._clock(), _TIME_MAX)
            if now > self._last_ms:
                tail = self._fresh_tail()
                if tail is None:
                    tail = self._last_tail + 1 if self._last_ms >= 0 else 0
                    if tail > _RANDOM_MAX:
                        tail = 0
                self._last_ms = now
                self._last_tail = tail
            elif self._last_tail < _RANDOM_MAX:
                self._last_tail += 1
            else:
                self._last_ms += 1
                self._last_tail = 0
            return _encode_base32(self._last_ms, _TIME_CHARS) + _encode_base32(
                self._last_tail, _RANDOM_CHARS
            )

    __call__ = next


def id_timestamp_ms(ulid: str) -> int:
    """Return the millisecond timestamp encoded in a ULID."""
    if len(ulid) != ULID_LENGTH:
        raise ValueError(f"ULID must be {ULID_LENGTH} characters, got {len(ulid)}")
    value = 0
    for ch in ulid[:_TIME_CHARS].upper():
        try:
            value = (value << 5) | _DECODING[ch]
        except KeyError:
            raise ValueError(f"Invalid ULID character {ch!r} in {ulid!r}") from None
    return value


_default_generator = IdGenerator()


def new_id() -> str:
    """Generate an identifier from the process-wide generator."""
    return _default_generator.next()
