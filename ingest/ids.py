"""Time-ordered identifiers and receipt timestamps.

Identifiers are ULIDs: a 48-bit millisecond timestamp followed by 80 random
bits, rendered as 26 Crockford base32 characters. Lexicographic order of the
strings matches generation order.
"""
from __future__ import annotations

from datetime import datetime, timezone
import secrets
import threading
import time

CROCKFORD = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LEN = 26

_RANDOM_BITS = 80
_RANDOM_MAX = (1 << _RANDOM_BITS) - 1
_TIME_MAX = (1 << 48) - 1


def encode_ulid(value: int) -> str:
    """Render a 128-bit integer as 26 Crockford base32 characters."""
    chars = []
    for _ in range(ULID_LEN):
        chars.append(CROCKFORD[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


class UlidGenerator:
    """Monotonic ULID source, safe for concurrent callers.

    Within one millisecond, or when the wall clock steps backwards, the random
    part of the previous id is incremented instead of drawn fresh.
    """

    def __init__(self, clock=time.time_ns):
        self._clock = clock
        self._lock = threading.Lock()
        self._last_ms = -1
        self._last_rand = 0

    def new(self) -> str:
        """Return the next identifier, greater than any this generator returned before."""
        with self._lock:
            now_ms = self._clock() // 1_000_000
            if now_ms > self._last_ms:
                self._last_ms = now_ms
                self._last_rand = secrets.randbits(_RANDOM_BITS)
            elif self._last_rand < _RANDOM_MAX:
                self._last_rand += 1
            else:
                # Random space for this millisecond is exhausted; borrow the next one.
                self._last_ms += 1
                self._last_rand = secrets.randbits(_RANDOM_BITS)
            if self._last_ms > _TIME_MAX:
                raise OverflowError("ULID timestamp out of range")
            return encode_ulid((self._last_ms << _RANDOM_BITS) | self._last_rand)


_generator = UlidGenerator()


def new_id() -> str:
    """Generate a new time-ordered event identifier."""
    return _generator.new()


def receipt_timestamp(now: datetime | None = None) -> str:
    """Current UTC time as RFC 3339 with second precision, e.g. 2025-01-01T00:00:00Z."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


__all__ = ["UlidGenerator", "encode_ulid", "new_id", "receipt_timestamp"]
