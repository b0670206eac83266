"""Field-level validation of candidate events.

`validate_event` is a pure check returning the first failure reason, or None.
`accept_event` runs the same check and produces the normalized record that the
writers persist. Rules run in a fixed order so the reported reason is
deterministic.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import re

import orjson

from .event_models import EventIn, Level

MAX_SOURCE_LEN = 64
MAX_MESSAGE_LEN = 2000
MAX_CLOCK_SKEW = timedelta(minutes=5)

LEVELS = frozenset(level.value for level in Level)

_RFC3339 = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?"
    r"(?:([Zz])|([+-])(\d{2}):(\d{2}))\Z",
    re.ASCII,
)


class EventRejected(Exception):
    """Raised by accept_event with the validation failure reason."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class ValidatedEvent:
    """A candidate that passed validation, in its stored form."""
    source: str
    ts: str
    level: str
    message: str
    meta_json: str | None


def parse_rfc3339(value: str) -> datetime | None:
    """Parse an RFC 3339 date-time with a mandatory offset; None if invalid."""
    match = _RFC3339.fullmatch(value)
    if match is None:
        return None
    year, month, day, hour, minute, second, frac, zulu, sign, off_h, off_m = match.groups()
    if zulu:
        tz = timezone.utc
    else:
        if int(off_h) > 23 or int(off_m) > 59:
            return None
        offset = timedelta(hours=int(off_h), minutes=int(off_m))
        tz = timezone(-offset if sign == "-" else offset)
    micro = int((frac or "0")[:6].ljust(6, "0"))
    try:
        return datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second), micro,
            tzinfo=tz,
        )
    except ValueError:
        return None


def _meta_text(meta: str | None) -> str | None:
    """Raw meta as stored: None for absent, blank or JSON null."""
    if meta is None:
        return None
    text = meta.strip()
    if not text or text == "null":
        return None
    return text


def validate_event(candidate: EventIn, now: datetime | None = None) -> str | None:
    """
    Check a candidate against the field constraints.

    Args:
        candidate: Decoded candidate event
        now: Reference time for the future-skew check (defaults to UTC now)

    Returns:
        None if the candidate is valid, otherwise the first failure reason
    """
    source = candidate.source.strip()
    if not source:
        return "source is required"
    if len(source) > MAX_SOURCE_LEN:
        return f"source too long (max {MAX_SOURCE_LEN})"

    message = candidate.message.strip()
    if not message:
        return "message is required"
    if len(message) > MAX_MESSAGE_LEN:
        return f"message too long (max {MAX_MESSAGE_LEN})"

    if candidate.level.strip().upper() not in LEVELS:
        return "level must be one of DEBUG, INFO, WARN, ERROR"

    ts = parse_rfc3339(candidate.ts)
    if ts is None:
        return "ts must be RFC3339 (e.g. 2025-12-30T12:00:00Z)"
    if now is None:
        now = datetime.now(timezone.utc)
    if ts > now + MAX_CLOCK_SKEW:
        return "ts is too far in the future"

    meta = _meta_text(candidate.meta)
    if meta is not None:
        try:
            orjson.loads(meta)
        except orjson.JSONDecodeError:
            return "meta must be valid JSON"

    return None


def accept_event(candidate: EventIn, now: datetime | None = None) -> ValidatedEvent:
    """Validate and normalize a candidate, raising EventRejected on failure."""
    reason = validate_event(candidate, now=now)
    if reason is not None:
        raise EventRejected(reason)
    return ValidatedEvent(
        source=candidate.source.strip(),
        ts=candidate.ts,
        level=candidate.level.strip().upper(),
        message=candidate.message.strip(),
        meta_json=_meta_text(candidate.meta),
    )
