"""Validation-then-persistence pipeline for single events and batches.

Both writers validate fully before touching the store. The batch writer is
split into a validation pass that yields `ValidatedEvent` records and a write
pass that accepts only those records and runs inside one transaction, so a
rejected batch can never reach the store.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Sequence
import asyncio

import structlog
from sqlalchemy.exc import SQLAlchemyError

from ..errors import InsertFailed, InvalidEvent, InvalidRequest
from ..event_models import EventIn, EventOut
from ..ids import new_id, receipt_timestamp
from ..store import EventStore, events
from ..validation import EventRejected, ValidatedEvent, accept_event

log = structlog.get_logger()

MAX_BATCH_SIZE = 1000

_STORE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


@dataclass(frozen=True)
class BatchResult:
    ids: List[str]
    received_at: str

    @property
    def count(self) -> int:
        return len(self.ids)


def _row(event_id: str, validated: ValidatedEvent, received_at: str) -> dict:
    return {
        "id": event_id,
        "source": validated.source,
        "ts": validated.ts,
        "level": validated.level,
        "message": validated.message,
        "meta_json": validated.meta_json,
        "received_at": received_at,
    }


async def write_event(
    store: EventStore,
    candidate: EventIn,
    *,
    timeout: float | None = None,
    now: datetime | None = None,
) -> EventOut:
    """
    Validate and persist one event.

    Args:
        store: Bootstrapped event store
        candidate: Decoded candidate event
        timeout: Deadline in seconds for the store write
        now: Reference time for validation (defaults to UTC now)

    Returns:
        Generated id and receipt timestamp

    Raises:
        InvalidRequest: Candidate failed validation; the store was not accessed
        InsertFailed: The store could not persist the event
    """
    try:
        validated = accept_event(candidate, now=now)
    except EventRejected as exc:
        log.info("event.rejected", reason=exc.reason)
        raise InvalidRequest(exc.reason) from exc

    event_id = new_id()
    received_at = receipt_timestamp()

    async def _insert() -> None:
        async with store.transaction() as conn:
            await conn.execute(events.insert(), _row(event_id, validated, received_at))

    try:
        await asyncio.wait_for(_insert(), timeout)
    except _STORE_ERRORS as exc:
        log.error("event.insert_failed", error=str(exc), error_type=type(exc).__name__)
        raise InsertFailed("failed to store event") from exc

    log.info("event.accepted", id=event_id, source=validated.source, level=validated.level)
    return EventOut(id=event_id, received_at=received_at)


def validate_batch(candidates: Sequence[EventIn], now: datetime | None = None) -> List[ValidatedEvent]:
    """
    Validate a whole batch in order.

    Raises:
        InvalidRequest: The batch is empty or larger than MAX_BATCH_SIZE
        InvalidEvent: A member failed validation (carries its 0-based index)
    """
    if len(candidates) == 0:
        raise InvalidRequest("batch must not be empty")
    if len(candidates) > MAX_BATCH_SIZE:
        raise InvalidRequest(f"batch too large (max {MAX_BATCH_SIZE})")

    validated = []
    for index, candidate in enumerate(candidates):
        try:
            validated.append(accept_event(candidate, now=now))
        except EventRejected as exc:
            raise InvalidEvent(index, exc.reason) from exc
    return validated


async def _persist_batch(store: EventStore, batch: List[ValidatedEvent]) -> BatchResult:
    async with store.transaction() as conn:
        received_at = receipt_timestamp()
        rows = [_row(new_id(), validated, received_at) for validated in batch]
        await conn.execute(events.insert(), rows)
    return BatchResult(ids=[row["id"] for row in rows], received_at=received_at)


async def write_batch(
    store: EventStore,
    candidates: Sequence[EventIn],
    *,
    timeout: float | None = None,
    now: datetime | None = None,
) -> BatchResult:
    """
    Validate an entire batch, then persist it as one transaction.

    All members share one receipt timestamp and each gets its own id, returned
    in input order. On any store failure or deadline expiry the transaction is
    rolled back and no member is stored.

    Raises:
        InvalidRequest: The batch size is out of range
        InvalidEvent: A member failed validation; nothing was stored
        InsertFailed: The store could not commit the batch
    """
    try:
        validated = validate_batch(candidates, now=now)
    except InvalidEvent as exc:
        log.info("batch.rejected", index=exc.index, reason=exc.reason, size=len(candidates))
        raise

    try:
        result = await asyncio.wait_for(_persist_batch(store, validated), timeout)
    except _STORE_ERRORS as exc:
        log.error(
            "batch.insert_failed",
            size=len(validated),
            error=str(exc),
            error_type=type(exc).__name__,
        )
        raise InsertFailed("failed to store events") from exc

    log.info("batch.accepted", count=result.count, received_at=result.received_at)
    return result
