"""Tests for the single-event and batch writers."""
import asyncio
import time
from contextlib import contextmanager
from unittest.mock import patch

import pytest
from sqlalchemy import event

from ingest.errors import InsertFailed, InvalidEvent, InvalidRequest
from ingest.event_models import EventIn
from ingest.services.writer import MAX_BATCH_SIZE, validate_batch, write_batch, write_event
from ingest.store import EventStore


def make_event(**overrides) -> EventIn:
    fields = {
        "source": "svc-a",
        "ts": "2025-01-01T00:00:00Z",
        "level": "info",
        "message": "hello",
    }
    fields.update(overrides)
    return EventIn(**fields)


@pytest.mark.asyncio
async def test_write_event_stores_normalized_fields(store, fetch_rows):
    """Concrete scenario: lowercase level is stored uppercased."""
    out = await write_event(store, make_event(source="  svc-a ", message=" hello  "))

    rows = await fetch_rows(store)
    assert rows == [
        {
            "id": out.id,
            "source": "svc-a",
            "ts": "2025-01-01T00:00:00Z",
            "level": "INFO",
            "message": "hello",
            "meta_json": None,
            "received_at": out.received_at,
        }
    ]


@pytest.mark.asyncio
async def test_write_event_ids_unique_and_increasing(store):
    ids = [(await write_event(store, make_event())).id for _ in range(20)]
    assert all(ids)
    assert len(set(ids)) == 20
    assert ids == sorted(ids)


@pytest.mark.asyncio
async def test_write_event_keeps_meta_text(store, fetch_rows):
    await write_event(store, make_event(meta='{"host": "a", "n": 1}'))
    rows = await fetch_rows(store)
    assert rows[0]["meta_json"] == '{"host": "a", "n": 1}'


@pytest.mark.asyncio
async def test_absent_and_null_meta_stored_identically(store, fetch_rows):
    await write_event(store, make_event())
    await write_event(store, make_event(meta="null"))
    rows = await fetch_rows(store)
    assert [row["meta_json"] for row in rows] == [None, None]


@pytest.mark.asyncio
async def test_invalid_event_does_not_touch_store(store, fetch_rows):
    """Concrete scenario: empty source is rejected before any store access."""
    with patch.object(EventStore, "transaction") as transaction:
        with pytest.raises(InvalidRequest) as exc_info:
            await write_event(store, make_event(source=""))
    assert exc_info.value.message == "source is required"
    assert exc_info.value.code == "invalid_request"
    transaction.assert_not_called()
    assert await fetch_rows(store) == []


@pytest.mark.asyncio
async def test_constraint_violation_is_server_fault(store, fetch_rows):
    with patch("ingest.services.writer.new_id", return_value="01J00000000000000000000000"):
        await write_event(store, make_event())
        with pytest.raises(InsertFailed) as exc_info:
            await write_event(store, make_event())
    assert exc_info.value.code == "insert_failed"
    assert exc_info.value.message == "failed to store event"
    assert len(await fetch_rows(store)) == 1


@pytest.mark.asyncio
async def test_write_refused_before_bootstrap(tmp_path):
    unbooted = EventStore(tmp_path / "fresh.db")
    try:
        with pytest.raises(InsertFailed):
            await write_event(unbooted, make_event())
    finally:
        await unbooted.close()


@pytest.mark.asyncio
async def test_write_event_deadline(store, fetch_rows):
    """A write waiting on the single connection fails once its deadline expires."""
    async with store.engine.connect():
        with pytest.raises(InsertFailed):
            await write_event(store, make_event(), timeout=0.2)
    assert await fetch_rows(store) == []


@pytest.mark.asyncio
async def test_concurrent_writes_all_persist(store, fetch_rows):
    results = await asyncio.gather(*(write_event(store, make_event(message=f"m{i}")) for i in range(25)))
    assert len({out.id for out in results}) == 25
    assert len(await fetch_rows(store)) == 25


@pytest.mark.asyncio
async def test_write_batch_returns_ids_in_input_order(store, fetch_rows):
    candidates = [make_event(message=f"msg-{i}") for i in range(10)]

    result = await write_batch(store, candidates)

    assert result.count == 10
    assert len(set(result.ids)) == 10
    rows = {row["id"]: row for row in await fetch_rows(store)}
    assert [rows[event_id]["message"] for event_id in result.ids] == [f"msg-{i}" for i in range(10)]
    assert {row["received_at"] for row in rows.values()} == {result.received_at}


@pytest.mark.asyncio
async def test_write_batch_max_size(store, fetch_rows):
    result = await write_batch(store, [make_event() for _ in range(MAX_BATCH_SIZE)])
    assert result.count == MAX_BATCH_SIZE
    assert len(set(result.ids)) == MAX_BATCH_SIZE
    rows = await fetch_rows(store)
    assert len(rows) == MAX_BATCH_SIZE
    assert {row["received_at"] for row in rows} == {result.received_at}


@pytest.mark.asyncio
async def test_duplicate_candidates_get_distinct_ids(store, fetch_rows):
    result = await write_batch(store, [make_event(), make_event(), make_event()])
    assert len(set(result.ids)) == 3
    assert len(await fetch_rows(store)) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_index", [0, 3, 7])
async def test_invalid_member_aborts_whole_batch(store, fetch_rows, bad_index):
    candidates = [make_event() for _ in range(8)]
    candidates[bad_index] = make_event(level="verbose")

    with pytest.raises(InvalidEvent) as exc_info:
        await write_batch(store, candidates)

    assert exc_info.value.index == bad_index
    assert exc_info.value.code == "invalid_event"
    assert exc_info.value.message == f"index {bad_index}: level must be one of DEBUG, INFO, WARN, ERROR"
    assert await fetch_rows(store) == []


@pytest.mark.asyncio
async def test_first_invalid_member_is_reported(store):
    candidates = [make_event(), make_event(source=""), make_event(message="")]
    with pytest.raises(InvalidEvent) as exc_info:
        await write_batch(store, candidates)
    assert exc_info.value.index == 1
    assert exc_info.value.reason == "source is required"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "size, message",
    [(0, "batch must not be empty"), (MAX_BATCH_SIZE + 1, "batch too large (max 1000)")],
)
async def test_batch_size_rejected_without_store_access(store, fetch_rows, size, message):
    with patch.object(EventStore, "transaction") as transaction, \
            patch("ingest.services.writer.accept_event") as accept:
        with pytest.raises(InvalidRequest) as exc_info:
            await write_batch(store, [make_event() for _ in range(size)])
    assert exc_info.value.message == message
    accept.assert_not_called()
    transaction.assert_not_called()
    assert await fetch_rows(store) == []


@pytest.mark.asyncio
async def test_failed_commit_rolls_back_entire_batch(store, fetch_rows):
    """A constraint violation mid-batch leaves no staged row behind."""
    ids = iter(["01J0000000000000000000000A", "01J0000000000000000000000B", "01J0000000000000000000000A"])
    with patch("ingest.services.writer.new_id", side_effect=lambda: next(ids)):
        with pytest.raises(InsertFailed) as exc_info:
            await write_batch(store, [make_event(), make_event(), make_event()])
    assert exc_info.value.message == "failed to store events"
    assert await fetch_rows(store) == []


@pytest.mark.asyncio
async def test_write_batch_deadline_leaves_nothing(store, fetch_rows):
    async with store.engine.connect():
        with pytest.raises(InsertFailed):
            await write_batch(store, [make_event(), make_event()], timeout=0.2)
    assert await fetch_rows(store) == []


@contextmanager
def slow_inserts(event_store: EventStore, delay: float):
    """Stall every INSERT on the store's engine for `delay` seconds."""

    def _stall(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("INSERT"):
            time.sleep(delay)

    event.listen(event_store.engine.sync_engine, "before_cursor_execute", _stall)
    try:
        yield
    finally:
        event.remove(event_store.engine.sync_engine, "before_cursor_execute", _stall)


@pytest.mark.asyncio
async def test_batch_deadline_inside_transaction_rolls_back(store, fetch_rows):
    """A deadline expiring after the transaction opened leaves no staged rows."""
    with slow_inserts(store, 0.5):
        with pytest.raises(InsertFailed):
            await write_batch(store, [make_event(), make_event(), make_event()], timeout=0.2)

    assert await fetch_rows(store) == []

    out = await write_event(store, make_event(message="after deadline"))
    rows = await fetch_rows(store)
    assert [row["id"] for row in rows] == [out.id]


@pytest.mark.asyncio
async def test_single_deadline_inside_transaction_rolls_back(store, fetch_rows):
    with slow_inserts(store, 0.5):
        with pytest.raises(InsertFailed):
            await write_event(store, make_event(), timeout=0.2)

    assert await fetch_rows(store) == []
    result = await write_batch(store, [make_event(), make_event()])
    assert len(await fetch_rows(store)) == result.count == 2


def test_validate_batch_returns_normalized_records():
    validated = validate_batch([make_event(level="warn"), make_event(level="Debug")])
    assert [v.level for v in validated] == ["WARN", "DEBUG"]
