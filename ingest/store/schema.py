"""Persisted shape of accepted events."""
from sqlalchemy import CheckConstraint, Column, Index, MetaData, Table, Text

from ..event_models import Level

metadata = MetaData()

events = Table(
    "events",
    metadata,
    Column("id", Text, primary_key=True),
    Column("source", Text, nullable=False),
    # Caller-supplied event time, kept as the original RFC 3339 text
    Column("ts", Text, nullable=False),
    Column("level", Text, nullable=False),
    Column("message", Text, nullable=False),
    Column("meta_json", Text, nullable=True),
    Column("received_at", Text, nullable=False),
    CheckConstraint(
        "level IN ({})".format(", ".join(f"'{level.value}'" for level in Level)),
        name="ck_events_level",
    ),
    Index("idx_events_received_at", "received_at"),
    Index("idx_events_source_ts", "source", "ts"),
)

EVENT_COLUMNS = frozenset(column.name for column in events.columns)
