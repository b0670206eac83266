"""Durable event storage."""

from .database import EventStore
from .schema import events, metadata

__all__ = ["EventStore", "events", "metadata"]
