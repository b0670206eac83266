from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class Level(str, Enum):
    """Accepted event severities."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class EventIn(BaseModel):
    """A candidate event as decoded from the wire; not yet validated.

    Missing string fields decode to "" so the validator reports them with its
    own messages ("source is required"). `meta` holds raw JSON text.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)

    source: StrictStr = Field(default="", description="Emitting subsystem")
    ts: StrictStr = Field(default="", description="Event time, RFC 3339 with offset")
    level: StrictStr = Field(default="", description="DEBUG, INFO, WARN or ERROR")
    message: StrictStr = Field(default="")
    meta: StrictStr | None = Field(default=None, description="Raw JSON text")


class EventOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    received_at: str = Field(alias="receivedAt")


class BatchOut(BaseModel):
    count: int
    ids: List[str]
