"""
Event record - the stored form of one message

Records are keyed by (stream_id, version) and also indexed by
(marker, timestamp) for the global, time-ordered view. They are never
updated or deleted once written.
"""

from pydantic import BaseModel, Field

DEFAULT_MARKER = "allEvents"


class EventRecord(BaseModel):
    """One row/item in the event table"""

    stream_id: str = Field(..., min_length=1, description="Partition key")

    version: int = Field(..., ge=0, description="Sort key, unique per stream_id")

    marker: str = Field(
        default=DEFAULT_MARKER,
        description="Secondary-index partition key, identical for every record",
    )

    timestamp: int = Field(..., description="Secondary-index sort key (unix seconds)")

    payload: str = Field(..., description="Serialized message")

    model_config = {"frozen": True}

    @property
    def key(self) -> tuple[str, int]:
        return (self.stream_id, self.version)
