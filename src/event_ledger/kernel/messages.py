"""
Message model - an event occurrence plus its headers

A message wraps a domain event (any registered pydantic model) with the
headers that place it in the log: which stream, which version, when it was
recorded and its globally unique id. Messages are immutable; every
with_* method returns a new message.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from event_ledger.kernel.ids import StreamKey, stream_key
from event_ledger.kernel.payloads import PayloadRegistry
from event_ledger.kernel.time import TimeProvider, default_time_provider, to_unix_seconds


class Header:
    """Reserved header keys"""

    EVENT_ID = "__event_id"
    EVENT_TYPE = "__event_type"
    STREAM_ID = "__stream_id"
    STREAM_ID_TYPE = "__stream_id_type"
    STREAM_VERSION = "__stream_version"
    TIME_OF_RECORDING = "__time_of_recording"


class Message(BaseModel):
    """
    An event and its headers

    Header values must be JSON-native (strings, numbers, booleans, lists,
    dicts) so that a persisted message reads back equal to the original.
    """

    event: BaseModel = Field(..., description="Domain event body")

    headers: dict[str, Any] = Field(
        default_factory=dict,
        description="Header mapping; see Header for reserved keys",
    )

    model_config = {"frozen": True}

    @classmethod
    def for_stream(
        cls,
        event: BaseModel,
        stream_id: StreamKey,
        version: int,
        headers: dict[str, Any] | None = None,
    ) -> "Message":
        """Build a message addressed to a stream position"""
        if version < 0:
            raise ValueError(f"Version must be non-negative, got {version}")
        merged = dict(headers or {})
        merged[Header.STREAM_ID] = stream_key(stream_id)
        merged[Header.STREAM_VERSION] = version
        if not isinstance(stream_id, str):
            merged.setdefault(Header.STREAM_ID_TYPE, type(stream_id).__name__)
        return cls(event=event, headers=merged)

    def header(self, key: str, default: Any = None) -> Any:
        return self.headers.get(key, default)

    def with_header(self, key: str, value: Any) -> "Message":
        return self.model_copy(update={"headers": {**self.headers, key: value}})

    def with_headers(self, headers: dict[str, Any]) -> "Message":
        return self.model_copy(update={"headers": {**self.headers, **headers}})

    def with_time_of_recording(self, recorded_at: datetime) -> "Message":
        return self.with_header(Header.TIME_OF_RECORDING, recorded_at.isoformat())

    @property
    def stream_id(self) -> str | None:
        return self.headers.get(Header.STREAM_ID)

    @property
    def version(self) -> int | None:
        return self.headers.get(Header.STREAM_VERSION)

    @property
    def event_id(self) -> str | None:
        return self.headers.get(Header.EVENT_ID)

    @property
    def time_of_recording(self) -> datetime | None:
        raw = self.headers.get(Header.TIME_OF_RECORDING)
        return datetime.fromisoformat(raw) if raw is not None else None

    @property
    def timestamp(self) -> int | None:
        """Time of recording in whole unix seconds"""
        recorded_at = self.time_of_recording
        return to_unix_seconds(recorded_at) if recorded_at is not None else None


class DefaultHeadersDecorator:
    """
    Stamps the event type and time of recording onto messages that lack them

    Event ids are left alone: the repository assigns them at persist time.
    """

    def __init__(
        self,
        registry: PayloadRegistry,
        time_provider: TimeProvider = default_time_provider,
    ) -> None:
        self._registry = registry
        self._time_provider = time_provider

    def decorate(self, message: Message) -> Message:
        missing: dict[str, Any] = {}
        if Header.EVENT_TYPE not in message.headers:
            missing[Header.EVENT_TYPE] = self._registry.tag_for(message.event)
        if Header.TIME_OF_RECORDING not in message.headers:
            missing[Header.TIME_OF_RECORDING] = self._time_provider.now().isoformat()
        return message.with_headers(missing) if missing else message
