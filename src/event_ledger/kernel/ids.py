"""
Identifiers for streams and events

Streams only need a stable string form; event ids are random UUIDv4 strings,
generated once per persisted message when the caller did not provide one.
"""

import uuid
from typing import Protocol, Union


class IdFactory(Protocol):
    """Protocol for event id generation strategies"""

    def generate(self) -> str:
        """Generate a new unique ID"""
        ...


def generate_id() -> str:
    """Generate a random UUIDv4 string"""
    return str(uuid.uuid4())


class DefaultIdFactory:
    """Default ID factory using UUIDv4"""

    def generate(self) -> str:
        return generate_id()


class StreamIdentifier(Protocol):
    """Anything with a stable string form can identify a stream"""

    def to_string(self) -> str:
        ...


class StreamId:
    """
    Plain string-backed stream identifier

    Equality and hashing follow the string form, so two StreamId objects
    built from the same string address the same stream.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        if not value:
            raise ValueError("Stream id must be a non-empty string")
        self._value = value

    @classmethod
    def generate(cls) -> "StreamId":
        return cls(generate_id())

    @classmethod
    def from_string(cls, value: str) -> "StreamId":
        return cls(value)

    def to_string(self) -> str:
        return self._value

    def __eq__(self, other: object) -> bool:
        if isinstance(other, StreamId):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"StreamId({self._value!r})"


StreamKey = Union[str, StreamIdentifier]


def stream_key(stream_id: StreamKey) -> str:
    """Return the string form used as partition key"""
    if isinstance(stream_id, str):
        return stream_id
    return stream_id.to_string()


# Global default factory
default_id_factory = DefaultIdFactory()
