"""
Storage backend port

The repository depends on three primitives only: an all-or-nothing
conditional put, a forward range query on one stream, and a forward range
query on the (marker, timestamp) index. Any store offering them - a
transactional key/value store, or a relational store with a unique key and
multi-row transactions - can back the ledger.
"""

from collections.abc import Iterator, Sequence
from typing import Protocol

from event_ledger.storage.records import EventRecord


class EventBackend(Protocol):
    """
    Contract every storage adapter implements

    Adapters raise ConcurrencyConflict when a put finds an existing key and
    StorageFailure for anything else. Query methods are generators that
    fetch one page per round trip, only when the consumer asks for more.
    """

    def transact_put(self, records: Sequence[EventRecord]) -> None:
        """Write every record, each only if its key is absent - or write none"""
        ...

    def query_stream(
        self, stream_id: str, after_version: int | None = None
    ) -> Iterator[EventRecord]:
        """Records of one stream in ascending version order, optionally version > after_version"""
        ...

    def query_time_range(
        self, marker: str, start: int, end: int
    ) -> Iterator[EventRecord]:
        """Records with start <= timestamp <= end in ascending timestamp order"""
        ...
