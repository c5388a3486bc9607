"""
Message Repository - the only reader and writer of the event log

persist() appends a batch of messages atomically: every (stream, version)
is written only if absent, and one collision rolls back the whole batch.
Reads come in three shapes, all lazy:

- retrieve_all(stream): one stream, ascending version
- retrieve_all_after_version(stream, version): the same, from a checkpoint
- paginate(cursor): every stream, one fixed time window, ascending timestamp

The repository never retries and never locks. Concurrent writers race on
the backend's conditional put; the losers get a ConcurrencyConflict and
decide for themselves what to do next.
"""

from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import NamedTuple

from event_ledger.kernel.cursor import PaginationCursor, TimestampCursor
from event_ledger.kernel.errors import (
    ConcurrencyConflict,
    EventLedgerError,
    InvalidCursor,
    PayloadDecodeFailure,
    StorageFailure,
)
from event_ledger.kernel.ids import IdFactory, StreamKey, default_id_factory, stream_key
from event_ledger.kernel.logging import LogOperation, get_logger
from event_ledger.kernel.messages import Header, Message
from event_ledger.kernel.metrics import (
    concurrency_conflicts_total,
    messages_persisted_total,
    messages_retrieved_total,
    persist_duration_seconds,
    storage_failures_total,
)
from event_ledger.kernel.result import Err, Ok, Result
from event_ledger.kernel.serializer import MessageSerializer
from event_ledger.storage.protocols import EventBackend
from event_ledger.storage.records import DEFAULT_MARKER, EventRecord

logger = get_logger(__name__)

PersistResult = Result[None, ConcurrencyConflict | StorageFailure]


class MessageStream:
    """
    Lazy, restartable sequence of messages

    Nothing is fetched until iteration starts, and backend pages are pulled
    only as the consumer advances. Every iteration runs a fresh query, so a
    MessageStream can be iterated more than once.

    last_version is None until an iteration has run to the end; afterwards
    it holds the version of the last message seen (0 for an empty stream).
    """

    def __init__(
        self,
        fetch: Callable[[], Iterable[EventRecord]],
        decode: Callable[[EventRecord], Message],
        mode: str,
    ) -> None:
        self._fetch = fetch
        self._decode = decode
        self._mode = mode
        self._last_version: int | None = None

    @property
    def last_version(self) -> int | None:
        return self._last_version

    def __iter__(self) -> Iterator[Message]:
        last_version = 0
        try:
            for record in self._fetch():
                message = self._decode(record)
                messages_retrieved_total.labels(mode=self._mode).inc()
                last_version = record.version
                yield message
        except EventLedgerError as e:
            storage_failures_total.labels(operation=self._mode).inc()
            logger.error("Retrieval failed", mode=self._mode, error=str(e))
            raise
        except Exception as e:
            storage_failures_total.labels(operation=self._mode).inc()
            logger.error("Retrieval failed", mode=self._mode, error=str(e))
            raise StorageFailure(self._mode, f"Unable to retrieve messages: {e}") from e
        self._last_version = last_version


class Page(NamedTuple):
    """One pagination window: its messages and the cursor for the following window"""

    messages: MessageStream
    next_cursor: TimestampCursor


class MessageRepository:
    """
    Append-only message log over an injected storage backend

    The backend (and whatever client it wraps) is shared and stateless from
    the repository's point of view; its lifecycle belongs to the caller.
    """

    def __init__(
        self,
        backend: EventBackend,
        serializer: MessageSerializer,
        marker: str = DEFAULT_MARKER,
        id_factory: IdFactory = default_id_factory,
    ) -> None:
        """
        Args:
            backend: Storage backend implementing the EventBackend port
            serializer: Converts messages to and from stored payloads
            marker: Constant secondary-index partition value
            id_factory: Source of event ids for messages that arrive without one
        """
        self.backend = backend
        self.serializer = serializer
        self.marker = marker
        self.id_factory = id_factory

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def persist(self, messages: Sequence[Message]) -> PersistResult:
        """
        Append messages as one atomic batch

        Each message is written only if its (stream, version) is free. If
        any one is taken, or the backend fails, nothing is written.

        Returns:
            Ok(None) on success (including an empty batch, which touches
            no backend), Err(ConcurrencyConflict) when a key is taken,
            Err(StorageFailure) for every other failure
        """
        if not messages:
            return Ok(None)

        operation = LogOperation(logger, "persist", message_count=len(messages))
        try:
            with operation:
                self._persist(messages)
        except (ConcurrencyConflict, StorageFailure) as e:
            result: PersistResult = Err(e)
        else:
            result = Ok(None)
        persist_duration_seconds.observe(operation.duration_seconds)
        return result

    def _persist(self, messages: Sequence[Message]) -> None:
        try:
            records = [self._to_record(message) for message in messages]
        except StorageFailure:
            storage_failures_total.labels(operation="persist").inc()
            raise

        duplicates = _duplicate_keys(records)
        if duplicates:
            concurrency_conflicts_total.inc()
            logger.warning("Batch contains the same stream version twice", keys=list(duplicates))
            raise ConcurrencyConflict(duplicates)

        try:
            self.backend.transact_put(records)
        except ConcurrencyConflict as e:
            concurrency_conflicts_total.inc()
            logger.warning("Concurrent write detected", keys=list(e.keys))
            raise
        except StorageFailure:
            storage_failures_total.labels(operation="persist").inc()
            raise
        except Exception as e:
            storage_failures_total.labels(operation="persist").inc()
            raise StorageFailure("persist", f"Unexpected backend error: {e}") from e

        messages_persisted_total.inc(len(records))

    def _to_record(self, message: Message) -> EventRecord:
        if Header.EVENT_ID not in message.headers:
            message = message.with_header(Header.EVENT_ID, self.id_factory.generate())

        missing = [
            key
            for key in (Header.STREAM_ID, Header.STREAM_VERSION, Header.TIME_OF_RECORDING)
            if message.header(key) is None
        ]
        if missing:
            raise StorageFailure("persist", f"Message is missing required headers: {missing}")

        try:
            return EventRecord(
                stream_id=message.stream_id,
                version=message.version,
                marker=self.marker,
                timestamp=message.timestamp,
                payload=self.serializer.serialize(message),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise StorageFailure("persist", f"Unable to serialize message: {e}") from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def retrieve_all(self, stream_id: StreamKey) -> MessageStream:
        """Every message of a stream in ascending version order"""
        key = stream_key(stream_id)
        return MessageStream(
            lambda: self.backend.query_stream(key),
            self._decode,
            mode="stream",
        )

    def retrieve_all_after_version(self, stream_id: StreamKey, version: int) -> MessageStream:
        """Messages of a stream with version strictly greater than `version`"""
        key = stream_key(stream_id)
        return MessageStream(
            lambda: self.backend.query_stream(key, after_version=version),
            self._decode,
            mode="after_version",
        )

    def paginate(self, cursor: PaginationCursor) -> Page:
        """
        Messages of every stream recorded inside the cursor's time window

        Raises:
            InvalidCursor: If the cursor is not a TimestampCursor
        """
        if not isinstance(cursor, TimestampCursor):
            raise InvalidCursor(
                repr(cursor),
                f"Wrong cursor type used, expected {TimestampCursor.__name__}, "
                f"received {type(cursor).__name__}",
            )

        start, end = cursor.window_start, cursor.window_end
        logger.debug("Paginating", window_start=start, window_end=end)
        messages = MessageStream(
            lambda: self.backend.query_time_range(self.marker, start, end),
            self._decode,
            mode="paginate",
        )
        return Page(messages=messages, next_cursor=cursor.next_page())

    def _decode(self, record: EventRecord) -> Message:
        try:
            return self.serializer.deserialize(record.payload)
        except PayloadDecodeFailure:
            raise
        except Exception as e:
            raise PayloadDecodeFailure(
                f"{record.stream_id}@{record.version}: {e}"
            ) from e


def _duplicate_keys(records: Sequence[EventRecord]) -> tuple[tuple[str, int], ...]:
    seen: set[tuple[str, int]] = set()
    duplicates: list[tuple[str, int]] = []
    for record in records:
        if record.key in seen and record.key not in duplicates:
            duplicates.append(record.key)
        seen.add(record.key)
    return tuple(duplicates)
