"""
Kernel - messages, serialization, cursors and the repository itself

Storage adapters live in event_ledger.storage; everything here is
backend-agnostic.
"""

from event_ledger.kernel.cursor import PaginationCursor, TimestampCursor
from event_ledger.kernel.errors import (
    ConcurrencyConflict,
    EventLedgerError,
    InvalidCursor,
    PayloadDecodeFailure,
    StorageFailure,
)
from event_ledger.kernel.ids import IdFactory, StreamId, generate_id
from event_ledger.kernel.messages import DefaultHeadersDecorator, Header, Message
from event_ledger.kernel.payloads import PayloadRegistry
from event_ledger.kernel.result import Err, Ok, Result
from event_ledger.kernel.serializer import JsonMessageSerializer, MessageSerializer
from event_ledger.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # IDs
    "IdFactory",
    "StreamId",
    "generate_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Messages & serialization
    "Header",
    "Message",
    "DefaultHeadersDecorator",
    "PayloadRegistry",
    "MessageSerializer",
    "JsonMessageSerializer",
    # Pagination
    "PaginationCursor",
    "TimestampCursor",
    # Results & errors
    "Ok",
    "Err",
    "Result",
    "EventLedgerError",
    "StorageFailure",
    "ConcurrencyConflict",
    "InvalidCursor",
    "PayloadDecodeFailure",
]
