"""
Storage backends implementing the EventBackend port

SQLite ships as the reference backend; DynamoDB runs on a caller-owned
boto3 client.
"""

from event_ledger.storage.protocols import EventBackend
from event_ledger.storage.records import DEFAULT_MARKER, EventRecord
from event_ledger.storage.sqlite import SQLiteEventBackend

__all__ = [
    "DEFAULT_MARKER",
    "EventBackend",
    "EventRecord",
    "SQLiteEventBackend",
]
