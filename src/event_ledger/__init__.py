"""
Event Ledger - append-only event message repository

Per-stream ordered log with optimistic concurrency control, plus a global,
time-ordered view paged by fixed-length time windows.
"""

from event_ledger.kernel.cursor import PaginationCursor, TimestampCursor
from event_ledger.kernel.messages import DefaultHeadersDecorator, Header, Message
from event_ledger.kernel.repository import MessageRepository, MessageStream, Page

__version__ = "0.1.0"
__all__ = [
    "DefaultHeadersDecorator",
    "Header",
    "Message",
    "MessageRepository",
    "MessageStream",
    "Page",
    "PaginationCursor",
    "TimestampCursor",
    "__version__",
]
