"""
Custom exceptions for the event ledger

A small, well-defined hierarchy lets callers pick a retry strategy by
exception type: a conflict means "reload and recompute", a storage
failure means "try again later (or fix the configuration)".
"""


class EventLedgerError(Exception):
    """Base exception for all event ledger errors"""

    pass


class StorageFailure(EventLedgerError):
    """
    Raised when the storage backend fails for reasons unrelated to the
    write condition (transport, throttling, permissions, backend internals)

    May be transient or permanent - the ledger does not distinguish further.
    """

    def __init__(self, operation: str, message: str = "") -> None:
        self.operation = operation
        super().__init__(message or f"Storage backend failed during {operation}")


class ConcurrencyConflict(EventLedgerError):
    """
    Raised when a conditional write finds a record already present

    The whole transaction was rolled back - caller should reload the
    stream, recompute and retry.
    """

    def __init__(
        self,
        keys: tuple[tuple[str, int], ...] = (),
        message: str = "",
    ) -> None:
        self.keys = keys
        if not message:
            if keys:
                described = ", ".join(f"{stream_id}@{version}" for stream_id, version in keys)
                message = f"Records already exist for {described}"
            else:
                message = "A record already exists for at least one message in the batch"
        super().__init__(message)


class InvalidCursor(EventLedgerError):
    """
    Raised when paginate receives a cursor of the wrong kind or a cursor
    string that cannot be parsed

    Always a programming error on the caller side.
    """

    def __init__(self, received: str, message: str = "") -> None:
        self.received = received
        super().__init__(message or f"Invalid pagination cursor: {received}")


class PayloadDecodeFailure(StorageFailure):
    """Raised when a stored payload cannot be turned back into a message"""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__("decode_payload", f"Unable to decode stored payload: {reason}")
