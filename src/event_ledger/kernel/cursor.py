"""
Pagination cursors for the global, time-ordered view

A TimestampCursor describes one fixed-length time window
[window_start, window_start + window_length] (both ends inclusive). Each
page moves the window forward to start one second after the previous end,
so successive windows never overlap and never leave a gap.

Windows partition time, not results: a window may hold zero or many
messages, and an empty page is not the end of the data.
"""

from typing import ClassVar

from pydantic import BaseModel, Field

from event_ledger.kernel.errors import InvalidCursor


class PaginationCursor(BaseModel):
    """Base for cursors handed out by paginated APIs"""

    model_config = {"frozen": True}

    def to_string(self) -> str:
        raise NotImplementedError


class TimestampCursor(PaginationCursor):
    """
    Cursor over fixed-length time windows

    Wire format: "<window_start>|<window_length>|<1 or 0>".
    """

    SEPARATOR: ClassVar[str] = "|"

    window_start: int = Field(..., description="First unix second in the window")

    window_length: int = Field(
        ...,
        ge=0,
        description="Seconds added to window_start to get the inclusive window end",
    )

    is_first_page: bool = Field(
        default=False,
        description="True for the cursor that starts a pagination session",
    )

    @classmethod
    def from_start(cls, window_length: int, start_timestamp: int) -> "TimestampCursor":
        return cls(
            window_start=start_timestamp,
            window_length=window_length,
            is_first_page=True,
        )

    @property
    def window_end(self) -> int:
        return self.window_start + self.window_length

    def next_page(self) -> "TimestampCursor":
        return TimestampCursor(
            window_start=self.window_end + 1,
            window_length=self.window_length,
            is_first_page=False,
        )

    def to_string(self) -> str:
        flag = "1" if self.is_first_page else "0"
        return self.SEPARATOR.join((str(self.window_start), str(self.window_length), flag))

    @classmethod
    def from_string(cls, cursor: str) -> "TimestampCursor":
        """
        Parse a cursor produced by to_string()

        An empty flag field reads as False, matching cursors written by
        clients that encode false as an empty string.

        Raises:
            InvalidCursor: If the string is not a well-formed timestamp cursor
        """
        parts = cursor.split(cls.SEPARATOR)
        if len(parts) != 3:
            raise InvalidCursor(cursor, f"Expected 3 '{cls.SEPARATOR}'-separated fields in cursor '{cursor}'")

        start, length, flag = parts
        if flag not in ("1", "0", ""):
            raise InvalidCursor(cursor, f"Cursor flag must be 1, 0 or empty, got '{flag}'")

        try:
            return cls(
                window_start=int(start),
                window_length=int(length),
                is_first_page=flag == "1",
            )
        except ValueError as e:
            raise InvalidCursor(cursor, f"Malformed cursor '{cursor}': {e}") from e

    def __str__(self) -> str:
        return self.to_string()
