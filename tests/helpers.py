"""
Test helpers - sample events and message builders

Keeps tests focused on behaviour instead of header bookkeeping.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel

from event_ledger.kernel.ids import generate_id
from event_ledger.kernel.messages import Header, Message
from event_ledger.kernel.payloads import PayloadRegistry

T0 = datetime(2020, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


class ItemAdded(BaseModel):
    sku: str
    quantity: int = 1


class ItemRemoved(BaseModel):
    sku: str


def build_registry() -> PayloadRegistry:
    registry = PayloadRegistry()
    registry.register(ItemAdded)
    registry.register(ItemRemoved)
    return registry


def make_message(
    stream_id: str,
    version: int,
    sku: str = "sku-1",
    recorded_at: datetime = T0,
    event_id: str | None = "auto",
    **headers: Any,
) -> Message:
    """
    Builder for a fully-headed ItemAdded message

    event_id="auto" assigns a fresh id; None leaves the header out so the
    repository has to generate one.
    """
    message = Message.for_stream(ItemAdded(sku=sku), stream_id, version, headers)
    message = message.with_headers(
        {
            Header.EVENT_TYPE: "item_added",
            Header.TIME_OF_RECORDING: recorded_at.isoformat(),
        }
    )
    if event_id == "auto":
        event_id = generate_id()
    if event_id is not None:
        message = message.with_header(Header.EVENT_ID, event_id)
    return message


def make_timeline(stream_id: str, count: int, start: datetime = T0) -> list[Message]:
    """`count` messages one second apart, versions 0..count-1"""
    return [
        make_message(
            stream_id,
            version,
            sku=f"number: {version}",
            recorded_at=start + timedelta(seconds=version),
        )
        for version in range(count)
    ]
