"""
Message serialization

The repository treats serialized messages as opaque strings. The JSON
serializer here stores {"headers": ..., "payload": ...}, with the payload
produced by the event model itself and the header __event_type naming the
class to rebuild it with.
"""

import json
from typing import Any, Protocol

from pydantic import ValidationError

from event_ledger.kernel.errors import PayloadDecodeFailure
from event_ledger.kernel.messages import Header, Message
from event_ledger.kernel.payloads import PayloadRegistry


class MessageSerializer(Protocol):
    """Converts messages to and from an opaque string payload"""

    def serialize(self, message: Message) -> str:
        ...

    def deserialize(self, payload: str) -> Message:
        """Raises PayloadDecodeFailure when the payload cannot be decoded"""
        ...


class JsonMessageSerializer:
    """JSON serializer backed by a PayloadRegistry"""

    def __init__(self, registry: PayloadRegistry) -> None:
        self.registry = registry

    def serialize(self, message: Message) -> str:
        """
        Raises:
            KeyError: If the event class is not registered
            ValueError: If the __event_type header names a different class
        """
        headers = dict(message.headers)
        tag = headers.get(Header.EVENT_TYPE)
        if tag is None:
            headers[Header.EVENT_TYPE] = self.registry.tag_for(message.event)
        elif tag not in self.registry or self.registry.class_for(tag) is not type(message.event):
            raise ValueError(
                f"Header {Header.EVENT_TYPE}='{tag}' does not match event class "
                f"{type(message.event).__qualname__}"
            )
        document: dict[str, Any] = {
            "headers": headers,
            "payload": message.event.model_dump(mode="json"),
        }
        return json.dumps(document, sort_keys=True)

    def deserialize(self, payload: str) -> Message:
        try:
            document = json.loads(payload)
        except (TypeError, ValueError) as e:
            raise PayloadDecodeFailure(f"not valid JSON ({e})") from e

        if not isinstance(document, dict) or not isinstance(document.get("headers"), dict):
            raise PayloadDecodeFailure("missing headers object")

        headers: dict[str, Any] = document["headers"]
        tag = headers.get(Header.EVENT_TYPE)
        if tag is None:
            raise PayloadDecodeFailure("missing event type header")

        try:
            event_class = self.registry.class_for(tag)
        except KeyError as e:
            raise PayloadDecodeFailure(str(e.args[0])) from e

        try:
            event = event_class.model_validate(document.get("payload", {}))
        except ValidationError as e:
            raise PayloadDecodeFailure(f"event body rejected by {event_class.__name__}: {e}") from e

        return Message(event=event, headers=headers)
