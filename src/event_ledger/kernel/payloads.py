"""
Event payload registry

Event bodies are pydantic models. Each model class is registered under a
type tag; the tag travels in the message headers so a stored payload can be
turned back into the right class.
"""

import re
from typing import Callable, TypeVar

from pydantic import BaseModel

EventT = TypeVar("EventT", bound=type[BaseModel])

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def type_tag_for(event_class: type[BaseModel]) -> str:
    """
    Default tag for an event class: snake_case class name

    Example: MemberJoined -> "member_joined", HTTPRequestLogged -> "http_request_logged"
    """
    return _CAMEL_BOUNDARY.sub("_", event_class.__name__).lower()


class PayloadRegistry:
    """Bidirectional mapping between type tags and event model classes"""

    def __init__(self) -> None:
        self._by_tag: dict[str, type[BaseModel]] = {}
        self._by_class: dict[type[BaseModel], str] = {}

    def register(
        self, event_class: type[BaseModel], tag: str | None = None
    ) -> type[BaseModel]:
        """
        Register an event class under a tag (derived from the class name if omitted)

        Raises:
            ValueError: If the tag is already taken by a different class
        """
        tag = tag or type_tag_for(event_class)
        existing = self._by_tag.get(tag)
        if existing is not None and existing is not event_class:
            raise ValueError(
                f"Type tag '{tag}' already registered for {existing.__qualname__}"
            )
        self._by_tag[tag] = event_class
        self._by_class[event_class] = tag
        return event_class

    def event(self, tag: str | None = None) -> Callable[[EventT], EventT]:
        """Class decorator form of register()"""

        def decorator(event_class: EventT) -> EventT:
            self.register(event_class, tag)
            return event_class

        return decorator

    def tag_for(self, event: BaseModel) -> str:
        try:
            return self._by_class[type(event)]
        except KeyError:
            raise KeyError(f"Event class {type(event).__qualname__} is not registered") from None

    def class_for(self, tag: str) -> type[BaseModel]:
        try:
            return self._by_tag[tag]
        except KeyError:
            raise KeyError(f"No event class registered for type tag '{tag}'") from None

    def __contains__(self, tag: object) -> bool:
        return tag in self._by_tag
