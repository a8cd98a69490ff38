from __future__ import annotations

from collections.abc import Callable
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field
from datetime import UTC
from datetime import datetime
from typing import TYPE_CHECKING
from typing import Any
from typing import TypeVar

from .delivery import Delivery

if TYPE_CHECKING:
    from .consumer import Consumer

T = TypeVar("T")


@dataclass(eq=False, kw_only=True)
class ConsumeEvent:
    delivery: Delivery
    consumer: Consumer = field(repr=False)
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(tz=UTC), repr=False
    )


@dataclass(eq=False, kw_only=True)
class BeforeConsume(ConsumeEvent):
    """A delivery is about to be passed to its queue callback."""


@dataclass(eq=False, kw_only=True)
class AfterConsume(ConsumeEvent):
    """A delivery was processed and acknowledged."""


class Events:
    """Synchronous distribution of consumer events to subscribed handlers.

    Handlers run on the consumer's thread, in subscription order. Their
    return values are ignored.
    """

    def __init__(self):
        self.__subscriptions: dict[type, list[Callable[[Any], Any]]] = {}

    def subscribe(self, types: Iterable[type[T]], handler: Callable[[T], Any]):
        for type in types:
            self.__subscriptions.setdefault(type, []).append(handler)

    def unsubscribe(self, handler: Callable[[Any], Any]):
        """Unsubscribe a handler from all event types."""
        for type, handlers in list(self.__subscriptions.items()):
            while handler in handlers:
                handlers.remove(handler)
            if not handlers:
                del self.__subscriptions[type]

    def publish(self, event: Any):
        handlers = []
        for type, subscribed in self.__subscriptions.items():
            if isinstance(event, type):
                handlers.extend(h for h in subscribed if h not in handlers)
        for handler in handlers:
            handler(event)
