from abc import ABC
from abc import abstractmethod
from collections.abc import Callable
from collections.abc import Mapping
from typing import Any

from .delivery import Delivery


class Channel(ABC):
    """A broker channel that consumers subscribe and acknowledge through.

    A channel is driven from a single thread. Deliveries are only dispatched
    to subscription callbacks from inside :meth:`wait`.
    """

    @classmethod
    @abstractmethod
    def from_uri(cls, uri: str, /):
        """Create a channel instance from a URI."""
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def qos(self, *, prefetch_size: int, prefetch_count: int, global_qos: bool):
        """Set the prefetch window for the channel."""
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def declare_exchange(
        self,
        exchange: str,
        *,
        exchange_type: str,
        durable: bool,
        auto_delete: bool,
        arguments: Mapping[str, Any] | None,
    ):
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def declare_queue(
        self,
        queue: str,
        *,
        durable: bool,
        exclusive: bool,
        auto_delete: bool,
        arguments: Mapping[str, Any] | None,
    ):
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def bind_queue(self, queue: str, exchange: str, *, routing_key: str):
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def consume(
        self,
        queue: str,
        /,
        *,
        consumer_tag: str,
        callback: Callable[[Delivery], None],
    ):
        """Subscribe to a queue.

        The callback is invoked once per delivery, in delivery order.
        """
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def cancel(self, consumer_tag: str, /):
        """Cancel a subscription without closing the channel."""
        raise NotImplementedError("Subclasses must implement this method.")

    @property
    @abstractmethod
    def consumer_tags(self) -> set[str]:
        """The tags of all subscriptions that are still active."""
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def wait(self, timeout: float | None = None, /):
        """Block until at least one delivery has been dispatched.

        With a timeout, raise :class:`~qconsume.errors.IdleTimeout` if nothing
        was dispatched before it expired. Without one, block indefinitely.
        """
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def ack(self, delivery_tag: int, /):
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def reject(self, delivery_tag: int, /, *, requeue: bool):
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def nack(self, delivery_tag: int, /, *, requeue: bool):
        raise NotImplementedError("Subclasses must implement this method.")

    @abstractmethod
    def shutdown(self):
        """Close the channel and its connection."""
        raise NotImplementedError("Subclasses must implement this method.")
