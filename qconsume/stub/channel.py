from collections import deque
from collections.abc import Callable
from collections.abc import Mapping
from itertools import count
from threading import Condition
from time import monotonic
from typing import Any

from qconsume.channel import Channel
from qconsume.delivery import Delivery
from qconsume.errors import IdleTimeout


class StubChannel(Channel):
    """An in-memory broker channel.

    Messages can be published from any thread. Subscriptions take turns
    receiving one delivery each, and every queue is delivered in order.
    """

    def __init__(self):
        self.__condition = Condition()
        self.__queues = dict[str, deque[tuple[bytes, bool]]]()
        self.__subscriptions = dict[str, tuple[str, Callable[[Delivery], None]]]()
        self.__unacked = dict[int, tuple[str, bytes]]()
        self.__delivery_tags = count(1)
        self.__shutdown = False
        self.acknowledgments = list[tuple[int, str, bool]]()
        self.declarations = list[tuple[str, str]]()
        self.prefetch: dict[str, Any] = {}

    @classmethod
    def from_uri(cls, uri: str, /):
        return cls()

    def create(self, *, queue: str):
        with self.__condition:
            self.__queues.setdefault(queue, deque())

    def publish(self, body: bytes, /, *, queue: str):
        with self.__condition:
            if queue not in self.__queues:
                raise ValueError(f"Queue '{queue}' does not exist")
            self.__queues[queue].append((body, False))
            self.__condition.notify_all()

    def messages(self, queue: str) -> list[bytes]:
        """The bodies still waiting on a queue."""
        with self.__condition:
            return [body for body, _ in self.__queues[queue]]

    @property
    def unacked(self) -> set[int]:
        with self.__condition:
            return set(self.__unacked)

    def qos(self, *, prefetch_size: int, prefetch_count: int, global_qos: bool):
        self.prefetch = {
            "prefetch_size": prefetch_size,
            "prefetch_count": prefetch_count,
            "global_qos": global_qos,
        }

    def declare_exchange(
        self,
        exchange: str,
        *,
        exchange_type: str,
        durable: bool,
        auto_delete: bool,
        arguments: Mapping[str, Any] | None,
    ):
        self.declarations.append(("exchange", exchange))

    def declare_queue(
        self,
        queue: str,
        *,
        durable: bool,
        exclusive: bool,
        auto_delete: bool,
        arguments: Mapping[str, Any] | None,
    ):
        self.create(queue=queue)
        self.declarations.append(("queue", queue))

    def bind_queue(self, queue: str, exchange: str, *, routing_key: str):
        if queue not in self.__queues:
            raise ValueError(f"Queue '{queue}' does not exist")
        self.declarations.append(("binding", f"{exchange}->{queue}:{routing_key}"))

    def consume(
        self,
        queue: str,
        /,
        *,
        consumer_tag: str,
        callback: Callable[[Delivery], None],
    ):
        with self.__condition:
            if queue not in self.__queues:
                raise ValueError(f"Queue '{queue}' does not exist")
            if consumer_tag in self.__subscriptions:
                raise ValueError(f"Consumer tag '{consumer_tag}' is already in use")
            self.__subscriptions[consumer_tag] = (queue, callback)

    def cancel(self, consumer_tag: str, /):
        with self.__condition:
            self.__subscriptions.pop(consumer_tag, None)
            self.__condition.notify_all()

    @property
    def consumer_tags(self) -> set[str]:
        with self.__condition:
            return set(self.__subscriptions)

    def __next_delivery(self) -> tuple[Delivery, Callable[[Delivery], None]] | None:
        for consumer_tag, (queue, callback) in list(self.__subscriptions.items()):
            if not self.__queues[queue]:
                continue
            body, redelivered = self.__queues[queue].popleft()
            tag = next(self.__delivery_tags)
            self.__unacked[tag] = (queue, body)
            # Rotate the subscription to the back so queues take turns
            del self.__subscriptions[consumer_tag]
            self.__subscriptions[consumer_tag] = (queue, callback)
            delivery = Delivery(
                delivery_tag=tag,
                body=body,
                redelivered=redelivered,
                queue=queue,
                channel=self,
            )
            return delivery, callback
        return None

    def wait(self, timeout: float | None = None, /):
        deadline = None if timeout is None else monotonic() + timeout
        with self.__condition:
            while True:
                if self.__shutdown or not self.__subscriptions:
                    return
                if (ready := self.__next_delivery()) is not None:
                    break
                remaining = None if deadline is None else deadline - monotonic()
                if remaining is not None and remaining <= 0:
                    raise IdleTimeout(timeout)
                self.__condition.wait(remaining)

        delivery, callback = ready
        callback(delivery)

    def __settle(self, delivery_tag: int, action: str, requeue: bool):
        with self.__condition:
            if delivery_tag not in self.__unacked:
                raise ValueError(f"Unknown delivery tag {delivery_tag}")
            queue, body = self.__unacked.pop(delivery_tag)
            self.acknowledgments.append((delivery_tag, action, requeue))
            if requeue:
                self.__queues[queue].appendleft((body, True))
                self.__condition.notify_all()

    def ack(self, delivery_tag: int, /):
        self.__settle(delivery_tag, "ack", False)

    def reject(self, delivery_tag: int, /, *, requeue: bool):
        self.__settle(delivery_tag, "reject", requeue)

    def nack(self, delivery_tag: int, /, *, requeue: bool):
        self.__settle(delivery_tag, "nack", requeue)

    def shutdown(self):
        with self.__condition:
            self.__shutdown = True
            self.__subscriptions.clear()
            self.__condition.notify_all()
