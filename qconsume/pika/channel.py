from collections.abc import Callable
from collections.abc import Mapping
from time import monotonic
from typing import Any
from typing import cast

from pika import BlockingConnection
from pika import ConnectionParameters
from pika import URLParameters
from pika.adapters.blocking_connection import BlockingChannel
from pika.spec import Basic
from pika.spec import BasicProperties

from qconsume.channel import Channel
from qconsume.delivery import Delivery
from qconsume.errors import IdleTimeout


class PikaChannel(Channel):
    """A channel on a blocking pika connection to RabbitMQ."""

    @classmethod
    def from_uri(cls, uri: str, /):
        """Create a channel from a ``pika://`` URI."""
        amqp_uri = "amqp:" + uri.removeprefix("pika:")
        return cls(URLParameters(amqp_uri))

    def __init__(self, connection_params: ConnectionParameters | URLParameters):
        self.__connection = BlockingConnection(connection_params)
        self.__channel: BlockingChannel = self.__connection.channel()
        self.__dispatched = False

    def qos(self, *, prefetch_size: int, prefetch_count: int, global_qos: bool):
        self.__channel.basic_qos(
            prefetch_size=prefetch_size,
            prefetch_count=prefetch_count,
            global_qos=global_qos,
        )

    def declare_exchange(
        self,
        exchange: str,
        *,
        exchange_type: str,
        durable: bool,
        auto_delete: bool,
        arguments: Mapping[str, Any] | None,
    ):
        self.__channel.exchange_declare(
            exchange=exchange,
            exchange_type=exchange_type,
            durable=durable,
            auto_delete=auto_delete,
            arguments=dict(arguments) if arguments else None,
        )

    def declare_queue(
        self,
        queue: str,
        *,
        durable: bool,
        exclusive: bool,
        auto_delete: bool,
        arguments: Mapping[str, Any] | None,
    ):
        self.__channel.queue_declare(
            queue=queue,
            durable=durable,
            exclusive=exclusive,
            auto_delete=auto_delete,
            arguments=dict(arguments) if arguments else None,
        )

    def bind_queue(self, queue: str, exchange: str, *, routing_key: str):
        self.__channel.queue_bind(queue, exchange, routing_key=routing_key)

    def consume(
        self,
        queue: str,
        /,
        *,
        consumer_tag: str,
        callback: Callable[[Delivery], None],
    ):
        def on_message(
            channel: BlockingChannel,
            method: Basic.Deliver,
            _: BasicProperties,
            body: bytes,
        ):
            self.__dispatched = True
            callback(
                Delivery(
                    delivery_tag=cast(int, method.delivery_tag),
                    body=body,
                    redelivered=bool(method.redelivered),
                    queue=queue,
                    channel=self,
                )
            )

        self.__channel.basic_consume(
            queue,
            on_message,
            auto_ack=False,
            consumer_tag=consumer_tag,
        )

    def cancel(self, consumer_tag: str, /):
        # Unacknowledged prefetched messages are requeued by pika
        self.__channel.basic_cancel(consumer_tag)

    @property
    def consumer_tags(self) -> set[str]:
        return set(self.__channel.consumer_tags)

    def wait(self, timeout: float | None = None, /):
        self.__dispatched = False
        if timeout is None:
            self.__connection.process_data_events(time_limit=None)
            return

        deadline = monotonic() + timeout
        while True:
            self.__connection.process_data_events(
                time_limit=max(0.0, deadline - monotonic())
            )
            if self.__dispatched or not self.__channel.consumer_tags:
                return
            if monotonic() >= deadline:
                raise IdleTimeout(timeout)

    def ack(self, delivery_tag: int, /):
        self.__channel.basic_ack(delivery_tag=delivery_tag)

    def reject(self, delivery_tag: int, /, *, requeue: bool):
        self.__channel.basic_reject(delivery_tag=delivery_tag, requeue=requeue)

    def nack(self, delivery_tag: int, /, *, requeue: bool):
        self.__channel.basic_nack(
            delivery_tag=delivery_tag, multiple=False, requeue=requeue
        )

    def shutdown(self):
        if self.__connection.is_open:
            self.__connection.close()
