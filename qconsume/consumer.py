from collections.abc import Callable
from collections.abc import Mapping
from threading import Event
from time import perf_counter

from .bindings import QueueBindings
from .bindings import QueueCallback
from .channel import Channel
from .delivery import Delivery
from .errors import ConfigurationError
from .errors import IdleTimeout
from .errors import ProcessingFailure
from .events import AfterConsume
from .events import BeforeConsume
from .events import Events
from .id import unique_id
from .log import ConsumerLog
from .memory import megabytes
from .memory import memory_usage
from .outcome import resolve
from .routing import Routing
from .signals import StopSignals


class Consumer:
    """Consume deliveries from a set of queues until told to stop.

    Each queue is bound to a callback. The callback's return value decides
    how the delivery is acknowledged, see :func:`qconsume.outcome.resolve`.

    A run started with :meth:`start` ends when every subscription has been
    cancelled. That happens after the requested number of messages, after
    :meth:`request_stop`, or when the memory limit is reached. An idle
    timeout ends the run early, either with the configured exit code or by
    raising :class:`~qconsume.errors.IdleTimeout`.
    """

    def __init__(
        self,
        channel: Channel,
        queues: Mapping[str, QueueCallback] | None = None,
        *,
        name: str = "unnamed",
        idle_timeout: float | None = None,
        idle_timeout_exit_code: int | None = None,
        memory_limit: int = 0,
        auto_declare: bool = False,
        routing: Routing | None = None,
        events: Events | None = None,
        log: ConsumerLog | None = None,
        signals: StopSignals | None = None,
        memory: Callable[[], int] = memory_usage,
    ):
        self.__channel = channel
        self.__bindings = QueueBindings(queues)
        self.__name = name
        self.idle_timeout = idle_timeout
        self.idle_timeout_exit_code = idle_timeout_exit_code
        self.memory_limit = memory_limit
        self.__auto_declare = auto_declare
        self.__routing = routing or Routing()
        self.__events = events or Events()
        self.__log = log or ConsumerLog(enable=False)
        self.__signals = signals
        self.__memory = memory

        self.__id: str | None = None
        self.__target = 0
        self.__consumed = 0
        self.__running = False
        self.__force_stop = Event()

    @property
    def id(self) -> str | None:
        """The identifier of the current or most recent run."""
        return self.__id

    @property
    def name(self) -> str:
        return self.__name

    def tag_name(self, name: str):
        if self.__running:
            raise RuntimeError("Cannot rename a consumer while it is consuming")
        self.__name = name

    @property
    def queues(self) -> QueueBindings:
        return self.__bindings

    @queues.setter
    def queues(self, queues: Mapping[str, QueueCallback]):
        if self.__bindings.frozen:
            raise ConfigurationError("Queue bindings cannot change once consuming")
        self.__bindings = QueueBindings(queues)

    @property
    def consumed(self) -> int:
        return self.__consumed

    @property
    def target(self) -> int:
        return self.__target

    @property
    def events(self) -> Events:
        return self.__events

    @property
    def force_stopped(self) -> bool:
        return self.__force_stop.is_set()

    def consumer_tag(self, queue: str) -> str:
        return f"{queue}-{self.__name}-{self.__id}"

    def set_qos(self, prefetch_size: int, prefetch_count: int, global_qos: bool):
        """Set the prefetch window of the channel before consuming.

        Some brokers do not support a non-zero ``prefetch_size`` or
        ``global_qos``.
        """
        try:
            self.__channel.qos(
                prefetch_size=prefetch_size,
                prefetch_count=prefetch_count,
                global_qos=global_qos,
            )
        except Exception as exception:
            raise ConfigurationError(f"Unable to set QoS: {exception}") from exception

    def reset(self):
        """Reset the consumed count so that :meth:`start` can be called again."""
        if self.__running:
            raise RuntimeError("Cannot reset a consumer while it is consuming")
        self.__consumed = 0

    def request_stop(self, *_: object):
        """Ask the consumer to stop at the next opportunity.

        Safe to call from a signal handler. A delivery that is being
        processed is still acknowledged before the consumer stops.
        """
        self.__force_stop.set()

    def start(self, quota: int = 0, /) -> int:
        """Consume until finished and return the exit code.

        With a positive quota, stop after that many processed messages.
        """
        if quota < 0:
            raise ValueError(f"Quota must not be negative, got: {quota}")
        if not self.__bindings:
            raise ConfigurationError("No queues are bound to a callback")

        if self.__signals is not None:
            self.__signals.install(self.request_stop)
        self.__running = True
        try:
            return self.__consume(quota)
        finally:
            self.__running = False
            if self.__signals is not None:
                self.__signals.uninstall()

    def __consume(self, quota: int) -> int:
        self.__target = quota
        self.__bindings.freeze()
        if self.__auto_declare:
            try:
                self.__routing.declare_all(self.__channel)
            except Exception as exception:
                raise ConfigurationError(
                    f"Unable to declare routing: {exception}"
                ) from exception
        self.__start_consuming()

        timeout = self.idle_timeout or None
        while self.__active_tags():
            self.__maybe_stop()
            if self.__force_stop.is_set() or not self.__active_tags():
                continue
            try:
                self.__channel.wait(timeout)
            except IdleTimeout:
                if self.idle_timeout_exit_code is not None:
                    return self.idle_timeout_exit_code
                raise

        return 0

    def __start_consuming(self):
        self.__id = unique_id()
        if self.__force_stop.is_set():
            return
        for queue, callback in self.__bindings.items():
            self.__channel.consume(
                queue,
                consumer_tag=self.consumer_tag(queue),
                callback=self.__receiver(queue, callback),
            )

    def __receiver(self, queue: str, callback: QueueCallback):
        def receive(delivery: Delivery):
            self.__on_receive(delivery, queue, callback)

        return receive

    def __active_tags(self) -> set[str]:
        tags = {self.consumer_tag(queue) for queue in self.__bindings}
        return tags & self.__channel.consumer_tags

    def stop_consuming(self):
        """Cancel every active subscription of this consumer.

        The channel and its connection stay open.
        """
        for tag in sorted(self.__active_tags()):
            self.__channel.cancel(tag)

    def __maybe_stop(self):
        if self.__signals is not None:
            self.__signals.dispatch()
        if self.__force_stop.is_set() or (
            self.__target > 0 and self.__consumed >= self.__target
        ):
            self.stop_consuming()

    def __memory_exceeded(self) -> bool:
        return self.__memory() >= megabytes(self.memory_limit)

    def __on_receive(self, delivery: Delivery, queue: str, callback: QueueCallback):
        self.__events.publish(BeforeConsume(delivery=delivery, consumer=self))
        started = perf_counter()
        try:
            result = callback(delivery)
        except Exception as exception:
            self.__log.failed(
                queue=queue,
                delivery=delivery,
                exception=exception,
                started=started,
                finished=perf_counter(),
            )
            raise ProcessingFailure(queue, delivery) from exception

        outcome = resolve(result)
        delivery.settle(outcome)
        self.__events.publish(AfterConsume(delivery=delivery, consumer=self))
        if self.__log.enable or self.__log.print_console:
            self.__log.processed(
                queue=queue,
                delivery=delivery,
                outcome=outcome,
                started=started,
                finished=perf_counter(),
                memory=self.__memory(),
            )

        self.__consumed += 1
        self.__maybe_stop()
        if self.memory_limit and self.__memory_exceeded():
            self.stop_consuming()
