from typing import Any

from loguru import logger

from .delivery import Delivery
from .outcome import Outcome


class ConsumerLog:
    """Report processed deliveries.

    Structured records go to ``loguru`` when ``enable`` is set. A short
    human readable line per delivery is printed when ``print_console`` is set.
    """

    def __init__(
        self,
        *,
        enable: bool = True,
        print_console: bool = False,
        category: str = "qconsume",
    ):
        self.enable = enable
        self.print_console = print_console
        self.category = category

    def __bind(self, event: str, **kwargs: Any):
        return logger.bind(category=self.category, event=event, amqp=kwargs)

    def processed(
        self,
        *,
        queue: str,
        delivery: Delivery,
        outcome: Outcome,
        started: float,
        finished: float,
        memory: int,
    ):
        elapsed = execution_time(started, finished)
        if self.print_console:
            print(
                f"{queue} - {elapsed} ms - {outcome.value}"
                f" - delivery {delivery.delivery_tag} - {memory} bytes"
            )
        if self.enable:
            self.__bind(
                "message_processed",
                queue=queue,
                message=delivery.body,
                return_code=outcome.value,
                execution_time=elapsed,
                memory=memory,
            ).info("Queue message processed.")

    def failed(
        self,
        *,
        queue: str,
        delivery: Delivery,
        exception: BaseException,
        started: float,
        finished: float,
    ):
        if not self.enable:
            return
        self.__bind(
            "message_failed",
            queue=queue,
            message=delivery.body,
            execution_time=execution_time(started, finished),
        ).opt(exception=exception).error(
            "Error while processing a message: {}", exception
        )


def execution_time(started: float, finished: float) -> float:
    """Elapsed time in milliseconds, rounded to two places."""
    return round((finished - started) * 1000, 2)
