from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .delivery import Delivery


class ConsumerError(Exception):
    """Base class for errors raised by the consumer runtime."""


class ConfigurationError(ConsumerError):
    """The consumer cannot start with its current configuration."""


class IdleTimeout(ConsumerError):
    """No delivery arrived within the idle timeout."""

    def __init__(self, timeout: float):
        super().__init__(f"No message received within {timeout} seconds")
        self.timeout = timeout


class ProcessingFailure(ConsumerError):
    """A queue callback raised while handling a delivery.

    The delivery was not acknowledged. The original exception is available
    as ``__cause__``.
    """

    def __init__(self, queue: str, delivery: Delivery):
        super().__init__(
            f"Callback for queue {queue!r} failed on delivery {delivery.delivery_tag}"
        )
        self.queue = queue
        self.delivery = delivery


class SignalDispatchUnavailable(ConsumerError):
    """Stop signals were requested but cannot be handled in this process."""
