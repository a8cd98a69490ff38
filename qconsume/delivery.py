from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from typing import TYPE_CHECKING

from .outcome import Outcome

if TYPE_CHECKING:
    from .channel import Channel


@dataclass(eq=False, kw_only=True)
class Delivery:
    """One message pushed by the broker to a subscription.

    The delivery keeps a reference to the channel it arrived on, because the
    acknowledgment must be sent on that channel with the same tag.
    """

    delivery_tag: int
    body: bytes
    redelivered: bool = False
    queue: str
    channel: Channel = field(repr=False)
    settled: Outcome | None = field(default=None, init=False)

    def settle(self, outcome: Outcome, /):
        """Send the acknowledgment for this delivery to the broker."""
        if self.settled is not None:
            raise RuntimeError(
                f"Delivery {self.delivery_tag} was already settled as {self.settled}"
            )

        match outcome:
            case Outcome.REJECT_REQUEUE:
                self.channel.reject(self.delivery_tag, requeue=True)
            case Outcome.NACK_REQUEUE:
                self.channel.nack(self.delivery_tag, requeue=True)
            case Outcome.REJECT_DROP:
                self.channel.reject(self.delivery_tag, requeue=False)
            case Outcome.ACCEPT:
                self.channel.ack(self.delivery_tag)
            case _:
                raise TypeError(f"Not an outcome: {outcome!r}")
        self.settled = outcome
