from enum import Enum
from typing import Any


class Outcome(Enum):
    """What the broker should do with a delivery once a callback returns.

    Callbacks may return one of these members. Any other return value is
    resolved by :func:`resolve`.
    """

    ACCEPT = "accept"
    REJECT_REQUEUE = "reject-requeue"
    REJECT_DROP = "reject-drop"
    NACK_REQUEUE = "nack-requeue"


def resolve(value: Any) -> Outcome:
    """Map a callback return value to an outcome.

    Only ``False`` and the explicit markers change the outcome. Anything else,
    including ``None``, falsy values that are not ``False``, and unknown
    objects, is accepted and removed from the queue.
    """
    if value is False or value is Outcome.REJECT_REQUEUE:
        return Outcome.REJECT_REQUEUE
    if value is Outcome.NACK_REQUEUE:
        return Outcome.NACK_REQUEUE
    if value is Outcome.REJECT_DROP:
        return Outcome.REJECT_DROP
    return Outcome.ACCEPT
