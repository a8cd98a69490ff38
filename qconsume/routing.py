from collections.abc import Iterable
from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Self

from loguru import logger

from .channel import Channel


@dataclass(frozen=True, kw_only=True)
class Exchange:
    name: str
    type: str = "direct"
    durable: bool = True
    auto_delete: bool = False
    arguments: Mapping[str, Any] | None = None


@dataclass(frozen=True, kw_only=True)
class Queue:
    name: str
    durable: bool = True
    exclusive: bool = False
    auto_delete: bool = False
    arguments: Mapping[str, Any] | None = None


@dataclass(frozen=True, kw_only=True)
class Binding:
    queue: str
    exchange: str
    routing_keys: tuple[str, ...] = ("",)


@dataclass(kw_only=True)
class Routing:
    """The exchanges, queues and bindings a consumer expects to exist.

    Declaration is idempotent on the broker, and an instance only declares
    once.
    """

    exchanges: list[Exchange] = field(default_factory=list)
    queues: list[Queue] = field(default_factory=list)
    bindings: list[Binding] = field(default_factory=list)
    declared: bool = field(default=False, init=False)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> Self:
        """Build routing from the ``exchanges``, ``declare_queues`` and
        ``bindings`` arrays of a configuration table."""
        return cls(
            exchanges=[Exchange(**item) for item in config.get("exchanges", [])],
            queues=[Queue(**item) for item in config.get("declare_queues", [])],
            bindings=[
                Binding(
                    queue=item["queue"],
                    exchange=item["exchange"],
                    routing_keys=tuple(_keys(item.get("routing_keys", [""]))),
                )
                for item in config.get("bindings", [])
            ],
        )

    def declare_all(self, channel: Channel):
        if self.declared:
            return

        for exchange in self.exchanges:
            channel.declare_exchange(
                exchange.name,
                exchange_type=exchange.type,
                durable=exchange.durable,
                auto_delete=exchange.auto_delete,
                arguments=exchange.arguments,
            )
        for queue in self.queues:
            channel.declare_queue(
                queue.name,
                durable=queue.durable,
                exclusive=queue.exclusive,
                auto_delete=queue.auto_delete,
                arguments=queue.arguments,
            )
        for binding in self.bindings:
            for routing_key in binding.routing_keys:
                channel.bind_queue(
                    binding.queue, binding.exchange, routing_key=routing_key
                )

        self.declared = True
        logger.bind(
            event="routing_declared",
            exchanges=len(self.exchanges),
            queues=len(self.queues),
            bindings=len(self.bindings),
        ).debug("Routing declared.")


def _keys(value: str | Iterable[str]) -> Iterable[str]:
    if isinstance(value, str):
        return [value]
    return value
