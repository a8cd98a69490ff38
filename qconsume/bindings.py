import importlib
from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Iterator
from collections.abc import Mapping
from collections.abc import MutableMapping
from typing import Any
from typing import Self
from typing import TypeAlias

from .delivery import Delivery
from .errors import ConfigurationError

QueueCallback: TypeAlias = Callable[[Delivery], Any]


class QueueBindings(MutableMapping[str, QueueCallback]):
    """The callbacks that process each queue's deliveries.

    Bindings can be changed until consumption starts. After :meth:`freeze`
    any change raises :class:`ConfigurationError`.
    """

    def __init__(self, bindings: Mapping[str, QueueCallback] | None = None):
        self.__bindings = dict[str, QueueCallback]()
        self.__frozen = False
        if bindings:
            self.update(bindings)

    @classmethod
    def parse(cls, values: Iterable[str]) -> Self:
        """Build bindings from ``queue=module:callable`` strings.

        Examples:

        | value                           | queue  | callback                 |
        +---------------------------------+--------+--------------------------+
        | orders=shop.handlers:on_order   | orders | shop.handlers.on_order   |
        | emails=shop.mail:Sender.deliver | emails | shop.mail.Sender.deliver |
        """
        bindings = cls()
        for value in values:
            if "=" not in value:
                raise ValueError(
                    f"Invalid queue binding. Be sure to include both the queue "
                    f"and the callback. got: '{value}'"
                )
            queue, path = (part.strip() for part in value.split("=", 1))
            if not queue:
                raise ValueError(f"No queue name found in '{value}'")
            bindings[queue] = import_callback(path)
        return bindings

    def __getitem__(self, queue: str) -> QueueCallback:
        return self.__bindings[queue]

    def __setitem__(self, queue: str, callback: QueueCallback):
        if self.__frozen:
            raise ConfigurationError("Queue bindings cannot change once consuming")
        if not callable(callback):
            raise ConfigurationError(f"Callback for queue {queue!r} is not callable")
        self.__bindings[queue] = callback

    def __delitem__(self, queue: str):
        if self.__frozen:
            raise ConfigurationError("Queue bindings cannot change once consuming")
        del self.__bindings[queue]

    def __iter__(self) -> Iterator[str]:
        return iter(self.__bindings)

    def __len__(self) -> int:
        return len(self.__bindings)

    def freeze(self):
        self.__frozen = True

    @property
    def frozen(self) -> bool:
        return self.__frozen


def import_callback(path: str) -> QueueCallback:
    """Import a callable from a ``module:attribute`` path."""
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Callback must look like 'module:callable', got: '{path}'")

    target: Any = importlib.import_module(module_name)
    for name in attribute.split("."):
        target = getattr(target, name)

    if not callable(target):
        raise ValueError(f"'{path}' is not callable")
    return target
