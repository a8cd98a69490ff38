import signal
import threading
from collections import deque
from collections.abc import Callable
from collections.abc import Iterable
from signal import Signals
from typing import Any

from .errors import SignalDispatchUnavailable

DEFAULT_SIGNALS = tuple(
    getattr(Signals, name)
    for name in ("SIGTERM", "SIGINT", "SIGQUIT")
    if hasattr(Signals, name)
)


class StopSignals:
    """Defer operating system stop signals to the consumer's evaluation points.

    The installed handlers only record which signals arrived. Nothing else
    happens until :meth:`dispatch` is called from the consumer loop, so a
    signal never interrupts a message in the middle of processing.

    Whether the process can install signal handlers is decided once, when
    this object is created.
    """

    def __init__(self, signals: Iterable[Signals] = DEFAULT_SIGNALS):
        self.__signals = tuple(signals)
        self.__pending = deque[int]()
        self.__handlers = list[Callable[[int], Any]]()
        self.__previous = dict[int, Any]()
        self.__available = (
            threading.current_thread() is threading.main_thread()
            and callable(getattr(signal, "signal", None))
        )

    @property
    def available(self) -> bool:
        return self.__available

    @property
    def installed(self) -> bool:
        return bool(self.__previous)

    def install(self, handler: Callable[[int], Any]):
        """Route the stop signals to a handler, called on :meth:`dispatch`."""
        if not self.__available:
            raise SignalDispatchUnavailable(
                "Signal handlers can only be installed from the main thread"
            )
        self.__handlers.append(handler)
        if self.__previous:
            return
        for signum in self.__signals:
            self.__previous[signum] = signal.signal(signum, self.__receive)

    def uninstall(self):
        """Restore the handlers that were in place before :meth:`install`."""
        for signum, previous in self.__previous.items():
            signal.signal(signum, previous)
        self.__previous.clear()
        self.__handlers.clear()
        self.__pending.clear()

    def __receive(self, signum: int, _frame: Any):
        self.__pending.append(signum)

    def pending(self) -> list[int]:
        return list(self.__pending)

    def dispatch(self):
        """Deliver every pending signal to the installed handlers."""
        while self.__pending:
            signum = self.__pending.popleft()
            for handler in self.__handlers:
                handler(signum)
