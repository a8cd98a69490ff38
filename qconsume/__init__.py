from .bindings import QueueBindings as QueueBindings
from .consumer import Consumer as Consumer
from .delivery import Delivery as Delivery
from .errors import ConfigurationError as ConfigurationError
from .errors import IdleTimeout as IdleTimeout
from .errors import ProcessingFailure as ProcessingFailure
from .errors import SignalDispatchUnavailable as SignalDispatchUnavailable
from .events import AfterConsume as AfterConsume
from .events import BeforeConsume as BeforeConsume
from .events import Events as Events
from .outcome import Outcome as Outcome
from .outcome import resolve as resolve
