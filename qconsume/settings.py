import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any
from typing import Self
from typing import TypeVar

from .channel import Channel
from .errors import ConfigurationError
from .routing import Routing


def find_pyproject(start: Path | None = None) -> Path | None:
    for path in [cwd := (start or Path.cwd()), *cwd.parents]:
        candidate = path / "pyproject.toml"
        if candidate.is_file():
            return candidate
    return None


def load_config(start: Path | None = None) -> dict[str, Any]:
    """Read the ``[tool.qconsume]`` table of the nearest pyproject.toml."""
    if pyproject := find_pyproject(start):
        with pyproject.open("rb") as f:
            config = tomllib.load(f)
        return config.get("tool", {}).get("qconsume", {})
    return {}


@dataclass(kw_only=True)
class Settings:
    """Consumer configuration.

    Environment variables take precedence over ``[tool.qconsume]`` in
    pyproject.toml.
    """

    broker: str | None = None
    queues: dict[str, str] = field(default_factory=dict)
    name: str = "unnamed"
    idle_timeout: float | None = None
    idle_timeout_exit_code: int | None = None
    memory_limit: int = 0
    auto_declare: bool = False
    prefetch_size: int = 0
    prefetch_count: int = 0
    global_qos: bool = False
    log_enable: bool = True
    log_print_console: bool = False
    log_category: str = "qconsume"
    routing: Routing = field(default_factory=Routing)

    @classmethod
    def load(
        cls,
        *,
        environ: Mapping[str, str] | None = None,
        start: Path | None = None,
    ) -> Self:
        environ = os.environ if environ is None else environ
        config = load_config(start)
        qos = config.get("qos", {})
        logger = config.get("logger", {})

        def setting(key: str, default: Any = None) -> Any:
            return environ.get(f"QCONSUME_{key.upper()}", config.get(key, default))

        try:
            return cls(
                broker=setting("broker"),
                queues=dict(config.get("queues", {})),
                name=setting("name", "unnamed"),
                idle_timeout=_optional(float, setting("idle_timeout")),
                idle_timeout_exit_code=_optional(
                    int, setting("idle_timeout_exit_code")
                ),
                memory_limit=int(setting("memory_limit", 0)),
                auto_declare=_flag(setting("auto_declare", False)),
                prefetch_size=int(qos.get("prefetch_size", 0)),
                prefetch_count=int(
                    environ.get(
                        "QCONSUME_PREFETCH_COUNT", qos.get("prefetch_count", 0)
                    )
                ),
                global_qos=_flag(qos.get("global", False)),
                log_enable=_flag(logger.get("enable", True)),
                log_print_console=_flag(logger.get("print_console", False)),
                log_category=logger.get("category", "qconsume"),
                routing=Routing.from_config(config),
            )
        except (TypeError, ValueError) as exception:
            raise ConfigurationError(f"Invalid configuration: {exception}") from None

    def channel(self) -> Channel:
        if not self.broker:
            raise ConfigurationError(
                "No broker URI configured. Set QCONSUME_BROKER env var "
                "or add 'broker' to [tool.qconsume] in pyproject.toml"
            )

        if self.broker.startswith("stub:"):
            from .stub.channel import StubChannel

            return StubChannel.from_uri(self.broker)

        if not self.broker.startswith("pika:"):
            raise ConfigurationError(
                f"URI scheme must be 'pika:' or 'stub:', got: {self.broker}"
            )

        from .pika.channel import PikaChannel

        return PikaChannel.from_uri(self.broker)


T = TypeVar("T")


def _optional(convert: type[T], value: Any) -> T | None:
    if value is None or value == "":
        return None
    return convert(value)


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)
