from typing import Annotated

from typer import Argument
from typer import Exit
from typer import Option
from typer import Typer

from .bindings import QueueBindings
from .consumer import Consumer
from .log import ConsumerLog
from .settings import Settings
from .signals import StopSignals

app = Typer()


@app.command()
def consume(
    bindings: Annotated[
        list[str] | None,
        Argument(
            help="Queue bindings in format 'queue=module:callable'. "
            "Defaults to the queues in [tool.qconsume.queues].",
            metavar="QUEUE=MODULE:CALLABLE",
            show_default=False,
        ),
    ] = None,
    messages: Annotated[
        int, Option("--messages", "-m", min=0, help="Stop after this many messages.")
    ] = 0,
    name: Annotated[str | None, Option(help="Name used in consumer tags.")] = None,
    idle_timeout: Annotated[
        float | None, Option(help="Seconds to wait for a message before giving up.")
    ] = None,
    idle_timeout_exit_code: Annotated[
        int | None, Option(help="Exit with this code on idle timeout.")
    ] = None,
    memory_limit: Annotated[
        int | None, Option(help="Stop once resident memory reaches this many MB.")
    ] = None,
    auto_declare: Annotated[
        bool | None, Option(help="Declare the configured routing first.")
    ] = None,
):
    """Consume messages from queues.

    Each message is passed to the callable bound to its queue. Returning
    False rejects and requeues the message; most other values acknowledge it.

    Stop signals are handled between messages. Without an idle timeout, a
    signal received while no messages arrive takes effect after the next one.
    """
    settings = Settings.load()
    queues = (
        QueueBindings.parse(bindings)
        if bindings
        else QueueBindings.parse(f"{q}={path}" for q, path in settings.queues.items())
    )

    channel = settings.channel()
    try:
        consumer = Consumer(
            channel,
            queues,
            name=name or settings.name,
            idle_timeout=(
                settings.idle_timeout if idle_timeout is None else idle_timeout
            ),
            idle_timeout_exit_code=(
                settings.idle_timeout_exit_code
                if idle_timeout_exit_code is None
                else idle_timeout_exit_code
            ),
            memory_limit=(
                settings.memory_limit if memory_limit is None else memory_limit
            ),
            auto_declare=(
                settings.auto_declare if auto_declare is None else auto_declare
            ),
            routing=settings.routing,
            log=ConsumerLog(
                enable=settings.log_enable,
                print_console=settings.log_print_console,
                category=settings.log_category,
            ),
            signals=StopSignals(),
        )
        if settings.prefetch_size or settings.prefetch_count or settings.global_qos:
            consumer.set_qos(
                settings.prefetch_size, settings.prefetch_count, settings.global_qos
            )
        code = consumer.start(messages)
    finally:
        channel.shutdown()

    raise Exit(code)


@app.command()
def declare():
    """Declare the configured exchanges, queues and bindings."""
    settings = Settings.load()
    channel = settings.channel()
    try:
        settings.routing.declare_all(channel)
    finally:
        channel.shutdown()

    routing = settings.routing
    print(
        f"Declared {len(routing.exchanges)} exchange(s), "
        f"{len(routing.queues)} queue(s) and {len(routing.bindings)} binding(s)"
    )


@app.command()
def queues():
    """Show the configured queue bindings."""
    settings = Settings.load()

    if not settings.queues:
        print("No queues configured.")
        return

    queue_width = max(len("Queue"), max(len(queue) for queue in settings.queues))
    path_width = max(len("Callback"), max(len(p) for p in settings.queues.values()))

    print(f"{'Queue':<{queue_width}} | {'Callback':<{path_width}}")
    print(f"{'-' * queue_width}-+-{'-' * path_width}")
    for queue, path in settings.queues.items():
        print(f"{queue:<{queue_width}} | {path:<{path_width}}")


if __name__ == "__main__":
    app()
