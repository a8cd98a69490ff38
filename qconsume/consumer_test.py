from threading import Thread
from time import sleep

import pytest

from .consumer import Consumer
from .errors import ConfigurationError
from .errors import IdleTimeout
from .errors import ProcessingFailure
from .events import AfterConsume
from .events import BeforeConsume
from .outcome import Outcome
from .routing import Queue
from .routing import Routing


def fill(channel, queue, *bodies):
    channel.create(queue=queue)
    for body in bodies:
        channel.publish(body, queue=queue)


def test_start_without_queues_is_a_configuration_error(channel):
    consumer = Consumer(channel)
    with pytest.raises(ConfigurationError, match="No queues"):
        consumer.start(1)
    assert channel.consumer_tags == set()


def test_negative_quota_is_rejected(channel):
    fill(channel, "orders")
    consumer = Consumer(channel, {"orders": lambda d: None})
    with pytest.raises(ValueError, match="must not be negative"):
        consumer.start(-1)


def test_quota_stops_after_exactly_that_many_messages(channel):
    fill(channel, "orders", b"1", b"2", b"3", b"4")
    seen = []
    consumer = Consumer(channel, {"orders": lambda d: seen.append(d.body)})

    assert consumer.start(3) == 0
    assert consumer.consumed == 3
    assert seen == [b"1", b"2", b"3"]
    assert channel.consumer_tags == set()
    assert channel.messages("orders") == [b"4"]


def test_consumed_never_exceeds_quota_with_requeues(channel):
    fill(channel, "orders", b"1")
    consumer = Consumer(channel, {"orders": lambda d: False})

    assert consumer.start(5) == 0
    assert consumer.consumed == 5
    assert [a[1:] for a in channel.acknowledgments] == [("reject", True)] * 5


def test_outcomes_become_acknowledgments(channel):
    results = iter([True, False, Outcome.NACK_REQUEUE, Outcome.REJECT_DROP, None])
    fill(channel, "orders", b"a", b"b", b"c", b"d", b"e")
    consumer = Consumer(channel, {"orders": lambda d: next(results)})

    consumer.start(5)
    assert [a[1:] for a in channel.acknowledgments] == [
        ("ack", False),
        ("reject", True),
        ("nack", True),
        ("reject", False),
        ("ack", False),
    ]


def test_reset_allows_repeated_bounded_runs(channel):
    fill(channel, "orders", *(str(i).encode() for i in range(6)))
    consumer = Consumer(channel, {"orders": lambda d: None})

    assert consumer.start(2) == 0
    assert consumer.consumed == 2
    first_id = consumer.id

    consumer.reset()
    assert consumer.consumed == 0
    assert consumer.start(2) == 0
    assert consumer.consumed == 2
    assert consumer.id != first_id
    assert channel.messages("orders") == [b"4", b"5"]


def test_without_reset_a_reached_quota_stops_immediately(channel):
    fill(channel, "orders", b"1", b"2", b"3")
    consumer = Consumer(channel, {"orders": lambda d: None})

    consumer.start(1)
    assert consumer.start(1) == 0
    assert consumer.consumed == 1
    assert channel.messages("orders") == [b"2", b"3"]


def test_reset_during_a_run_is_an_error(channel):
    fill(channel, "orders", b"1")
    errors = []

    def callback(delivery):
        try:
            consumer.reset()
        except RuntimeError as error:
            errors.append(error)

    consumer = Consumer(channel, {"orders": callback})
    consumer.start(1)
    assert len(errors) == 1


def test_idle_timeout_returns_the_configured_exit_code(channel):
    fill(channel, "orders")
    consumer = Consumer(
        channel,
        {"orders": lambda d: None},
        idle_timeout=0.05,
        idle_timeout_exit_code=7,
    )

    assert consumer.start() == 7
    assert channel.acknowledgments == []


def test_idle_timeout_without_exit_code_is_raised(channel):
    fill(channel, "orders")
    consumer = Consumer(channel, {"orders": lambda d: None}, idle_timeout=0.05)

    with pytest.raises(IdleTimeout):
        consumer.start()


def test_idle_timeout_after_some_messages(channel):
    fill(channel, "orders", b"1", b"2")
    consumer = Consumer(
        channel,
        {"orders": lambda d: None},
        idle_timeout=0.05,
        idle_timeout_exit_code=3,
    )

    assert consumer.start(10) == 3
    assert consumer.consumed == 2


def test_request_stop_lets_the_current_message_finish(channel):
    fill(channel, "orders", b"1", b"2", b"3")

    def callback(delivery):
        consumer.request_stop()
        return None

    consumer = Consumer(channel, {"orders": callback})

    assert consumer.start() == 0
    assert consumer.consumed == 1
    assert [a[1] for a in channel.acknowledgments] == ["ack"]
    assert channel.consumer_tags == set()
    assert channel.messages("orders") == [b"2", b"3"]


def test_request_stop_is_idempotent_and_sticky(channel):
    fill(channel, "orders", b"1")
    consumer = Consumer(channel, {"orders": lambda d: None})
    consumer.request_stop()
    consumer.request_stop()

    assert consumer.start() == 0
    assert consumer.consumed == 0
    assert consumer.force_stopped
    assert channel.messages("orders") == [b"1"]


def test_waits_without_timeout_until_a_message_arrives(channel):
    fill(channel, "orders")
    consumer = Consumer(channel, {"orders": lambda d: None})

    def publish():
        sleep(0.05)
        channel.publish(b"late", queue="orders")

    thread = Thread(target=publish, name="publisher")
    thread.start()
    try:
        assert consumer.start(1) == 0
    finally:
        thread.join()
    assert consumer.consumed == 1


def test_memory_limit_stops_after_the_message(channel):
    fill(channel, "orders", b"1", b"2", b"3")
    usage = iter([10, 2 * 1024 * 1024, 0])
    consumer = Consumer(
        channel,
        {"orders": lambda d: None},
        memory_limit=2,
        memory=lambda: next(usage),
    )

    assert consumer.start() == 0
    assert consumer.consumed == 2
    assert channel.messages("orders") == [b"3"]


def test_memory_is_not_checked_when_disabled(channel):
    fill(channel, "orders", b"1", b"2")

    def memory():
        raise AssertionError("memory should not be read")

    consumer = Consumer(channel, {"orders": lambda d: None}, memory=memory)
    assert consumer.start(2) == 0


def test_callback_error_is_not_acknowledged_and_ends_the_run(channel):
    fill(channel, "orders", b"boom", b"next")

    def callback(delivery):
        raise KeyError("missing")

    consumer = Consumer(channel, {"orders": callback})

    with pytest.raises(ProcessingFailure) as excinfo:
        consumer.start()

    assert isinstance(excinfo.value.__cause__, KeyError)
    assert excinfo.value.queue == "orders"
    assert excinfo.value.delivery.body == b"boom"
    assert channel.acknowledgments == []
    assert channel.unacked == {excinfo.value.delivery.delivery_tag}
    assert consumer.consumed == 0
    assert channel.messages("orders") == [b"next"]


def test_consumer_tags_combine_queue_name_and_run_id(channel):
    fill(channel, "orders", b"1")
    tags = []
    consumer = Consumer(
        channel, {"orders": lambda d: tags.append(channel.consumer_tags)}
    )
    consumer.tag_name("worker-1")

    consumer.start(1)
    assert tags == [{f"orders-worker-1-{consumer.id}"}]
    assert consumer.consumer_tag("orders") == f"orders-worker-1-{consumer.id}"


def test_two_sessions_on_the_same_queue_have_distinct_tags(channel):
    fill(channel, "orders", b"1", b"2")
    first = Consumer(channel, {"orders": lambda d: None})
    second = Consumer(channel, {"orders": lambda d: None})

    first.start(1)
    second.start(1)
    assert first.consumer_tag("orders") != second.consumer_tag("orders")


def test_bindings_are_frozen_once_started(channel):
    fill(channel, "orders", b"1")
    consumer = Consumer(channel, {"orders": lambda d: None})
    consumer.start(1)

    with pytest.raises(ConfigurationError):
        consumer.queues["emails"] = lambda d: None
    with pytest.raises(ConfigurationError):
        consumer.queues = {"emails": lambda d: None}


def test_stop_consuming_only_cancels_own_subscriptions(channel):
    fill(channel, "orders", b"1")
    fill(channel, "audit")
    channel.consume("audit", consumer_tag="someone-else", callback=lambda d: None)
    consumer = Consumer(channel, {"orders": lambda d: None})

    consumer.start(1)
    assert channel.consumer_tags == {"someone-else"}


def test_auto_declare_declares_routing_before_subscribing(channel):
    routing = Routing(queues=[Queue(name="orders")])
    consumer = Consumer(
        channel,
        {"orders": lambda d: None},
        auto_declare=True,
        routing=routing,
        idle_timeout=0.01,
        idle_timeout_exit_code=0,
    )

    assert consumer.start() == 0
    assert ("queue", "orders") in channel.declarations
    assert routing.declared


def test_failed_declaration_is_a_configuration_error(channel):
    routing = Routing(queues=[Queue(name="orders")])
    consumer = Consumer(
        channel, {"orders": lambda d: None}, auto_declare=True, routing=routing
    )

    def broken(*args, **kwargs):
        raise OSError("connection reset")

    channel.declare_queue = broken
    with pytest.raises(ConfigurationError, match="Unable to declare routing"):
        consumer.start()
    assert not routing.declared


def test_set_qos_is_forwarded(channel):
    consumer = Consumer(channel, {"orders": lambda d: None})
    consumer.set_qos(0, 10, False)
    assert channel.prefetch == {
        "prefetch_size": 0,
        "prefetch_count": 10,
        "global_qos": False,
    }


def test_set_qos_failure_is_a_configuration_error(channel):
    consumer = Consumer(channel, {"orders": lambda d: None})

    def broken(**kwargs):
        raise RuntimeError("not supported")

    channel.qos = broken
    with pytest.raises(ConfigurationError, match="Unable to set QoS"):
        consumer.set_qos(1024, 10, True)


def test_events_surround_each_delivery(channel):
    fill(channel, "orders", b"1")
    order = []
    consumer = Consumer(
        channel, {"orders": lambda d: order.append(("callback", d.settled))}
    )
    consumer.events.subscribe(
        {BeforeConsume, AfterConsume},
        lambda event: order.append((type(event).__name__, event.delivery.settled)),
    )

    consumer.start(1)
    assert order == [
        ("BeforeConsume", None),
        ("callback", None),
        ("AfterConsume", Outcome.ACCEPT),
    ]


def test_end_to_end_two_queues_with_quota(channel):
    fill(channel, "orders", b"o1", b"o2", b"o3")
    fill(channel, "emails", b"e1", b"e2")
    seen_a = []
    seen_b = []
    consumer = Consumer(
        channel,
        {
            "orders": lambda d: seen_a.append(d.body),
            "emails": lambda d: seen_b.append(d.body),
        },
    )

    assert consumer.start(5) == 0
    assert consumer.consumed == 5
    assert channel.consumer_tags == set()
    assert seen_a == [b"o1", b"o2", b"o3"]
    assert seen_b == [b"e1", b"e2"]
    assert [a[1] for a in channel.acknowledgments] == ["ack"] * 5


def test_without_reset_a_quota_below_consumed_stops_immediately(channel):
    fill(channel, "orders", *(str(i).encode() for i in range(10)))
    consumer = Consumer(channel, {"orders": lambda d: None})

    assert consumer.start(5) == 0
    assert consumer.start(2) == 0
    assert consumer.consumed == 5
    assert channel.consumer_tags == set()
    assert channel.messages("orders") == [b"5", b"6", b"7", b"8", b"9"]


def test_renaming_during_a_run_is_an_error(channel):
    fill(channel, "orders", b"1")
    errors = []

    def callback(delivery):
        try:
            consumer.tag_name("renamed")
        except RuntimeError as error:
            errors.append(error)

    consumer = Consumer(channel, {"orders": callback}, name="worker")
    assert consumer.start(1) == 0
    assert len(errors) == 1
    assert consumer.name == "worker"
    assert channel.consumer_tags == set()
