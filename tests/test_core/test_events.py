import pytest

from levelup.core.events import Event, ProgressionEvent


def test_event_bus_subscribe_publish(event_bus):
    received = []
    def handler(event):
        received.append(event)

    event_bus.subscribe(ProgressionEvent.GOAL_ADDED, handler)
    event_bus.publish(ProgressionEvent.GOAL_ADDED, goal="g")

    assert len(received) == 1
    assert received[0].type == ProgressionEvent.GOAL_ADDED
    assert received[0]["goal"] == "g"
    assert received[0].get("missing", 5) == 5


def test_event_bus_unsubscribe(event_bus):
    received = []
    def handler(event):
        received.append(event)

    event_bus.subscribe(ProgressionEvent.GOAL_ADDED, handler)
    event_bus.unsubscribe(ProgressionEvent.GOAL_ADDED, handler)
    event_bus.publish(ProgressionEvent.GOAL_ADDED)

    assert received == []


def test_event_priority(event_bus):
    order = []

    event_bus.subscribe(ProgressionEvent.XP_GAINED, lambda e: order.append("low"), priority=1, weak=False)
    event_bus.subscribe(ProgressionEvent.XP_GAINED, lambda e: order.append("high"), priority=10, weak=False)
    event_bus.subscribe(ProgressionEvent.XP_GAINED, lambda e: order.append("normal"), priority=5, weak=False)

    event_bus.publish(ProgressionEvent.XP_GAINED)

    assert order == ["high", "normal", "low"]


def test_equal_priority_keeps_subscription_order(event_bus):
    order = []
    event_bus.subscribe(ProgressionEvent.XP_GAINED, lambda e: order.append(1), weak=False)
    event_bus.subscribe(ProgressionEvent.XP_GAINED, lambda e: order.append(2), weak=False)

    event_bus.publish(ProgressionEvent.XP_GAINED)

    assert order == [1, 2]


def test_event_consumption(event_bus):
    received = []

    def consumer(event):
        received.append("consumer")
        event.consume()

    def later_handler(event):
        received.append("later")

    event_bus.subscribe(ProgressionEvent.LEVEL_UP, consumer, priority=10)
    event_bus.subscribe(ProgressionEvent.LEVEL_UP, later_handler, priority=5)

    event = event_bus.publish(ProgressionEvent.LEVEL_UP)

    assert received == ["consumer"]
    assert event.consumed


def test_one_shot_handler(event_bus):
    calls = []
    event_bus.subscribe(ProgressionEvent.NODE_COMPLETED, lambda e: calls.append(e), one_shot=True, weak=False)

    event_bus.publish(ProgressionEvent.NODE_COMPLETED)
    event_bus.publish(ProgressionEvent.NODE_COMPLETED)

    assert len(calls) == 1
    assert event_bus.handler_count(ProgressionEvent.NODE_COMPLETED) == 0


def test_weak_method_handler_dropped_with_owner(event_bus):
    class View:
        def __init__(self):
            self.seen = []

        def on_event(self, event):
            self.seen.append(event)

    view = View()
    event_bus.subscribe(ProgressionEvent.TREE_ADDED, view.on_event)
    assert event_bus.handler_count(ProgressionEvent.TREE_ADDED) == 1

    del view
    event_bus.publish(ProgressionEvent.TREE_ADDED)

    assert event_bus.handler_count(ProgressionEvent.TREE_ADDED) == 0


def test_publish_during_dispatch_is_queued(event_bus):
    order = []

    def first(event):
        order.append("first")
        event_bus.publish(ProgressionEvent.LEVEL_UP)
        order.append("first done")

    event_bus.subscribe(ProgressionEvent.XP_GAINED, first)
    event_bus.subscribe(ProgressionEvent.LEVEL_UP, lambda e: order.append("level"), weak=False)

    event_bus.publish(ProgressionEvent.XP_GAINED)

    assert order == ["first", "first done", "level"]


def test_failing_handler_does_not_stop_others(event_bus, caplog):
    received = []

    def broken(event):
        raise RuntimeError("boom")

    event_bus.subscribe(ProgressionEvent.GOAL_DELETED, broken, priority=1)
    event_bus.subscribe(ProgressionEvent.GOAL_DELETED, lambda e: received.append(e), weak=False)

    event_bus.publish(ProgressionEvent.GOAL_DELETED)

    assert len(received) == 1
    assert "Error in event handler" in caplog.text


def test_clear(event_bus):
    event_bus.subscribe(ProgressionEvent.GOAL_ADDED, lambda e: None, weak=False)
    event_bus.subscribe(ProgressionEvent.GOAL_DELETED, lambda e: None, weak=False)

    event_bus.clear(ProgressionEvent.GOAL_ADDED)
    assert event_bus.handler_count(ProgressionEvent.GOAL_ADDED) == 0
    assert event_bus.handler_count(ProgressionEvent.GOAL_DELETED) == 1

    event_bus.clear()
    assert event_bus.handler_count(ProgressionEvent.GOAL_DELETED) == 0


def test_publish_event_object(event_bus):
    received = []
    event_bus.subscribe(ProgressionEvent.GOAL_ADDED, lambda e: received.append(e), weak=False)

    event = Event(type=ProgressionEvent.GOAL_ADDED, data={'goal': 1})
    event_bus.publish_event(event)

    assert received == [event]
