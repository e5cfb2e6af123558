from datetime import datetime

import pytest

from fintrack.events import (
    BUDGET_ALERT,
    NOTIFY,
    TRANSACTIONS_CHANGED,
    Event,
    EventBus,
)


def test_event_creation():
    event = Event(
        name=TRANSACTIONS_CHANGED,
        ts=datetime.now().isoformat(),
        payload={"transactions": ()}
    )
    assert event.name == TRANSACTIONS_CHANGED
    assert "transactions" in event.payload


def test_event_bus_subscribe_and_publish():
    bus = EventBus()
    results_collected = []

    def test_handler(event: Event, payload: dict) -> dict:
        results_collected.append(payload)
        return {"processed": True}

    bus.subscribe(NOTIFY, test_handler)
    results = bus.publish(NOTIFY, {"level": "info", "message": "hi"})

    assert len(results) == 1
    assert results[0]["processed"] is True
    assert results_collected[0]["message"] == "hi"


def test_handlers_run_in_subscription_order():
    bus = EventBus()
    order = []
    bus.subscribe(BUDGET_ALERT, lambda e, p: order.append("first"))
    bus.subscribe(BUDGET_ALERT, lambda e, p: order.append("second"))

    bus.publish(BUDGET_ALERT, {})
    assert order == ["first", "second"]


def test_publish_without_subscribers():
    bus = EventBus()
    assert bus.publish("UNKNOWN_EVENT", {"x": 1}) == []


def test_unsubscribe():
    bus = EventBus()
    calls = []

    def handler(event, payload):
        calls.append(1)

    bus.subscribe(NOTIFY, handler)
    bus.unsubscribe(NOTIFY, handler)
    bus.publish(NOTIFY, {})
    assert calls == []
    assert bus.subscribers(NOTIFY) == 0
    # unknown handler is ignored
    bus.unsubscribe(NOTIFY, handler)


def test_handler_may_unsubscribe_itself():
    bus = EventBus()
    calls = []

    def once(event, payload):
        calls.append(1)
        bus.unsubscribe(NOTIFY, once)

    bus.subscribe(NOTIFY, once)
    bus.subscribe(NOTIFY, lambda e, p: calls.append(2))
    bus.publish(NOTIFY, {})
    bus.publish(NOTIFY, {})
    assert calls == [1, 2, 2]


def test_handler_errors_reach_publisher():
    bus = EventBus()

    def broken(event, payload):
        raise RuntimeError("handler failed")

    bus.subscribe(NOTIFY, broken)
    with pytest.raises(RuntimeError):
        bus.publish(NOTIFY, {})


def test_clear():
    bus = EventBus()
    bus.subscribe(NOTIFY, lambda e, p: None)
    bus.clear()
    assert bus.subscribers(NOTIFY) == 0
