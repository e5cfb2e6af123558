from typing import Any, Callable, Dict, List, NamedTuple, Optional
from datetime import datetime

__all__ = [
    'Event', 'EventBus',
    'TRANSACTIONS_CHANGED', 'BUDGETS_CHANGED', 'SAVINGS_CHANGED', 'BUDGET_ALERT', 'NOTIFY',
]


class Event(NamedTuple):
    name: str
    ts: str
    payload: dict


Handler = Callable[[Event, dict], Optional[Dict[str, Any]]]


class EventBus:
    """Synchronous publish/subscribe hub shared by the providers of one session.

    Handlers run in subscription order on the publisher's call stack, so a
    handler sees the publisher's state exactly as it was when the event went
    out. Handler exceptions propagate to the publisher.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        if name not in self._subscribers:
            self._subscribers[name] = []
        self._subscribers[name].append(handler)

    def publish(self, name: str, payload: dict) -> List[Optional[dict]]:
        if name not in self._subscribers:
            return []

        event = Event(
            name=name,
            ts=datetime.now().isoformat(),
            payload=payload
        )

        results = []
        # copy: a handler may unsubscribe itself
        for handler in list(self._subscribers[name]):
            result = handler(event, payload)
            results.append(result)
        return results

    def unsubscribe(self, name: str, handler: Handler) -> None:
        if name in self._subscribers:
            if handler in self._subscribers[name]:
                self._subscribers[name].remove(handler)

    def subscribers(self, name: str) -> int:
        return len(self._subscribers.get(name, []))

    def clear(self) -> None:
        self._subscribers.clear()


TRANSACTIONS_CHANGED = "TRANSACTIONS_CHANGED"
BUDGETS_CHANGED = "BUDGETS_CHANGED"
SAVINGS_CHANGED = "SAVINGS_CHANGED"
BUDGET_ALERT = "BUDGET_ALERT"
NOTIFY = "NOTIFY"
