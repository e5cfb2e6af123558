"""Session state: one event bus, the three providers, and the notifications.

:class:`AppState` is what the dashboard holds per signed-in user. It is
built explicitly and passed around; there is no module-level bus or store.
"""

import logging
from collections import deque
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

from fintrack.budgets import BudgetProvider
from fintrack.config import settings
from fintrack.domain import EXPENSE, INCOME, UserProfile, profile_payload
from fintrack.errors import NotAuthenticatedError
from fintrack.events import NOTIFY, Event, EventBus
from fintrack.metrics import HealthReport, financial_health
from fintrack.provider import InFlightGuard
from fintrack.reports import dashboard_report
from fintrack.savings import SavingsProvider
from fintrack.transactions import TransactionProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    level: str      # "success", "info", "warning" or "error"
    message: str
    ts: str


class Notifier:
    """Keeps the latest ``limit`` notifications published on the bus."""

    def __init__(self, bus: EventBus, limit: int = 20):
        self.bus = bus
        self._items: deque = deque(maxlen=limit)
        bus.subscribe(NOTIFY, self._on_notify)

    def _on_notify(self, event: Event, payload: dict) -> None:
        self._items.append(Notification(payload["level"], payload["message"], event.ts))

    def __len__(self) -> int:
        return len(self._items)

    def peek(self) -> List[Notification]:
        return list(self._items)

    def drain(self) -> List[Notification]:
        items = list(self._items)
        self._items.clear()
        return items

    def dispose(self) -> None:
        self.bus.unsubscribe(NOTIFY, self._on_notify)


class AppState:
    def __init__(self, adapter, *, timeout: Optional[float] = None, notification_limit: Optional[int] = None):
        self.adapter = adapter
        self.timeout = timeout
        self.bus = EventBus()
        self.notifier = Notifier(
            self.bus, settings.notification_limit if notification_limit is None else notification_limit
        )
        self.user_id: Optional[str] = None
        self.profile: Optional[UserProfile] = None
        self._transactions: Optional[TransactionProvider] = None
        self._budgets: Optional[BudgetProvider] = None
        self._savings: Optional[SavingsProvider] = None

    async def start(self, user_id: Optional[str]) -> Dict[str, bool]:
        """Open a session for ``user_id`` and load everything it owns.

        Transactions load before budgets so the first budget snapshot already
        carries real ``spent`` values.
        """
        if not user_id:
            raise NotAuthenticatedError()
        self.dispose()
        record = await self.adapter.ensure_user_profile(user_id)
        self.profile = UserProfile.from_record(record)
        self.user_id = user_id

        guard = InFlightGuard()
        self._transactions = TransactionProvider(self.adapter, self.bus, user_id, timeout=self.timeout, guard=guard)
        self._budgets = BudgetProvider(
            self.adapter, self.bus, user_id, self._transactions, timeout=self.timeout, guard=guard
        )
        self._savings = SavingsProvider(self.adapter, self.bus, user_id, timeout=self.timeout, guard=guard)

        loaded = {
            "transactions": await self._transactions.load(),
            "budgets": await self._budgets.load(),
            "savings": await self._savings.load(),
        }
        logger.info("Session started for %s: %s", user_id, loaded)
        return loaded

    async def refresh(self) -> Dict[str, bool]:
        return {
            "transactions": await self.transactions.load(),
            "budgets": await self.budgets.load(),
            "savings": await self.savings.load(),
        }

    def dispose(self) -> None:
        for provider in (self._transactions, self._budgets, self._savings):
            if provider is not None:
                provider.dispose()
        self._transactions = self._budgets = self._savings = None
        self.user_id = None
        self.profile = None

    def _session(self, provider):
        if provider is None:
            raise NotAuthenticatedError()
        return provider

    @property
    def transactions(self) -> TransactionProvider:
        return self._session(self._transactions)

    @property
    def budgets(self) -> BudgetProvider:
        return self._session(self._budgets)

    @property
    def savings(self) -> SavingsProvider:
        return self._session(self._savings)

    def health(self) -> HealthReport:
        tx = self.transactions
        return financial_health(
            tx.total_by_kind(INCOME),
            tx.total_by_kind(EXPENSE),
            self.budgets.budgets,
            self.savings.total_savings(),
        )

    def dashboard(self, today: Optional[date] = None) -> Dict[str, Any]:
        return dashboard_report(
            self.transactions.transactions,
            self.budgets.budgets,
            self.savings.total_savings(),
            months=settings.trend_months,
            k=settings.top_categories,
            today=today,
        )

    async def update_profile(self, patch: Mapping[str, Any]) -> UserProfile:
        if not self.user_id:
            raise NotAuthenticatedError()
        record = await self.adapter.update_user_profile(self.user_id, profile_payload(patch))
        self.profile = UserProfile.from_record(record)
        self.bus.publish(NOTIFY, {"level": "success", "message": "Profile updated", "entity": "profile"})
        return self.profile

    async def reset_user_data(self) -> None:
        """Delete every record of the user, then start over with empty lists."""
        if not self.user_id:
            raise NotAuthenticatedError()
        user_id = self.user_id
        await self.adapter.delete_user_data(user_id)
        logger.warning("All data deleted for %s at %s", user_id, datetime.now().isoformat())
        await self.start(user_id)
