import logging
from typing import Any, Mapping, Optional, Set, Tuple

from fintrack.domain import Budget, Transaction, budget_payload
from fintrack.events import BUDGET_ALERT, BUDGETS_CHANGED, TRANSACTIONS_CHANGED, Event
from fintrack.metrics import budget_progress
from fintrack.provider import Provider, fingerprint
from fintrack.transactions import TransactionProvider
from fintrack.transforms import replace_by_id, spent_for, without_id

logger = logging.getLogger(__name__)


class BudgetProvider(Provider):
    """Category budgets whose ``spent`` is derived from the transactions.

    The provider listens to ``TRANSACTIONS_CHANGED`` from ``source`` and
    recomputes every budget in full on each change. ``spent`` is never sent
    to or read from the backend.
    """

    entity = "budget"

    def __init__(self, adapter, bus, user_id, source: TransactionProvider, **kwargs):
        super().__init__(adapter, bus, user_id, **kwargs)
        self.source = source
        self.budgets: Tuple[Budget, ...] = ()
        self._exceeded: Set[str] = set()
        bus.subscribe(TRANSACTIONS_CHANGED, self._on_transactions_changed)

    def dispose(self) -> None:
        self.bus.unsubscribe(TRANSACTIONS_CHANGED, self._on_transactions_changed)

    def _on_transactions_changed(self, event: Event, payload: dict) -> dict:
        self.recompute(payload["transactions"])
        return {"budgets": len(self.budgets)}

    def recompute(self, transactions: Optional[Tuple[Transaction, ...]] = None) -> None:
        if transactions is None:
            transactions = self.source.transactions
        self.budgets = tuple(b.with_spent(spent_for(transactions, b.category)) for b in self.budgets)
        self._check_alerts()
        self.bus.publish(BUDGETS_CHANGED, {"budgets": self.budgets})

    def _check_alerts(self) -> None:
        exceeded = {b.id for b in self.budgets if b.spent > b.amount}
        for b in self.budgets:
            if b.id in exceeded and b.id not in self._exceeded:
                logger.info("Budget %s exceeded: %.2f / %.2f", b.category, b.spent, b.amount)
                self.bus.publish(BUDGET_ALERT, {
                    "budget_id": b.id,
                    "category": b.category,
                    "spent": b.spent,
                    "limit": b.amount,
                })
                self.notify("warning", f"Budget exceeded for {b.category}: {b.spent:,.0f} / {b.amount:,.0f}")
        self._exceeded = exceeded

    async def _fetch(self) -> Tuple[Budget, ...]:
        records = await self._call("load budgets", self.adapter.list_budgets, self.user_id, timeout=self.timeout)
        return tuple(Budget.from_record(r) for r in records)

    def _replace(self, items: Tuple[Budget, ...]) -> None:
        self.budgets = items
        self.recompute()

    async def add(self, data: Mapping[str, Any]) -> Budget:
        async def action():
            payload = budget_payload(data)
            record = await self._call("add budget", self.adapter.create_budget, self.user_id, payload)
            self.budgets = (Budget.from_record(record),) + self.budgets
            self.recompute()
            return self.budgets[0]

        created = await self._mutate("add", fingerprint(data), action)
        self.notify("success", "Budget added successfully")
        return created

    async def update(self, budget_id: str, patch: Mapping[str, Any]) -> Budget:
        async def action():
            self._index(self.budgets, budget_id)
            changes = budget_payload(patch, partial=True)
            record = await self._call("update budget", self.adapter.update_budget, budget_id, self.user_id, changes)
            self.budgets = replace_by_id(self.budgets, Budget.from_record(record))
            self.recompute()
            return self.get(budget_id)

        updated = await self._mutate("update", budget_id, action)
        self.notify("success", "Budget updated successfully")
        return updated

    async def remove(self, budget_id: str) -> None:
        async def action():
            self._index(self.budgets, budget_id)
            await self._call("delete budget", self.adapter.delete_budget, budget_id, self.user_id)
            self.budgets = without_id(self.budgets, budget_id)
            self.recompute()

        await self._mutate("delete", budget_id, action)
        self.notify("success", "Budget deleted successfully")

    def get(self, budget_id: str) -> Optional[Budget]:
        return next((b for b in self.budgets if b.id == budget_id), None)

    def by_category(self, category: str) -> Optional[Budget]:
        return next((b for b in self.budgets if b.category == category), None)

    def progress(self, budget_id: str) -> int:
        b = self.get(budget_id)
        if b is None:
            return 0
        return budget_progress(b.spent, b.amount)

    def is_exceeded(self, budget_id: str) -> bool:
        b = self.get(budget_id)
        return b is not None and b.spent > b.amount
