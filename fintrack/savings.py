"""Savings goals and the deposits/withdrawals recorded against them.

The backend is the single source of truth for ``current_amount``: after a
savings transaction is recorded the provider refetches goals instead of
adding the amount locally. Status changes follow ``domain.next_status`` and
are applied by the backend's bulk reconcile, after which goals are refetched.

If the backend reports the savings tables as missing, the provider switches
to ``table_exists = False``. In that mode every operation except ``load``
fails fast with ``NotProvisionedError`` without touching the backend.
"""

import logging
from typing import Any, Mapping, Optional, Tuple

from fintrack.domain import (
    ACTIVE,
    COMPLETED,
    DEPOSIT,
    SavingsGoal,
    SavingsTransaction,
    savings_payload,
    savings_transaction_payload,
)
from fintrack.errors import FinanceError, NotProvisionedError
from fintrack.events import SAVINGS_CHANGED
from fintrack.provider import Provider, fingerprint
from fintrack.transforms import replace_by_id, without_id

logger = logging.getLogger(__name__)

NOT_PROVISIONED_MESSAGE = "Savings feature is not set up yet. Please run the database migration."


class SavingsProvider(Provider):
    entity = "savings goal"

    def __init__(self, adapter, bus, user_id, **kwargs):
        super().__init__(adapter, bus, user_id, **kwargs)
        self.goals: Tuple[SavingsGoal, ...] = ()
        self.transactions: Tuple[SavingsTransaction, ...] = ()
        self.table_exists = True

    def _require_table(self) -> None:
        if not self.table_exists:
            raise NotProvisionedError("Savings")

    def _changed(self) -> None:
        self.bus.publish(SAVINGS_CHANGED, {"goals": self.goals, "transactions": self.transactions})

    async def _fetch_goals(self) -> Tuple[SavingsGoal, ...]:
        records = await self._call("load savings", self.adapter.list_savings, self.user_id, timeout=self.timeout)
        return tuple(SavingsGoal.from_record(r) for r in records)

    async def _fetch_transactions(self) -> Tuple[SavingsTransaction, ...]:
        records = await self._call(
            "load savings transactions", self.adapter.list_savings_transactions, self.user_id,
            timeout=self.timeout,
        )
        return tuple(SavingsTransaction.from_record(r) for r in records)

    async def _reconcile(self) -> None:
        await self._call("reconcile savings", self.adapter.reconcile_savings_statuses, self.user_id)
        self.goals = await self._fetch_goals()
        self._changed()

    async def load(self) -> bool:
        async with self._lock:
            self.loading = True
            self.error = None
            try:
                self._require_user()
                goals = await self._fetch_goals()
                transactions = await self._fetch_transactions()
                self.table_exists = True
                self.goals, self.transactions = goals, transactions
                self._changed()
                await self._reconcile()
            except NotProvisionedError as exc:
                self.table_exists = False
                self.error = exc
                logger.info("Savings tables missing, savings disabled until migrated")
                self.notify("warning", NOT_PROVISIONED_MESSAGE)
                return False
            except FinanceError as exc:
                self._load_failed(exc)
                return False
            finally:
                self.loading = False
            return True

    async def _mutate(self, operation, key, action, *, entity=None):
        async def guarded():
            self._require_table()
            try:
                return await action()
            except NotProvisionedError:
                self.table_exists = False
                raise

        return await super()._mutate(operation, key, guarded, entity=entity)

    async def reconcile(self) -> None:
        await self._mutate("reconcile", None, self._reconcile, entity="savings statuses")

    async def add(self, data: Mapping[str, Any]) -> SavingsGoal:
        async def action():
            payload = savings_payload(data)
            record = await self._call("add savings goal", self.adapter.create_savings, self.user_id, payload)
            created = SavingsGoal.from_record(record)
            self.goals = (created,) + self.goals
            self._changed()
            return created

        created = await self._mutate("add", fingerprint(data), action)
        self.notify("success", "Savings goal added successfully")
        return created

    async def update(self, goal_id: str, patch: Mapping[str, Any]) -> SavingsGoal:
        """Edit a goal; a status given here overrides the automatic rules."""

        async def action():
            self._index(self.goals, goal_id)
            changes = savings_payload(patch, partial=True)
            record = await self._call(
                "update savings goal", self.adapter.update_savings, goal_id, self.user_id, changes
            )
            updated = SavingsGoal.from_record(record)
            self.goals = replace_by_id(self.goals, updated)
            self._changed()
            return updated

        updated = await self._mutate("update", goal_id, action)
        self.notify("success", "Savings goal updated successfully")
        return updated

    async def delete(self, goal_id: str) -> None:
        async def action():
            self._index(self.goals, goal_id)
            # the goal's transactions go first, the backend refuses orphans
            await self._call(
                "delete savings transactions", self.adapter.delete_savings_transactions, goal_id, self.user_id
            )
            self.transactions = tuple(t for t in self.transactions if t.savings_id != goal_id)
            try:
                await self._call("delete savings goal", self.adapter.delete_savings, goal_id, self.user_id)
            except FinanceError:
                # the transactions are already gone remotely, so is the saved amount
                self.goals = await self._fetch_goals()
                self._changed()
                raise
            self.goals = without_id(self.goals, goal_id)
            self._changed()

        await self._mutate("delete", goal_id, action)
        self.notify("success", "Savings goal deleted successfully")

    async def add_transaction(self, data: Mapping[str, Any]) -> SavingsTransaction:
        async def action():
            payload = savings_transaction_payload(data)
            self._index(self.goals, payload["savings_id"])
            record = await self._call(
                "add savings transaction", self.adapter.create_savings_transaction, self.user_id, payload
            )
            created = SavingsTransaction.from_record(record)
            # current_amount and status are recomputed by the backend; the
            # lists change together once both refetches succeeded
            await self._call("reconcile savings", self.adapter.reconcile_savings_statuses, self.user_id)
            goals = await self._fetch_goals()
            transactions = await self._fetch_transactions()
            self.goals, self.transactions = goals, transactions
            self._changed()
            return created

        created = await self._mutate("add", fingerprint(data), action, entity="savings transaction")
        label = "Deposit" if created.kind == DEPOSIT else "Withdrawal"
        self.notify("success", f"{label} added successfully")
        return created

    def get(self, goal_id: str) -> Optional[SavingsGoal]:
        return next((g for g in self.goals if g.id == goal_id), None)

    def transactions_for(self, savings_id: str) -> Tuple[SavingsTransaction, ...]:
        return tuple(t for t in self.transactions if t.savings_id == savings_id)

    def total_savings(self) -> float:
        return sum(g.current_amount for g in self.goals)

    def active_goals(self) -> Tuple[SavingsGoal, ...]:
        return tuple(g for g in self.goals if g.status == ACTIVE)

    def completed_goals(self) -> Tuple[SavingsGoal, ...]:
        return tuple(g for g in self.goals if g.status == COMPLETED)
