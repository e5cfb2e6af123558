import logging
from typing import Any, Mapping, Optional, Tuple

from fintrack.domain import Transaction, TransactionFilters, transaction_payload
from fintrack.events import TRANSACTIONS_CHANGED
from fintrack.provider import Provider, fingerprint
from fintrack.transforms import (
    apply_filters,
    by_category,
    by_date_range,
    by_kind,
    replace_by_id,
    select,
    sort_newest_first,
    total_by_kind,
    without_id,
)

logger = logging.getLogger(__name__)


class TransactionProvider(Provider):
    """Income and expense transactions of the signed-in user, newest first.

    Every change to the list is announced with ``TRANSACTIONS_CHANGED`` and
    the new snapshot, which is what keeps budget ``spent`` values current.
    """

    entity = "transaction"

    def __init__(self, adapter, bus, user_id, **kwargs):
        super().__init__(adapter, bus, user_id, **kwargs)
        self.transactions: Tuple[Transaction, ...] = ()

    async def _fetch(self) -> Tuple[Transaction, ...]:
        records = await self._call(
            "load transactions", self.adapter.list_transactions, self.user_id, timeout=self.timeout
        )
        return sort_newest_first(Transaction.from_record(r) for r in records)

    def _replace(self, items: Tuple[Transaction, ...]) -> None:
        self.transactions = items
        self._changed()

    def _changed(self) -> None:
        self.bus.publish(TRANSACTIONS_CHANGED, {"transactions": self.transactions})

    async def add(self, data: Mapping[str, Any]) -> Transaction:
        async def action():
            payload = transaction_payload(data)
            record = await self._call("add transaction", self.adapter.create_transaction, self.user_id, payload)
            created = Transaction.from_record(record)
            self.transactions = (created,) + self.transactions
            self._changed()
            return created

        created = await self._mutate("add", fingerprint(data), action)
        self.notify("success", "Transaction added successfully")
        return created

    async def update(self, transaction_id: str, patch: Mapping[str, Any]) -> Transaction:
        async def action():
            current = self.transactions[self._index(self.transactions, transaction_id)]
            changes = {
                k: v for k, v in transaction_payload(patch, partial=True).items()
                if getattr(current, k) != v
            }
            if not changes:
                logger.debug("Transaction %s unchanged, nothing sent", transaction_id)
                return current
            record = await self._call(
                "update transaction", self.adapter.update_transaction, transaction_id, self.user_id, changes
            )
            updated = Transaction.from_record(record)
            self.transactions = replace_by_id(self.transactions, updated)
            self._changed()
            return updated

        updated = await self._mutate("update", transaction_id, action)
        self.notify("success", "Transaction updated successfully")
        return updated

    async def remove(self, transaction_id: str) -> None:
        async def action():
            self._index(self.transactions, transaction_id)
            await self._call("delete transaction", self.adapter.delete_transaction, transaction_id, self.user_id)
            self.transactions = without_id(self.transactions, transaction_id)
            self._changed()

        await self._mutate("delete", transaction_id, action)
        self.notify("success", "Transaction deleted successfully")

    def get(self, transaction_id: str) -> Optional[Transaction]:
        return next((t for t in self.transactions if t.id == transaction_id), None)

    def by_kind(self, kind: str) -> Tuple[Transaction, ...]:
        return select(self.transactions, by_kind(kind))

    def by_category(self, category: str) -> Tuple[Transaction, ...]:
        return select(self.transactions, by_category(category))

    def by_date_range(self, start: str, end: str) -> Tuple[Transaction, ...]:
        return select(self.transactions, by_date_range(start, end))

    def filtered(self, filters: Optional[TransactionFilters] = None, **kwargs) -> Tuple[Transaction, ...]:
        if filters is None:
            filters = TransactionFilters(**kwargs)
        return apply_filters(self.transactions, filters)

    def total_by_kind(self, kind: str) -> float:
        return total_by_kind(self.transactions, kind)

    def categories(self) -> Tuple[str, ...]:
        return tuple(sorted({t.category for t in self.transactions if t.category}))
