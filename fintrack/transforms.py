from functools import reduce
from typing import Callable, Iterable, Optional, Tuple

from fintrack.domain import EXPENSE, Transaction, TransactionFilters

Predicate = Callable[[Transaction], bool]


def by_kind(kind: str) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return t.kind == kind

    return _filter


def by_category(category: str) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return t.category == category

    return _filter


def by_date_range(start: Optional[str], end: Optional[str]) -> Predicate:
    # ISO dates compare correctly as strings; both bounds inclusive
    def _filter(t: Transaction) -> bool:
        if start and t.date < start:
            return False
        if end and t.date > end:
            return False
        return True

    return _filter


def by_amount_range(min_amount: Optional[float], max_amount: Optional[float]) -> Predicate:
    def _filter(t: Transaction) -> bool:
        if min_amount is not None and t.amount < min_amount:
            return False
        if max_amount is not None and t.amount > max_amount:
            return False
        return True

    return _filter


def by_search(text: str) -> Predicate:
    needle = text.lower()

    def _filter(t: Transaction) -> bool:
        return needle in t.description.lower()

    return _filter


def predicates(filters: TransactionFilters) -> Tuple[Predicate, ...]:
    preds = []
    if filters.kind:
        preds.append(by_kind(filters.kind))
    if filters.category:
        preds.append(by_category(filters.category))
    if filters.start_date or filters.end_date:
        preds.append(by_date_range(filters.start_date, filters.end_date))
    if filters.min_amount is not None or filters.max_amount is not None:
        preds.append(by_amount_range(filters.min_amount, filters.max_amount))
    if filters.search:
        preds.append(by_search(filters.search))
    return tuple(preds)


def select(trans: Iterable[Transaction], *preds: Predicate) -> Tuple[Transaction, ...]:
    return tuple(filter(lambda t: all(p(t) for p in preds), trans))


def apply_filters(trans: Iterable[Transaction], filters: TransactionFilters) -> Tuple[Transaction, ...]:
    return select(trans, *predicates(filters))


def total_amount(trans: Iterable[Transaction]) -> float:
    return reduce(lambda acc, t: acc + t.amount, trans, 0.0)


def total_by_kind(trans: Iterable[Transaction], kind: str) -> float:
    return total_amount(select(trans, by_kind(kind)))


def spent_for(trans: Iterable[Transaction], category: str) -> float:
    return total_amount(select(trans, by_category(category), by_kind(EXPENSE)))


def sort_newest_first(trans: Iterable[Transaction]) -> Tuple[Transaction, ...]:
    return tuple(sorted(trans, key=lambda t: t.date, reverse=True))


def replace_by_id(items: tuple, item) -> tuple:
    return tuple(item if x.id == item.id else x for x in items)


def without_id(items: tuple, item_id: str) -> tuple:
    return tuple(x for x in items if x.id != item_id)
