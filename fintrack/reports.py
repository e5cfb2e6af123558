from collections import defaultdict
from datetime import date
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from fintrack.domain import EXPENSE, INCOME, Budget, Transaction
from fintrack.formatters import shift_month
from fintrack.metrics import financial_health
from fintrack.transforms import total_by_kind


def category_totals(trans: Iterable[Transaction], kind: str = EXPENSE) -> Dict[str, float]:
    """Total per category for one kind, largest first."""
    totals: Dict[str, float] = defaultdict(float)
    for t in trans:
        if t.kind == kind:
            totals[t.category or "Other"] += t.amount
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))


def top_categories(trans: Iterable[Transaction], k: int, kind: str = EXPENSE) -> Iterator[Tuple[str, float]]:
    ordered = list(category_totals(trans, kind).items())
    for name, total in ordered[: max(0, k)]:
        yield name, total


def month_window(months: int, today: Optional[date] = None) -> List[str]:
    """``YYYY-MM`` keys of the trailing window ending in the current month."""
    today = today or date.today()
    return [shift_month(today, -i).strftime("%Y-%m") for i in range(months - 1, -1, -1)]


def monthly_totals(
    trans: Iterable[Transaction],
    months: int = 6,
    today: Optional[date] = None,
    kind: str = EXPENSE,
) -> Dict[str, float]:
    window = month_window(months, today)
    totals = {m: 0.0 for m in window}
    for t in trans:
        month = t.date[:7]
        if t.kind == kind and month in totals:
            totals[month] += t.amount
    return totals


def income_vs_expense(trans: Iterable[Transaction]) -> Dict[str, Dict[str, float]]:
    """Income and expense per month over every month that has data."""
    by_month: Dict[str, Dict[str, float]] = {}
    for t in trans:
        bucket = by_month.setdefault(t.date[:7], {INCOME: 0.0, EXPENSE: 0.0})
        bucket[t.kind] += t.amount
    return dict(sorted(by_month.items()))


def monthly_summary(
    trans: Sequence[Transaction],
    months: int = 6,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    income = monthly_totals(trans, months, today, INCOME)
    expense = monthly_totals(trans, months, today, EXPENSE)
    return [
        {"month": m, "income": income[m], "expense": expense[m], "balance": income[m] - expense[m]}
        for m in income
    ]


Aggregator = Callable[[Sequence[Transaction], Dict[str, Any]], Dict[str, Any]]


class ReportService:
    """Runs injected aggregators over one transaction snapshot.

    Each aggregator takes (transactions, acc), where ``acc`` holds the merged
    outputs of the aggregators before it, and returns a partial dict.
    """

    def __init__(self, aggregators: Sequence[Aggregator]):
        self.aggregators = aggregators

    def run(self, transactions: Iterable[Transaction]) -> Dict[str, Any]:
        snapshot = tuple(transactions)
        report: Dict[str, Any] = {"count": len(snapshot), "steps": [], "result": {}}
        acc: Dict[str, Any] = {}
        for agg in self.aggregators:
            out = agg(snapshot, acc)
            report["steps"].append({"aggregator": getattr(agg, "__name__", str(agg)), "output": out})
            if isinstance(out, dict):
                acc.update(out)
        report["result"] = acc
        return report


def totals_aggregator(trans, acc):
    income = total_by_kind(trans, INCOME)
    expense = total_by_kind(trans, EXPENSE)
    return {"total_income": income, "total_expense": expense, "net": income - expense}


def categories_aggregator(k: int) -> Aggregator:
    def categories(trans, acc):
        return {
            "expense_by_category": category_totals(trans, EXPENSE),
            "income_by_category": category_totals(trans, INCOME),
            "top_expenses": list(top_categories(trans, k, EXPENSE)),
            "top_income": list(top_categories(trans, k, INCOME)),
        }

    return categories


def trend_aggregator(months: int, today: Optional[date] = None) -> Aggregator:
    def trend(trans, acc):
        return {
            "spending_trend": monthly_totals(trans, months, today, EXPENSE),
            "monthly_summary": monthly_summary(trans, months, today),
            "income_vs_expense": income_vs_expense(trans),
        }

    return trend


def health_aggregator(budgets: Sequence[Budget], total_savings: float) -> Aggregator:
    def health(trans, acc):
        report = financial_health(acc["total_income"], acc["total_expense"], budgets, total_savings)
        return {"health": report}

    return health


def dashboard_report(
    transactions: Iterable[Transaction],
    budgets: Sequence[Budget],
    total_savings: float,
    *,
    months: int = 6,
    k: int = 5,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    service = ReportService([
        totals_aggregator,
        categories_aggregator(k),
        trend_aggregator(months, today),
        health_aggregator(budgets, total_savings),
    ])
    result = service.run(transactions)["result"]
    result["total_savings"] = total_savings
    return result
