"""Derived financial metrics.

Everything here is a pure function of its arguments: no provider state, no
clock unless a ``today`` is passed in, so the same inputs always give the
same numbers.
"""

import math
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Tuple

from fintrack.domain import Budget, SavingsGoal

GOOD, OKAY, WARNING, BAD = "good", "okay", "warning", "bad"


def round_half_up(x: float) -> int:
    # Python's round() is banker's rounding; percentages round .5 upwards
    return int(math.floor(x + 0.5))


def budget_progress(spent: float, amount: float) -> int:
    if amount == 0:
        return 0
    return min(100, round_half_up(spent / amount * 100))


def goal_progress(goal: SavingsGoal) -> float:
    if goal.target_amount <= 0:
        return 0.0
    return min(100.0, goal.current_amount / goal.target_amount * 100)


def days_left(goal: SavingsGoal, today: Optional[date] = None) -> Optional[int]:
    """Days until the goal's target date, negative once overdue."""
    if not goal.target_date:
        return None
    today = today or date.today()
    return (date.fromisoformat(goal.target_date) - today).days


def savings_rate(total_income: float, total_expense: float) -> float:
    """Share of income left after expenses, in percent.

    Spending with no income at all counts as -100% so that adding any income
    can only move the rate up.
    """
    if total_income > 0:
        return (total_income - total_expense) / total_income * 100
    if total_expense > 0:
        return -100.0
    return 0.0


def emergency_fund_months(total_expense: float, total_savings: float) -> float:
    # expenses are treated as one year's worth
    monthly = total_expense / 12
    return total_savings / monthly if monthly > 0 else 0.0


@dataclass(frozen=True)
class HealthReport:
    score: int
    savings_rate: int
    indicators: Tuple[Tuple[str, str], ...]

    @property
    def grade(self) -> str:
        if self.score >= 80:
            return GOOD
        if self.score >= 60:
            return OKAY
        return BAD


def financial_health(
    total_income: float,
    total_expense: float,
    budgets: Iterable[Budget],
    total_savings: float,
) -> HealthReport:
    """Score 0-100: savings rate (40), budget adherence (30), emergency fund (30)."""
    budgets = tuple(budgets)
    score = 0
    indicators = []

    rate = savings_rate(total_income, total_expense)
    if rate >= 20:
        score += 40
        indicators.append(("Excellent savings rate", GOOD))
    elif rate >= 10:
        score += 25
        indicators.append(("Good savings rate", OKAY))
    elif rate >= 0:
        score += 10
        indicators.append(("Low savings rate", WARNING))
    else:
        indicators.append(("Spending exceeds income", BAD))

    if budgets:
        exceeded = sum(1 for b in budgets if b.spent > b.amount)
        adherence = (len(budgets) - exceeded) / len(budgets) * 100
        if adherence >= 80:
            score += 30
            indicators.append(("Staying within budgets", GOOD))
        elif adherence >= 60:
            score += 20
            indicators.append(("Mostly within budgets", OKAY))
        else:
            score += 10
            indicators.append(("Exceeding budgets", WARNING))
    else:
        score += 15
        indicators.append(("No budgets set", WARNING))

    months = emergency_fund_months(total_expense, total_savings)
    if months >= 6:
        score += 30
        indicators.append(("Strong emergency fund", GOOD))
    elif months >= 3:
        score += 20
        indicators.append(("Adequate emergency fund", OKAY))
    elif months >= 1:
        score += 10
        indicators.append(("Building emergency fund", WARNING))
    else:
        indicators.append(("No emergency fund", BAD))

    return HealthReport(
        score=min(100, score),
        savings_rate=round_half_up(rate),
        indicators=tuple(indicators),
    )
