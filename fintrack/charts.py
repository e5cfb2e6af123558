import calendar
from typing import Dict, Iterable

import plotly.express as px
import plotly.graph_objects as go

from fintrack.domain import EXPENSE, INCOME, SavingsGoal
from fintrack.metrics import goal_progress

TEMPLATE = "plotly_dark"
INCOME_COLOR = "rgba(16, 185, 129, 1)"
EXPENSE_COLOR = "rgba(239, 68, 68, 1)"


def _month_label(key: str) -> str:
    # "2025-03" -> "Mar 25"
    year, month = key.split("-")
    return f"{calendar.month_abbr[int(month)]} {year[2:]}"


def expense_by_category_figure(totals: Dict[str, float]) -> go.Figure:
    fig = px.pie(
        names=list(totals.keys()),
        values=list(totals.values()),
        title="Expenses by Category",
        hole=0.4,
        template=TEMPLATE,
    )
    fig.update_traces(textinfo="percent+label")
    return fig


def income_vs_expense_figure(series: Dict[str, Dict[str, float]]) -> go.Figure:
    labels = [_month_label(m) for m in series]
    fig = go.Figure()
    fig.add_trace(go.Bar(x=labels, y=[v[INCOME] for v in series.values()], name="Income", marker_color=INCOME_COLOR))
    fig.add_trace(go.Bar(x=labels, y=[v[EXPENSE] for v in series.values()], name="Expense", marker_color=EXPENSE_COLOR))
    fig.update_layout(barmode="group", title="Income vs Expense", template=TEMPLATE,
                      margin=dict(t=40, b=10, l=10, r=10))
    return fig


def spending_trend_figure(monthly: Dict[str, float]) -> go.Figure:
    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=[_month_label(m) for m in monthly],
        y=list(monthly.values()),
        mode="lines+markers",
        name="Monthly Expenses",
        line=dict(color=EXPENSE_COLOR, width=3),
        fill="tozeroy",
    ))
    fig.update_layout(title=f"Spending Trend (Last {len(monthly)} Months)", template=TEMPLATE,
                      margin=dict(t=40, b=10, l=10, r=10))
    return fig


def savings_progress_figure(goals: Iterable[SavingsGoal], limit: int = 6) -> go.Figure:
    shown = list(goals)[:limit]
    fig = px.bar(
        x=[round(goal_progress(g), 1) for g in shown],
        y=[g.title for g in shown],
        orientation="h",
        labels={"x": "Progress (%)", "y": "Goal"},
        title="Savings Progress",
        range_x=[0, 100],
        template=TEMPLATE,
    )
    return fig
