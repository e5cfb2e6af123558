import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
from datetime import date

import numpy as np
import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from fintrack.adapter import InMemoryAdapter
from fintrack.charts import (
    TEMPLATE,
    expense_by_category_figure,
    income_vs_expense_figure,
    savings_progress_figure,
    spending_trend_figure,
)
from fintrack.config import settings
from fintrack.domain import (
    DEPOSIT,
    EXPENSE,
    INCOME,
    PERIODS,
    PRIORITIES,
    SAVINGS_KINDS,
    TransactionFilters,
)
from fintrack.errors import FinanceError
from fintrack.export import to_csv, transactions_frame
from fintrack.formatters import format_currency, format_date
from fintrack.logging_setup import configure_logging
from fintrack.metrics import GOOD, OKAY, WARNING, days_left, goal_progress
from fintrack.state import AppState

configure_logging(settings.log_level)

st.set_page_config(page_title="Finance Manager", layout="wide")

LEVEL_ICONS = {GOOD: "🟢", OKAY: "🟡", WARNING: "🟠"}


def run(coro):
    return st.session_state.loop.run_until_complete(coro)


if "loop" not in st.session_state:
    st.session_state.loop = asyncio.new_event_loop()

if "app_state" not in st.session_state:
    adapter = InMemoryAdapter.from_seed(settings.seed_path)
    app_state = AppState(adapter)
    run(app_state.start(settings.demo_user_id))
    st.session_state.app_state = app_state

state: AppState = st.session_state.app_state
currency = state.profile.currency if state.profile else settings.currency


def money(amount):
    return format_currency(amount, currency)


def attempt(coro):
    """Run a provider call; failures already reached the notifier."""
    try:
        return run(coro)
    except FinanceError:
        return None


st.sidebar.markdown("### 👤 Profile")
if state.profile:
    st.sidebar.caption(f"Hello, {state.profile.name}!")

menu = st.sidebar.radio("Menu", ["🏠 Overview", "🧾 Transactions", "💰 Budgets", "🎯 Savings"])

if st.sidebar.button("🔄 Refresh"):
    run(state.refresh())

for note in state.notifier.drain():
    if note.level == "error":
        st.toast(f"❌ {note.message}")
    elif note.level == "warning":
        st.toast(f"⚠️ {note.message}")
    else:
        st.toast(note.message)

if menu == "🏠 Overview":
    st.title("🏠 Overview")
    report = state.dashboard()
    health = report["health"]

    k1, k2, k3, k4 = st.columns(4)
    with k1:
        st.metric("Income", money(report["total_income"]))
    with k2:
        st.metric("Expenses", money(report["total_expense"]))
    with k3:
        st.metric("Balance", money(report["net"]))
    with k4:
        st.metric("Savings", money(report["total_savings"]))

    st.subheader(f"Financial Health: {health.score}/100")
    st.progress(health.score / 100)
    st.caption(f"Savings rate: {health.savings_rate}%")
    for text, level in health.indicators:
        st.write(f"{LEVEL_ICONS.get(level, '🔴')} {text}")

    c1, c2 = st.columns(2)
    with c1:
        if report["expense_by_category"]:
            st.plotly_chart(expense_by_category_figure(report["expense_by_category"]), use_container_width=True)
        else:
            st.info("No expenses yet.")
    with c2:
        st.plotly_chart(income_vs_expense_figure(report["income_vs_expense"]), use_container_width=True)

    st.plotly_chart(spending_trend_figure(report["spending_trend"]), use_container_width=True)

    summary = pd.DataFrame(report["monthly_summary"])
    if not summary.empty:
        balances = summary["balance"].to_numpy()
        cumulative = np.cumsum(balances)
        fig_cum = go.Figure()
        fig_cum.add_trace(go.Scatter(x=summary["month"], y=cumulative, mode="lines+markers", name="Cumulative balance"))
        fig_cum.update_layout(template=TEMPLATE, margin=dict(t=30, b=10, l=10, r=10))
        st.plotly_chart(fig_cum, use_container_width=True)

    st.subheader("📊 Top Expense Categories")
    top = pd.DataFrame(report["top_expenses"], columns=["Category", "Amount"])
    if not top.empty:
        top["Amount"] = top["Amount"].map(money)
        st.table(top)

elif menu == "🧾 Transactions":
    st.title("🧾 Transactions")
    tx = state.transactions

    with st.expander("➕ Add transaction"):
        with st.form("add_tx", clear_on_submit=True):
            kind = st.selectbox("Type", [EXPENSE, INCOME])
            amount = st.number_input("Amount", min_value=0.0, step=100.0)
            category = st.text_input("Category", value="Other")
            description = st.text_input("Description")
            tx_date = st.date_input("Date", value=date.today())
            recurring = st.checkbox("Recurring")
            if st.form_submit_button("Add"):
                attempt(tx.add({
                    "kind": kind,
                    "amount": amount,
                    "category": category,
                    "description": description,
                    "date": tx_date.isoformat(),
                    "recurring": recurring,
                }))
                st.rerun()

    f1, f2, f3 = st.columns(3)
    with f1:
        kind_filter = st.selectbox("Type", ["All", INCOME, EXPENSE], key="kind_filter")
    with f2:
        category_filter = st.selectbox("Category", ["All"] + list(tx.categories()))
    with f3:
        search = st.text_input("Search")

    filters = TransactionFilters(
        kind=None if kind_filter == "All" else kind_filter,
        category=None if category_filter == "All" else category_filter,
        search=search or None,
    )
    shown = tx.filtered(filters)
    df = transactions_frame(shown, currency)
    if df.empty:
        st.info("No transactions to display.")
    else:
        st.dataframe(df, use_container_width=True, hide_index=True)
        st.download_button("⬇ Download CSV", to_csv(shown, currency), file_name="transactions.csv")

    if shown:
        options = {f"{format_date(t.date)} · {t.description or t.category} · {money(t.amount)}": t.id for t in shown}
        picked = st.selectbox("Delete transaction", list(options))
        if st.button("🗑 Delete"):
            attempt(tx.remove(options[picked]))
            st.rerun()

elif menu == "💰 Budgets":
    st.title("💰 Budgets")
    budgets = state.budgets

    with st.expander("➕ Add budget"):
        with st.form("add_budget", clear_on_submit=True):
            category = st.text_input("Category")
            amount = st.number_input("Limit", min_value=0.0, step=500.0)
            period = st.selectbox("Period", PERIODS, index=1)
            if st.form_submit_button("Add"):
                attempt(budgets.add({"category": category, "amount": amount, "period": period}))
                st.rerun()

    if not budgets.budgets:
        st.info("No budgets set.")
    for b in budgets.budgets:
        pct = budgets.progress(b.id)
        label = f"{b.category} ({b.period}): {money(b.spent)} / {money(b.amount)}"
        if budgets.is_exceeded(b.id):
            st.error(f"{label} · exceeded")
        else:
            st.write(label)
        st.progress(pct / 100)

elif menu == "🎯 Savings":
    st.title("🎯 Savings")
    savings = state.savings

    if not savings.table_exists:
        st.warning("Savings feature is not set up yet. Please run the database migration.")
    else:
        c1, c2, c3 = st.columns(3)
        with c1:
            st.metric("Total saved", money(savings.total_savings()))
        with c2:
            st.metric("Active goals", len(savings.active_goals()))
        with c3:
            st.metric("Completed goals", len(savings.completed_goals()))

        if savings.active_goals():
            st.plotly_chart(savings_progress_figure(savings.active_goals()), use_container_width=True)

        with st.expander("➕ New goal"):
            with st.form("add_goal", clear_on_submit=True):
                title = st.text_input("Title")
                target = st.number_input("Target amount", min_value=0.0, step=1000.0)
                category = st.text_input("Category", value="Other")
                priority = st.selectbox("Priority", PRIORITIES, index=1)
                if st.form_submit_button("Create"):
                    attempt(savings.add({
                        "title": title,
                        "target_amount": target,
                        "category": category,
                        "priority": priority,
                    }))
                    st.rerun()

        for g in savings.goals:
            with st.container(border=True):
                st.markdown(f"**{g.title}** · {g.status} · {g.priority}")
                st.progress(goal_progress(g) / 100)
                remaining = days_left(g)
                caption = f"{money(g.current_amount)} of {money(g.target_amount)}"
                if remaining is not None:
                    caption += f" · {remaining} days left" if remaining >= 0 else " · overdue"
                st.caption(caption)

                with st.form(f"move_{g.id}", clear_on_submit=True):
                    kind = st.radio("Type", SAVINGS_KINDS, horizontal=True, key=f"kind_{g.id}")
                    amount = st.number_input("Amount", min_value=0.0, step=500.0, key=f"amt_{g.id}")
                    if st.form_submit_button("Deposit" if kind == DEPOSIT else "Withdraw"):
                        attempt(savings.add_transaction({
                            "savings_id": g.id,
                            "amount": amount,
                            "kind": kind,
                            "date": date.today().isoformat(),
                        }))
                        st.rerun()

                if st.button("🗑 Delete goal", key=f"del_{g.id}"):
                    attempt(savings.delete(g.id))
                    st.rerun()
