from datetime import date
from pathlib import Path

import pytest

from fintrack.adapter import InMemoryAdapter
from fintrack.errors import NotAuthenticatedError, ValidationError
from fintrack.events import NOTIFY, TRANSACTIONS_CHANGED, EventBus
from fintrack.metrics import HealthReport
from fintrack.state import AppState, Notifier

SEED = Path(__file__).resolve().parent.parent / "data" / "seed.json"


def make_adapter():
    return InMemoryAdapter({"u1": "ann@example.com"})


def expense(amount, category="Food", date="2025-03-10"):
    return {"amount": amount, "kind": "expense", "category": category, "date": date}


@pytest.mark.asyncio
async def test_start_requires_user():
    state = AppState(make_adapter())
    with pytest.raises(NotAuthenticatedError):
        await state.start(None)
    with pytest.raises(NotAuthenticatedError):
        state.transactions


@pytest.mark.asyncio
async def test_start_loads_everything_with_derived_spent():
    adapter = make_adapter()
    await adapter.create_transaction("u1", expense(120))
    await adapter.create_budget("u1", {"category": "Food", "amount": 100, "period": "monthly"})

    state = AppState(adapter)
    loaded = await state.start("u1")
    assert loaded == {"transactions": True, "budgets": True, "savings": True}
    assert state.profile.name == "ann"
    assert state.budgets.budgets[0].spent == 120
    assert adapter.calls.index("list_transactions") < adapter.calls.index("list_budgets")


@pytest.mark.asyncio
async def test_transaction_changes_reach_budgets_and_notifier():
    state = AppState(make_adapter())
    await state.start("u1")
    b = await state.budgets.add({"category": "Food", "amount": 500})
    await state.transactions.add(expense(80))

    assert state.budgets.get(b.id).spent == 80
    messages = [n.message for n in state.notifier.drain()]
    assert "Budget added successfully" in messages
    assert "Transaction added successfully" in messages
    assert len(state.notifier) == 0


@pytest.mark.asyncio
async def test_dispose_ends_the_session():
    state = AppState(make_adapter())
    await state.start("u1")
    state.dispose()
    assert state.bus.subscribers(TRANSACTIONS_CHANGED) == 0
    with pytest.raises(NotAuthenticatedError):
        state.budgets
    with pytest.raises(NotAuthenticatedError):
        await state.update_profile({"name": "x"})


@pytest.mark.asyncio
async def test_restart_does_not_double_subscribe():
    state = AppState(make_adapter())
    await state.start("u1")
    await state.start("u1")
    assert state.bus.subscribers(TRANSACTIONS_CHANGED) == 1


@pytest.mark.asyncio
async def test_health_and_dashboard():
    state = AppState(make_adapter())
    await state.start("u1")
    await state.transactions.add({"amount": 1000, "kind": "income", "category": "Salary", "date": "2025-03-01"})
    await state.transactions.add(expense(300))

    health = state.health()
    assert isinstance(health, HealthReport)
    assert health.savings_rate == 70

    report = state.dashboard(today=date(2025, 3, 31))
    assert report["net"] == 700
    assert report["health"] == health
    assert report["spending_trend"]["2025-03"] == 300


@pytest.mark.asyncio
async def test_update_profile():
    state = AppState(make_adapter())
    await state.start("u1")
    profile = await state.update_profile({"theme": "dark", "currency": "INR"})
    assert profile.theme == "dark"
    assert state.profile.currency == "INR"
    with pytest.raises(ValidationError):
        await state.update_profile({"theme": "purple"})


@pytest.mark.asyncio
async def test_reset_user_data():
    state = AppState(make_adapter())
    await state.start("u1")
    goal = await state.savings.add({"title": "Car", "target_amount": 100})
    await state.savings.add_transaction({"savings_id": goal.id, "amount": 10, "kind": "deposit", "date": "2025-01-01"})
    await state.transactions.add(expense(10))

    await state.reset_user_data()
    assert state.transactions.transactions == ()
    assert state.savings.goals == ()
    assert state.savings.transactions == ()
    assert state.user_id == "u1"


@pytest.mark.asyncio
async def test_seeded_session():
    state = AppState(InMemoryAdapter.from_seed(SEED))
    await state.start("demo-user")

    laptop = state.savings.get("s02")
    assert laptop.current_amount == 65000
    assert laptop.status == "Completed"
    assert state.savings.get("s03").status == "Paused"
    food = state.budgets.by_category("Food & Dining")
    assert food.spent == 6400 + 7200 + 9800


def test_notifier_is_bounded():
    bus = EventBus()
    notifier = Notifier(bus, limit=2)
    for i in range(3):
        bus.publish(NOTIFY, {"level": "info", "message": f"m{i}", "entity": "x"})
    assert [n.message for n in notifier.peek()] == ["m1", "m2"]
    notifier.dispose()
    bus.publish(NOTIFY, {"level": "info", "message": "late", "entity": "x"})
    assert len(notifier) == 2
