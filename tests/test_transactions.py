import asyncio

import pytest

from fintrack.adapter import InMemoryAdapter
from fintrack.domain import TransactionFilters
from fintrack.errors import (
    DuplicateRequestError,
    NotAuthenticatedError,
    RemoteRejectionError,
    RequestTimeoutError,
    ValidationError,
)
from fintrack.events import NOTIFY, TRANSACTIONS_CHANGED, EventBus
from fintrack.transactions import TransactionProvider


def make_adapter(**kwargs):
    return InMemoryAdapter({"u1": "ann@example.com"}, **kwargs)


def make_provider(adapter=None, user_id="u1", **kwargs):
    return TransactionProvider(adapter or make_adapter(), EventBus(), user_id, **kwargs)


def tx_data(amount=100, kind="expense", category="Food", date="2025-03-10", description=""):
    return {"amount": amount, "kind": kind, "category": category, "date": date, "description": description}


def collect(bus, name):
    seen = []
    bus.subscribe(name, lambda event, payload: seen.append(payload))
    return seen


@pytest.mark.asyncio
async def test_load_orders_newest_first():
    adapter = make_adapter()
    for d in ("2025-03-01", "2025-03-15", "2025-02-20"):
        await adapter.create_transaction("u1", tx_data(date=d))

    p = make_provider(adapter)
    assert await p.load() is True
    assert [t.date for t in p.transactions] == ["2025-03-15", "2025-03-01", "2025-02-20"]
    assert p.error is None
    assert p.loading is False


@pytest.mark.asyncio
async def test_load_twice_is_idempotent():
    adapter = make_adapter()
    await adapter.create_transaction("u1", tx_data(date="2025-03-01"))
    await adapter.create_transaction("u1", tx_data(date="2025-03-01", amount=5))
    p = make_provider(adapter)

    await p.load()
    first = p.transactions
    await p.load()
    assert p.transactions == first


@pytest.mark.asyncio
async def test_add_prepends_server_record_and_publishes():
    p = make_provider()
    changes = collect(p.bus, TRANSACTIONS_CHANGED)
    notes = collect(p.bus, NOTIFY)

    await p.add(tx_data(date="2025-01-01"))
    created = await p.add(tx_data(date="2024-12-01", description="Older date, newer insert"))

    assert p.transactions[0] == created
    assert created.id
    assert len(changes) == 2
    assert changes[-1]["transactions"] == p.transactions
    assert notes[-1]["message"] == "Transaction added successfully"


@pytest.mark.asyncio
async def test_add_validates_before_calling_backend():
    adapter = make_adapter()
    p = make_provider(adapter)
    with pytest.raises(ValidationError):
        await p.add({"amount": -3, "kind": "expense", "category": "Food", "date": "2025-01-01"})
    assert adapter.calls == []
    assert p.transactions == ()


@pytest.mark.asyncio
async def test_update_sends_only_changed_fields():
    adapter = make_adapter()
    p = make_provider(adapter)
    t = await p.add(tx_data(amount=100))

    updated = await p.update(t.id, {"amount": 250, "category": "Food"})
    assert updated.amount == 250
    assert p.get(t.id).amount == 250
    assert adapter.rows("transactions")[0]["amount"] == 250

    adapter.calls.clear()
    same = await p.update(t.id, {"amount": 250})
    assert same == p.get(t.id)
    assert adapter.calls == []


@pytest.mark.asyncio
async def test_update_unknown_id_is_validation_error():
    p = make_provider()
    notes = collect(p.bus, NOTIFY)
    with pytest.raises(ValidationError):
        await p.update("missing", {"amount": 1})
    assert notes[-1]["level"] == "error"


@pytest.mark.asyncio
async def test_remove():
    p = make_provider()
    a = await p.add(tx_data(amount=1))
    b = await p.add(tx_data(amount=2))
    await p.remove(a.id)
    assert [t.id for t in p.transactions] == [b.id]


@pytest.mark.asyncio
@pytest.mark.parametrize("operation", ["create_transaction", "update_transaction", "delete_transaction"])
async def test_failed_mutation_leaves_list_untouched(operation):
    adapter = make_adapter()
    p = make_provider(adapter)
    t = await p.add(tx_data())
    before = p.transactions

    adapter.fail_next(operation)
    with pytest.raises(RemoteRejectionError):
        if operation == "create_transaction":
            await p.add(tx_data(amount=7))
        elif operation == "update_transaction":
            await p.update(t.id, {"amount": 7})
        else:
            await p.remove(t.id)
    assert p.transactions is before


@pytest.mark.asyncio
async def test_foreign_errors_are_wrapped():
    adapter = make_adapter()
    p = make_provider(adapter)
    adapter.fail_next("create_transaction", RuntimeError("connection reset"))
    with pytest.raises(RemoteRejectionError) as info:
        await p.add(tx_data())
    assert "connection reset" in str(info.value)


@pytest.mark.asyncio
async def test_failed_load_keeps_previous_list():
    adapter = make_adapter()
    p = make_provider(adapter)
    await p.add(tx_data())
    before = p.transactions
    notes = collect(p.bus, NOTIFY)

    adapter.fail_next("list_transactions")
    assert await p.load() is False
    assert p.transactions is before
    assert isinstance(p.error, RemoteRejectionError)
    assert notes[-1]["message"] == "Failed to load transactions"


@pytest.mark.asyncio
async def test_load_timeout_cancels_the_call():
    adapter = make_adapter()
    p = make_provider(adapter, timeout=0.05)
    await p.add(tx_data())
    before = p.transactions
    notes = collect(p.bus, NOTIFY)

    adapter.latency = 0.3
    assert await p.load() is False
    assert isinstance(p.error, RequestTimeoutError)
    assert notes[-1]["message"] == "Request timed out"

    await asyncio.sleep(0.4)
    assert "list_transactions" not in adapter.completed
    assert p.transactions is before


@pytest.mark.asyncio
async def test_without_user_nothing_reaches_backend():
    adapter = make_adapter()
    p = make_provider(adapter, user_id=None)
    notes = collect(p.bus, NOTIFY)

    assert await p.load() is False
    assert isinstance(p.error, NotAuthenticatedError)
    assert notes[-1]["message"] == "User not authenticated"
    with pytest.raises(NotAuthenticatedError):
        await p.add(tx_data())
    assert adapter.calls == []


@pytest.mark.asyncio
async def test_expired_session_fails_load():
    adapter = make_adapter()
    p = make_provider(adapter)
    adapter.sign_out("u1")
    assert await p.load() is False
    assert isinstance(p.error, NotAuthenticatedError)


@pytest.mark.asyncio
async def test_duplicate_submit_is_rejected():
    adapter = make_adapter(latency=0.05)
    p = make_provider(adapter)
    data = tx_data()

    results = await asyncio.gather(p.add(data), p.add(data), return_exceptions=True)
    assert sum(isinstance(r, DuplicateRequestError) for r in results) == 1
    assert adapter.calls.count("create_transaction") == 1
    assert len(p.transactions) == 1


@pytest.mark.asyncio
async def test_different_submits_are_serialized():
    adapter = make_adapter(latency=0.01)
    p = make_provider(adapter)
    await asyncio.gather(p.add(tx_data(amount=1)), p.add(tx_data(amount=2)))
    assert sorted(t.amount for t in p.transactions) == [1, 2]


@pytest.mark.asyncio
async def test_queries():
    p = make_provider()
    await p.add(tx_data(amount=1000, kind="income", category="Salary", date="2025-03-01"))
    await p.add(tx_data(amount=300, category="Food", date="2025-03-05", description="Dinner"))
    await p.add(tx_data(amount=40, category="Food", date="2025-04-02"))
    await p.add(tx_data(amount=70, category="Travel", date="2025-03-20"))

    assert len(p.by_kind("expense")) == 3
    assert len(p.by_category("Food")) == 2
    assert len(p.by_date_range("2025-03-01", "2025-03-31")) == 3
    assert p.total_by_kind("income") == 1000
    assert p.categories() == ("Food", "Salary", "Travel")

    march_food = p.filtered(kind="expense", category="Food", start_date="2025-03-01", end_date="2025-03-31")
    assert [t.amount for t in march_food] == [300]
    assert p.filtered(TransactionFilters(search="dinner"))[0].amount == 300


@pytest.mark.asyncio
async def test_adapter_timeout_on_write_is_a_rejection():
    adapter = make_adapter()
    p = make_provider(adapter)
    notes = collect(p.bus, NOTIFY)
    adapter.fail_next("create_transaction", TimeoutError("socket timed out"))

    with pytest.raises(RemoteRejectionError) as info:
        await p.add(tx_data())
    assert "socket timed out" in str(info.value)
    assert p.transactions == ()
    assert notes[-1]["level"] == "error"
