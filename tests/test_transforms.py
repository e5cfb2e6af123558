from fintrack.domain import Transaction, TransactionFilters
from fintrack.transforms import (
    apply_filters,
    by_date_range,
    by_search,
    replace_by_id,
    select,
    sort_newest_first,
    spent_for,
    total_amount,
    total_by_kind,
    without_id,
)


def make_tx(id, amount, kind, category, date, description=""):
    return Transaction(id=id, amount=amount, category=category, description=description, date=date, kind=kind)


def sample():
    return (
        make_tx("t1", 1000, "income", "Salary", "2025-03-01"),
        make_tx("t2", 300, "expense", "Food", "2025-03-01", "Lunch with team"),
        make_tx("t3", 120, "expense", "Food", "2025-03-31", "Groceries"),
        make_tx("t4", 80, "expense", "Food", "2025-04-01", "Groceries"),
        make_tx("t5", 60, "expense", "Food", "2025-02-28", "Snacks"),
        make_tx("t6", 50, "income", "Food", "2025-03-15", "Refund"),
        make_tx("t7", 200, "expense", "Transport", "2025-03-10", "Train"),
    )


def test_filter_conjunction_with_inclusive_dates():
    filters = TransactionFilters(kind="expense", category="Food", start_date="2025-03-01", end_date="2025-03-31")
    res = apply_filters(sample(), filters)
    assert [t.id for t in res] == ["t2", "t3"]


def test_empty_filters_return_everything():
    assert apply_filters(sample(), TransactionFilters()) == sample()


def test_search_is_case_insensitive():
    res = select(sample(), by_search("GROCER"))
    assert [t.id for t in res] == ["t3", "t4"]


def test_amount_bounds():
    res = apply_filters(sample(), TransactionFilters(min_amount=100, max_amount=300))
    assert {t.id for t in res} == {"t2", "t3", "t7"}


def test_open_ended_date_range():
    res = select(sample(), by_date_range("2025-03-31", None))
    assert {t.id for t in res} == {"t3", "t4"}


def test_totals():
    trans = sample()
    assert total_amount(()) == 0.0
    assert total_by_kind(trans, "income") == 1050
    assert total_by_kind(trans, "expense") == 760


def test_spent_counts_only_expenses_of_category():
    assert spent_for(sample(), "Food") == 560
    assert spent_for(sample(), "Rent") == 0


def test_sort_newest_first_is_stable_within_a_date():
    res = sort_newest_first(sample())
    assert [t.id for t in res][:2] == ["t4", "t3"]
    assert [t.id for t in res if t.date == "2025-03-01"] == ["t1", "t2"]


def test_replace_and_without():
    trans = sample()
    changed = make_tx("t2", 1, "expense", "Food", "2025-03-01")
    assert replace_by_id(trans, changed)[1].amount == 1
    assert "t2" not in [t.id for t in without_id(trans, "t2")]
    assert len(without_id(trans, "nope")) == len(trans)


def test_timestamped_record_matches_inclusive_end_date():
    t = Transaction.from_record({
        "id": "t9", "amount": 5, "category": "Food", "date": "2025-03-31T10:00", "kind": "expense",
    })
    assert select([t], by_date_range("2025-03-01", "2025-03-31")) == (t,)
