import pandas as pd

from fintrack.domain import Transaction
from fintrack.export import COLUMNS, export_csv, to_csv, transactions_frame


def make_tx(id, amount, kind, category, date, description="", recurring=False):
    return Transaction(
        id=id, amount=amount, category=category, description=description,
        date=date, kind=kind, recurring=recurring,
    )


def sample():
    return [
        make_tx("t1", 85000, "income", "Salary", "2025-03-01", "March salary", recurring=True),
        make_tx("t2", 450, "expense", "Food", "2025-03-04", "Lunch"),
    ]


def test_frame_formats_rows():
    df = transactions_frame(sample(), "INR")
    assert list(df.columns) == COLUMNS
    assert df.loc[0, "Date"] == "Mar 1, 2025"
    assert df.loc[0, "Amount"] == "₹85,000"
    assert df.loc[0, "Type"] == "Income"
    assert df.loc[0, "Recurring"] == "Yes"
    assert df.loc[1, "Recurring"] == "No"


def test_empty_frame_keeps_columns():
    df = transactions_frame([], "USD")
    assert df.empty
    assert list(df.columns) == COLUMNS


def test_to_csv_header():
    text = to_csv(sample(), "USD")
    assert text.splitlines()[0] == ",".join(COLUMNS)
    assert '"$85,000"' in text


def test_export_csv_writes_file(tmp_path):
    path = export_csv(sample(), tmp_path / "march", currency="USD")
    assert path.suffix == ".csv"
    assert path.exists()

    back = pd.read_csv(path)
    assert len(back) == 2
    assert list(back["Description"]) == ["March salary", "Lunch"]
