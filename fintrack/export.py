import logging
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from fintrack.config import settings
from fintrack.domain import Transaction
from fintrack.formatters import format_currency, format_date
from fintrack.transforms import total_amount

logger = logging.getLogger(__name__)

COLUMNS = ["Date", "Description", "Category", "Amount", "Type", "Recurring"]


def transactions_frame(trans: Iterable[Transaction], currency: Optional[str] = None) -> pd.DataFrame:
    """Transactions as a display table, one formatted row each."""
    currency = currency or settings.currency
    rows = [
        {
            "Date": format_date(t.date),
            "Description": t.description,
            "Category": t.category,
            "Amount": format_currency(t.amount, currency),
            "Type": t.kind.capitalize(),
            "Recurring": "Yes" if t.recurring else "No",
        }
        for t in trans
    ]
    return pd.DataFrame(rows, columns=COLUMNS)


def to_csv(trans: Iterable[Transaction], currency: Optional[str] = None) -> str:
    return transactions_frame(trans, currency).to_csv(index=False)


def export_csv(trans: Iterable[Transaction], path, currency: Optional[str] = None) -> Path:
    trans = tuple(trans)
    path = Path(path)
    if path.suffix != ".csv":
        path = path.with_suffix(".csv")
    transactions_frame(trans, currency).to_csv(path, index=False)
    logger.info("Exported %d transactions to %s (total %s)", len(trans), path,
                format_currency(total_amount(trans), currency or settings.currency))
    return path
