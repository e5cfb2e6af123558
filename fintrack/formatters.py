import calendar
from datetime import date
from typing import List, Optional

from fintrack.metrics import round_half_up

CURRENCY_SYMBOLS = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "KZT": "₸",
}


def _group_indian(digits: str) -> str:
    # last three digits, then pairs: 12,34,567
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs) + "," + tail


def format_currency(amount: float, currency: str = "INR") -> str:
    whole = int(abs(amount) + 0.5)
    digits = _group_indian(str(whole)) if currency == "INR" else f"{whole:,}"
    symbol = CURRENCY_SYMBOLS.get(currency)
    text = f"{symbol}{digits}" if symbol else f"{currency} {digits}"
    return f"-{text}" if amount < 0 and whole else text


def _parse(value: str) -> date:
    return date.fromisoformat(value[:10])


def format_date(value: str) -> str:
    d = _parse(value)
    return f"{calendar.month_abbr[d.month]} {d.day}, {d.year}"


def format_month_year(value: str) -> str:
    d = _parse(value)
    return f"{calendar.month_name[d.month]} {d.year}"


def current_month_start(today: Optional[date] = None) -> str:
    today = today or date.today()
    return today.replace(day=1).isoformat()


def current_month_end(today: Optional[date] = None) -> str:
    today = today or date.today()
    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=last_day).isoformat()


def shift_month(d: date, months: int) -> date:
    index = d.year * 12 + (d.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def last_n_months(n: int, today: Optional[date] = None) -> List[str]:
    """Short month names of the trailing ``n`` months, oldest first."""
    today = today or date.today()
    return [calendar.month_abbr[shift_month(today, -i).month] for i in range(n - 1, -1, -1)]


def calculate_percentage(value: float, total: float) -> int:
    if total == 0:
        return 0
    return round_half_up(value / total * 100)


def date_range_label(start: str, end: str) -> str:
    if start == end:
        return format_date(start)
    s, e = _parse(start), _parse(end)
    if (s.year, s.month) == (e.year, e.month):
        return f"{s.day}-{e.day} {calendar.month_abbr[s.month]} {s.year}"
    return f"{format_date(start)} - {format_date(end)}"
