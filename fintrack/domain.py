from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Mapping, Optional

from fintrack.errors import ValidationError

INCOME = "income"
EXPENSE = "expense"
KINDS = (INCOME, EXPENSE)

PERIODS = ("weekly", "monthly", "yearly")

PRIORITIES = ("Low", "Medium", "High")

ACTIVE = "Active"
COMPLETED = "Completed"
PAUSED = "Paused"
STATUSES = (ACTIVE, COMPLETED, PAUSED)

DEPOSIT = "deposit"
WITHDRAWAL = "withdrawal"
SAVINGS_KINDS = (DEPOSIT, WITHDRAWAL)

# fields a caller may write, per entity
TRANSACTION_FIELDS = ("amount", "category", "description", "date", "kind", "recurring")
BUDGET_FIELDS = ("category", "amount", "period")
SAVINGS_FIELDS = ("title", "description", "target_amount", "target_date", "category", "priority", "status")
SAVINGS_TRANSACTION_FIELDS = ("savings_id", "amount", "kind", "description", "date")
PROFILE_FIELDS = ("name", "currency", "theme")


@dataclass(frozen=True)
class Transaction:
    id: str
    amount: float
    category: str
    description: str
    date: str        # ISO date, e.g. "2025-03-01"
    kind: str        # "income" or "expense"
    recurring: bool = False

    @classmethod
    def from_record(cls, r: Mapping[str, Any]) -> "Transaction":
        return cls(
            id=str(r["id"]),
            amount=float(r["amount"]),
            category=r.get("category") or "",
            description=r.get("description") or "",
            date=str(r["date"])[:10],
            kind=r.get("kind") or r.get("type"),
            recurring=bool(r.get("recurring", r.get("isRecurring", False))),
        )


@dataclass(frozen=True)
class Budget:
    id: str
    category: str
    amount: float
    period: str
    spent: float = 0.0  # derived from transactions, never persisted

    @classmethod
    def from_record(cls, r: Mapping[str, Any]) -> "Budget":
        # whatever the backend says about spent is ignored
        return cls(
            id=str(r["id"]),
            category=r["category"],
            amount=float(r["amount"]),
            period=r.get("period") or "monthly",
        )

    def with_spent(self, spent: float) -> "Budget":
        return replace(self, spent=spent)


@dataclass(frozen=True)
class SavingsGoal:
    id: str
    title: str
    target_amount: float
    current_amount: float
    category: str
    priority: str
    status: str
    description: Optional[str] = None
    target_date: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_record(cls, r: Mapping[str, Any]) -> "SavingsGoal":
        return cls(
            id=str(r["id"]),
            title=r["title"],
            target_amount=float(r["target_amount"]),
            current_amount=float(r.get("current_amount") or 0),
            category=r.get("category") or "",
            priority=r.get("priority") or "Medium",
            status=r.get("status") or ACTIVE,
            description=r.get("description"),
            target_date=r.get("target_date"),
            created_at=r.get("created_at") or "",
            updated_at=r.get("updated_at") or "",
        )


@dataclass(frozen=True)
class SavingsTransaction:
    id: str
    savings_id: str
    amount: float
    kind: str        # "deposit" or "withdrawal"
    date: str
    description: Optional[str] = None
    created_at: str = ""

    @classmethod
    def from_record(cls, r: Mapping[str, Any]) -> "SavingsTransaction":
        return cls(
            id=str(r["id"]),
            savings_id=str(r["savings_id"]),
            amount=float(r["amount"]),
            kind=r.get("kind") or r.get("transaction_type"),
            date=str(r["date"])[:10],
            description=r.get("description"),
            created_at=r.get("created_at") or "",
        )

    @property
    def signed_amount(self) -> float:
        return self.amount if self.kind == DEPOSIT else -self.amount


@dataclass(frozen=True)
class UserProfile:
    id: str
    email: str
    name: str
    currency: str = "USD"
    theme: str = "light"

    @classmethod
    def from_record(cls, r: Mapping[str, Any]) -> "UserProfile":
        return cls(
            id=str(r["id"]),
            email=r.get("email") or "",
            name=r.get("name") or "User",
            currency=r.get("currency") or "USD",
            theme=r.get("theme") or "light",
        )


@dataclass(frozen=True)
class TransactionFilters:
    kind: Optional[str] = None
    category: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    search: Optional[str] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None


def next_status(status: str, current_amount: float, target_amount: float) -> str:
    """Status a savings goal should have after a reconcile pass.

    Only an Active goal that reached its target moves (to Completed). Paused
    goals wait for the user, and Completed goals are never downgraded.
    """
    if status == ACTIVE and current_amount >= target_amount:
        return COMPLETED
    return status


def _check_fields(data: Mapping[str, Any], allowed: tuple, entity: str) -> None:
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ValidationError(f"{entity} fields not writable: {', '.join(unknown)}")


def _amount(value: Any, name: str, *, positive: bool) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number, got {value!r}") from None
    if amount != amount or amount in (float("inf"), float("-inf")):
        raise ValidationError(f"{name} must be finite")
    if positive and amount <= 0:
        raise ValidationError(f"{name} must be positive")
    if amount < 0:
        raise ValidationError(f"{name} must not be negative")
    return amount


def _iso_date(value: Any, name: str) -> str:
    try:
        return date.fromisoformat(str(value)).isoformat()
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD), got {value!r}") from None


def _choice(value: Any, choices: tuple, name: str) -> str:
    if value not in choices:
        raise ValidationError(f"{name} must be one of {', '.join(choices)}, got {value!r}")
    return value


def _required(data: Mapping[str, Any], names: tuple, entity: str) -> None:
    missing = [n for n in names if data.get(n) in (None, "")]
    if missing:
        raise ValidationError(f"{entity} is missing: {', '.join(missing)}")


def transaction_payload(data: Mapping[str, Any], partial: bool = False) -> dict:
    _check_fields(data, TRANSACTION_FIELDS, "transaction")
    if not partial:
        _required(data, ("amount", "category", "date", "kind"), "transaction")
    out: dict = {}
    if "amount" in data:
        out["amount"] = _amount(data["amount"], "amount", positive=False)
    if "category" in data:
        out["category"] = str(data["category"])
    if "description" in data or not partial:
        out["description"] = str(data.get("description") or "")
    if "date" in data:
        out["date"] = _iso_date(data["date"], "date")
    if "kind" in data:
        out["kind"] = _choice(data["kind"], KINDS, "kind")
    if "recurring" in data or not partial:
        out["recurring"] = bool(data.get("recurring", False))
    return out


def budget_payload(data: Mapping[str, Any], partial: bool = False) -> dict:
    _check_fields(data, BUDGET_FIELDS, "budget")
    if not partial:
        _required(data, ("category", "amount"), "budget")
    out: dict = {}
    if "category" in data:
        out["category"] = str(data["category"])
    if "amount" in data:
        out["amount"] = _amount(data["amount"], "amount", positive=True)
    if "period" in data or not partial:
        out["period"] = _choice(data.get("period", "monthly"), PERIODS, "period")
    return out


def savings_payload(data: Mapping[str, Any], partial: bool = False) -> dict:
    _check_fields(data, SAVINGS_FIELDS, "savings goal")
    if not partial:
        _required(data, ("title", "target_amount"), "savings goal")
    out: dict = {}
    if "title" in data:
        out["title"] = str(data["title"])
    if "description" in data:
        out["description"] = data["description"] or None
    if "target_amount" in data:
        out["target_amount"] = _amount(data["target_amount"], "target_amount", positive=True)
    if "target_date" in data:
        out["target_date"] = _iso_date(data["target_date"], "target_date") if data["target_date"] else None
    if "category" in data or not partial:
        out["category"] = str(data.get("category") or "Other")
    if "priority" in data or not partial:
        out["priority"] = _choice(data.get("priority", "Medium"), PRIORITIES, "priority")
    if "status" in data or not partial:
        out["status"] = _choice(data.get("status", ACTIVE), STATUSES, "status")
    return out


def savings_transaction_payload(data: Mapping[str, Any]) -> dict:
    _check_fields(data, SAVINGS_TRANSACTION_FIELDS, "savings transaction")
    _required(data, ("savings_id", "amount", "kind", "date"), "savings transaction")
    return {
        "savings_id": str(data["savings_id"]),
        # the sign lives in kind, never in the amount
        "amount": _amount(data["amount"], "amount", positive=True),
        "kind": _choice(data["kind"], SAVINGS_KINDS, "kind"),
        "description": data.get("description") or None,
        "date": _iso_date(data["date"], "date"),
    }


def profile_payload(data: Mapping[str, Any]) -> dict:
    _check_fields(data, PROFILE_FIELDS, "profile")
    out = {k: str(v) for k, v in data.items()}
    if "theme" in out:
        _choice(out["theme"], ("light", "dark"), "theme")
    return out
