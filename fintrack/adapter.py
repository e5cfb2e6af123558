"""Persistence adapter contract and an in-memory backend.

The hosted backend owns storage and authentication. The state layer talks to
it only through :class:`PersistenceAdapter`; every call is scoped by the id of
the signed-in user and returns plain ``dict`` records.

:class:`InMemoryAdapter` behaves like that backend for the dashboard demo and
the tests: it assigns ids and timestamps, keeps each savings goal's
``current_amount`` equal to the signed sum of its savings transactions,
enforces ownership and the goal -> savings transaction reference, and can be
told to run without the savings tables, to be slow, or to fail once.
"""

import asyncio
import itertools
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol
from uuid import uuid4

from fintrack.domain import SavingsTransaction, next_status
from fintrack.errors import NotAuthenticatedError, NotProvisionedError, RemoteRejectionError

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class PersistenceAdapter(Protocol):
    """Backend surface consumed by the providers."""

    async def ensure_user_profile(self, user_id: Optional[str]) -> Record: ...

    async def update_user_profile(self, user_id: Optional[str], patch: Mapping[str, Any]) -> Record: ...

    async def delete_user_data(self, user_id: Optional[str]) -> None: ...

    async def list_transactions(self, user_id: Optional[str]) -> List[Record]: ...

    async def create_transaction(self, user_id: Optional[str], data: Mapping[str, Any]) -> Record: ...

    async def update_transaction(self, id: str, user_id: Optional[str], patch: Mapping[str, Any]) -> Record: ...

    async def delete_transaction(self, id: str, user_id: Optional[str]) -> None: ...

    async def list_budgets(self, user_id: Optional[str]) -> List[Record]: ...

    async def create_budget(self, user_id: Optional[str], data: Mapping[str, Any]) -> Record: ...

    async def update_budget(self, id: str, user_id: Optional[str], patch: Mapping[str, Any]) -> Record: ...

    async def delete_budget(self, id: str, user_id: Optional[str]) -> None: ...

    async def list_savings(self, user_id: Optional[str]) -> List[Record]: ...

    async def create_savings(self, user_id: Optional[str], data: Mapping[str, Any]) -> Record: ...

    async def update_savings(self, id: str, user_id: Optional[str], patch: Mapping[str, Any]) -> Record: ...

    async def delete_savings(self, id: str, user_id: Optional[str]) -> None: ...

    async def list_savings_transactions(self, user_id: Optional[str]) -> List[Record]: ...

    async def create_savings_transaction(self, user_id: Optional[str], data: Mapping[str, Any]) -> Record: ...

    async def delete_savings_transactions(self, savings_id: str, user_id: Optional[str]) -> None: ...

    async def reconcile_savings_statuses(self, user_id: Optional[str]) -> None: ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryAdapter:
    def __init__(
        self,
        users: Mapping[str, str] = (),
        *,
        savings_provisioned: bool = True,
        latency: float = 0.0,
    ):
        # user_id -> email of every user with a valid session
        self._users: Dict[str, str] = dict(users)
        self._profiles: Dict[str, Record] = {}
        self._tables: Dict[str, Dict[str, Record]] = {
            "transactions": {},
            "budgets": {},
            "savings": {},
            "savings_transactions": {},
        }
        self._seq = itertools.count(1)
        self.savings_provisioned = savings_provisioned
        self.latency = latency
        self.calls: List[str] = []
        self.completed: List[str] = []
        self._failures: Dict[str, Exception] = {}

    # -- test and demo controls -------------------------------------------

    def register_user(self, user_id: str, email: str = "") -> None:
        self._users[user_id] = email

    def sign_out(self, user_id: str) -> None:
        self._users.pop(user_id, None)

    def fail_next(self, operation: str, exc: Optional[Exception] = None) -> None:
        """Make the next call of ``operation`` (a method name) raise ``exc``."""
        self._failures[operation] = exc or RemoteRejectionError(operation, "injected failure")

    def rows(self, table: str) -> List[Record]:
        return [dict(r) for r in self._tables[table].values()]

    @classmethod
    def from_seed(cls, path, **kwargs) -> "InMemoryAdapter":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        profile = data["user"]
        adapter = cls({profile["id"]: profile.get("email", "")}, **kwargs)
        adapter._profiles[profile["id"]] = dict(profile)
        uid = profile["id"]

        for t in data.get("transactions", []):
            adapter._insert("transactions", uid, t)
        for b in data.get("budgets", []):
            adapter._insert("budgets", uid, b)
        for s in data.get("savings", []):
            adapter._insert("savings", uid, {"current_amount": 0.0, "status": "Active", **s})
        for st in data.get("savings_transactions", []):
            adapter._insert("savings_transactions", uid, st)
        for goal_id in list(adapter._tables["savings"]):
            adapter._recompute_current(goal_id)

        logger.info("Seeded in-memory backend from %s", Path(path))
        return adapter

    # -- internals ---------------------------------------------------------

    async def _enter(self, operation: str, user_id: Optional[str]) -> None:
        self.calls.append(operation)
        if self.latency:
            await asyncio.sleep(self.latency)
        if not user_id or user_id not in self._users:
            raise NotAuthenticatedError()
        exc = self._failures.pop(operation, None)
        if exc is not None:
            raise exc

    def _done(self, operation: str) -> None:
        self.completed.append(operation)

    def _require_savings(self) -> None:
        if not self.savings_provisioned:
            raise NotProvisionedError("Savings")

    def _insert(self, table: str, user_id: str, data: Mapping[str, Any]) -> Record:
        now = _now()
        record = {"created_at": now, **data}
        record.setdefault("id", str(uuid4()))
        record["user_id"] = user_id
        record["_seq"] = next(self._seq)
        if table == "savings":
            record.setdefault("updated_at", now)
        self._tables[table][record["id"]] = record
        return record

    def _owned(self, table: str, id: str, user_id: str) -> Record:
        record = self._tables[table].get(id)
        if record is None or record["user_id"] != user_id:
            raise RemoteRejectionError(f"{table} lookup", f"no row with id {id}")
        return record

    def _list(self, table: str, user_id: str) -> List[Record]:
        rows = [r for r in self._tables[table].values() if r["user_id"] == user_id]
        return sorted(rows, key=lambda r: r["_seq"], reverse=True)

    @staticmethod
    def _public(record: Record) -> Record:
        return {k: v for k, v in record.items() if not k.startswith("_")}

    def _recompute_current(self, savings_id: str) -> float:
        txs = [
            SavingsTransaction.from_record(r)
            for r in self._tables["savings_transactions"].values()
            if r["savings_id"] == savings_id
        ]
        total = sum(t.signed_amount for t in txs)
        goal = self._tables["savings"][savings_id]
        goal["current_amount"] = total
        goal["updated_at"] = _now()
        return total

    def _create(self, table: str, user_id: str, data: Mapping[str, Any], required: tuple) -> Record:
        missing = [k for k in required if data.get(k) in (None, "")]
        if missing:
            raise RemoteRejectionError(f"insert into {table}", f"null value in {', '.join(missing)}")
        return self._public(self._insert(table, user_id, data))

    def _update(self, table: str, id: str, user_id: str, patch: Mapping[str, Any]) -> Record:
        record = self._owned(table, id, user_id)
        record.update({k: v for k, v in patch.items() if k not in ("id", "user_id", "created_at")})
        if table == "savings":
            record["updated_at"] = _now()
        return self._public(record)

    # -- profile -------------------------------------------------------------

    async def ensure_user_profile(self, user_id):
        await self._enter("ensure_user_profile", user_id)
        profile = self._profiles.get(user_id)
        if profile is None:
            email = self._users[user_id]
            profile = {
                "id": user_id,
                "email": email,
                "name": email.split("@")[0] if email else "User",
                "currency": "USD",
                "theme": "light",
            }
            self._profiles[user_id] = profile
            logger.info("Created profile for user %s", user_id)
        self._done("ensure_user_profile")
        return dict(profile)

    async def update_user_profile(self, user_id, patch):
        await self._enter("update_user_profile", user_id)
        profile = self._profiles.setdefault(user_id, {"id": user_id, "email": self._users[user_id]})
        profile.update({k: v for k, v in patch.items() if k in ("name", "currency", "theme")})
        self._done("update_user_profile")
        return dict(profile)

    async def delete_user_data(self, user_id):
        await self._enter("delete_user_data", user_id)
        # children first, like the foreign keys require
        for table in ("savings_transactions", "savings", "transactions", "budgets"):
            rows = self._tables[table]
            for id in [k for k, r in rows.items() if r["user_id"] == user_id]:
                del rows[id]
        self._profiles.pop(user_id, None)
        self._done("delete_user_data")

    # -- transactions ----------------------------------------------------------

    async def list_transactions(self, user_id):
        await self._enter("list_transactions", user_id)
        rows = self._list("transactions", user_id)
        # newest date first, newest insert first within a date
        rows = sorted(rows, key=lambda r: r["date"], reverse=True)
        self._done("list_transactions")
        return [self._public(r) for r in rows]

    async def create_transaction(self, user_id, data):
        await self._enter("create_transaction", user_id)
        record = self._create("transactions", user_id, data, ("amount", "category", "date", "kind"))
        self._done("create_transaction")
        return record

    async def update_transaction(self, id, user_id, patch):
        await self._enter("update_transaction", user_id)
        record = self._update("transactions", id, user_id, patch)
        self._done("update_transaction")
        return record

    async def delete_transaction(self, id, user_id):
        await self._enter("delete_transaction", user_id)
        self._owned("transactions", id, user_id)
        del self._tables["transactions"][id]
        self._done("delete_transaction")

    # -- budgets ---------------------------------------------------------------

    async def list_budgets(self, user_id):
        await self._enter("list_budgets", user_id)
        rows = self._list("budgets", user_id)
        self._done("list_budgets")
        return [self._public(r) for r in rows]

    async def create_budget(self, user_id, data):
        await self._enter("create_budget", user_id)
        record = self._create("budgets", user_id, data, ("category", "amount", "period"))
        self._done("create_budget")
        return record

    async def update_budget(self, id, user_id, patch):
        await self._enter("update_budget", user_id)
        record = self._update("budgets", id, user_id, patch)
        self._done("update_budget")
        return record

    async def delete_budget(self, id, user_id):
        await self._enter("delete_budget", user_id)
        self._owned("budgets", id, user_id)
        del self._tables["budgets"][id]
        self._done("delete_budget")

    # -- savings ---------------------------------------------------------------

    async def list_savings(self, user_id):
        await self._enter("list_savings", user_id)
        self._require_savings()
        rows = self._list("savings", user_id)
        self._done("list_savings")
        return [self._public(r) for r in rows]

    async def create_savings(self, user_id, data):
        await self._enter("create_savings", user_id)
        self._require_savings()
        record = self._create(
            "savings", user_id, {"current_amount": 0.0, **data, "updated_at": _now()},
            ("title", "target_amount"),
        )
        self._done("create_savings")
        return record

    async def update_savings(self, id, user_id, patch):
        await self._enter("update_savings", user_id)
        self._require_savings()
        if "current_amount" in patch:
            raise RemoteRejectionError("update savings", "current_amount is maintained by the backend")
        record = self._update("savings", id, user_id, patch)
        self._done("update_savings")
        return record

    async def delete_savings(self, id, user_id):
        await self._enter("delete_savings", user_id)
        self._require_savings()
        self._owned("savings", id, user_id)
        if any(r["savings_id"] == id for r in self._tables["savings_transactions"].values()):
            raise RemoteRejectionError(
                "delete savings", "violates foreign key constraint on savings_transactions"
            )
        del self._tables["savings"][id]
        self._done("delete_savings")

    async def list_savings_transactions(self, user_id):
        await self._enter("list_savings_transactions", user_id)
        self._require_savings()
        rows = self._list("savings_transactions", user_id)
        rows = sorted(rows, key=lambda r: r["date"], reverse=True)
        self._done("list_savings_transactions")
        return [self._public(r) for r in rows]

    async def create_savings_transaction(self, user_id, data):
        await self._enter("create_savings_transaction", user_id)
        self._require_savings()
        goal = self._owned("savings", str(data.get("savings_id")), user_id)
        amount = float(data.get("amount") or 0)
        if amount <= 0:
            raise RemoteRejectionError("insert into savings_transactions", "amount must be positive")
        if data.get("kind") == "withdrawal" and amount > goal["current_amount"]:
            raise RemoteRejectionError(
                "insert into savings_transactions", "withdrawal exceeds the saved amount"
            )
        record = self._create(
            "savings_transactions", user_id, data, ("savings_id", "amount", "kind", "date")
        )
        self._recompute_current(goal["id"])
        self._done("create_savings_transaction")
        return record

    async def delete_savings_transactions(self, savings_id, user_id):
        await self._enter("delete_savings_transactions", user_id)
        self._require_savings()
        rows = self._tables["savings_transactions"]
        for id in [k for k, r in rows.items() if r["savings_id"] == savings_id and r["user_id"] == user_id]:
            del rows[id]
        if savings_id in self._tables["savings"]:
            self._recompute_current(savings_id)
        self._done("delete_savings_transactions")

    async def reconcile_savings_statuses(self, user_id):
        await self._enter("reconcile_savings_statuses", user_id)
        self._require_savings()
        for goal in self._tables["savings"].values():
            if goal["user_id"] != user_id:
                continue
            status = next_status(goal["status"], goal["current_amount"], goal["target_amount"])
            if status != goal["status"]:
                logger.info("Savings goal %s: %s -> %s", goal["id"], goal["status"], status)
                goal["status"] = status
                goal["updated_at"] = _now()
        self._done("reconcile_savings_statuses")
