"""Shared plumbing for the entity providers.

A provider owns one in-memory list for the signed-in user and keeps it in
line with the backend:

* reads (``load``) run under a bounded wait; on any failure the previous
  list stays, ``error`` is set and a notification goes out, nothing raises;
* writes are confirmed writes: the remote call runs first and the local list
  only changes from the record the backend returned. A failed write leaves
  the list as it was, notifies, and re-raises.

Each provider serializes its own loads and writes with an ``asyncio.Lock``.
An :class:`InFlightGuard` rejects a second identical mutation while the first
is still pending, so a double submit never reaches the backend twice.
"""

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Iterator, Mapping, Optional, Set, Tuple

from fintrack.config import settings
from fintrack.errors import (
    DuplicateRequestError,
    FinanceError,
    NotAuthenticatedError,
    RemoteRejectionError,
    RequestTimeoutError,
    ValidationError,
)
from fintrack.events import NOTIFY, EventBus

logger = logging.getLogger(__name__)


class InFlightGuard:
    """Set of mutation keys ``(entity, operation, id)`` currently pending."""

    def __init__(self):
        self._pending: Set[Tuple] = set()

    @contextmanager
    def claim(self, entity: str, operation: str, key: Any = None) -> Iterator[None]:
        k = (entity, operation, key)
        if k in self._pending:
            logger.info("Rejected duplicate %s of %s %r", operation, entity, key)
            raise DuplicateRequestError(k)
        self._pending.add(k)
        try:
            yield
        finally:
            self._pending.discard(k)

    def __contains__(self, key: Tuple) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)


def fingerprint(data: Mapping[str, Any]) -> Tuple:
    """Hashable key for a create payload, used to spot double submits."""
    return tuple(sorted((str(k), repr(v)) for k, v in data.items()))


class Provider:
    entity = "record"

    def __init__(
        self,
        adapter,
        bus: EventBus,
        user_id: Optional[str],
        *,
        timeout: Optional[float] = None,
        guard: Optional[InFlightGuard] = None,
    ):
        self.adapter = adapter
        self.bus = bus
        self.user_id = user_id
        self.timeout = settings.load_timeout_seconds if timeout is None else timeout
        self.guard = guard if guard is not None else InFlightGuard()
        self.loading = False
        self.error: Optional[FinanceError] = None
        self._lock = asyncio.Lock()

    def _require_user(self) -> None:
        if not self.user_id:
            raise NotAuthenticatedError()

    def notify(self, level: str, message: str) -> None:
        self.bus.publish(NOTIFY, {"level": level, "message": message, "entity": self.entity})

    async def _call(self, operation: str, fn: Callable[..., Awaitable], *args, timeout: Optional[float] = None):
        """Run one adapter call, mapping failures onto the FinanceError taxonomy.

        With a ``timeout`` the call is cancelled once the wait is exceeded, so
        a late response can never be applied.
        """
        try:
            if timeout is None:
                return await fn(*args)
            return await asyncio.wait_for(fn(*args), timeout)
        except asyncio.TimeoutError as exc:
            if timeout is None:
                # raised by the adapter itself, not by our bounded wait
                raise RemoteRejectionError(operation, str(exc) or "timed out") from exc
            raise RequestTimeoutError(operation, timeout) from None
        except FinanceError:
            raise
        except Exception as exc:
            raise RemoteRejectionError(operation, str(exc)) from exc

    def _load_failed(self, exc: FinanceError) -> None:
        self.error = exc
        logger.warning("Loading %ss failed: %s", self.entity, exc)
        if isinstance(exc, RequestTimeoutError):
            self.notify("error", "Request timed out")
        elif isinstance(exc, NotAuthenticatedError):
            self.notify("error", "User not authenticated")
        else:
            self.notify("error", f"Failed to load {self.entity}s")

    async def load(self) -> bool:
        """Replace the list with the backend's; False when the read failed."""
        async with self._lock:
            self.loading = True
            self.error = None
            try:
                self._require_user()
                items = await self._fetch()
            except FinanceError as exc:
                self._load_failed(exc)
                return False
            finally:
                self.loading = False
            self._replace(items)
            logger.debug("Loaded %d %ss", len(items), self.entity)
            return True

    async def _fetch(self) -> tuple:
        raise NotImplementedError

    def _replace(self, items: tuple) -> None:
        raise NotImplementedError

    async def _mutate(self, operation: str, key: Any, action: Callable[[], Awaitable], *, entity: Optional[str] = None):
        entity = entity or self.entity
        try:
            with self.guard.claim(entity, operation, key):
                async with self._lock:
                    self._require_user()
                    return await action()
        except FinanceError as exc:
            logger.warning("Could not %s %s: %s", operation, entity, exc)
            self.notify("error", f"Failed to {operation} {entity}: {exc}")
            raise

    def _index(self, items: tuple, item_id: str) -> int:
        for i, item in enumerate(items):
            if item.id == item_id:
                return i
        raise ValidationError(f"no {self.entity} with id {item_id!r}")

    def dispose(self) -> None:
        pass
