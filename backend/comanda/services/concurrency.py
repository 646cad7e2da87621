# Overview: Service-layer operations for concurrency; row locks, retries and per-tab checkout locks.

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Iterator, NamedTuple

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import CheckoutInProgressError

logger = logging.getLogger(__name__)


class TabKey(NamedTuple):
    """Identity of a tab: (company, target type, target number)."""
    company_id: int
    target_type: str
    target_number: str

    def label(self) -> str:
        return f"{self.target_type}:{self.target_number}"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts on Order.version_id).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


class TabLockRegistry:
    """
    Advisory, process-local mutex per tab key.

    Held only for the duration of the finalize transition so two operators
    closing the same table cannot both deduct stock and record a sale.
    Adding items to a tab never takes this lock.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[TabKey, threading.Lock] = {}

    def _lock_for(self, key: TabKey) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def is_locked(self, key: TabKey) -> bool:
        with self._guard:
            lock = self._locks.get(key)
        return bool(lock and lock.locked())

    @contextmanager
    def hold(self, key: TabKey, *, timeout: float = 0) -> Iterator[None]:
        lock = self._lock_for(key)
        acquired = lock.acquire(timeout=timeout) if timeout > 0 else lock.acquire(blocking=False)
        if not acquired:
            logger.warning("Checkout already in progress for %s (company %s)", key.label(), key.company_id)
            raise CheckoutInProgressError(
                f"Checkout already in progress for {key.target_type} {key.target_number}"
            )
        try:
            yield
        finally:
            lock.release()

    def reset(self) -> None:
        with self._guard:
            self._locks.clear()


checkout_locks = TabLockRegistry()
