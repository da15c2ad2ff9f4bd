"""
Per-order and per-payee locks.

PostgreSQL uses transaction-scoped advisory locks; other backends (SQLite
in development and tests) fall back to an in-process re-entrant lock.
"""
import threading
import weakref
from contextlib import contextmanager
from uuid import UUID

from django.db import connection


_registry_guard = threading.Lock()
# Entries disappear once no thread holds or waits on the lock
_local_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()


def _local_lock(key: str) -> threading.RLock:
    with _registry_guard:
        lock = _local_locks.get(key)
        if lock is None:
            lock = _local_locks[key] = threading.RLock()
        return lock


@contextmanager
def advisory_lock(key: str):
    """
    Acquire an exclusive lock for ``key`` until the surrounding transaction ends.

    Usage:
        with transaction.atomic(), advisory_lock(f"order:{order_id}"):
            # Perform order operations
            pass
    """
    if connection.vendor == "postgresql":
        with connection.cursor() as cursor:
            cursor.execute(
                "SELECT pg_advisory_xact_lock(hashtext(%s)::bigint)",
                [key],
            )
        # Released by PostgreSQL on commit/rollback
        yield
        return

    lock = _local_lock(key)
    with lock:
        yield


@contextmanager
def order_lock(order_id: UUID):
    """Serialize every mutation of one order (status, ledger, tokens)."""
    with advisory_lock(f"order:{order_id}"):
        yield


@contextmanager
def payee_lock(payee_id: UUID):
    """Serialize balance checks and withdrawals of one payee."""
    with advisory_lock(f"payee:{payee_id}"):
        yield
