"""Integration test fixtures: SqlStore on a SQLite file database.

SQLite has no named locks, so ThreadLockVariant stands in for the
database lock with process-wide threading locks keyed by name. Every store
built from the same variant instance competes for the same locks, the way
broker processes compete for GET_LOCK / sp_getapplock / advisory locks.
"""

import threading
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Connection

from azurefilebroker.adapters.store import SqlStore
from azurefilebroker.adapters.store.variants import SqlVariant
from azurefilebroker.app.config import DatabaseConfig


class ThreadLockVariant(SqlVariant):
    drivername = "sqlite"
    default_port = 0

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def connect_args(self, config: DatabaseConfig, ca_cert_path: str | None) -> dict[str, Any]:
        return {"check_same_thread": False}

    def acquire_lock(self, conn: Connection, name: str, timeout: int) -> bool:
        with self._guard:
            lock = self._locks.setdefault(name, threading.Lock())
        return lock.acquire(timeout=timeout)

    def release_lock(self, conn: Connection, name: str) -> bool:
        with self._guard:
            lock = self._locks.get(name)
        if lock is None or not lock.locked():
            return False
        lock.release()
        return True


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'broker.db'}"


@pytest.fixture
def lock_variant() -> ThreadLockVariant:
    return ThreadLockVariant()


@pytest.fixture
def make_sql_store(
    database_url: str, lock_variant: ThreadLockVariant
) -> Iterator[Callable[[], SqlStore]]:
    """Build stores on one database, as separate broker processes would."""
    stores: list[SqlStore] = []

    def _make() -> SqlStore:
        engine = create_engine(database_url, connect_args={"check_same_thread": False})
        store = SqlStore(engine, lock_variant)
        stores.append(store)
        return store

    yield _make

    for store in stores:
        store.close()


@pytest.fixture
def sql_store(make_sql_store: Callable[[], SqlStore]) -> SqlStore:
    return make_sql_store()
