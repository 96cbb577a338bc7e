import asyncio
from collections.abc import AsyncIterator, Iterable, MutableMapping
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Generic, Protocol, TypeVar

import structlog

K = TypeVar("K")
V = TypeVar("V")

logger = structlog.get_logger(__name__)


class Reader(Protocol[K, V]):
    def get(self, key: K) -> V | None: ...

    def all(self) -> list[V]: ...


class InMemoryKeyValueDatabase(Generic[K, V]):
    """
    Simple in-memory key/value database.

    Writes that must be coordinated go through ``transaction(scope)``:
    transactions sharing a scope run one at a time, and their writes
    land in the store only when the block exits without an exception.
    """

    def __init__(self) -> None:
        self._store: MutableMapping[K, V] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def put(self, key: K, value: V) -> None:
        self._store[key] = value

    def get(self, key: K) -> V | None:
        return self._store.get(key)

    def all(self) -> list[V]:
        return list(self._store.values())

    @asynccontextmanager
    async def transaction(self, scope: str) -> AsyncIterator["Transaction[K, V]"]:
        lock = self._locks.setdefault(scope, asyncio.Lock())
        self._lock_users[scope] = self._lock_users.get(scope, 0) + 1
        try:
            async with lock:
                tx: Transaction[K, V] = Transaction(self)
                try:
                    yield tx
                except BaseException:
                    logger.debug(
                        "transaction_rolled_back", scope=scope, staged=len(tx)
                    )
                    raise
                tx.commit()
        finally:
            # holders and waiters both count; the last one out drops the lock
            self._lock_users[scope] -= 1
            if self._lock_users[scope] == 0:
                del self._lock_users[scope]
                del self._locks[scope]

    def _apply(self, writes: MutableMapping[K, V]) -> None:
        self._store.update(writes)


class Transaction(Generic[K, V]):
    """
    Staged view over the database. Reads see this transaction's own
    writes first, then the committed store.
    """

    def __init__(self, db: InMemoryKeyValueDatabase[K, V]) -> None:
        self._db = db
        self._writes: dict[K, V] = {}
        self._committed = False

    def get(self, key: K) -> V | None:
        if key in self._writes:
            return self._writes[key]
        return self._db.get(key)

    def put(self, key: K, value: V) -> None:
        if self._committed:
            raise RuntimeError("transaction already committed")
        self._writes[key] = value

    def all(self) -> list[V]:
        merged = {k: v for k, v in self._db._store.items()}
        merged.update(self._writes)
        return list(merged.values())

    def __len__(self) -> int:
        return len(self._writes)

    def set_status_if(
        self, key: K, expected: Iterable, status, updated_at: datetime
    ) -> V | None:
        """
        Compare-and-set on a record's ``status``.
        Returns the updated record, or None if the record is missing or
        not in one of the expected statuses.
        """
        value = self.get(key)
        if value is None or getattr(value, "status", None) not in set(expected):
            return None
        updated = value.model_copy(
            update={"status": status, "updated_at": updated_at}
        )
        self.put(key, updated)
        return updated

    def set_status_many(
        self, keys: Iterable[K], expected: Iterable, status, updated_at: datetime
    ) -> list[V]:
        expected = set(expected)
        updated = []
        for key in keys:
            value = self.set_status_if(key, expected, status, updated_at)
            if value is not None:
                updated.append(value)
        return updated

    def commit(self) -> None:
        self._db._apply(self._writes)
        self._committed = True
