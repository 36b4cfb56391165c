"""Abstract storage interface (ports-and-adapters / hexagonal pattern).

The engine treats persistence as a transactional key-value store.  Any
backend (memory, SQLite, Redis, Postgres, …) implements three primitives
(:meth:`KeyValueStore._read`, :meth:`KeyValueStore._scan` and an atomic
:meth:`KeyValueStore._commit`) and inherits serialized transactions with
staged, all-or-nothing writes from this module.
"""

from __future__ import annotations

import asyncio
import copy
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

# Values must be JSON-compatible (dicts, lists, str, int, bool, None)
Value = Any


class Transaction:
    """A unit of work against a :class:`KeyValueStore`.

    Reads see the transaction's own staged writes.  Nothing reaches the
    backend until the enclosing :meth:`KeyValueStore.transaction` block
    exits without an exception.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._writes: dict[str, Value] = {}
        self._deletes: set[str] = set()

    @property
    def dirty(self) -> bool:
        return bool(self._writes or self._deletes)

    async def get(self, key: str) -> Value | None:
        if key in self._deletes:
            return None
        if key in self._writes:
            return copy.deepcopy(self._writes[key])
        return await self._store._read(key)

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None

    def put(self, key: str, value: Value) -> None:
        self._deletes.discard(key)
        self._writes[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._writes.pop(key, None)
        self._deletes.add(key)

    async def scan(self, prefix: str) -> dict[str, Value]:
        """Return every live key starting with *prefix*, ordered by key."""
        merged = await self._store._scan(prefix)
        for key in self._deletes:
            merged.pop(key, None)
        for key, value in self._writes.items():
            if key.startswith(prefix):
                merged[key] = copy.deepcopy(value)
        return dict(sorted(merged.items()))


class KeyValueStore(ABC):
    """Abstract transactional key-value store.

    Transactions are serialized through a single :class:`asyncio.Lock`,
    so two operations never interleave and every read inside a
    transaction observes a consistent snapshot.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """Open a serialized transaction; commit on clean exit, discard on error."""
        async with self._lock:
            txn = Transaction(self)
            yield txn
            if txn.dirty:
                await self._commit(dict(txn._writes), set(txn._deletes))

    @abstractmethod
    async def _read(self, key: str) -> Value | None: ...

    @abstractmethod
    async def _scan(self, prefix: str) -> dict[str, Value]: ...

    @abstractmethod
    async def _commit(self, writes: dict[str, Value], deletes: set[str]) -> None:
        """Apply *writes* and *deletes* atomically."""

    async def close(self) -> None:
        """Release backend resources.  No-op by default."""
