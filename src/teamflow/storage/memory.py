"""In-memory implementation of :class:`KeyValueStore`.

Suitable for development, testing, and single-process deployments.
"""

from __future__ import annotations

import copy

from teamflow.storage.base import KeyValueStore, Value


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed key-value store."""

    def __init__(self) -> None:
        super().__init__()
        self._data: dict[str, Value] = {}

    async def _read(self, key: str) -> Value | None:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def _scan(self, prefix: str) -> dict[str, Value]:
        return {k: copy.deepcopy(v) for k, v in self._data.items() if k.startswith(prefix)}

    async def _commit(self, writes: dict[str, Value], deletes: set[str]) -> None:
        for key in deletes:
            self._data.pop(key, None)
        for key, value in writes.items():
            self._data[key] = copy.deepcopy(value)

    def __len__(self) -> int:
        return len(self._data)
