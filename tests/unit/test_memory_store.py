"""Tests for the transactional key-value store contract (in-memory backend)."""

from __future__ import annotations

import asyncio

import pytest

from teamflow.storage.memory import InMemoryKeyValueStore


class TestTransactions:
    @pytest.mark.asyncio
    async def test_commit_on_clean_exit(self, store: InMemoryKeyValueStore) -> None:
        async with store.transaction() as txn:
            txn.put("workflow:1", {"title": "a"})

        async with store.transaction() as txn:
            assert await txn.get("workflow:1") == {"title": "a"}
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_exception_discards_staged_writes(self, store: InMemoryKeyValueStore) -> None:
        async with store.transaction() as txn:
            txn.put("keep", 1)

        with pytest.raises(RuntimeError):
            async with store.transaction() as txn:
                txn.put("lost", 2)
                txn.delete("keep")
                raise RuntimeError("boom")

        async with store.transaction() as txn:
            assert await txn.get("lost") is None
            assert await txn.get("keep") == 1

    @pytest.mark.asyncio
    async def test_reads_see_own_staged_writes(self, store: InMemoryKeyValueStore) -> None:
        async with store.transaction() as txn:
            txn.put("a", 1)
            assert await txn.exists("a")
            txn.delete("a")
            assert not await txn.exists("a")
            txn.put("a", 3)
            assert await txn.get("a") == 3

    @pytest.mark.asyncio
    async def test_scan_merges_staged_state(self, store: InMemoryKeyValueStore) -> None:
        async with store.transaction() as txn:
            txn.put("task:1:1", "one")
            txn.put("task:1:2", "two")
            txn.put("task:10:1", "other workflow")

        async with store.transaction() as txn:
            txn.delete("task:1:1")
            txn.put("task:1:3", "three")
            assert await txn.scan("task:1:") == {"task:1:2": "two", "task:1:3": "three"}

    @pytest.mark.asyncio
    async def test_values_are_copied(self, store: InMemoryKeyValueStore) -> None:
        value = {"notes": []}
        async with store.transaction() as txn:
            txn.put("ledger:1:1", value)
        value["notes"].append("mutated after put")

        async with store.transaction() as txn:
            loaded = await txn.get("ledger:1:1")
            assert loaded == {"notes": []}
            loaded["notes"].append("mutated after get")

        async with store.transaction() as txn:
            assert await txn.get("ledger:1:1") == {"notes": []}

    @pytest.mark.asyncio
    async def test_transactions_are_serialized(self, store: InMemoryKeyValueStore) -> None:
        async with store.transaction() as txn:
            txn.put("counter", 0)

        async def increment() -> None:
            async with store.transaction() as txn:
                current = await txn.get("counter")
                await asyncio.sleep(0)
                txn.put("counter", current + 1)

        await asyncio.gather(*(increment() for _ in range(20)))

        async with store.transaction() as txn:
            assert await txn.get("counter") == 20

    @pytest.mark.asyncio
    async def test_read_only_transaction_is_not_dirty(self, store: InMemoryKeyValueStore) -> None:
        async with store.transaction() as txn:
            await txn.get("missing")
            assert not txn.dirty
