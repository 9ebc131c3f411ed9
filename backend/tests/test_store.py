"""
Tests for the in-memory data store and demo seeding.
"""

from services.demo_data import DEMO_INVENTORY, seed_demo_data
from services.store import INVENTORY, PERSONALITIES, MemoryStore, matches, session_scope


def test_session_scope():
    assert session_scope("tasks", "u1") == "tasks:u1"


def test_matches():
    record = {"a": 1, "b": "x"}
    assert matches(record, None)
    assert matches(record, {"a": 1})
    assert not matches(record, {"a": 1, "b": "y"})


class TestMemoryStore:
    def test_append_assigns_increasing_ids(self, run):
        store = MemoryStore()

        async def scenario():
            first = await store.append("tasks:u1", {"title": "a"})
            second = await store.append("tasks:u1", {"title": "b"})
            other = await store.append("tasks:u2", {"title": "c"})
            return first, second, other

        assert run(scenario()) == ("1", "2", "1")

    def test_query_filter_and_limit(self, run):
        store = MemoryStore()

        async def scenario():
            for i in range(5):
                await store.append("s", {"n": i, "even": i % 2 == 0})
            evens = await store.query("s", {"even": True})
            newest_two = await store.query("s", limit=2)
            return evens, newest_two

        evens, newest_two = run(scenario())
        assert [r["n"] for r in evens] == [0, 2, 4]
        assert [r["n"] for r in newest_two] == [3, 4]

    def test_scopes_are_isolated(self, run):
        store = MemoryStore()

        async def scenario():
            await store.append(session_scope("notes", "u1"), {"content": "mine"})
            return await store.query(session_scope("notes", "u2"))

        assert run(scenario()) == []

    def test_returned_records_are_copies(self, run):
        store = MemoryStore()

        async def scenario():
            record_id = await store.append("s", {"tags": ["a"]})
            fetched = await store.get("s", record_id)
            fetched["tags"].append("b")
            return await store.get("s", record_id)

        assert run(scenario())["tags"] == ["a"]

    def test_update(self, run):
        store = MemoryStore()

        async def scenario():
            record_id = await store.append("s", {"status": "pending"})
            updated = await store.update("s", record_id, {"status": "done", "id": "999"})
            missing = await store.update("s", "42", {"status": "done"})
            return record_id, updated, missing

        record_id, updated, missing = run(scenario())
        assert updated == {"status": "done", "id": record_id}
        assert missing is None

    def test_clear_returns_count(self, run):
        store = MemoryStore()

        async def scenario():
            await store.append("s", {})
            await store.append("s", {})
            removed = await store.clear("s")
            return removed, await store.query("s")

        assert run(scenario()) == (2, [])

    def test_health_check(self, run):
        health = run(MemoryStore().health_check())
        assert health["status"] == "ok"
        assert health["backend"] == "memory"


def test_seed_demo_data_only_once(run):
    store = MemoryStore()
    first = run(seed_demo_data(store, "nyx-v1"))
    second = run(seed_demo_data(store, "nyx-v1"))
    assert first == len(DEMO_INVENTORY) + 1
    assert second == 0
    assert len(run(store.query(INVENTORY))) == len(DEMO_INVENTORY)
    assert len(run(store.query(PERSONALITIES, {"persona_id": "nyx-v1"}))) == 1
