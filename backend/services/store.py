"""
Data Store - the persistence interface every component talks to.

Records are plain JSON-compatible dicts grouped by scope. Session data uses
``"<collection>:<session_identity>"`` scopes (see ``session_scope``) so one
session can never read another's records; shared reference data such as
``inventory`` uses a bare collection name.

Provides:
- DataStore: abstract interface (append / query / update / get / clear)
- MemoryStore: asyncio-safe in-process implementation
- get_store(): backend selected from runtime config, Redis with memory fallback

Usage:
    from services.store import get_store, session_scope

    store = await get_store()
    record_id = await store.append(session_scope("tasks", "u1"), {"title": "Call supplier"})
    tasks = await store.query(session_scope("tasks", "u1"), {"status": "pending"})
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

# Per-session collections (scoped with session_scope)
TURNS = "chat_turns"
TOOL_INVOCATIONS = "tool_invocations"
TASKS = "tasks"
NOTES = "notes"
EXPENSES = "expenses"
ACTIVITY = "activity_log"
QUOTES = "quotes"
PREFERENCES = "user_preferences"
DEV_REQUESTS = "development_requests"
MESSAGES = "inbox_messages"

# Shared collections
INVENTORY = "inventory"
PERSONALITIES = "personalities"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def session_scope(collection: str, session_identity: str) -> str:
    """Build the storage scope for a per-session collection."""
    return f"{collection}:{session_identity}"


def matches(record: Record, filter: Optional[Dict[str, Any]]) -> bool:
    """Equality match on every key of filter."""
    if not filter:
        return True
    return all(record.get(key) == value for key, value in filter.items())


class DataStore(ABC):
    """Opaque key/record store.

    Every record gets a string ``id`` assigned on append. ``query`` returns
    records in insertion order; with ``limit`` only the newest ``limit``
    matches are returned (still oldest first).
    """

    @abstractmethod
    async def append(self, scope: str, record: Record) -> str:
        """Store a new record and return its id."""

    @abstractmethod
    async def query(
        self,
        scope: str,
        filter: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[Record]:
        """Return records of scope matching filter."""

    @abstractmethod
    async def update(self, scope: str, record_id: str, patch: Dict[str, Any]) -> Optional[Record]:
        """Merge patch into a record. Returns the updated record, or None if missing."""

    @abstractmethod
    async def get(self, scope: str, record_id: str) -> Optional[Record]:
        """Fetch one record by id."""

    @abstractmethod
    async def clear(self, scope: str) -> int:
        """Delete every record in scope. Returns how many were removed."""

    async def close(self) -> None:
        """Release backend resources."""

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "ok", "backend": type(self).__name__}


class MemoryStore(DataStore):
    """In-process store used for development, tests and as the Redis fallback."""

    def __init__(self):
        self._scopes: Dict[str, "OrderedDict[str, Record]"] = {}
        self._counters: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def append(self, scope: str, record: Record) -> str:
        async with self._lock:
            next_id = self._counters.get(scope, 0) + 1
            self._counters[scope] = next_id
            record_id = str(next_id)
            stored = copy.deepcopy(record)
            stored["id"] = record_id
            self._scopes.setdefault(scope, OrderedDict())[record_id] = stored
            return record_id

    async def query(
        self,
        scope: str,
        filter: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[Record]:
        async with self._lock:
            records = [r for r in self._scopes.get(scope, {}).values() if matches(r, filter)]
            if limit is not None:
                records = records[-limit:] if limit > 0 else []
            return copy.deepcopy(records)

    async def update(self, scope: str, record_id: str, patch: Dict[str, Any]) -> Optional[Record]:
        async with self._lock:
            record = self._scopes.get(scope, {}).get(str(record_id))
            if record is None:
                return None
            record.update(copy.deepcopy({k: v for k, v in patch.items() if k != "id"}))
            return copy.deepcopy(record)

    async def get(self, scope: str, record_id: str) -> Optional[Record]:
        async with self._lock:
            record = self._scopes.get(scope, {}).get(str(record_id))
            return copy.deepcopy(record) if record is not None else None

    async def clear(self, scope: str) -> int:
        async with self._lock:
            removed = len(self._scopes.pop(scope, {}))
            return removed

    async def health_check(self) -> Dict[str, Any]:
        async with self._lock:
            return {
                "status": "ok",
                "backend": "memory",
                "scopes": len(self._scopes),
                "records": sum(len(records) for records in self._scopes.values()),
            }


# Singleton instance
_store: Optional[DataStore] = None
_init_lock = asyncio.Lock()


async def get_store() -> DataStore:
    """
    Get the data store singleton.

    Uses Redis when ``store_backend`` is ``redis`` and the server answers a
    ping; otherwise falls back to the in-memory store.
    """
    global _store

    if _store is None:
        async with _init_lock:
            if _store is None:
                from config import runtime_config

                if runtime_config.store_backend == "redis":
                    from services.redis_store import connect_redis_store

                    _store = await connect_redis_store(runtime_config.redis_url, runtime_config.redis_prefix)
                if _store is None:
                    logger.info("Using in-memory data store")
                    _store = MemoryStore()

    return _store


def set_store(store: Optional[DataStore]) -> None:
    """Replace the singleton (tests and app startup)."""
    global _store
    _store = store


async def close_store() -> None:
    """Close the store (call on shutdown)."""
    global _store
    if _store:
        await _store.close()
        _store = None
