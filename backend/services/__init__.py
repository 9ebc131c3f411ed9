"""
Nyx Services - Shared infrastructure services.

- store: DataStore interface, in-memory store and get_store() singleton
- redis_store: Redis-backed DataStore
- llm_client: model sessions and vision client over OpenAI-compatible APIs
- preferences: append-only user preference rules
- json_repair: repair of malformed model JSON
"""

from .store import DataStore, MemoryStore, get_store

__all__ = ["DataStore", "MemoryStore", "get_store"]
