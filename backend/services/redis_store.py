"""
Redis-backed DataStore.

Layout per scope (all keys carry the configured prefix):
- ``{scope}:seq``      INCR counter for record ids
- ``{scope}:ids``      list of ids in insertion order
- ``{scope}:records``  hash of id -> JSON record

Every Redis failure is raised as PersistenceError so callers can log it and
keep the chat turn going.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import redis.asyncio as redis_async
from redis.exceptions import RedisError

from errors import PersistenceError
from services.store import DataStore, Record, matches

logger = logging.getLogger(__name__)


class RedisStore(DataStore):
    def __init__(self, client: redis_async.Redis, prefix: str = "nyx:"):
        self._client = client
        self.prefix = prefix

    def _key(self, scope: str, part: str) -> str:
        return f"{self.prefix}{scope}:{part}"

    async def append(self, scope: str, record: Record) -> str:
        try:
            record_id = str(await self._client.incr(self._key(scope, "seq")))
            stored = {**record, "id": record_id}
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hset(self._key(scope, "records"), record_id, json.dumps(stored, default=str))
                pipe.rpush(self._key(scope, "ids"), record_id)
                await pipe.execute()
            return record_id
        except RedisError as e:
            raise PersistenceError("Could not append record", str(e), scope=scope, operation="append") from e

    async def query(
        self,
        scope: str,
        filter: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[Record]:
        if limit is not None and limit <= 0:
            return []
        # Without a filter only the newest `limit` ids are needed
        start = -limit if limit is not None and not filter else 0
        try:
            ids = await self._client.lrange(self._key(scope, "ids"), start, -1)
            if not ids:
                return []
            raw = await self._client.hmget(self._key(scope, "records"), ids)
        except RedisError as e:
            raise PersistenceError("Could not query records", str(e), scope=scope, operation="query") from e

        records = [json.loads(item) for item in raw if item is not None]
        records = [r for r in records if matches(r, filter)]
        if limit is not None:
            records = records[-limit:]
        return records

    async def get(self, scope: str, record_id: str) -> Optional[Record]:
        try:
            raw = await self._client.hget(self._key(scope, "records"), str(record_id))
        except RedisError as e:
            raise PersistenceError("Could not read record", str(e), scope=scope, operation="get") from e
        return json.loads(raw) if raw is not None else None

    async def update(self, scope: str, record_id: str, patch: Dict[str, Any]) -> Optional[Record]:
        record = await self.get(scope, record_id)
        if record is None:
            return None
        record.update({k: v for k, v in patch.items() if k != "id"})
        try:
            await self._client.hset(self._key(scope, "records"), str(record_id), json.dumps(record, default=str))
        except RedisError as e:
            raise PersistenceError("Could not update record", str(e), scope=scope, operation="update") from e
        return record

    async def clear(self, scope: str) -> int:
        try:
            removed = await self._client.llen(self._key(scope, "ids"))
            await self._client.delete(self._key(scope, "ids"), self._key(scope, "records"))
            return int(removed)
        except RedisError as e:
            raise PersistenceError("Could not clear scope", str(e), scope=scope, operation="clear") from e

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except RedisError as e:
            logger.warning(f"Error closing Redis: {e}")

    async def health_check(self) -> Dict[str, Any]:
        try:
            await self._client.ping()
            return {"status": "ok", "backend": "redis"}
        except RedisError as e:
            return {"status": "error", "backend": "redis", "error": str(e)}


async def connect_redis_store(url: str, prefix: str = "nyx:") -> Optional[RedisStore]:
    """
    Connect to Redis and return a store, or None when the server is unreachable.
    """
    client = redis_async.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5.0,
        socket_timeout=5.0,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning(f"Redis connection failed: {e}, using in-memory fallback")
        await client.aclose()
        return None

    logger.info(f"Redis connected: {url}")
    return RedisStore(client, prefix)
