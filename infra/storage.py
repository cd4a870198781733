"""Key/value storage backends for conversation state and workflow checkpoints.

Every backend stores one JSON document per key. Backends translate their
client library errors into ``StorageUnavailableError`` so callers see a single
failure type regardless of where the data lives.
"""
from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager, nullcontext
from typing import Any, AsyncIterator, Dict, List, Optional

from redis.exceptions import RedisError
from sqlalchemy import Column, DateTime, MetaData, String, Table, Text, delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from api.shared.exceptions import StorageUnavailableError
from infra.resources import DatabaseResource, RedisResource

logger = logging.getLogger("chat_relay.storage")

metadata = MetaData()

state_records = Table(
    "state_record",
    metadata,
    Column("key", String(512), primary_key=True),
    Column("value", Text, nullable=False),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    ),
)


class StorageBackend(ABC):
    """Minimal async key/value interface."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the stored document or None."""

    @abstractmethod
    async def put(self, key: str, value: Dict[str, Any]) -> None:
        """Insert or replace the document stored under key."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key. Missing keys are ignored."""

    @abstractmethod
    async def list(self, prefix: str) -> List[Dict[str, Any]]:
        """Return every document whose key starts with prefix."""

    def lock(self, key: str):
        """Cross-process lock for key; backends without one return a no-op."""
        return nullcontext()

    @staticmethod
    def _encode(value: Dict[str, Any]) -> str:
        return json.dumps(value, ensure_ascii=False)

    @staticmethod
    def _decode(key: str, raw: str) -> Dict[str, Any]:
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageUnavailableError(
                f"Corrupt record under '{key}'", {"key": key}
            ) from e


class InMemoryStorage(StorageBackend):
    """Process-local storage. Values are kept serialized so callers never share objects."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self._data.get(key)
        return self._decode(key, raw) if raw is not None else None

    async def put(self, key: str, value: Dict[str, Any]) -> None:
        self._data[key] = self._encode(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list(self, prefix: str) -> List[Dict[str, Any]]:
        return [
            self._decode(key, raw)
            for key, raw in list(self._data.items())
            if key.startswith(prefix)
        ]


class RedisStorage(StorageBackend):
    """Redis-backed storage; one string key per document."""

    def __init__(self, redis_resource: RedisResource, lock_timeout: float = 10.0):
        self.redis_resource = redis_resource
        self.lock_timeout = lock_timeout

    @property
    def client(self):
        if self.redis_resource.client is None:
            raise StorageUnavailableError("Redis not initialized. Call init() first.")
        return self.redis_resource.client

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.client.get(key)
        except RedisError as e:
            raise StorageUnavailableError(f"Redis read failed: {e}", {"key": key}) from e
        return self._decode(key, raw) if raw is not None else None

    async def put(self, key: str, value: Dict[str, Any]) -> None:
        try:
            await self.client.set(key, self._encode(value))
        except RedisError as e:
            raise StorageUnavailableError(f"Redis write failed: {e}", {"key": key}) from e

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except RedisError as e:
            raise StorageUnavailableError(f"Redis delete failed: {e}", {"key": key}) from e

    async def list(self, prefix: str) -> List[Dict[str, Any]]:
        try:
            keys = [key async for key in self.client.scan_iter(match=f"{prefix}*")]
            if not keys:
                return []
            raws = await self.client.mget(keys)
        except RedisError as e:
            raise StorageUnavailableError(
                f"Redis scan failed: {e}", {"prefix": prefix}
            ) from e
        # A key may vanish between SCAN and MGET
        return [self._decode(k, r) for k, r in zip(keys, raws) if r is not None]

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        lock = self.client.lock(
            f"lock:{key}",
            timeout=self.lock_timeout,
            blocking_timeout=self.lock_timeout,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            raise StorageUnavailableError(f"Could not lock '{key}': {e}", {"key": key}) from e
        if not acquired:
            raise StorageUnavailableError(
                f"Timed out waiting for lock on '{key}'", {"key": key}
            )
        try:
            yield
        finally:
            try:
                await lock.release()
            except RedisError as e:
                logger.warning(f"Lost Redis lock on '{key}' before release: {e}")


class SqlStorage(StorageBackend):
    """SQL storage: one ``state_record`` row per key, value stored as JSON text."""

    def __init__(self, database: DatabaseResource):
        self.database = database

    @property
    def engine(self):
        if self.database.engine is None:
            raise StorageUnavailableError("Database not initialized. Call init() first.")
        return self.database.engine

    async def create_schema(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Schema creation failed: {e}") from e

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        stmt = select(state_records.c.value).where(state_records.c.key == key)
        try:
            async with self.engine.connect() as conn:
                raw = (await conn.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Database read failed: {e}", {"key": key}) from e
        return self._decode(key, raw) if raw is not None else None

    async def put(self, key: str, value: Dict[str, Any]) -> None:
        encoded = self._encode(value)
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(
                    update(state_records)
                    .where(state_records.c.key == key)
                    .values(value=encoded, updated_at=func.now())
                )
                if result.rowcount == 0:
                    await conn.execute(
                        insert(state_records).values(key=key, value=encoded)
                    )
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Database write failed: {e}", {"key": key}) from e

    async def delete(self, key: str) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.execute(delete(state_records).where(state_records.c.key == key))
        except SQLAlchemyError as e:
            raise StorageUnavailableError(f"Database delete failed: {e}", {"key": key}) from e

    async def list(self, prefix: str) -> List[Dict[str, Any]]:
        stmt = select(state_records.c.key, state_records.c.value).where(
            state_records.c.key.startswith(prefix, autoescape=True)
        )
        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise StorageUnavailableError(
                f"Database scan failed: {e}", {"prefix": prefix}
            ) from e
        return [self._decode(row.key, row.value) for row in rows]


class KeyedLocks:
    """asyncio locks created on demand per key and dropped once unused."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]
