"""Infrastructure resources: DB and Redis.

This module is part of the infra layer and must not import from application features.
"""
import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import create_async_engine


class DatabaseResource:
    """Database resource for dependency injection."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine = None

    async def init(self):
        """Initialize database connection."""
        self.engine = create_async_engine(
            self.database_url,
            echo=False,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
        return self

    async def shutdown(self):
        """Shutdown database connection."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None


class RedisResource:
    """Redis resource for dependency injection."""

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.client = None

    async def init(self):
        """Create the connection pool; no I/O happens until connect()."""
        if self.client is None:
            self.client = aioredis.from_url(self.redis_url, decode_responses=True)
        return self

    async def connect(self):
        """Verify the server is reachable."""
        assert self.client is not None, "Redis client not initialized"
        await self.client.ping()

    async def disconnect(self):
        """Close the connection pool."""
        if self.client is not None:
            await self.client.aclose()
            self.client = None
