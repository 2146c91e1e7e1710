"""
Redis client wrappers with connection pooling, retry logic, and error handling.

RedisClient is the synchronous wrapper used by the local cart cache;
AsyncRedisClient is the asyncio wrapper used by the remote cart store and
the catalog.
"""
import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Optional

import redis
import redis.asyncio as aioredis
from redis.exceptions import (
    AuthenticationError,
    ConnectionError,
    TimeoutError,
    RedisError,
)

from cartsync.config import Config
from cartsync.exceptions import RemoteUnavailableError, StorageUnavailableError

logger = logging.getLogger(__name__)


def _pool_kwargs() -> dict:
    return dict(
        max_connections=Config.REDIS_MAX_CONNECTIONS,
        socket_connect_timeout=Config.REDIS_SOCKET_CONNECT_TIMEOUT,
        socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
        retry_on_timeout=Config.REDIS_RETRY_ON_TIMEOUT,
        decode_responses=True,
    )


def _next_backoff(backoff: float, max_backoff: float) -> float:
    return min(backoff * 2, max_backoff)


def _jitter(backoff: float) -> float:
    return backoff + random.uniform(0, backoff * 0.1)


class RedisClient:
    """Synchronous Redis client with connection pooling and retry logic"""

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        max_retries: int = 3,
        initial_backoff: float = 0.05,
        max_backoff: float = 0.5
    ):
        self.pool: Optional[redis.ConnectionPool] = None
        self.client: Optional[redis.Redis] = client
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        if self.client is None:
            self._connect()

    def _connect(self):
        """Initialize Redis connection pool"""
        self.pool = redis.ConnectionPool.from_url(Config.redis_url(), **_pool_kwargs())
        self.client = redis.Redis(connection_pool=self.pool)

    def _retry_with_backoff(self, func: Callable) -> Any:
        """
        Execute function with exponential backoff retry.

        Raises:
            StorageUnavailableError: If all retries fail or Redis rejects the command
        """
        backoff = self.initial_backoff

        for attempt in range(self.max_retries):
            try:
                return func()
            except AuthenticationError as e:
                raise StorageUnavailableError(f"Redis authentication failed: {e}") from e
            except (ConnectionError, TimeoutError) as e:
                if attempt == self.max_retries - 1:
                    raise StorageUnavailableError(
                        f"Redis operation failed after {self.max_retries} retries: {e}"
                    ) from e
                time.sleep(_jitter(backoff))
                backoff = _next_backoff(backoff, self.max_backoff)
            except RedisError as e:
                # Non-retryable errors
                raise StorageUnavailableError(f"Redis error: {e}") from e

    def get(self, key: str) -> Optional[str]:
        """Get value from Redis"""
        return self._retry_with_backoff(lambda: self.client.get(key))

    def set(self, key: str, value: Any, ex: Optional[int] = None) -> bool:
        """Set value in Redis with optional TTL"""
        return self._retry_with_backoff(lambda: self.client.set(key, value, ex=ex))

    def delete(self, *keys: str) -> int:
        """Delete one or more keys"""
        return self._retry_with_backoff(lambda: self.client.delete(*keys))

    def ping(self) -> bool:
        """Test Redis connection"""
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def close(self):
        """Close connection pool"""
        if self.pool:
            self.pool.disconnect()


class AsyncRedisClient:
    """asyncio Redis client with the same retry policy, raising RemoteUnavailableError"""

    def __init__(
        self,
        client: Optional[aioredis.Redis] = None,
        max_retries: int = Config.REMOTE_MAX_RETRIES,
        initial_backoff: float = Config.REMOTE_INITIAL_BACKOFF,
        max_backoff: float = Config.REMOTE_MAX_BACKOFF
    ):
        self.pool: Optional[aioredis.ConnectionPool] = None
        self.client: Optional[aioredis.Redis] = client
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        if self.client is None:
            self.pool = aioredis.ConnectionPool.from_url(Config.redis_url(), **_pool_kwargs())
            self.client = aioredis.Redis(connection_pool=self.pool)

    async def _retry_with_backoff(self, func: Callable[[], Awaitable[Any]]) -> Any:
        """
        Await function with exponential backoff retry.

        Raises:
            RemoteUnavailableError: If all retries fail or Redis rejects the command
        """
        backoff = self.initial_backoff

        for attempt in range(self.max_retries):
            try:
                return await func()
            except AuthenticationError as e:
                raise RemoteUnavailableError(f"Remote store rejected credentials: {e}") from e
            except (ConnectionError, TimeoutError) as e:
                if attempt == self.max_retries - 1:
                    raise RemoteUnavailableError(
                        f"Remote store unavailable after {self.max_retries} retries: {e}"
                    ) from e
                logger.warning(f"Remote store call failed (attempt {attempt + 1}), retrying: {e}")
                await asyncio.sleep(_jitter(backoff))
                backoff = _next_backoff(backoff, self.max_backoff)
            except RedisError as e:
                # Authorization and script errors are not retried
                raise RemoteUnavailableError(f"Remote store error: {e}") from e

    async def hget(self, key: str, field: str) -> Optional[str]:
        """Get field from hash"""
        return await self._retry_with_backoff(lambda: self.client.hget(key, field))

    async def hgetall(self, key: str) -> dict:
        """Get all fields from hash"""
        return await self._retry_with_backoff(lambda: self.client.hgetall(key))

    async def get(self, key: str) -> Optional[str]:
        """Get value from Redis"""
        return await self._retry_with_backoff(lambda: self.client.get(key))

    async def eval(self, script: str, num_keys: int, *keys_and_args) -> Any:
        """Execute Lua script"""
        return await self._retry_with_backoff(
            lambda: self.client.eval(script, num_keys, *keys_and_args)
        )

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            return bool(await self.client.ping())
        except RedisError:
            return False

    async def close(self):
        """Close client and pool"""
        await self.client.aclose()
        if self.pool:
            await self.pool.disconnect()
