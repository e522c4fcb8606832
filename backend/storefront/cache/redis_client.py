"""
Async Redis client backing the pincode lookup cache.

One pooled client is shared by the process. It is opened by the application
lifespan and may be absent entirely, in which case pincode answers are not
cached.
"""

import json
from typing import Any, Optional, Union
from urllib.parse import urlsplit

from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, RedisError

from storefront.core.config import get_settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)


def _redacted(url: str) -> str:
    parts = urlsplit(url)
    if parts.password or parts.username:
        return parts._replace(netloc=f"***@{parts.hostname}:{parts.port or 6379}").geturl()
    return url


class RedisClient:
    """
    Pooled async Redis connection storing string values.

    ``get_json``/``set_json`` wrap plain GET/SET for structured payloads.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        max_connections: Optional[int] = None,
        socket_timeout: float = 2.0,
    ):
        settings = get_settings()
        self.url = url or settings.redis_url
        self.max_connections = max_connections or settings.redis_max_connections
        self.socket_timeout = socket_timeout
        self._client: Optional[Redis] = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """
        Open the pool and PING once.

        Raises:
            ConnectionError: If Redis cannot be reached
        """
        if self._client is not None:
            return

        pool = ConnectionPool.from_url(
            self.url,
            max_connections=self.max_connections,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_timeout,
            retry=Retry(ExponentialBackoff(base=0.1, cap=1.0), retries=2),
            decode_responses=True,
        )
        client = Redis(connection_pool=pool)
        try:
            await client.ping()
        except RedisError as e:
            await client.aclose(close_connection_pool=True)
            logger.error("Redis connection failed", url=_redacted(self.url), error=str(e))
            raise ConnectionError(f"Redis connection failed: {e}") from e

        self._client = client
        logger.info(
            "Redis connection established",
            url=_redacted(self.url),
            max_connections=self.max_connections,
        )

    async def disconnect(self) -> None:
        if self._client is None:
            return
        await self._client.aclose(close_connection_pool=True)
        self._client = None
        logger.info("Redis connection closed")

    async def health_check(self) -> bool:
        """Return True when Redis answers PING."""
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.warning("Redis health check failed", error=str(e))
            return False

    def _connection(self) -> Redis:
        if self._client is None:
            raise ConnectionError("Redis client is not connected")
        return self._client

    async def get_json(self, key: str) -> Optional[dict[str, Any]]:
        """
        Read a JSON document.

        Raises:
            RedisError: If the client is disconnected or the command fails
            ValueError: If the stored value is not valid JSON
        """
        raw = await self._connection().get(key)
        return None if raw is None else json.loads(raw)

    async def set_json(
        self,
        key: str,
        value: dict[str, Any],
        ex: Optional[int] = None,
    ) -> bool:
        """
        Store ``value`` as JSON, expiring after ``ex`` seconds if given.

        Raises:
            RedisError: If the client is disconnected or the command fails
        """
        return bool(await self._connection().set(key, json.dumps(value), ex=ex))


class CacheKeyManager:
    """
    Namespaced cache keys.

    Example:
        >>> CacheKeyManager("app").pincode_key("632001")
        'app:pincode:632001'
    """

    def __init__(self, namespace: str = "storefront"):
        self.namespace = namespace

    def make_key(self, *parts: Union[str, int]) -> str:
        return ":".join([self.namespace, *(str(part) for part in parts if part)])

    def pincode_key(self, pincode: str) -> str:
        return self.make_key("pincode", pincode)


_redis_client: Optional[RedisClient] = None


async def get_redis_client() -> RedisClient:
    """
    Return the process-wide client, connecting it on first use.

    Raises:
        ConnectionError: If Redis cannot be reached
    """
    global _redis_client

    if _redis_client is None:
        client = RedisClient()
        await client.connect()
        _redis_client = client
    return _redis_client


def peek_redis_client() -> Optional[RedisClient]:
    """Return the process-wide client if one is connected, without connecting."""
    return _redis_client


async def close_redis_client() -> None:
    global _redis_client

    if _redis_client is not None:
        await _redis_client.disconnect()
        _redis_client = None
