"""
Redis Connection Factory

Scoped per-replica connection management for the replicated cache.
Every connection is opened immediately before use and released on every
exit path; optional per-replica pools amortize the connect cost without
changing that open/use/release discipline.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Any, Optional, Tuple

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import (
    TimeoutError as RedisTimeoutError,
    RedisError,
)

from ...domain.cache.value_objects import ServerAddress
from .exceptions import (
    CacheException,
    RedisServerException,
    RedisOperationTimeoutException,
)

logger = logging.getLogger(__name__)

PoolKey = Tuple[ServerAddress, int]


class RedisConnectionFactory:
    """
    Factory for scoped Redis connections to individual replicas.

    Connections carry the per-call timeout as both the connect and the
    socket timeout. Raw bytes are returned (no response decoding).
    """

    def __init__(self, pool_connections: bool = False):
        self.pool_connections = pool_connections
        self._pools: Dict[PoolKey, ConnectionPool] = {}
        self._lock = asyncio.Lock()

    def _connection_kwargs(
        self, address: ServerAddress, timeout_ms: int
    ) -> Dict[str, Any]:
        timeout_seconds = timeout_ms / 1000
        return {
            "host": address.host,
            "port": address.port,
            "socket_connect_timeout": timeout_seconds,
            "socket_timeout": timeout_seconds,
            "decode_responses": False,
        }

    async def _get_pool(self, address: ServerAddress, timeout_ms: int) -> ConnectionPool:
        """Get or lazily create the pool for an address and timeout."""
        pool_key = (address, timeout_ms)
        pool = self._pools.get(pool_key)
        if pool is not None:
            return pool

        async with self._lock:
            if pool_key not in self._pools:
                self._pools[pool_key] = ConnectionPool(
                    **self._connection_kwargs(address, timeout_ms)
                )
                logger.debug(
                    f"Created Redis connection pool for {address}",
                    extra={"server": str(address), "timeout_ms": timeout_ms},
                )
            return self._pools[pool_key]

    async def _create_client(self, address: ServerAddress, timeout_ms: int) -> Redis:
        if self.pool_connections:
            pool = await self._get_pool(address, timeout_ms)
            return Redis(connection_pool=pool)
        return Redis(**self._connection_kwargs(address, timeout_ms))

    @asynccontextmanager
    async def connect(
        self,
        address: ServerAddress,
        timeout_ms: int,
        operation: Optional[str] = None,
    ) -> AsyncIterator[Redis]:
        """
        Open a connection to one replica.

        Args:
            address: Replica to connect to
            timeout_ms: Connect and socket timeout in milliseconds
            operation: Operation name recorded on raised errors

        Yields:
            Redis client bound to the replica

        Raises:
            RedisOperationTimeoutException: If the replica times out
            RedisServerException: If the connection or a command fails
        """
        redis_client = await self._create_client(address, timeout_ms)

        try:
            yield redis_client

        except CacheException:
            raise
        except (RedisTimeoutError, asyncio.TimeoutError) as e:
            logger.error(
                f"Redis server {address} timed out",
                extra={"server": str(address), "timeout_ms": timeout_ms, "operation": operation},
            )
            raise RedisOperationTimeoutException(
                host=address.host,
                port=address.port,
                timeout_ms=timeout_ms,
                operation=operation,
                original_error=e,
            )
        except (RedisError, OSError) as e:
            logger.error(
                f"Redis server {address} error: {e}",
                extra={"server": str(address), "operation": operation},
            )
            raise RedisServerException(
                message=f"Redis server {address} failed: {str(e)}",
                host=address.host,
                port=address.port,
                operation=operation,
                original_error=e,
            )

        finally:
            await self._release(redis_client, address)

    async def _release(self, redis_client: Redis, address: ServerAddress) -> None:
        # Pooled clients hand their connection back; unpooled ones disconnect.
        try:
            await redis_client.aclose()
        except (RedisError, OSError) as e:
            logger.warning(f"Error closing Redis connection to {address}: {e}")

    async def close(self) -> None:
        """Close all connection pools."""
        async with self._lock:
            for (address, _), pool in self._pools.items():
                try:
                    await pool.disconnect()
                    logger.debug(f"Closed Redis connection pool: {address}")
                except (RedisError, OSError) as e:
                    logger.warning(f"Error closing Redis pool {address}: {e}")

            self._pools.clear()

    def get_metrics(self) -> Dict[str, Any]:
        """Get connection factory metrics."""
        return {
            "pool_connections": self.pool_connections,
            "pools_count": len(self._pools),
            "pools": {
                f"{address}@{timeout_ms}ms": {
                    "max_connections": pool.max_connections,
                }
                for (address, timeout_ms), pool in self._pools.items()
            },
        }
