"""
Replicated Cache Service

Write-through-all, first-hit-read cache over a fixed list of Redis replicas.

Every replica holds a full copy of every key. Writes and deletes fan out
sequentially in list order; reads return from the first replica that
reports the key. A fan-out that fails part way is not rolled back, so
replicas may disagree until the next successful add or remove, and a
first-hit read does not compare freshness between them.
"""

from dataclasses import dataclass, asdict
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

import structlog
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from redis.asyncio import Redis

from ...core.config import Settings, get_settings
from ...domain.cache.value_objects import (
    CacheKey,
    Expiry,
    FanOutErrorPolicy,
    ServerAddress,
)
from ...infrastructure.redis.connection_factory import RedisConnectionFactory
from ...infrastructure.redis.exceptions import (
    CacheConfigurationException,
    CacheEncodingException,
    CacheException,
    CacheInvalidArgumentException,
    RedisServerException,
    ReplicationException,
)
from . import codec

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_TIMEOUT_MS = 1000

ServerSpec = Union[ServerAddress, str]
ReplicaAction = Callable[[Redis, ServerAddress], Awaitable[None]]


@dataclass
class ReplicatedCacheMetrics:
    """Counters for replicated cache monitoring."""

    writes: int = 0
    hits: int = 0
    misses: int = 0
    self_heals: int = 0
    replica_deletes: int = 0
    server_failures: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate."""
        lookups = self.hits + self.misses
        if lookups == 0:
            return 0.0
        return self.hits / lookups


class ReplicatedCache:
    """
    Cache client that keeps an identical copy of each key on every server.

    Each call opens a fresh, scoped connection per server with the
    per-call timeout, so a call can take up to servers x timeout.
    """

    def __init__(
        self,
        servers: Iterable[ServerSpec],
        *,
        error_policy: Union[FanOutErrorPolicy, str] = FanOutErrorPolicy.ABORT,
        connection_factory: Optional[RedisConnectionFactory] = None,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        default_compress: bool = True,
    ):
        self._servers: Tuple[ServerAddress, ...] = self._parse_servers(servers)

        try:
            self.error_policy = FanOutErrorPolicy(error_policy)
        except ValueError as e:
            raise CacheConfigurationException(
                message=f"Invalid fan-out error policy: {error_policy}",
                config_key="error_policy",
                config_value=error_policy,
                original_error=e,
            )

        if default_timeout_ms <= 0:
            raise CacheConfigurationException(
                message="Default timeout must be positive",
                config_key="default_timeout_ms",
                config_value=default_timeout_ms,
            )

        self.connection_factory = connection_factory or RedisConnectionFactory()
        self.default_timeout_ms = default_timeout_ms
        self.default_compress = default_compress
        self.metrics = ReplicatedCacheMetrics()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ReplicatedCache":
        """Create a cache from environment-driven settings."""
        settings = settings or get_settings()
        return cls(
            settings.servers_list,
            error_policy=settings.REPLICACHE_ERROR_POLICY,
            connection_factory=RedisConnectionFactory(
                pool_connections=settings.REPLICACHE_POOL_CONNECTIONS
            ),
            default_timeout_ms=settings.REPLICACHE_TIMEOUT_MS,
            default_compress=settings.REPLICACHE_COMPRESS,
        )

    @staticmethod
    def _parse_servers(servers: Optional[Iterable[ServerSpec]]) -> Tuple[ServerAddress, ...]:
        if servers is None or isinstance(servers, (str, bytes)):
            raise CacheConfigurationException(
                message="Redis server list cannot be None or a bare string",
                config_key="servers",
                config_value=servers,
            )

        addresses: List[ServerAddress] = []
        for server in servers:
            if isinstance(server, ServerAddress):
                addresses.append(server)
                continue
            try:
                addresses.append(ServerAddress.parse(server))
            except ValueError as e:
                raise CacheConfigurationException(
                    message=f"Invalid Redis server address: {server!r}",
                    config_key="servers",
                    config_value=server,
                    original_error=e,
                )

        if not addresses:
            raise CacheConfigurationException(
                message="Redis server list cannot be empty", config_key="servers"
            )
        return tuple(addresses)

    @property
    def servers(self) -> Tuple[ServerAddress, ...]:
        """Replica addresses in iteration order."""
        return self._servers

    # Argument validation - always before any network I/O

    @staticmethod
    def _validate_key(key: str) -> str:
        try:
            return CacheKey(key).value
        except ValueError as e:
            raise CacheInvalidArgumentException(
                message=f"Invalid cache key: {e}", argument="key"
            ) from e

    def _resolve_timeout(self, timeout: Optional[int]) -> int:
        if timeout is None:
            return self.default_timeout_ms
        if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0:
            raise CacheInvalidArgumentException(
                message=f"Timeout must be a positive number of milliseconds: {timeout!r}",
                argument="timeout",
            )
        return timeout

    @staticmethod
    def _resolve_expiry(
        expiry: Optional[Union[Expiry, timedelta, int]], key: str
    ) -> Optional[Expiry]:
        if expiry is None:
            return None
        try:
            return Expiry.of(expiry)
        except ValueError as e:
            raise CacheInvalidArgumentException(
                message=f"Invalid expiry: {e}", argument="expiry", key=key
            ) from e

    # Fan-out

    async def _fan_out(
        self, operation: str, key: str, timeout_ms: int, action: ReplicaAction
    ) -> None:
        """Run action against every replica in list order."""
        failures: List[RedisServerException] = []

        for address in self._servers:
            try:
                async with self.connection_factory.connect(
                    address, timeout_ms, operation
                ) as redis_client:
                    await action(redis_client, address)

            except RedisServerException as e:
                self.metrics.server_failures += 1
                if self.error_policy is FanOutErrorPolicy.ABORT:
                    logger.error(
                        "replicated_fan_out_aborted",
                        operation=operation,
                        key=key,
                        server=str(address),
                        error=e.message,
                    )
                    raise
                logger.warning(
                    "replicated_fan_out_server_failed",
                    operation=operation,
                    key=key,
                    server=str(address),
                    error=e.message,
                )
                failures.append(e)

        if failures:
            raise ReplicationException(operation, key, failures)

    async def add(
        self,
        key: str,
        value: Any,
        expiry: Optional[Union[Expiry, timedelta, int]] = None,
        timeout: Optional[int] = None,
        compress: Optional[bool] = None,
    ) -> None:
        """
        Store value under key on every replica.

        Args:
            key: Cache key, used verbatim on every replica
            value: Any picklable value except None
            expiry: Optional TTL as timedelta or milliseconds
            timeout: Per-server timeout in milliseconds
            compress: Gzip the payload (readers must pass the same flag)

        Raises:
            CacheInvalidArgumentException: If key, value, expiry or timeout is invalid
            CacheEncodingException: If the value cannot be serialized
            RedisServerException: If a replica fails (abort policy)
            ReplicationException: If any replica failed (continue policy)
        """
        key = self._validate_key(key)
        if value is None:
            raise CacheInvalidArgumentException(
                message="Cannot cache None to Redis servers", argument="value", key=key
            )
        ttl = self._resolve_expiry(expiry, key)
        timeout_ms = self._resolve_timeout(timeout)
        compress = self.default_compress if compress is None else compress

        with tracer.start_as_current_span("replicated_cache.add") as span:
            span.set_attribute("cache.key", key)
            span.set_attribute("cache.servers", len(self._servers))

            payload = codec.encode(value, compress)
            if payload is None:
                error = CacheEncodingException(key, type(value).__name__)
                span.set_status(Status(StatusCode.ERROR, error.message))
                raise error

            span.set_attribute("cache.payload_bytes", len(payload))
            span.set_attribute("cache.compress", compress)

            async def _write(redis_client: Redis, address: ServerAddress) -> None:
                await redis_client.set(
                    key, payload, px=ttl.milliseconds if ttl else None
                )
                logger.debug("replica_write", key=key, server=str(address), ttl=str(ttl))

            try:
                await self._fan_out("add", key, timeout_ms, _write)
            except CacheException as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                raise

            self.metrics.writes += 1
            span.set_status(Status(StatusCode.OK))

    async def get(
        self,
        key: str,
        timeout: Optional[int] = None,
        decompress: Optional[bool] = None,
    ) -> Optional[Any]:
        """
        Return the value from the first replica that holds key.

        Replicas after the first hit are never contacted. When the bytes
        cannot be decoded the key is evicted from every replica.

        Args:
            key: Cache key
            timeout: Per-server timeout in milliseconds
            decompress: Gunzip the payload (must match the add flag)

        Returns:
            The cached value, or None on a miss or undecodable payload

        Raises:
            CacheInvalidArgumentException: If key or timeout is invalid
            RedisServerException: If a replica fails (abort policy)
            ReplicationException: If every replica failed (continue policy)
        """
        key = self._validate_key(key)
        timeout_ms = self._resolve_timeout(timeout)
        decompress = self.default_compress if decompress is None else decompress

        with tracer.start_as_current_span("replicated_cache.get") as span:
            span.set_attribute("cache.key", key)
            span.set_attribute("cache.servers", len(self._servers))

            try:
                payload, hit_server = await self._read_first_hit(key, timeout_ms)
            except CacheException as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                raise

            if payload is None:
                self.metrics.misses += 1
                span.set_attribute("cache_hit", False)
                span.set_status(Status(StatusCode.OK))
                return None

            span.set_attribute("cache_hit", True)
            span.set_attribute("cache.server", str(hit_server))

            value = codec.decode(payload, decompress)
            if value is None:
                self.metrics.self_heals += 1
                span.set_attribute("cache.self_heal", True)
                logger.info(
                    "replicated_cache_self_heal",
                    key=key,
                    server=str(hit_server),
                    payload_bytes=len(payload),
                )
                await self.remove(key, timeout=timeout_ms)
                span.set_status(Status(StatusCode.OK))
                return None

            self.metrics.hits += 1
            span.set_status(Status(StatusCode.OK))
            return value

    async def _read_first_hit(
        self, key: str, timeout_ms: int
    ) -> Tuple[Optional[bytes], Optional[ServerAddress]]:
        failures: List[RedisServerException] = []

        for address in self._servers:
            try:
                async with self.connection_factory.connect(
                    address, timeout_ms, "get"
                ) as redis_client:
                    if await redis_client.exists(key):
                        payload = await redis_client.get(key)
                        # Expired between EXISTS and GET: treat as a miss here
                        if payload is not None:
                            logger.debug("replica_hit", key=key, server=str(address))
                            return payload, address

            except RedisServerException as e:
                self.metrics.server_failures += 1
                if self.error_policy is FanOutErrorPolicy.ABORT:
                    raise
                logger.warning(
                    "replica_read_skipped",
                    key=key,
                    server=str(address),
                    error=e.message,
                )
                failures.append(e)

        if failures and len(failures) == len(self._servers):
            raise ReplicationException("get", key, failures)
        return None, None

    async def remove(self, key: str, timeout: Optional[int] = None) -> None:
        """
        Delete key from every replica that holds it.

        Raises:
            CacheInvalidArgumentException: If key or timeout is invalid
            RedisServerException: If a replica fails (abort policy)
            ReplicationException: If any replica failed (continue policy)
        """
        key = self._validate_key(key)
        timeout_ms = self._resolve_timeout(timeout)

        with tracer.start_as_current_span("replicated_cache.remove") as span:
            span.set_attribute("cache.key", key)
            span.set_attribute("cache.servers", len(self._servers))

            async def _delete(redis_client: Redis, address: ServerAddress) -> None:
                if await redis_client.exists(key):
                    await redis_client.delete(key)
                    self.metrics.replica_deletes += 1
                    logger.debug("replica_delete", key=key, server=str(address))

            try:
                await self._fan_out("remove", key, timeout_ms, _delete)
            except CacheException as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                raise

            span.set_status(Status(StatusCode.OK))

    def get_metrics(self) -> Dict[str, Any]:
        """Get replicated cache metrics."""
        return {
            "servers": [str(address) for address in self._servers],
            "config": {
                "error_policy": self.error_policy.value,
                "default_timeout_ms": self.default_timeout_ms,
                "default_compress": self.default_compress,
            },
            "operations": {**asdict(self.metrics), "hit_rate": self.metrics.hit_rate},
            "connection_factory": self.connection_factory.get_metrics(),
        }

    async def close(self) -> None:
        """Release pooled connections, if any."""
        await self.connection_factory.close()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
