"""
replicache: replicated write, first-hit read Redis cache client.

Stores a pickled, optionally gzip-compressed value identically on every
server of a fixed list of Redis replicas, and reads it back from the first
replica, in list order, that holds the key.
"""

from .domain.cache.value_objects import (
    CacheKey,
    Expiry,
    FanOutErrorPolicy,
    ServerAddress,
)
from .infrastructure.redis.connection_factory import RedisConnectionFactory
from .infrastructure.redis.exceptions import (
    CacheException,
    CacheConfigurationException,
    CacheInvalidArgumentException,
    CacheEncodingException,
    RedisServerException,
    RedisOperationTimeoutException,
    ReplicationException,
)
from .services.cache import codec
from .services.cache.replicated_cache import (
    ReplicatedCache,
    ReplicatedCacheMetrics,
    DEFAULT_TIMEOUT_MS,
)

__version__ = "0.1.0"

__all__ = [
    # Main client
    "ReplicatedCache",
    "ReplicatedCacheMetrics",
    "DEFAULT_TIMEOUT_MS",
    "codec",
    # Connection management
    "RedisConnectionFactory",
    # Value objects
    "CacheKey",
    "Expiry",
    "FanOutErrorPolicy",
    "ServerAddress",
    # Exceptions
    "CacheException",
    "CacheConfigurationException",
    "CacheInvalidArgumentException",
    "CacheEncodingException",
    "RedisServerException",
    "RedisOperationTimeoutException",
    "ReplicationException",
]
