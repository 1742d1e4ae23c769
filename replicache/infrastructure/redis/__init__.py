"""
Redis Infrastructure Module

Scoped per-replica connections and the replicated cache error taxonomy.
"""

from .connection_factory import RedisConnectionFactory
from .exceptions import (
    CacheException,
    CacheConfigurationException,
    CacheInvalidArgumentException,
    CacheEncodingException,
    RedisServerException,
    RedisOperationTimeoutException,
    ReplicationException,
)

__all__ = [
    "RedisConnectionFactory",
    "CacheException",
    "CacheConfigurationException",
    "CacheInvalidArgumentException",
    "CacheEncodingException",
    "RedisServerException",
    "RedisOperationTimeoutException",
    "ReplicationException",
]
