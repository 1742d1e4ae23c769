"""
Integration tests for ReplicatedCache against live Redis servers.

Servers come from REPLICACHE_TEST_SERVERS (comma-separated host:port,
default localhost:6379). Tests are skipped when a server is unreachable.
"""

import asyncio
import os
from datetime import timedelta
from uuid import uuid4

import pytest
import redis

from replicache.domain.cache.value_objects import ServerAddress
from replicache.infrastructure.redis.exceptions import RedisServerException
from replicache.services.cache.replicated_cache import ReplicatedCache

TEST_SERVERS = [
    server.strip()
    for server in os.environ.get("REPLICACHE_TEST_SERVERS", "localhost:6379").split(",")
    if server.strip()
]


def _reachable(server: str) -> bool:
    address = ServerAddress.parse(server)
    client = redis.Redis(host=address.host, port=address.port, socket_connect_timeout=0.5)
    try:
        return bool(client.ping())
    except (redis.RedisError, OSError):
        return False
    finally:
        client.close()


pytestmark = pytest.mark.skipif(
    not all(_reachable(server) for server in TEST_SERVERS),
    reason="Redis test servers not reachable - set REPLICACHE_TEST_SERVERS",
)


@pytest.fixture
def test_key():
    """Unique key per test."""
    return f"replicache:test:{uuid4()}"


@pytest.fixture
def live_cache():
    return ReplicatedCache(TEST_SERVERS)


def _raw_get(server: ServerAddress, key: str):
    client = redis.Redis(host=server.host, port=server.port)
    try:
        return client.get(key), client.exists(key)
    finally:
        client.close()


class TestReplicatedCacheRedis:
    """End-to-end behavior against real replicas."""

    @pytest.mark.asyncio
    async def test_add_get_remove(self, live_cache, test_key):
        value = {"project": "Test Project", "documents": ["doc1", "doc2"]}

        await live_cache.add(test_key, value)
        assert await live_cache.get(test_key) == value

        await live_cache.remove(test_key)
        assert await live_cache.get(test_key) is None

    @pytest.mark.asyncio
    async def test_every_replica_holds_identical_bytes(self, live_cache, test_key):
        await live_cache.add(test_key, list(range(100)))
        try:
            payloads = {_raw_get(server, test_key)[0] for server in live_cache.servers}
            assert len(payloads) == 1
            assert payloads.pop() is not None
        finally:
            await live_cache.remove(test_key)

    @pytest.mark.asyncio
    async def test_expiry_honored(self, live_cache, test_key):
        await live_cache.add(test_key, "short-lived", expiry=timedelta(milliseconds=100))

        await asyncio.sleep(0.3)

        assert await live_cache.get(test_key) is None

    @pytest.mark.asyncio
    async def test_self_heal_on_corrupt_payload(self, live_cache, test_key):
        for server in live_cache.servers:
            client = redis.Redis(host=server.host, port=server.port)
            try:
                client.set(test_key, b"corrupted payload")
            finally:
                client.close()

        assert await live_cache.get(test_key) is None

        for server in live_cache.servers:
            assert _raw_get(server, test_key)[1] == 0

    @pytest.mark.asyncio
    async def test_remove_twice(self, live_cache, test_key):
        await live_cache.add(test_key, "v")

        await live_cache.remove(test_key)
        await live_cache.remove(test_key)

        for server in live_cache.servers:
            assert _raw_get(server, test_key)[1] == 0

    @pytest.mark.asyncio
    async def test_unreachable_replica_raises(self, test_key):
        # Port 1 is reserved (tcpmux) and not expected to run Redis.
        cache = ReplicatedCache(["127.0.0.1:1"])

        with pytest.raises(RedisServerException):
            await cache.get(test_key, timeout=200)
