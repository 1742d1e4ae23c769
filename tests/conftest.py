"""
Main pytest configuration for replicache tests.

Provides an in-memory Redis replica double and a connection factory that
hands it out, so unit tests exercise the real connect/release and error
mapping paths without a running Redis.
"""

import os
from typing import Dict, List, Optional, Tuple

import pytest

# Set test environment variables before importing package modules
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from replicache.domain.cache.value_objects import ServerAddress
from replicache.infrastructure.redis.connection_factory import RedisConnectionFactory
from replicache.services.cache.replicated_cache import ReplicatedCache


class FakeRedisServer:
    """In-memory stand-in for one Redis replica."""

    def __init__(self, address: ServerAddress):
        self.address = address
        self.data: Dict[str, bytes] = {}
        self.ttls_ms: Dict[str, int] = {}
        self.calls: List[Tuple[str, str]] = []
        self.closed_connections = 0
        # Raised from every command while set
        self.fail_with: Optional[Exception] = None

    def command_names(self) -> List[str]:
        return [name for name, _ in self.calls]


class FakeRedisClient:
    """Subset of redis.asyncio.Redis used by the replicated cache."""

    def __init__(self, server: FakeRedisServer):
        self._server = server

    def _record(self, name: str, key: str) -> None:
        self._server.calls.append((name, key))
        if self._server.fail_with is not None:
            raise self._server.fail_with

    async def exists(self, key: str) -> int:
        self._record("exists", key)
        return int(key in self._server.data)

    async def get(self, key: str) -> Optional[bytes]:
        self._record("get", key)
        return self._server.data.get(key)

    async def set(self, key: str, value: bytes, px: Optional[int] = None) -> bool:
        self._record("set", key)
        self._server.data[key] = value
        if px is not None:
            self._server.ttls_ms[key] = px
        else:
            self._server.ttls_ms.pop(key, None)
        return True

    async def delete(self, key: str) -> int:
        self._record("delete", key)
        self._server.ttls_ms.pop(key, None)
        return 1 if self._server.data.pop(key, None) is not None else 0

    async def aclose(self) -> None:
        self._server.closed_connections += 1


class FakeConnectionFactory(RedisConnectionFactory):
    """Connection factory that connects to FakeRedisServer instances."""

    def __init__(self, servers: Dict[ServerAddress, FakeRedisServer]):
        super().__init__(pool_connections=False)
        self.servers = servers
        self.opened: List[Tuple[ServerAddress, int]] = []

    async def _create_client(self, address: ServerAddress, timeout_ms: int):
        self.opened.append((address, timeout_ms))
        return FakeRedisClient(self.servers[address])


@pytest.fixture
def server_addresses() -> List[ServerAddress]:
    """Three replica addresses in iteration order."""
    return [
        ServerAddress("redis-a", 6379),
        ServerAddress("redis-b", 6380),
        ServerAddress("redis-c", 6381),
    ]


@pytest.fixture
def fake_servers(server_addresses) -> Dict[ServerAddress, FakeRedisServer]:
    """One fake replica per address."""
    return {address: FakeRedisServer(address) for address in server_addresses}


@pytest.fixture
def connection_factory(fake_servers) -> FakeConnectionFactory:
    """Connection factory bound to the fake replicas."""
    return FakeConnectionFactory(fake_servers)


@pytest.fixture
def cache(server_addresses, connection_factory) -> ReplicatedCache:
    """Replicated cache over the fake replicas (abort-on-error policy)."""
    return ReplicatedCache(server_addresses, connection_factory=connection_factory)


# Test markers and configuration
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "redis: marks tests as Redis-related")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    """Add markers based on test file location."""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.redis)
