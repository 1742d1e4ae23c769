"""
Cache Value Objects

Immutable value objects for the replicated cache domain.
Provides validation for server addresses, keys and expirations.
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Union

_ONE_MILLISECOND = timedelta(milliseconds=1)


class FanOutErrorPolicy(str, Enum):
    """How a fan-out loop reacts to a failing replica."""

    ABORT = "abort"  # Raise on the first failing server, skip the rest
    CONTINUE = "continue"  # Attempt every server, report failures at the end


@dataclass(frozen=True)
class ServerAddress:
    """
    Immutable Redis server address.

    Parsed from a "host:port" string; port must be in 1..65535.
    """

    host: str
    port: int

    def __post_init__(self) -> None:
        """Validate address components."""
        if not self.host:
            raise ValueError("Server host cannot be empty")
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise ValueError(f"Server port must be an integer: {self.port!r}")
        if not 1 <= self.port <= 65535:
            raise ValueError(f"Server port out of range (1-65535): {self.port}")

    @classmethod
    def parse(cls, value: str) -> "ServerAddress":
        """Create address from a "host:port" string."""
        if not isinstance(value, str):
            raise ValueError(f"Server address must be a string: {value!r}")

        host, sep, port = value.strip().rpartition(":")
        if not sep:
            raise ValueError(f"Server address must be in host:port form: {value!r}")
        try:
            port_number = int(port)
        except ValueError:
            raise ValueError(f"Invalid server port in {value!r}") from None

        # Bracketed IPv6 literal, e.g. "[::1]:6379"
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]

        return cls(host, port_number)

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class CacheKey:
    """
    Immutable cache key value object.

    Keys are used verbatim on every replica; no hashing or prefixing.
    """

    value: str

    def __post_init__(self) -> None:
        """Validate cache key format."""
        if not isinstance(self.value, str):
            raise ValueError("Cache key must be a string")
        if not self.value:
            raise ValueError("Cache key cannot be empty")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Expiry:
    """
    Expiration value object, stored with millisecond precision.

    Sent to Redis as SET ... PX, so each write resets the TTL.
    """

    milliseconds: int

    def __post_init__(self) -> None:
        """Validate expiry value."""
        if self.milliseconds <= 0:
            raise ValueError("Expiry must be positive")

    @classmethod
    def of(cls, value: Union["Expiry", timedelta, int]) -> "Expiry":
        """Create expiry from a timedelta or a millisecond count."""
        if isinstance(value, Expiry):
            return value
        if isinstance(value, timedelta):
            # Round up so a positive sub-millisecond duration stays positive
            return cls(-(-value // _ONE_MILLISECOND))
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        raise ValueError(f"Unsupported expiry type: {type(value).__name__}")

    def __str__(self) -> str:
        return f"{self.milliseconds}ms"
