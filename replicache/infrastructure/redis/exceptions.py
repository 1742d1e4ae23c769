"""
Replicated Cache Exceptions

Domain-specific exceptions for replicated cache operations.
Argument and configuration errors are raised before any network I/O;
per-server errors always preserve the underlying redis-py error as __cause__.
"""

from typing import Optional, Any, Dict, List


class CacheException(Exception):
    """Base exception for replicated cache errors.

    All cache operations should raise this or its subclasses.
    Never swallow Redis exceptions - always preserve context.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class CacheConfigurationException(CacheException):
    """Raised when the server list or another setting is invalid."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key
        if config_value is not None:
            details["config_value"] = str(config_value)
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=message, error_code="CACHE_CONFIGURATION_ERROR", details=details
        )
        if original_error:
            self.__cause__ = original_error


class CacheInvalidArgumentException(CacheException):
    """Raised when a call is rejected before any network I/O."""

    def __init__(self, message: str, argument: str, key: Optional[str] = None):
        details = {"argument": argument}
        if key:
            details["key"] = key

        super().__init__(
            message=message, error_code="CACHE_INVALID_ARGUMENT", details=details
        )


class CacheEncodingException(CacheException):
    """Raised when a value cannot be serialized for storage."""

    def __init__(self, key: str, value_type: str):
        super().__init__(
            message=f"Failed to encode value of type {value_type} for key: {key}",
            error_code="CACHE_ENCODING_ERROR",
            details={"key": key, "value_type": value_type},
        )


class RedisServerException(CacheException):
    """Raised when a single replica fails to connect, read or write."""

    def __init__(
        self,
        message: str = "Redis server operation failed",
        host: Optional[str] = None,
        port: Optional[int] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
        error_code: str = "REDIS_SERVER_ERROR",
    ):
        details: Dict[str, Any] = {}
        if host:
            details["host"] = host
        if port:
            details["port"] = port
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(message=message, error_code=error_code, details=details)
        self.host = host
        self.port = port
        # Preserve exception context for debugging (exception chaining)
        if original_error:
            self.__cause__ = original_error

    @property
    def server(self) -> str:
        return f"{self.host}:{self.port}"


class RedisOperationTimeoutException(RedisServerException):
    """Raised when a replica does not answer within the per-call timeout."""

    def __init__(
        self,
        host: str,
        port: int,
        timeout_ms: int,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=f"Redis server {host}:{port} timed out after {timeout_ms}ms",
            host=host,
            port=port,
            operation=operation,
            original_error=original_error,
            error_code="REDIS_TIMEOUT_ERROR",
        )
        self.details["timeout_ms"] = timeout_ms


class ReplicationException(CacheException):
    """Raised when one or more replicas failed during a continue-on-error fan-out."""

    def __init__(self, operation: str, key: str, failures: List[RedisServerException]):
        self.failures = list(failures)
        failed_servers = [failure.server for failure in self.failures]

        super().__init__(
            message=(
                f"Replicated {operation} of key '{key}' failed on "
                f"{len(failed_servers)} server(s): {', '.join(failed_servers)}"
            ),
            error_code="CACHE_REPLICATION_ERROR",
            details={
                "operation": operation,
                "key": key,
                "failed_servers": failed_servers,
            },
        )
        if self.failures:
            self.__cause__ = self.failures[0]

    @property
    def failed_servers(self) -> List[str]:
        return self.details["failed_servers"]
