"""
Replicated Cache Configuration

Configuration management with environment variable support.
Implements secure defaults and validation for all settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import List
from functools import lru_cache


class Settings(BaseSettings):
    """Client settings with validation and sane defaults."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Replica set
    REPLICACHE_SERVERS: str = Field(
        default="localhost:6379",
        description="Redis replicas as comma-separated host:port pairs",
    )

    # Per-call defaults
    REPLICACHE_TIMEOUT_MS: int = Field(
        default=1000,
        ge=1,
        le=600000,
        description="Default per-server timeout in milliseconds",
    )
    REPLICACHE_COMPRESS: bool = Field(
        default=True, description="Gzip payloads before storing them"
    )
    REPLICACHE_ERROR_POLICY: str = Field(
        default="abort",
        description="Fan-out reaction to a failing replica (abort|continue)",
    )
    REPLICACHE_POOL_CONNECTIONS: bool = Field(
        default=False,
        description="Keep a connection pool per replica instead of connecting per call",
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_JSON: bool = Field(default=False, description="Render logs as JSON")

    @field_validator("REPLICACHE_SERVERS")
    @classmethod
    def validate_servers(cls, v):
        """Validate that at least one server is configured."""
        if not any(part.strip() for part in v.split(",")):
            raise ValueError("REPLICACHE_SERVERS must list at least one host:port")
        return v

    @field_validator("REPLICACHE_ERROR_POLICY")
    @classmethod
    def validate_error_policy(cls, v):
        """Validate fan-out error policy."""
        allowed = ["abort", "continue"]
        if v.lower() not in allowed:
            raise ValueError(f"REPLICACHE_ERROR_POLICY must be one of: {allowed}")
        return v.lower()

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @property
    def servers_list(self) -> List[str]:
        """Get replica addresses as list."""
        return [
            server.strip()
            for server in self.REPLICACHE_SERVERS.split(",")
            if server.strip()
        ]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
