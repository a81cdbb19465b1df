"""
Centralized configuration for the traffic-source service.

Loads all environment variables and provides typed configuration objects.
No hardcoded secrets - all sensitive values must come from environment.
"""

import os
from typing import Optional
from dataclasses import dataclass, field

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class CacheConfig:
    """In-process cache of parsed snapshot CSVs."""

    max_entries: int = field(default_factory=lambda: int(
        os.getenv("SNAPSHOT_CACHE_MAX_ENTRIES", "20")))


@dataclass
class StorageConfig:
    """Byte source holding the uploaded CSV exports."""

    backend: str = field(default_factory=lambda: os.getenv(
        "STORAGE_BACKEND", "local").lower())
    base_url: Optional[str] = field(
        default_factory=lambda: os.getenv("STORAGE_BASE_URL"))
    local_root: str = field(default_factory=lambda: os.getenv(
        "STORAGE_LOCAL_ROOT", "./data/snapshots"))
    auth_token: Optional[str] = field(
        default_factory=lambda: os.getenv("STORAGE_AUTH_TOKEN"))
    timeout: float = field(default_factory=lambda: float(
        os.getenv("STORAGE_TIMEOUT", "10")))


@dataclass
class RedisConfig:
    """Redis connection configuration for the shared parsed-result tier."""

    enabled: bool = field(default_factory=lambda: os.getenv(
        "REDIS_ENABLED", "false").lower() == "true")
    host: str = field(default_factory=lambda: os.getenv(
        "REDIS_HOST", "localhost"))
    port: int = field(default_factory=lambda: int(
        os.getenv("REDIS_PORT", "6379")))
    password: Optional[str] = field(
        default_factory=lambda: os.getenv("REDIS_PASSWORD"))
    db: int = field(default_factory=lambda: int(os.getenv("REDIS_DB", "0")))
    ssl: bool = field(default_factory=lambda: os.getenv(
        "REDIS_SSL", "false").lower() == "true")
    key_prefix: str = field(default_factory=lambda: os.getenv(
        "REDIS_KEY_PREFIX", "traffic"))
    # 0 keeps entries until Redis evicts them; parsed snapshots never change
    parsed_ttl: int = field(default_factory=lambda: int(
        os.getenv("REDIS_PARSED_TTL", "0")))

    @property
    def url(self) -> str:
        """Build Redis connection URL."""
        protocol = "rediss" if self.ssl else "redis"
        auth = f":{self.password}@" if self.password else ""
        return f"{protocol}://{auth}{self.host}:{self.port}/{self.db}"


@dataclass
class ServerConfig:
    """Server runtime configuration."""

    host: str = field(default_factory=lambda: os.getenv(
        "SERVER_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(
        os.getenv("SERVER_PORT", "8001")))
    debug: bool = field(default_factory=lambda: os.getenv(
        "DEBUG", "false").lower() == "true")
    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    cors_origins: list[str] = field(
        default_factory=lambda: os.getenv("CORS_ORIGINS", "*").split(",")
    )


@dataclass
class Config:
    """
    Root configuration object aggregating all config sections.

    Usage:
        config = Config()
        max_entries = config.cache.max_entries
        backend = config.storage.backend
    """

    cache: CacheConfig = field(default_factory=CacheConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of warnings/errors.

        Returns:
            List of validation messages (empty if all valid)
        """
        warnings = []

        if self.cache.max_entries < 1:
            warnings.append("SNAPSHOT_CACHE_MAX_ENTRIES must be at least 1")

        if self.storage.backend not in ("http", "local"):
            warnings.append(
                f"Unknown STORAGE_BACKEND '{self.storage.backend}' - expected http or local"
            )

        if self.storage.backend == "http" and not self.storage.base_url:
            warnings.append("STORAGE_BASE_URL not set - snapshot downloads will fail")

        if self.redis.enabled and not self.redis.password and not self.server.debug:
            warnings.append("REDIS_PASSWORD not set in production mode")

        return warnings


# Global config instance - import and use this
config = Config()
