"""
Shared configuration management for the Shop Cache Access Layer.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SHOPCACHE_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")
    postgres_dsn: str = Field(default="postgres://localhost:5432/shop")


class CacheSettings(BaseSettings):
    """Cache access layer tuning: key prefixes, TTLs, retries and pool sizes."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SHOPCACHE_CACHE_",
        case_sensitive=False,
        extra="allow"
    )

    # Key prefixes
    shop_key_prefix: str = Field(default="cache:shop:")
    shop_lock_prefix: str = Field(default="lock:shop:")
    shop_type_key: str = Field(default="cache:shop-type")

    # TTLs (seconds)
    shop_ttl_seconds: float = Field(default=30 * 60, gt=0)
    shop_type_ttl_seconds: float = Field(default=30 * 60, gt=0)
    null_ttl_seconds: float = Field(default=2 * 60, gt=0)
    lock_ttl_seconds: float = Field(default=10, gt=0)

    # Mutex retry loop
    max_retries: int = Field(default=10, ge=1)
    retry_backoff_seconds: float = Field(default=0.05, ge=0)

    # Logical-expiry rebuild pool
    rebuild_pool_size: int = Field(default=10, ge=1)
    rebuild_queue_size: int = Field(default=100, ge=1)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"
    cache: CacheSettings = Field(default_factory=CacheSettings)

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
