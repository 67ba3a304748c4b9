"""Typed configuration consumed by the marketplace API client.

Built once at startup (see `settings.build_client_config`) and read-only
afterwards.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from sourcer.domain.models.api import Credentials
from sourcer.domain.models.errors import ConfigurationValueError

DEFAULT_BASE_URL = "https://api-gateway.coupang.com"
DEFAULT_CACHE_DIR = Path.home() / ".sourcer" / "cache"
CACHE_BACKENDS = ("memory", "disk")


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 10.0
    read: float = 30.0
    deadline: Optional[float] = None  # Overall per-operation deadline, seconds


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    delay_ms: float = 1000.0
    multiplier: float = 2.0

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0


@dataclass(frozen=True)
class CacheConfig:
    enabled: bool = True
    ttl_seconds: int = 3600
    key_prefix: str = "coupang_api:"
    backend: str = "memory"
    directory: Path = DEFAULT_CACHE_DIR


@dataclass(frozen=True)
class RateLimitConfig:
    enabled: bool = True
    max_requests: int = 100
    window_seconds: float = 60.0


@dataclass(frozen=True)
class ClientConfig:
    """Everything the request executor and its collaborators need."""
    credentials: Credentials = field(default_factory=Credentials)
    base_url: str = DEFAULT_BASE_URL
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    def __post_init__(self):
        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationValueError(f"baseUrl must be an http(s) URL, got '{self.base_url}'")
        if self.retry.max_attempts < 1:
            raise ConfigurationValueError("retry.max_attempts must be at least 1")
        if self.retry.delay_ms < 0 or self.retry.multiplier < 1:
            raise ConfigurationValueError("retry.delay_ms must be >= 0 and retry.multiplier >= 1")
        if self.timeouts.connect <= 0 or self.timeouts.read <= 0:
            raise ConfigurationValueError("timeouts must be positive")
        if self.timeouts.deadline is not None and self.timeouts.deadline <= 0:
            raise ConfigurationValueError("timeouts.deadline must be positive when set")
        if self.cache.ttl_seconds <= 0:
            raise ConfigurationValueError("cache.ttl_seconds must be positive")
        if self.cache.backend not in CACHE_BACKENDS:
            raise ConfigurationValueError(f"cache.backend must be one of {CACHE_BACKENDS}, got '{self.cache.backend}'")
        if self.rate_limit.max_requests < 1 or self.rate_limit.window_seconds <= 0:
            raise ConfigurationValueError("rate_limit.max_requests and rate_limit.window_seconds must be positive")
