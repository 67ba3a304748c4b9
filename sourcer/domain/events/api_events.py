"""Domain Events related to marketplace API calls and resilience.

Examples include events for when calls are rejected, retried, served from
cache, fail, or succeed.
"""

from dataclasses import dataclass, field
import time
from typing import Any, Callable, Optional


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


EventHandler = Callable[[DomainEvent], None]

# --- Specific API Events ---

@dataclass
class ApiCallInitiated(DomainEvent):
    """Event triggered when a network attempt is about to be made."""
    method: str
    path: str
    attempt_number: int
    timestamp: float = field(default_factory=time.time)

@dataclass
class ApiCallSucceeded(DomainEvent):
    """Event triggered when an API call succeeds."""
    method: str
    path: str
    latency_ms: float
    attempts: int
    response_summary: Optional[Any] = None  # e.g., server rate limit headers
    timestamp: float = field(default_factory=time.time)

@dataclass
class ApiCallFailed(DomainEvent):
    """Event triggered when an API call fails definitively (after retries)."""
    method: str
    path: str
    code: str
    error_type: str
    error_message: str
    timestamp: float = field(default_factory=time.time)

@dataclass
class ApiCallRejected(DomainEvent):
    """Event triggered when a call fails fast before any network attempt."""
    method: str
    path: str
    reason: str  # 'credentials_missing', 'rate_limited'
    timestamp: float = field(default_factory=time.time)

@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed API call."""
    method: str
    path: str
    attempt_number: int
    max_attempts: int
    delay_seconds: float
    error_message: str
    timestamp: float = field(default_factory=time.time)

@dataclass
class CacheHit(DomainEvent):
    """Event triggered when a call is answered from the response cache."""
    method: str
    path: str
    cache_key: str
    timestamp: float = field(default_factory=time.time)
