"""Defines common Value Objects used across different domain contexts.

These objects represent simple values like cache keys, HTTP methods, query
parameters and response codes, keeping the wire-level vocabulary consistent.
"""

from typing import NewType, Any, Dict, TypedDict, Optional

# === Request Context ===
HttpMethod = NewType("HttpMethod", str)        # 'GET', 'POST', ...
ApiPath = NewType("ApiPath", str)              # Versioned path, e.g. '/v2/keywords/search'
QueryParams = Dict[str, Any]                   # Query (or body) parameters taking part in the signature
Signature = NewType("Signature", str)          # Hex-encoded HMAC-SHA256
Timestamp = NewType("Timestamp", str)          # ISO-8601 UTC, second precision, e.g. '2024-01-01T00:00:00Z'

# === Caching Context ===
CacheKey = NewType("CacheKey", str)            # Unique key for a cache entry

# === Response Context ===
ResponseCode = NewType("ResponseCode", str)    # '200', '401', '429', ...


class RequestOptions(TypedDict, total=False):
    """Options accepted by the request executor for a single call."""
    query: QueryParams
    json: Any
    headers: Dict[str, str]


class RateLimitSnapshot(TypedDict):
    """Server-reported rate limit state, read from response headers for logging."""
    remaining: Optional[str]
    reset: Optional[str]
