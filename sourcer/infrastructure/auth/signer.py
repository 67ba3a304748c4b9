"""HMAC-SHA256 request signing for the marketplace API.

Builds the signed message from the request shape, produces the
`Authorization` and `X-Timestamp` headers, and performs the (shallow)
response signature check.
"""

import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

from sourcer.domain.interfaces.cache import CacheStore, MISS
from sourcer.domain.models.api import Credentials, SignedRequest
from sourcer.domain.models.common import ApiPath, CacheKey, HttpMethod, QueryParams, Signature, Timestamp
from sourcer.infrastructure.cache.caching_service import MemoryCacheStore, options_digest

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
SIGNATURE_CACHE_TTL_SECONDS = 60
SIGNATURE_CACHE_PREFIX = "coupang_signature:"
RESPONSE_SIGNATURE_HEADER = "X-Coupang-Response-Signature"
# Existing wire format: the signature travels in the field named 'signed-date'.
AUTHORIZATION_FORMAT = "CEA algorithm=HmacSHA256, access-key={access_key}, signed-date={signature}"


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def _flatten(prefix: str, value: Any, out: List[Tuple[str, str]]) -> None:
    if value is None:
        return
    if isinstance(value, Mapping):
        for sub_key, sub_value in value.items():
            _flatten(f"{prefix}[{sub_key}]", sub_value, out)
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            _flatten(f"{prefix}[{index}]", item, out)
    else:
        out.append((prefix, _scalar(value)))


def flatten_params(params: Optional[QueryParams]) -> List[Tuple[str, str]]:
    """Flattens parameters into ordered (key, value) pairs, sorted by top-level key.

    Nested mappings and lists use bracket notation (`filter[brand]=x`,
    `ids[0]=1`); None values are dropped. The same pairs are signed and sent.
    """
    pairs: List[Tuple[str, str]] = []
    for key in sorted(params or {}, key=str):
        _flatten(str(key), params[key], pairs)
    return pairs


def build_signature_message(method: str, path: str, timestamp: str, params: Optional[QueryParams] = None) -> str:
    """Joins METHOD, path, timestamp and (if any) the sorted query string with newlines."""
    parts = [method.upper(), path, timestamp]
    pairs = flatten_params(params)
    if pairs:
        parts.append(urlencode(pairs))
    return "\n".join(parts)


def compute_signature(
    method: str,
    path: str,
    timestamp: str,
    params: Optional[QueryParams],
    secret_key: str,
) -> Signature:
    """Pure function: hex(HMAC-SHA256(message, secret_key))."""
    message = build_signature_message(method, path, timestamp, params)
    digest = hmac.new(secret_key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()
    return Signature(digest)


class AuthSigner:
    """Signs outbound requests with the configured credentials."""

    def __init__(
        self,
        credentials: Credentials,
        signature_cache: Optional[CacheStore] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """Initializes the signer.

        Args:
            credentials: The access/secret key pair.
            signature_cache: Store memoising signatures for 60 seconds
                (a private in-memory store if None).
            now: Clock returning an aware UTC datetime.
        """
        self.credentials = credentials
        self._signature_cache = signature_cache if signature_cache is not None else MemoryCacheStore()
        self._now = now
        self._last_timestamp: Optional[str] = None

    def is_configured(self) -> bool:
        return self.credentials.is_configured()

    def timestamp(self) -> Timestamp:
        """Current UTC time, ISO-8601 with second precision and a trailing Z."""
        return Timestamp(self._now().astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT))

    def authorization_header(self, signature: str) -> str:
        return AUTHORIZATION_FORMAT.format(access_key=self.credentials.access_key, signature=signature)

    def _signature_cache_key(self, method: str, path: str, timestamp: str, params: Optional[QueryParams]) -> CacheKey:
        key = f"{SIGNATURE_CACHE_PREFIX}{method.upper()}:{path}:{timestamp}"
        if params:
            key += ':' + options_digest(params)
        return CacheKey(key)

    async def _signature(self, method: str, path: str, timestamp: str, params: Optional[QueryParams]) -> Signature:
        cache_key = self._signature_cache_key(method, path, timestamp, params)
        cached = await self._signature_cache.get(cache_key)
        if cached is not MISS:
            logger.debug(f"Using cached signature for {method.upper()} {path} @ {timestamp}")
            return cached

        signature = compute_signature(method, path, timestamp, params, self.credentials.secret_key)
        if timestamp != self._last_timestamp:
            # Memo keys carry the timestamp, so entries from past seconds are never read again
            self._last_timestamp = timestamp
            removed = await self._signature_cache.sweep_expired()
            if removed:
                logger.debug(f"Swept {removed} expired signatures.")
        await self._signature_cache.set(cache_key, signature, SIGNATURE_CACHE_TTL_SECONDS)
        logger.debug(f"Generated new signature for {method.upper()} {path} @ {timestamp}")
        return signature

    async def sign(self, method: str, path: str, params: Optional[QueryParams] = None) -> SignedRequest:
        """Signs a request shape at the current timestamp."""
        timestamp = self.timestamp()
        signature = await self._signature(method, path, timestamp, params)
        headers = {
            "Authorization": self.authorization_header(signature),
            "X-Timestamp": timestamp,
        }
        return SignedRequest(
            method=HttpMethod(method.upper()),
            path=ApiPath(path),
            timestamp=timestamp,
            sorted_query=tuple(flatten_params(params)),
            signature=signature,
            headers=headers,
        )

    async def generate_headers(self, method: str, path: str, params: Optional[QueryParams] = None) -> Dict[str, str]:
        """Returns the `Authorization` and `X-Timestamp` headers for a request."""
        signed = await self.sign(method, path, params)
        return dict(signed.headers)

    def validate_response(self, headers: Mapping[str, str]) -> bool:
        """Checks that the response carries a signature header.

        Only presence is checked; the value is not verified cryptographically.
        """
        wanted = RESPONSE_SIGNATURE_HEADER.lower()
        return any(name.lower() == wanted for name in headers)
