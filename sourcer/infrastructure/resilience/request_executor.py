"""Service for executing marketplace API calls.

Orchestrates, per call: credential check, rate-limit admission, cache
lookup, signing, the HTTP exchange with exponential backoff on transient
failures, response normalisation and cache write-back. Every path ends in
an ApiResponse; no exception escapes `request`.
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

from sourcer.domain.events.api_events import (
    DomainEvent, EventHandler, ApiCallInitiated, ApiCallSucceeded, ApiCallFailed,
    ApiCallRejected, RetryScheduled, CacheHit,
)
from sourcer.domain.interfaces.api_client import ApiClient
from sourcer.domain.interfaces.cache import MISS
from sourcer.domain.interfaces.transport import HttpTransport
from sourcer.domain.models.api import ApiResponse, ErrorKind, TransportResponse
from sourcer.domain.models.common import CacheKey, QueryParams, RateLimitSnapshot, RequestOptions
from sourcer.domain.models.errors import SignatureValidationError, TransportError
from sourcer.infrastructure.auth.signer import AuthSigner, flatten_params
from sourcer.infrastructure.cache.caching_service import ResponseCache, create_cache_store
from sourcer.infrastructure.config.client_config import ClientConfig, RetryConfig
from sourcer.infrastructure.resilience.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}
RESERVED_OPTION_KEYS = ("query", "json", "headers")

# Response codes for outcomes that never reach (or never come back from) the server
CODE_UNAUTHORIZED = "401"
CODE_RATE_LIMITED = "429"
CODE_NETWORK_ERROR = "500"
CODE_BAD_SIGNATURE = "502"
CODE_TIMEOUT = "408"

MSG_CREDENTIALS_MISSING = "API credentials are not configured."
MSG_RATE_LIMITED = "Local request rate limit exceeded."
MSG_NETWORK_ERROR = "A network error occurred."
MSG_BAD_SIGNATURE = "Response signature is missing or invalid."
MSG_UNKNOWN_ERROR = "An unknown error occurred."
MSG_TIMEOUT = "Request deadline exceeded."


class RequestExecutor(ApiClient):
    """Signed, rate-limited, cached, retrying marketplace API client."""

    def __init__(
        self,
        transport: HttpTransport,
        signer: AuthSigner,
        base_url: str,
        rate_limiter: Optional[RateLimiter] = None,
        cache: Optional[ResponseCache] = None,
        retry: RetryConfig = RetryConfig(),
        cache_enabled: bool = True,
        cache_ttl: Optional[float] = None,
        request_timeout: Optional[float] = None,
        deadline: Optional[float] = None,
        event_handler: Optional[EventHandler] = None,
    ):
        """Initializes the RequestExecutor.

        Args:
            transport: Performs the HTTP exchange.
            signer: Produces the authorization headers.
            base_url: Marketplace base URL, without a trailing slash.
            rate_limiter: Local admission control (none means unlimited).
            cache: Response cache (none disables caching).
            retry: Attempt count and backoff policy.
            cache_enabled: Global cache switch.
            cache_ttl: TTL for stored responses (cache default if None).
            request_timeout: Default per-attempt timeout in seconds.
            deadline: Default overall deadline per call in seconds.
            event_handler: Optional callback receiving domain events.
        """
        self.transport = transport
        self.signer = signer
        self.base_url = base_url.rstrip("/")
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.retry = retry
        self.cache_enabled = cache_enabled and cache is not None
        self.cache_ttl = cache_ttl
        self.request_timeout = request_timeout
        self.deadline = deadline
        self.event_handler = event_handler

        logger.info(
            f"RequestExecutor initialized: base_url={self.base_url}, max_attempts={retry.max_attempts}, "
            f"delay={retry.delay_ms}ms, multiplier={retry.multiplier}, cache_enabled={self.cache_enabled}, "
            f"rate_limited={rate_limiter is not None and rate_limiter.enabled}"
        )

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        transport: Optional[HttpTransport] = None,
        event_handler: Optional[EventHandler] = None,
    ) -> "RequestExecutor":
        """Wires an executor, with its own limiter and cache, from a ClientConfig."""
        if transport is None:
            # Imported here so tests with a fake transport never touch aiohttp
            from sourcer.infrastructure.http.aiohttp_transport import AiohttpTransport
            transport = AiohttpTransport(connect_timeout=config.timeouts.connect, read_timeout=config.timeouts.read)

        cache = None
        if config.cache.enabled:
            store = create_cache_store(config.cache.backend, config.cache.directory)
            cache = ResponseCache(store, default_ttl=config.cache.ttl_seconds, key_prefix=config.cache.key_prefix)

        return cls(
            transport=transport,
            signer=AuthSigner(config.credentials),
            base_url=config.base_url,
            rate_limiter=RateLimiter(
                max_requests=config.rate_limit.max_requests,
                time_window=config.rate_limit.window_seconds,
                enabled=config.rate_limit.enabled,
            ),
            cache=cache,
            retry=config.retry,
            cache_enabled=config.cache.enabled,
            cache_ttl=config.cache.ttl_seconds,
            deadline=config.timeouts.deadline,
            event_handler=event_handler,
        )

    # --- Events ---

    def _dispatch(self, event: DomainEvent) -> None:
        logger.debug(f"EVENT: {event}")
        if self.event_handler is None:
            return
        try:
            self.event_handler(event)
        except Exception as e:
            logger.error(f"Event handler failed for {type(event).__name__}: {e}", exc_info=True)

    # --- Request shaping ---

    @staticmethod
    def _split_options(options: RequestOptions) -> Tuple[QueryParams, Any, Dict[str, str]]:
        """Separates query params, JSON body and extra headers.

        Top-level keys other than query/json/headers are taken as query params.
        """
        query: QueryParams = {k: v for k, v in options.items() if k not in RESERVED_OPTION_KEYS}
        query.update(options.get("query") or {})
        return query, options.get("json"), dict(options.get("headers") or {})

    @staticmethod
    def _signing_params(query: QueryParams, json_body: Any) -> QueryParams:
        params = dict(query)
        if isinstance(json_body, dict):
            params.update(json_body)
        return params

    # --- Response handling ---

    @staticmethod
    def _parse_body(body: str) -> Any:
        if not body:
            return None
        try:
            return json.loads(body)
        except ValueError:
            return None

    @staticmethod
    def _server_message(parsed: Any) -> Optional[str]:
        if isinstance(parsed, dict) and parsed.get("message"):
            return str(parsed["message"])
        return None

    def _observe_rate_limit(self, response: TransportResponse) -> Optional[RateLimitSnapshot]:
        """Logs server-reported rate limit headers. Enforcement stays local."""
        remaining = response.header("X-RateLimit-Remaining")
        if remaining is None:
            return None
        snapshot = RateLimitSnapshot(remaining=remaining, reset=response.header("X-RateLimit-Reset"))
        logger.debug(f"Server rate limit: remaining={snapshot['remaining']}, reset={snapshot['reset'] or 'unknown'}")
        return snapshot

    def _success_response(self, response: TransportResponse) -> ApiResponse:
        if not self.signer.validate_response(response.headers):
            raise SignatureValidationError(MSG_BAD_SIGNATURE)
        parsed = self._parse_body(response.body)
        if parsed is None and response.body:
            logger.warning(f"Response body is not valid JSON (status {response.status}); returning raw text.")
            return ApiResponse.ok(data=None, raw=response.body)
        if isinstance(parsed, dict):
            data = parsed["data"] if "data" in parsed else parsed
            return ApiResponse.ok(data=data, message=self._server_message(parsed), raw=parsed)
        return ApiResponse.ok(data=parsed, raw=parsed)

    def _error_response(self, response: TransportResponse) -> ApiResponse:
        parsed = self._parse_body(response.body)
        raw = parsed if parsed is not None else (response.body or None)
        kind = ErrorKind.SERVER if response.status >= 500 else ErrorKind.CLIENT
        message = self._server_message(parsed) or MSG_UNKNOWN_ERROR
        return ApiResponse.error(str(response.status), message, raw=raw, kind=kind)

    def _classify(self, response: TransportResponse) -> ApiResponse:
        if 200 <= response.status < 300:
            try:
                return self._success_response(response)
            except SignatureValidationError as e:
                logger.error(f"Rejecting response with status {response.status}: {e}")
                return ApiResponse.error(
                    CODE_BAD_SIGNATURE, str(e), raw=self._parse_body(response.body), kind=ErrorKind.SIGNATURE
                )
        return self._error_response(response)

    # --- Cache access ---

    async def _cache_lookup(self, key: CacheKey) -> Any:
        """Reads the cache; a failing store counts as a miss."""
        try:
            return await self.cache.get(key)
        except Exception as e:
            logger.error(f"Cache read failed for key {key}; treating as a miss: {e}", exc_info=True)
            return MISS

    async def _cache_store(self, key: CacheKey, response: ApiResponse) -> None:
        try:
            await self.cache.set(key, response, self.cache_ttl)
        except Exception as e:
            logger.error(f"Cache write failed for key {key}; response not cached: {e}", exc_info=True)

    # --- Execution ---

    async def _execute(self, method: str, path: str, options: RequestOptions, timeout: Optional[float]) -> ApiResponse:
        """Runs the attempt loop. Returns on success, non-retryable failure or exhaustion."""
        query, json_body, extra_headers = self._split_options(options)
        signing_params = self._signing_params(query, json_body)
        url = f"{self.base_url}{path}"
        max_attempts = self.retry.max_attempts
        delay = self.retry.delay_seconds
        outcome = ApiResponse.error(CODE_NETWORK_ERROR, MSG_NETWORK_ERROR, kind=ErrorKind.TRANSPORT)

        for attempt in range(1, max_attempts + 1):
            self._dispatch(ApiCallInitiated(method=method, path=path, attempt_number=attempt))
            start_time = time.perf_counter()
            snapshot = None
            try:
                signed = await self.signer.sign(method, path, signing_params)
                headers = {**DEFAULT_HEADERS, **extra_headers, **signed.headers}
                response = await self.transport.send(
                    method,
                    url,
                    headers=headers,
                    params=flatten_params(query),
                    json_body=json_body,
                    timeout=timeout,
                )
            except TransportError as e:
                outcome = ApiResponse.error(CODE_NETWORK_ERROR, f"{MSG_NETWORK_ERROR} {e}", kind=ErrorKind.TRANSPORT)
            except Exception as e:
                logger.error(f"Unexpected error calling {method} {path} on attempt {attempt}: {e}", exc_info=True)
                outcome = ApiResponse.error(CODE_NETWORK_ERROR, f"{MSG_NETWORK_ERROR} {e}", kind=ErrorKind.TRANSPORT)
            else:
                snapshot = self._observe_rate_limit(response)
                outcome = self._classify(response)

            if outcome.success:
                latency_ms = (time.perf_counter() - start_time) * 1000
                self._dispatch(ApiCallSucceeded(
                    method=method, path=path, latency_ms=latency_ms, attempts=attempt, response_summary=snapshot
                ))
                return outcome

            if not outcome.retryable:
                logger.error(f"Non-retryable error calling {method} {path} on attempt {attempt}: [{outcome.code}] {outcome.message}")
                return outcome

            if attempt < max_attempts:
                logger.warning(
                    f"Retryable error calling {method} {path} on attempt {attempt}/{max_attempts}: "
                    f"[{outcome.code}] {outcome.message}. Waiting {delay:.2f}s..."
                )
                self._dispatch(RetryScheduled(
                    method=method, path=path, attempt_number=attempt, max_attempts=max_attempts,
                    delay_seconds=delay, error_message=outcome.message or "",
                ))
                await asyncio.sleep(delay)
                delay *= self.retry.multiplier
            else:
                logger.error(f"Max attempts ({max_attempts}) reached for {method} {path}. Last error: [{outcome.code}] {outcome.message}")

        return outcome

    async def request(
        self,
        method: str,
        path: str,
        options: Optional[RequestOptions] = None,
        *,
        use_cache: bool = True,
        timeout: Optional[float] = None,
        deadline: Optional[float] = None,
    ) -> ApiResponse:
        """Performs a marketplace API call.

        Args:
            method: HTTP method.
            path: Versioned API path, e.g. '/v2/keywords/search'.
            options: `query`, `json` and `headers`; other keys are query params.
            use_cache: Whether this call may be answered from / stored in the cache.
            timeout: Per-attempt timeout in seconds (executor default if None).
            deadline: Overall deadline in seconds covering every attempt and
                backoff wait (executor default if None).

        Returns:
            An ApiResponse; failures are reported through `success`/`code`.
        """
        method = method.upper()
        options = dict(options or {})

        if not self.signer.is_configured():
            logger.error(f"Refusing {method} {path}: credentials are not configured.")
            self._dispatch(ApiCallRejected(method=method, path=path, reason="credentials_missing"))
            return ApiResponse.error(CODE_UNAUTHORIZED, MSG_CREDENTIALS_MISSING, kind=ErrorKind.CONFIGURATION)

        if self.rate_limiter is not None and not await self.rate_limiter.try_admit():
            logger.warning(f"Rejecting {method} {path}: local rate limit exceeded.")
            self._dispatch(ApiCallRejected(method=method, path=path, reason="rate_limited"))
            return ApiResponse.error(CODE_RATE_LIMITED, MSG_RATE_LIMITED, kind=ErrorKind.RATE_LIMITED)

        cache_key = None
        if self.cache_enabled and use_cache:
            cache_key = self.cache.make_key(method, path, options)
            cached = await self._cache_lookup(cache_key)
            if cached is not MISS:
                logger.debug(f"Using cached response for {method} {path}")
                self._dispatch(CacheHit(method=method, path=path, cache_key=cache_key))
                return cached

        effective_timeout = timeout if timeout is not None else self.request_timeout
        effective_deadline = deadline if deadline is not None else self.deadline
        try:
            if effective_deadline is not None:
                response = await asyncio.wait_for(
                    self._execute(method, path, options, effective_timeout), timeout=effective_deadline
                )
            else:
                response = await self._execute(method, path, options, effective_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Deadline of {effective_deadline}s exceeded for {method} {path}; retries aborted.")
            response = ApiResponse.error(CODE_TIMEOUT, MSG_TIMEOUT, kind=ErrorKind.TIMEOUT)

        if response.success:
            if cache_key is not None:
                await self._cache_store(cache_key, response)
        else:
            self._dispatch(ApiCallFailed(
                method=method, path=path, code=response.code,
                error_type=response.error_kind.value if response.error_kind else "unknown",
                error_message=response.message or "",
            ))
        return response

    async def clear_cache(self) -> None:
        """Drops every cached response, when caching is enabled."""
        if self.cache_enabled:
            await self.cache.clear()

    async def close(self) -> None:
        await self.transport.close()
        if self.cache is not None:
            await self.cache.close()

    async def __aenter__(self) -> "RequestExecutor":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
