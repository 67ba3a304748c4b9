"""Interface for the marketplace API client.

Domain lookup services depend on this contract only; they never build
signed headers or touch the rate limiter or cache themselves.
"""

import abc
from typing import Optional

from ..models.api import ApiResponse
from ..models.common import RequestOptions


class ApiClient(abc.ABC):
    """Abstract Base Class for issuing marketplace API calls."""

    @abc.abstractmethod
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
        """Performs one logical API call (retries included) asynchronously.

        Args:
            method: HTTP method.
            path: Versioned API path.
            options: Query params, JSON body and extra headers.
            use_cache: Whether the call may be served from the cache.
            timeout: Optional per-attempt timeout in seconds.
            deadline: Optional overall deadline in seconds.

        Returns:
            An ApiResponse. Failures never raise.
        """
        pass
