"""Interface for the outbound HTTP transport.

The transport only moves bytes: it performs one HTTP exchange and reports
connection-level failures. Signing, admission control, caching and retries
all live in the request executor.
"""

import abc
from typing import Any, Dict, Optional, Sequence, Tuple

from ..models.api import TransportResponse


class HttpTransport(abc.ABC):
    """Abstract Base Class for performing a single HTTP request."""

    @abc.abstractmethod
    async def send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        params: Optional[Sequence[Tuple[str, str]]] = None,
        json_body: Any = None,
        timeout: Optional[float] = None,
    ) -> TransportResponse:
        """Performs one HTTP exchange asynchronously.

        Args:
            method: HTTP method.
            url: Absolute URL (base URL + versioned path).
            headers: Request headers, already signed.
            params: Ordered, already flattened query pairs.
            json_body: JSON-serialisable request body, if any.
            timeout: Optional per-call timeout in seconds.

        Returns:
            The response, whatever its status code.

        Raises:
            TransportError: On connect, DNS or timeout failure.
        """
        pass

    async def close(self) -> None:
        """Releases any pooled connections."""
        return None
