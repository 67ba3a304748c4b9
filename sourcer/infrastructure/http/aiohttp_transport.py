"""HttpTransport implementation on top of aiohttp.

Keeps one pooled ClientSession per transport, created lazily on first use,
and maps connection-level failures onto TransportError.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import aiohttp

from sourcer.domain.interfaces.transport import HttpTransport
from sourcer.domain.models.api import TransportResponse
from sourcer.domain.models.errors import TransportError

logger = logging.getLogger(__name__)

Params = Union[Dict[str, Any], Sequence[Tuple[str, str]]]


class AiohttpTransport(HttpTransport):
    """aiohttp-backed transport with connect/read timeouts."""

    def __init__(
        self,
        connect_timeout: float = 10.0,
        read_timeout: float = 30.0,
        connection_limit: int = 20,
    ):
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.connection_limit = connection_limit
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(connect=self.connect_timeout, sock_read=self.read_timeout)
            connector = aiohttp.TCPConnector(limit=self.connection_limit)
            self._session = aiohttp.ClientSession(timeout=timeout, connector=connector)
            logger.debug(
                f"aiohttp session created: connect={self.connect_timeout}s, read={self.read_timeout}s, "
                f"limit={self.connection_limit}"
            )
        return self._session

    async def send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        params: Optional[Params] = None,
        json_body: Any = None,
        timeout: Optional[float] = None,
    ) -> TransportResponse:
        session = await self._get_session()
        request_kwargs: Dict[str, Any] = {"headers": headers, "params": params or None, "json": json_body}
        if timeout is not None:
            # Omitted otherwise: an explicit None would disable the session timeouts
            request_kwargs["timeout"] = aiohttp.ClientTimeout(
                total=timeout, connect=self.connect_timeout, sock_read=self.read_timeout
            )
        try:
            async with session.request(method, url, **request_kwargs) as response:
                body = await response.text()
                return TransportResponse(status=response.status, headers=dict(response.headers), body=body)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Request timed out: {method} {url}", e) from e
        except aiohttp.ClientError as e:
            raise TransportError(f"{type(e).__name__}: {e}", e) from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
            logger.debug("aiohttp session closed.")
        self._session = None
