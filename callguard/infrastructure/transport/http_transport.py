"""Concrete implementation of the Transport interface using aiohttp.

Posts JSON bodies and returns every HTTP response, whatever its status.
Failures that produce no response are raised as TransportError with an
errno-style code so the gateway can classify them.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from callguard.domain.interfaces.transport import Transport
from callguard.domain.models.calls import TransportResponse
from callguard.domain.models.errors import TransportError

logger = logging.getLogger(__name__)


class AiohttpTransport(Transport):
    """HTTP transport sharing one aiohttp session across requests."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        """Initializes the transport.

        Args:
            session: Optional externally managed session. If None, one is
                created lazily and closed by close().
        """
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this transport created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    @staticmethod
    def _decode(raw: str) -> Any:
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    async def send(
        self,
        url: str,
        body: Dict[str, Any],
        headers: Dict[str, str],
        timeout: float,
    ) -> TransportResponse:
        session = await self._get_session()
        request_headers = {"Content-Type": "application/json", **headers}
        try:
            async with session.post(
                url,
                json=body,
                headers=request_headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                raw = await response.text()
                return TransportResponse(
                    status=response.status,
                    body=self._decode(raw),
                    headers=dict(response.headers),
                )
        except asyncio.TimeoutError as e:
            logger.warning(f"Request to {url} timed out after {timeout}s")
            raise TransportError(f"Request timed out after {timeout}s", code="ETIMEDOUT") from e
        except aiohttp.ClientConnectorError as e:
            logger.warning(f"Connection to {url} failed: {e}")
            raise TransportError(f"Connection failed: {e}", code="ECONNREFUSED") from e
        except aiohttp.ServerDisconnectedError as e:
            logger.warning(f"Server disconnected during request to {url}: {e}")
            raise TransportError(f"Server disconnected: {e}", code="ECONNRESET") from e
        except aiohttp.ClientError as e:
            logger.warning(f"HTTP client error calling {url}: {type(e).__name__} - {e}")
            raise TransportError(f"HTTP client error: {e}", code="ECONNRESET") from e
