"""Interface for the network transport used by the gateway.

The transport performs the actual request (TLS, pooling, wire encoding).
The gateway decides whether, when and how often to call it.
"""

import abc
from typing import Dict

from callguard.domain.models.calls import TransportResponse
from callguard.domain.models.common import JsonBody


class Transport(abc.ABC):
    """Abstract Base Class for sending one HTTP request."""

    @abc.abstractmethod
    async def send(
        self,
        url: str,
        body: JsonBody,
        headers: Dict[str, str],
        timeout: float,
    ) -> TransportResponse:
        """Sends a JSON body and returns the response, whatever its status.

        Args:
            url: Endpoint to post to.
            body: JSON-serialisable request body.
            headers: Request headers (auth, versioning).
            timeout: Total time allowed for the request, in seconds.

        Returns:
            The upstream response, including non-2xx responses.

        Raises:
            TransportError: If no response could be obtained.
        """
        pass

    async def close(self) -> None:
        """Releases any pooled resources."""
        pass
