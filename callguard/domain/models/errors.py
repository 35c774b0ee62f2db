"""Error taxonomy for calls mediated by the gateway.

Every failure surfaced to a caller is a GatewayError tagged with an
ErrorKind, the number of retries that were attempted and the original cause.
"""

from enum import Enum
from typing import Any, Optional

from callguard.domain.models.common import ErrorCode


class ErrorKind(str, Enum):
    """Closed set of failure kinds."""

    RATE_LIMITED = "RateLimited"
    UNAUTHORIZED = "Unauthorized"
    FORBIDDEN = "Forbidden"
    VALIDATION = "Validation"
    INPUT_TOO_LARGE = "InputTooLarge"
    SERVER_ERROR = "ServerError"
    NETWORK_ERROR = "NetworkError"
    TIMEOUT = "Timeout"
    CIRCUIT_OPEN = "CircuitOpen"
    QUEUE_FULL = "QueueFull"
    UNKNOWN = "Unknown"


# Kinds retried with jittered backoff
TRANSIENT_KINDS = frozenset({
    ErrorKind.RATE_LIMITED,
    ErrorKind.SERVER_ERROR,
    ErrorKind.NETWORK_ERROR,
    ErrorKind.TIMEOUT,
})

# Kinds counted by the circuit breaker
BREAKER_KINDS = frozenset({
    ErrorKind.SERVER_ERROR,
    ErrorKind.NETWORK_ERROR,
    ErrorKind.TIMEOUT,
})


class GatewayError(Exception):
    """Failure surfaced by the gateway to its caller."""

    default_kind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        status: Optional[int] = None,
        retries_attempted: int = 0,
        cause: Optional[BaseException] = None,
        upstream: Optional[str] = None,
    ):
        self.kind = kind or self.default_kind
        self.status = status
        self.retries_attempted = retries_attempted
        self.cause = cause
        self.upstream = upstream
        super().__init__(message)

    def to_dict(self) -> dict:
        """Structured view for caller-side diagnostics."""
        return {
            "kind": self.kind.value,
            "status": self.status,
            "retries_attempted": self.retries_attempted,
            "cause": repr(self.cause) if self.cause is not None else None,
            "upstream": self.upstream,
        }

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value}, status={self.status}, "
            f"retries_attempted={self.retries_attempted}, message={str(self)!r})"
        )


class CircuitOpenError(GatewayError):
    """Raised without touching the transport while the breaker is open."""

    default_kind = ErrorKind.CIRCUIT_OPEN


class QueueFullError(GatewayError):
    """Raised synchronously when the request queue is at capacity."""

    default_kind = ErrorKind.QUEUE_FULL


class QueueTimeoutError(GatewayError):
    """Raised when an entry waits in the queue longer than its timeout."""

    default_kind = ErrorKind.TIMEOUT


class TransportError(Exception):
    """Raised by a transport when no HTTP response was obtained."""

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        self.code = code
        super().__init__(message)


class UpstreamResponseError(Exception):
    """Wraps a non-success HTTP response so it can serve as a cause."""

    def __init__(self, response: Any):
        self.response = response
        status = getattr(response, "status", None)
        super().__init__(f"Upstream responded with status {status}")
