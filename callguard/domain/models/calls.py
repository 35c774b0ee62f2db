"""Domain models describing calls, transport outcomes and gateway state."""

import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional

from callguard.domain.interfaces.payload import RequestPayload
from callguard.domain.models.common import Headers, RequestID, UpstreamName


def new_request_id(prefix: str = "call") -> RequestID:
    return RequestID(f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:5]}")


@dataclass(frozen=True)
class CallRequest:
    """Immutable description of one logical invocation.

    Owned by the caller; the gateway only reads it and derives shrunk
    copies via with_payload().
    """
    url: str
    payload: RequestPayload
    headers: Headers = field(default_factory=dict)
    timeout: float = 30.0 # Seconds, applied to the transport call
    priority: Optional[int] = None # None lets the gateway favour retries
    request_id: RequestID = field(default_factory=new_request_id)

    @property
    def size(self) -> int:
        return self.payload.size

    def with_payload(self, payload: RequestPayload) -> "CallRequest":
        return replace(self, payload=payload)


@dataclass(frozen=True)
class TransportResponse:
    """An HTTP response as returned by a transport, whatever its status."""
    status: int
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class CircuitSnapshot:
    """Read-only view of a circuit breaker."""
    state: str
    failure_count: int
    opened_at: Optional[float]
    failure_threshold: int
    cooldown_s: float


@dataclass(frozen=True)
class QueueStats:
    """Read-only view of the request queue."""
    length: int # Entries waiting for dispatch
    running: int # Entries executing right now
    concurrency: int
    capacity: int
    paused: bool
    processed: int


@dataclass(frozen=True)
class GatewayStats:
    """Aggregate snapshot of one upstream's resilience state."""
    upstream: UpstreamName
    circuit: CircuitSnapshot
    rate_window_used: int
    rate_window_cap: int
    queue: QueueStats
