"""Domain Events related to gateway calls and resilience.

Examples include events for when calls are deferred, retried, shrunk,
fail, succeed, or trip the circuit breaker.
"""

from dataclasses import dataclass, field
import time
from typing import Optional


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


@dataclass
class ApiCallInitiated(DomainEvent):
    """Event triggered when an attempt is handed to the transport."""
    upstream: str
    request_id: str
    attempt: int
    payload_size: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallSucceeded(DomainEvent):
    """Event triggered when an attempt returns a success response."""
    upstream: str
    request_id: str
    attempt: int
    latency_ms: float
    status: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallFailed(DomainEvent):
    """Event triggered when a call fails definitively."""
    upstream: str
    request_id: str
    error_kind: str
    retries_attempted: int
    status: Optional[int] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallDeferred(DomainEvent):
    """Event triggered when the rate limiter makes an attempt wait."""
    upstream: str
    request_id: str
    wait_time_seconds: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a transient failure is retried after a delay."""
    upstream: str
    request_id: str
    attempt_number: int
    delay_seconds: float
    error_kind: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class PayloadTruncated(DomainEvent):
    """Event triggered when an oversized payload is shrunk for a retry."""
    upstream: str
    request_id: str
    attempt_number: int
    previous_size: int
    new_size: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class CircuitTripped(DomainEvent):
    """Event triggered when consecutive failures open the circuit breaker."""
    upstream: str
    failure_count: int
    cooldown_seconds: float
    timestamp: float = field(default_factory=time.time)
