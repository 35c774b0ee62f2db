"""Service for executing upstream calls with resilience policies.

Composes the circuit breaker, rate limiter and request queue into a single
invoke() operation: classify each outcome, decide between retrying and
surfacing, apply full-jitter exponential backoff to transient failures,
and shrink the payload when the upstream reports the input is too large.
"""

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, List, Optional, Tuple

from callguard.domain.events.api_events import (
    ApiCallDeferred, ApiCallFailed, ApiCallInitiated, ApiCallSucceeded,
    CircuitTripped, DomainEvent, PayloadTruncated, RetryScheduled,
)
from callguard.domain.interfaces.transport import Transport
from callguard.domain.models.calls import CallRequest, GatewayStats, TransportResponse
from callguard.domain.models.common import FIRST_ATTEMPT_PRIORITY, RETRY_PRIORITY, TRUNCATION_NOTICE
from callguard.domain.models.errors import (
    TRANSIENT_KINDS, CircuitOpenError, ErrorKind, GatewayError, QueueFullError,
)
from callguard.infrastructure.config.settings import ResilienceSettings
from callguard.infrastructure.resilience.circuit_breaker import CircuitBreaker
from callguard.infrastructure.resilience.error_classifier import (
    Outcome, classify_outcome, failure_cause,
)
from callguard.infrastructure.resilience.rate_limiter import RateLimiter
from callguard.infrastructure.resilience.request_queue import RequestQueue

logger = logging.getLogger(__name__)

Classifier = Callable[[Outcome], Optional[ErrorKind]]
EventHandler = Callable[[DomainEvent], None]

MAX_BACKOFF_EXPONENT = 62


def compute_backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    rng: Optional[random.Random] = None,
) -> float:
    """Full-jitter exponential backoff.

    Formula: uniform(0, min(max_delay, base_delay * 2 ** attempt))

    Args:
        attempt: The 0-based attempt that just failed.
        base_delay: Base delay in seconds.
        max_delay: Cap on the exponential term, in seconds.
        rng: Optional seeded Random instance for deterministic jitter.
    """
    # Exponent capped so huge attempt numbers cannot overflow a float
    ceiling = min(max_delay, base_delay * (2 ** min(attempt, MAX_BACKOFF_EXPONENT)))
    return (rng or random).uniform(0, ceiling)


class ApiRetryService:
    """Mediates every call to one upstream: breaker, rate limit, queue, retry."""

    def __init__(
        self,
        transport: Transport,
        rate_limiter: RateLimiter,
        circuit_breaker: CircuitBreaker,
        request_queue: RequestQueue,
        upstream: str = "upstream",
        classifier: Classifier = classify_outcome,
        max_retries: int = 3,
        base_delay_s: float = 1.0,
        max_delay_s: float = 60.0,
        shrink_ratio: float = 0.8,
        shrink_floor: int = 100,
        queue_timeout_grace_s: float = 5.0,
        truncation_notice: str = TRUNCATION_NOTICE,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        """Initializes the ApiRetryService.

        Args:
            transport: Performs the actual request.
            rate_limiter: Admission control for call starts.
            circuit_breaker: Fails fast while the upstream is unhealthy.
            request_queue: Bounded queue pacing dispatch to the upstream.
            upstream: Name of the upstream (for logging/events/errors).
            classifier: Maps outcomes to error kinds (None for success).
            max_retries: Maximum number of retries per logical call.
            base_delay_s: Base delay for the backoff ceiling.
            max_delay_s: Cap on the backoff ceiling.
            shrink_ratio: Fraction of the payload kept when input is too large.
            shrink_floor: Minimum viable payload size; smaller means give up.
            queue_timeout_grace_s: Added to the request timeout to bound queue wait.
            truncation_notice: Marker appended to shrunk payloads.
            sleep: Coroutine used for the backoff delay.
            rng: Optional seeded Random instance for the jitter.
        """
        self.transport = transport
        self.rate_limiter = rate_limiter
        self.circuit_breaker = circuit_breaker
        self.request_queue = request_queue
        self.upstream = upstream
        self.classifier = classifier
        self.max_retries = max_retries
        self.base_delay_s = base_delay_s
        self.max_delay_s = max_delay_s
        self.shrink_ratio = shrink_ratio
        self.shrink_floor = shrink_floor
        self.queue_timeout_grace_s = queue_timeout_grace_s
        self.truncation_notice = truncation_notice
        self._sleep = sleep
        self._rng = rng
        self._handlers: List[EventHandler] = []

        logger.info(
            f"ApiRetryService initialized for '{upstream}': max_retries={max_retries}, "
            f"backoff={base_delay_s}s..{max_delay_s}s, shrink={shrink_ratio} (floor {shrink_floor})"
        )

    @classmethod
    def from_settings(
        cls,
        upstream: str,
        transport: Transport,
        settings: ResilienceSettings,
        classifier: Classifier = classify_outcome,
    ) -> "ApiRetryService":
        """Builds a gateway with its own breaker, rate window and queue."""
        return cls(
            transport=transport,
            rate_limiter=RateLimiter(
                max_requests=settings.rate_limit_max_requests,
                time_window=settings.rate_limit_window_s,
            ),
            circuit_breaker=CircuitBreaker(
                failure_threshold=settings.breaker_failure_threshold,
                cooldown_s=settings.breaker_cooldown_s,
                name=upstream,
            ),
            request_queue=RequestQueue(
                capacity=settings.queue_capacity,
                concurrency=settings.queue_concurrency,
                default_cooldown=settings.queue_cooldown_s,
                name=upstream,
            ),
            upstream=upstream,
            classifier=classifier,
            max_retries=settings.max_retries,
            base_delay_s=settings.backoff_base_s,
            max_delay_s=settings.backoff_max_s,
            shrink_ratio=settings.shrink_ratio,
            shrink_floor=settings.shrink_floor,
            queue_timeout_grace_s=settings.queue_timeout_grace_s,
        )

    # --- Events ---

    def subscribe(self, handler: EventHandler) -> None:
        """Registers a callable receiving every DomainEvent this service emits."""
        self._handlers.append(handler)

    def _dispatch(self, event: DomainEvent) -> None:
        logger.debug(f"EVENT: {event}")
        for handler in self._handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler {handler!r} failed on {type(event).__name__}: {e}", exc_info=True)

    # --- Invocation ---

    async def invoke(self, request: CallRequest) -> TransportResponse:
        """Executes one logical call, retrying as policy allows.

        Args:
            request: The call to perform. Never mutated; shrunk payloads
                are carried on derived copies.

        Returns:
            The successful upstream response.

        Raises:
            GatewayError: Tagged with the ErrorKind, the retries attempted
                and the original cause.
        """
        current = request
        attempt = 0
        while True:
            if self.circuit_breaker.is_open():
                self._fail(current, ErrorKind.CIRCUIT_OPEN, attempt)
                raise CircuitOpenError(
                    f"{self.upstream} circuit breaker is open - too many recent failures",
                    retries_attempted=attempt,
                    upstream=self.upstream,
                )

            await self._admit(current)

            outcome: Outcome
            try:
                outcome, latency_ms = await self.request_queue.enqueue(
                    lambda req=current, n=attempt: self._send(req, n),
                    priority=self._priority_for(current, attempt),
                    timeout=current.timeout + self.queue_timeout_grace_s,
                    task_id=f"{current.request_id}#{attempt}",
                )
            except QueueFullError as e:
                self._fail(current, ErrorKind.QUEUE_FULL, attempt)
                raise QueueFullError(
                    str(e), retries_attempted=attempt, cause=e, upstream=self.upstream,
                ) from e
            except GatewayError as e:
                # Queue wait timeout
                outcome = e
                kind = e.kind
            except Exception as e:
                outcome = e
                kind = self.classifier(e) or ErrorKind.UNKNOWN
            else:
                kind = self.classifier(outcome)
                if kind is None:
                    self.circuit_breaker.record_success()
                    self._dispatch(ApiCallSucceeded(
                        upstream=self.upstream,
                        request_id=current.request_id,
                        attempt=attempt,
                        latency_ms=latency_ms,
                        status=outcome.status,
                    ))
                    return outcome

            cause = failure_cause(outcome)
            status = getattr(getattr(cause, "response", None), "status", None)

            if self.circuit_breaker.record_failure(kind):
                self._dispatch(CircuitTripped(
                    upstream=self.upstream,
                    failure_count=self.circuit_breaker.failure_threshold,
                    cooldown_seconds=self.circuit_breaker.cooldown_s,
                ))
                self._fail(current, ErrorKind.CIRCUIT_OPEN, attempt, status)
                raise CircuitOpenError(
                    f"{self.upstream} circuit breaker tripped - too many consecutive failures",
                    status=status,
                    retries_attempted=attempt,
                    cause=cause,
                    upstream=self.upstream,
                ) from cause

            if attempt < self.max_retries:
                if kind in TRANSIENT_KINDS:
                    delay = compute_backoff_delay(attempt, self.base_delay_s, self.max_delay_s, self._rng)
                    logger.warning(
                        f"Retryable error from {self.upstream} ({kind.value}, status={status}), "
                        f"retry {attempt + 1}/{self.max_retries} in {delay:.2f}s"
                    )
                    self._dispatch(RetryScheduled(
                        upstream=self.upstream,
                        request_id=current.request_id,
                        attempt_number=attempt + 1,
                        delay_seconds=delay,
                        error_kind=kind.value,
                    ))
                    await self._sleep(delay)
                    attempt += 1
                    continue

                if kind is ErrorKind.INPUT_TOO_LARGE and current.payload.shrinkable:
                    current = self._shrink(current, attempt, status, cause)
                    attempt += 1
                    continue

            self._fail(current, kind, attempt, status)
            logger.error(
                f"Failed to call {self.upstream}: {kind.value} (status={status}) "
                f"after {attempt} retries: {cause}"
            )
            raise GatewayError(
                f"{self.upstream} API error: {cause}",
                kind=kind,
                status=status,
                retries_attempted=attempt,
                cause=cause,
                upstream=self.upstream,
            ) from cause

    async def _admit(self, request: CallRequest) -> None:
        wait_duration = await self.rate_limiter.get_wait_time()
        if wait_duration > 0:
            self._dispatch(ApiCallDeferred(
                upstream=self.upstream,
                request_id=request.request_id,
                wait_time_seconds=wait_duration,
            ))
        await self.rate_limiter.admit()

    async def _send(self, request: CallRequest, attempt: int) -> Tuple[TransportResponse, float]:
        """Runs on a queue worker; returns the response and its latency in ms."""
        self._dispatch(ApiCallInitiated(
            upstream=self.upstream,
            request_id=request.request_id,
            attempt=attempt,
            payload_size=request.size,
        ))
        logger.info(
            f"Sending request to {self.upstream}: id={request.request_id}, "
            f"attempt={attempt}, payload_size={request.size}"
        )
        start_time = time.perf_counter()
        response = await self.transport.send(
            request.url, request.payload.to_body(), dict(request.headers), request.timeout,
        )
        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"Received response from {self.upstream}: status={response.status} in {latency_ms:.2f}ms")
        return response, latency_ms

    def _priority_for(self, request: CallRequest, attempt: int) -> int:
        if request.priority is not None:
            return request.priority
        return FIRST_ATTEMPT_PRIORITY if attempt == 0 else RETRY_PRIORITY

    def _shrink(self, request: CallRequest, attempt: int, status: Optional[int], cause: BaseException) -> CallRequest:
        previous_size = request.size
        new_size = int(previous_size * self.shrink_ratio)
        # The notice must fit with at least one character of content
        minimum_size = max(self.shrink_floor, len(self.truncation_notice) + 1)
        shrunk = None
        if new_size >= minimum_size:
            shrunk = request.with_payload(request.payload.truncated(new_size, self.truncation_notice))
        if shrunk is None or shrunk.size >= previous_size:
            self._fail(request, ErrorKind.INPUT_TOO_LARGE, attempt, status)
            logger.error(
                f"Input for {self.upstream} too large even after truncation "
                f"({previous_size} -> {new_size}, minimum {minimum_size})"
            )
            raise GatewayError(
                "Input too large for upstream even after truncation",
                kind=ErrorKind.INPUT_TOO_LARGE,
                status=status,
                retries_attempted=attempt,
                cause=cause,
                upstream=self.upstream,
            ) from cause

        logger.warning(
            f"Input too large for {self.upstream}, retrying with truncated payload "
            f"({previous_size} -> {shrunk.size})"
        )
        self._dispatch(PayloadTruncated(
            upstream=self.upstream,
            request_id=request.request_id,
            attempt_number=attempt + 1,
            previous_size=previous_size,
            new_size=shrunk.size,
        ))
        return shrunk

    def _fail(self, request: CallRequest, kind: ErrorKind, attempt: int, status: Optional[int] = None) -> None:
        self._dispatch(ApiCallFailed(
            upstream=self.upstream,
            request_id=request.request_id,
            error_kind=kind.value,
            retries_attempted=attempt,
            status=status,
        ))

    # --- Inspection ---

    def snapshot(self) -> GatewayStats:
        """Read-only view of this upstream's resilience state."""
        return GatewayStats(
            upstream=self.upstream,
            circuit=self.circuit_breaker.snapshot(),
            rate_window_used=self.rate_limiter.current_usage(),
            rate_window_cap=self.rate_limiter.max_requests,
            queue=self.request_queue.stats(),
        )

    async def close(self) -> None:
        await self.transport.close()
