"""Circuit breaker guarding an upstream dependency.

Counts consecutive server, network and timeout failures. Once the count
reaches the threshold the circuit opens and calls fail fast. After the
cooldown the circuit closes again with a fresh counter; there is no
half-open trial request. The cooldown is evaluated lazily whenever the
state is read, so no timer is ever scheduled.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

from callguard.domain.models.calls import CircuitSnapshot
from callguard.domain.models.errors import BREAKER_KINDS, ErrorKind

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_COOLDOWN_SECONDS = 60.0


class CircuitState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "Closed"
    OPEN = "Open"


class CircuitBreaker:
    """Failure-counting state machine, one instance per upstream."""

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        cooldown_s: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        name: str = "upstream",
    ):
        """Initializes the breaker.

        Args:
            failure_threshold: Consecutive qualifying failures that open the circuit.
            cooldown_s: Seconds the circuit stays open before closing again.
            clock: Monotonic time source.
            name: Upstream name used in log messages.
        """
        if failure_threshold <= 0 or cooldown_s <= 0:
            raise ValueError("Failure threshold and cooldown must be positive.")

        self.failure_threshold = failure_threshold
        self.cooldown_s = cooldown_s
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None

    def _refresh(self) -> None:
        """Closes an open circuit whose cooldown has elapsed. Caller holds the lock."""
        if self._state is CircuitState.OPEN and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.cooldown_s:
                logger.info(f"Circuit breaker reset for '{self.name}' - calls will be attempted again")
                self._state = CircuitState.CLOSED
                self._failure_count = 0
                self._opened_at = None

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._refresh()
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            self._refresh()
            return self._failure_count

    def is_open(self) -> bool:
        """True iff the circuit is open (after applying any elapsed cooldown)."""
        return self.state is CircuitState.OPEN

    def record_success(self) -> None:
        with self._lock:
            self._refresh()
            self._failure_count = 0

    def record_failure(self, kind: ErrorKind) -> bool:
        """Records a classified failure.

        Args:
            kind: The classified failure kind. Only server, network and
                timeout failures are counted.

        Returns:
            True if this failure tripped the circuit open.
        """
        if kind not in BREAKER_KINDS:
            return False

        with self._lock:
            self._refresh()
            if self._state is CircuitState.OPEN:
                return False
            self._failure_count += 1
            if self._failure_count < self.failure_threshold:
                logger.debug(
                    f"Circuit breaker '{self.name}' failure {self._failure_count}/{self.failure_threshold} ({kind.value})"
                )
                return False
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()

        logger.warning(
            f"Circuit breaker tripped for '{self.name}' - calls will fail fast for {self.cooldown_s:g}s"
        )
        return True

    def reset(self) -> None:
        """Forces the circuit closed with a fresh counter."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._opened_at = None

    def snapshot(self) -> CircuitSnapshot:
        with self._lock:
            self._refresh()
            return CircuitSnapshot(
                state=self._state.value,
                failure_count=self._failure_count,
                opened_at=self._opened_at,
                failure_threshold=self.failure_threshold,
                cooldown_s=self.cooldown_s,
            )
