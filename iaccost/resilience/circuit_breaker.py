"""
Circuit breaker for catalog requests.
Stops sending batches to a pricing catalog that keeps failing, and lets a
single probe through once the cool-down has passed.
"""
import logging
import time
from enum import Enum
from typing import Callable, Optional


logger = logging.getLogger(__name__)


FAILURE_THRESHOLD = 3  # Trip breaker after N consecutive failures
OPEN_STATE_DURATION = 30  # Seconds to remain OPEN before allowing a probe
HALF_OPEN_MAX_REQUESTS = 1  # Probes allowed while HALF_OPEN


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Requests pass through
    OPEN = "open"  # Requests fail fast
    HALF_OPEN = "half_open"  # Probing whether the catalog recovered


class CircuitBreakerError(Exception):
    """Raised when a request is refused because the breaker is open."""
    pass


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    CLOSED -> OPEN after failure_threshold consecutive failures;
    OPEN -> HALF_OPEN once open_duration seconds have passed;
    HALF_OPEN -> CLOSED on success, back to OPEN on failure.

    One instance belongs to one catalog client, so separate runs or
    services never share breaker state.
    """

    def __init__(
        self,
        service_name: str,
        failure_threshold: int = FAILURE_THRESHOLD,
        open_duration: float = OPEN_STATE_DURATION,
        half_open_max_requests: int = HALF_OPEN_MAX_REQUESTS,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize circuit breaker.

        Args:
            service_name: Name used in log messages (e.g. "pricing_api")
            failure_threshold: Consecutive failures before opening
            open_duration: Seconds to stay OPEN before probing
            half_open_max_requests: Probes allowed in HALF_OPEN
            clock: Monotonic time source, injectable for tests
        """
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.open_duration = open_duration
        self.half_open_max_requests = half_open_max_requests
        self._clock = clock or time.monotonic

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self.half_open_requests = 0

    def _transition(self, new_state: CircuitState, reason: str) -> None:
        logger.warning(
            f"Circuit breaker for {self.service_name}: "
            f"{self.state.name} -> {new_state.name} ({reason})"
        )
        self.state = new_state

    def allow_request(self) -> bool:
        """
        Check whether a request may be sent now.

        Returns:
            True if the request should proceed, False if it should fail fast
        """
        if self.state is CircuitState.OPEN:
            if self.opened_at is not None and self._clock() - self.opened_at >= self.open_duration:
                self._transition(CircuitState.HALF_OPEN, "cool-down elapsed, probing")
                self.half_open_requests = 1
                return True
            return False

        if self.state is CircuitState.HALF_OPEN:
            if self.half_open_requests < self.half_open_max_requests:
                self.half_open_requests += 1
                return True
            return False

        return True

    def guard(self) -> None:
        """
        Raise instead of returning False when the breaker refuses a request.

        Raises:
            CircuitBreakerError: If the breaker is open
        """
        if not self.allow_request():
            raise CircuitBreakerError(
                f"{self.service_name} is unavailable after {self.failure_count} consecutive failures"
            )

    def record_success(self) -> None:
        if self.state is CircuitState.HALF_OPEN:
            self._transition(CircuitState.CLOSED, "catalog recovered")
            self.opened_at = None
            self.half_open_requests = 0
        self.failure_count = 0

    def record_failure(self) -> None:
        self.failure_count += 1

        if self.state is CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN, "probe failed")
            self.opened_at = self._clock()
            self.half_open_requests = 0
        elif self.state is CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            self._transition(CircuitState.OPEN, f"{self.failure_count} consecutive failures")
            self.opened_at = self._clock()

    def current_state(self) -> CircuitState:
        return self.state
