"""
Reliability Utilities.

Circuit breaker guarding calls to the payment gateway.
"""

import logging
import time
from typing import Callable, Any

from backend.app.core.config import settings

logger = logging.getLogger(__name__)

CLOSED = "CLOSED"
OPEN = "OPEN"
HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.
    After 'failure_threshold' consecutive failures the circuit opens and
    rejects calls for 'reset_timeout' seconds, then lets one trial call
    through (HALF_OPEN). A failed trial reopens it.
    """
    def __init__(self, name: str, failure_threshold: int = 5, reset_timeout: int = 60):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time = 0.0
        self.state = CLOSED

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        if self.state == OPEN:
            if time.monotonic() - self.last_failure_time > self.reset_timeout:
                self.state = HALF_OPEN
            else:
                raise CircuitOpenError(f"Circuit '{self.name}' is OPEN")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.reset_state()
        return result

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.monotonic()
        if self.state == HALF_OPEN or self.failures >= self.failure_threshold:
            if self.state != OPEN:
                logger.warning("Circuit '%s' opened after %d failures", self.name, self.failures)
            self.state = OPEN

    def reset_state(self):
        self.failures = 0
        self.state = CLOSED


payment_circuit_breaker = CircuitBreaker(
    "payment-gateway",
    failure_threshold=settings.payment_gateway_failure_threshold,
    reset_timeout=settings.payment_gateway_reset_timeout,
)
