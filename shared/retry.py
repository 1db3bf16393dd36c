"""
Bounded retry policy for transactional work.
"""

import random
import time
from typing import Callable, Optional

from shared.config import get_config
from shared.errors import RetryLimitExceeded


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 10,
                 deadline_ms: float = 30_000,
                 base_delay: float = 0.0,
                 max_delay: float = 5.0,
                 exponential_base: float = 2.0,
                 jitter: bool = True,
                 backoff_strategy: str = "exponential"):
        self.max_attempts = max_attempts
        self.deadline_ms = deadline_ms
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = backoff_strategy

    @classmethod
    def from_settings(cls) -> "RetryConfig":
        """Build the transaction retry ceiling from the repository settings."""
        config = get_config()
        return cls(
            max_attempts=config.tx_max_attempts,
            deadline_ms=config.tx_deadline_ms,
            base_delay=config.tx_retry_base_delay,
        )


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay in seconds before the attempt following ``attempt``."""
    if config.base_delay <= 0:
        return 0.0

    if config.backoff_strategy == "exponential":
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * attempt
    else:
        delay = config.base_delay

    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)


class RetryBudget:
    """Tracks attempts and elapsed wall time against a ``RetryConfig`` ceiling."""

    def __init__(self, config: RetryConfig, clock: Optional[Callable[[], float]] = None):
        self.config = config
        self._clock = clock or time.monotonic
        self._started = self._clock()
        self.attempts = 0

    def begin_attempt(self) -> int:
        self.attempts += 1
        return self.attempts

    @property
    def elapsed_ms(self) -> float:
        return (self._clock() - self._started) * 1000.0

    def exhausted(self) -> bool:
        """True once the hard attempt ceiling or the deadline is reached."""
        return (
            self.attempts >= self.config.max_attempts
            or self.elapsed_ms >= self.config.deadline_ms
        )

    def limit_error(self, last_exception: Optional[BaseException]) -> RetryLimitExceeded:
        return RetryLimitExceeded(
            attempts=self.attempts,
            elapsed_ms=self.elapsed_ms,
            last_exception=last_exception
        )

    def next_delay(self) -> float:
        """Backoff before the next attempt, never past the deadline."""
        delay = calculate_delay(self.attempts, self.config)
        remaining = (self.config.deadline_ms - self.elapsed_ms) / 1000.0
        return max(0.0, min(delay, remaining))
