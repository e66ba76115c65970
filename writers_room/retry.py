"""Pluggable retry policies for transient LLM failures."""

import random
from dataclasses import dataclass
from typing import Protocol


class RetryPolicy(Protocol):
    max_attempts: int

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-indexed)."""
        ...


@dataclass(frozen=True)
class ExponentialBackoff:
    """initial_delay * multiplier ** (attempt - 1), capped at max_delay.

    jitter adds up to that fraction of the delay at random.
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.0

    def delay_for(self, attempt: int) -> float:
        delay = min(self.initial_delay * self.multiplier ** (attempt - 1), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, delay * self.jitter)
        return delay


@dataclass(frozen=True)
class NoRetry:
    max_attempts: int = 1

    def delay_for(self, attempt: int) -> float:
        return 0.0
