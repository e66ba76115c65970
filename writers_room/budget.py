"""Budget monitor: active wall-clock time, round count and token consumption."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from writers_room.models import TokenUsage, TokenUsageStats

logger = logging.getLogger(__name__)

CAUSE_TIME = "time"
CAUSE_ROUNDS = "rounds"
CAUSE_TOKENS = "tokens"


@dataclass(frozen=True)
class BudgetVerdict:
    cause: str | None = None

    @property
    def exceeded(self) -> bool:
        return self.cause is not None


class BudgetMonitor:
    """Counters for one discussion at a time; `reset` starts a fresh budget.

    Args:
        clock: monotonic seconds source. Tests pass a fake to simulate time.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.max_rounds: int | None = None
        self.time_limit_sec: float | None = None
        self.token_limit: int | None = None
        self.reset()

    def reset(
        self,
        max_rounds: int | None = None,
        time_limit_sec: float | None = None,
        token_limit: int | None = None,
    ) -> None:
        self.max_rounds = max_rounds
        self.time_limit_sec = time_limit_sec
        self.token_limit = token_limit
        self._started_at: float | None = None
        self._paused_at: float | None = None
        self._stopped_at: float | None = None
        self._paused_total = 0.0
        self._usage = TokenUsage()
        self._calls = 0
        self._summarization_tokens = 0

    def start(self) -> None:
        self._started_at = self._clock()

    def pause(self) -> None:
        if self._started_at is not None and self._paused_at is None:
            self._paused_at = self._clock()

    def resume(self) -> None:
        if self._paused_at is not None:
            self._paused_total += self._clock() - self._paused_at
            self._paused_at = None

    def stop(self) -> None:
        """Freeze elapsed time at its current value."""
        self.resume()
        if self._started_at is not None and self._stopped_at is None:
            self._stopped_at = self._clock()

    def elapsed(self) -> float:
        """Active seconds since start, paused spans excluded."""
        if self._started_at is None:
            return 0.0
        if self._stopped_at is not None:
            end = self._stopped_at
        elif self._paused_at is not None:
            end = self._paused_at
        else:
            end = self._clock()
        return max(0.0, end - self._started_at - self._paused_total)

    def record_usage(self, usage: TokenUsage) -> None:
        self._usage = self._usage + usage
        self._calls += 1

    def record_summarization(self, usage: TokenUsage) -> None:
        self._summarization_tokens += usage.total_tokens

    @property
    def total_tokens(self) -> int:
        return self._usage.total_tokens

    def check(self, round_count: int) -> BudgetVerdict:
        """First exhausted limit, checked in order time, tokens, rounds."""
        if self.time_limit_sec is not None and self.elapsed() >= self.time_limit_sec:
            return BudgetVerdict(CAUSE_TIME)
        if self.token_limit is not None and self._usage.total_tokens >= self.token_limit:
            return BudgetVerdict(CAUSE_TOKENS)
        if self.max_rounds is not None and round_count >= self.max_rounds:
            return BudgetVerdict(CAUSE_ROUNDS)
        return BudgetVerdict()

    def stats(self) -> TokenUsageStats:
        percentage = None
        if self.token_limit:
            percentage = self._usage.total_tokens / self.token_limit * 100
        return TokenUsageStats(
            prompt=self._usage.prompt_tokens,
            completion=self._usage.completion_tokens,
            total=self._usage.total_tokens,
            calls=self._calls,
            summarization_tokens=self._summarization_tokens,
            token_limit=self.token_limit,
            usage_percentage=percentage,
        )
