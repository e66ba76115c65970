"""Usage ledger: one record per LLM call, with grouped statistics."""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

from writers_room.models import TokenUsage

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class UsageRecord:
    id: str
    api_type: str
    provider: str
    model: str
    operation: str
    tokens: TokenUsage
    cost: float
    duration_ms: int
    status: str
    error_message: str | None = None
    metadata: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class UsageFilter:
    api_type: str | None = None
    provider: str | None = None
    model: str | None = None
    operation: str | None = None
    status: str | None = None
    discussion_id: str | None = None
    since: datetime | None = None

    def matches(self, record: UsageRecord) -> bool:
        checks = (
            (self.api_type, record.api_type),
            (self.provider, record.provider),
            (self.model, record.model),
            (self.operation, record.operation),
            (self.status, record.status),
            (self.discussion_id, record.metadata.get("discussion_id")),
        )
        if any(wanted is not None and wanted != actual for wanted, actual in checks):
            return False
        return self.since is None or record.created_at >= self.since


@dataclass
class UsageStats:
    api_type: str
    provider: str
    model: str
    request_count: int = 0
    success_count: int = 0
    error_count: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    avg_duration_ms: float = 0.0


class UsageLedger(Protocol):
    def record(
        self,
        api_type: str,
        provider: str,
        model: str,
        operation: str,
        tokens: TokenUsage,
        cost: float,
        duration_ms: int,
        status: str,
        error_message: str | None = None,
        metadata: dict | None = None,
    ) -> str:
        ...

    def query_stats(self, filter: UsageFilter | None = None) -> list[UsageStats]:
        ...


class InMemoryUsageLedger:
    """Process-local ledger. Good enough for a CLI run and for tests."""

    def __init__(self) -> None:
        self._records: list[UsageRecord] = []
        self._lock = threading.Lock()

    def record(
        self,
        api_type: str,
        provider: str,
        model: str,
        operation: str,
        tokens: TokenUsage,
        cost: float,
        duration_ms: int,
        status: str,
        error_message: str | None = None,
        metadata: dict | None = None,
    ) -> str:
        entry = UsageRecord(
            id=str(uuid.uuid4()),
            api_type=api_type,
            provider=provider,
            model=model,
            operation=operation,
            tokens=tokens,
            cost=cost,
            duration_ms=duration_ms,
            status=status,
            error_message=error_message,
            metadata=dict(metadata or {}),
        )
        with self._lock:
            self._records.append(entry)
        logger.debug("Ledger %s %s/%s %s: %d tokens", operation, provider, model, status, tokens.total_tokens)
        return entry.id

    def records(self, filter: UsageFilter | None = None) -> list[UsageRecord]:
        with self._lock:
            records = list(self._records)
        if filter is None:
            return records
        return [r for r in records if filter.matches(r)]

    def query_stats(self, filter: UsageFilter | None = None) -> list[UsageStats]:
        """Aggregate matching records per (api_type, provider, model)."""
        grouped: dict[tuple[str, str, str], UsageStats] = {}
        durations: dict[tuple[str, str, str], int] = {}
        for rec in self.records(filter):
            key = (rec.api_type, rec.provider, rec.model)
            stats = grouped.setdefault(key, UsageStats(*key))
            stats.request_count += 1
            if rec.status == STATUS_SUCCESS:
                stats.success_count += 1
            else:
                stats.error_count += 1
            stats.prompt_tokens += rec.tokens.prompt_tokens
            stats.completion_tokens += rec.tokens.completion_tokens
            stats.total_tokens += rec.tokens.total_tokens
            stats.total_cost += rec.cost
            durations[key] = durations.get(key, 0) + rec.duration_ms
        for key, stats in grouped.items():
            stats.avg_duration_ms = durations[key] / stats.request_count
        return list(grouped.values())
