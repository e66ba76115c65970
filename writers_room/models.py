"""Dataclasses for the discussion engine. Only the Discussion carries logic (its state graph)."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from writers_room.errors import InvalidTransitionError


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DiscussionStatus(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABORTED = "aborted"


ALLOWED_TRANSITIONS: dict[DiscussionStatus, frozenset[DiscussionStatus]] = {
    DiscussionStatus.CREATED: frozenset({DiscussionStatus.ACTIVE}),
    DiscussionStatus.ACTIVE: frozenset(
        {DiscussionStatus.PAUSED, DiscussionStatus.COMPLETED, DiscussionStatus.ABORTED}
    ),
    DiscussionStatus.PAUSED: frozenset({DiscussionStatus.ACTIVE, DiscussionStatus.ABORTED}),
    DiscussionStatus.COMPLETED: frozenset(),
    DiscussionStatus.ABORTED: frozenset(),
}


class AgentRole(str, Enum):
    WRITER = "writer"
    EDITOR = "editor"
    PROOFREADER = "proofreader"
    MEDIATOR = "mediator"
    HUMAN = "human"
    SYSTEM = "system"


class Impact(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TurnOutcome(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"  # transient retries exhausted, no message produced


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass(frozen=True)
class Completion:
    content: str
    usage: TokenUsage
    finish_reason: str
    model: str
    latency_sec: float = 0.0


@dataclass(frozen=True)
class MessageMetadata:
    confidence: float | None = None
    emotional_tone: str | None = None
    thinking_time_sec: float | None = None
    reply_to: str | None = None
    tokens_used: int | None = None
    impact: Impact | None = None  # human messages only


@dataclass(frozen=True)
class AgentMessage:
    agent_id: str
    agent_name: str
    role: AgentRole
    content: str
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_now)
    metadata: MessageMetadata = field(default_factory=MessageMetadata)


@dataclass(frozen=True)
class Summary:
    start: int  # first message index covered
    end: int    # one past the last message index covered
    text: str
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)
    token_count: int = 0
    model: str = ""


@dataclass(frozen=True)
class HumanIntervention:
    content: str
    impact: Impact = Impact.MEDIUM
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_now)


@dataclass
class TopicContext:
    """Optional references and background handed to start_discussion."""

    project_id: str | None = None
    plot_id: str | None = None
    chapter_id: str | None = None
    knowledge: str | None = None


@dataclass
class DiscussionOptions:
    max_rounds: int = 10
    time_limit_sec: float | None = 1800.0
    auto_stop: bool = False
    save_to_database: bool = False
    human_intervention_enabled: bool = True
    token_limit: int | None = None
    context_messages: int = 12  # raw messages after the last summary fed to each prompt


@dataclass
class Discussion:
    topic: str
    id: str = field(default_factory=_new_id)
    project_id: str | None = None
    plot_id: str | None = None
    chapter_id: str | None = None
    status: DiscussionStatus = DiscussionStatus.CREATED
    participants: tuple[str, ...] = ()
    messages: list[AgentMessage] = field(default_factory=list)
    decisions: list[str] = field(default_factory=list)
    quality_score: float | None = None
    summaries: list[Summary] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    status_history: list[DiscussionStatus] = field(
        default_factory=lambda: [DiscussionStatus.CREATED]
    )

    def transition(self, new_status: DiscussionStatus) -> None:
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.status.value, new_status.value)
        self.status = new_status
        self.status_history.append(new_status)

    def append_message(self, message: AgentMessage) -> int:
        """Append to the log and return the new message's index."""
        self.messages.append(message)
        return len(self.messages) - 1

    def add_summary(self, summary: Summary) -> None:
        """Summaries must tile the log from the front: contiguous, disjoint, increasing."""
        if summary.start != self.summarized_upto:
            raise ValueError(
                f"Summary must start at message {self.summarized_upto}, got {summary.start}"
            )
        if not summary.start < summary.end <= len(self.messages):
            raise ValueError(f"Invalid summary range [{summary.start}, {summary.end})")
        self.summaries.append(summary)

    @property
    def summarized_upto(self) -> int:
        return self.summaries[-1].end if self.summaries else 0

    def unsummarized_messages(self) -> list[AgentMessage]:
        return self.messages[self.summarized_upto:]

    @property
    def is_running(self) -> bool:
        return self.status in (DiscussionStatus.ACTIVE, DiscussionStatus.PAUSED)


@dataclass
class TurnContext:
    """What the agent runtime sees when producing one turn."""

    discussion_id: str
    topic: str
    round_number: int
    summaries: list[Summary] = field(default_factory=list)
    recent_messages: list[AgentMessage] = field(default_factory=list)
    knowledge: str | None = None


@dataclass
class TurnResult:
    persona_id: str
    outcome: TurnOutcome
    message: AgentMessage | None
    usage: TokenUsage
    attempts: int
    duration_sec: float
    error: str | None = None


@dataclass
class TokenUsageStats:
    prompt: int
    completion: int
    total: int
    calls: int
    summarization_tokens: int = 0
    token_limit: int | None = None
    usage_percentage: float | None = None


@dataclass
class DiscussionReport:
    discussion_id: str
    status: DiscussionStatus
    reason: str          # "max_rounds", "decision", "time", "tokens", "stopped", "error"
    rounds: int
    message_count: int
    summary_count: int
    decisions: list[str]
    quality_score: float | None
    tokens: TokenUsageStats
    duration_sec: float
    error: str | None = None


@dataclass(frozen=True)
class ControlResult:
    success: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> "ControlResult":
        return cls(success=True)

    @classmethod
    def fail(cls, error: str) -> "ControlResult":
        return cls(success=False, error=error)
