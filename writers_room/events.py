"""Typed publish/subscribe surface between the engine and its observers."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import ClassVar

from writers_room.models import AgentMessage, DiscussionReport, HumanIntervention, Summary

logger = logging.getLogger(__name__)

ALL_EVENTS = "*"


@dataclass(frozen=True)
class DiscussionEvent:
    """Base class; every concrete event names itself via `name`."""

    discussion_id: str

    name: ClassVar[str] = ""


@dataclass(frozen=True)
class DiscussionStarted(DiscussionEvent):
    topic: str
    participants: tuple[str, ...]
    name: ClassVar[str] = "discussionStarted"


@dataclass(frozen=True)
class DiscussionPaused(DiscussionEvent):
    name: ClassVar[str] = "discussionPaused"


@dataclass(frozen=True)
class DiscussionResumed(DiscussionEvent):
    name: ClassVar[str] = "discussionResumed"


@dataclass(frozen=True)
class DiscussionCompleted(DiscussionEvent):
    report: DiscussionReport
    name: ClassVar[str] = "discussionCompleted"


@dataclass(frozen=True)
class DiscussionAutoStopped(DiscussionEvent):
    report: DiscussionReport
    name: ClassVar[str] = "discussionAutoStopped"


@dataclass(frozen=True)
class DiscussionTimeout(DiscussionEvent):
    report: DiscussionReport
    name: ClassVar[str] = "discussionTimeout"


@dataclass(frozen=True)
class DiscussionStopped(DiscussionEvent):
    report: DiscussionReport
    name: ClassVar[str] = "discussionStopped"


@dataclass(frozen=True)
class DiscussionError(DiscussionEvent):
    error: str
    name: ClassVar[str] = "discussionError"


@dataclass(frozen=True)
class AgentSpoke(DiscussionEvent):
    message: AgentMessage
    name: ClassVar[str] = "agentSpoke"


@dataclass(frozen=True)
class AgentError(DiscussionEvent):
    agent_id: str
    error: str
    fatal: bool = False
    name: ClassVar[str] = "agentError"


@dataclass(frozen=True)
class HumanInterventionAdded(DiscussionEvent):
    intervention: HumanIntervention
    name: ClassVar[str] = "humanIntervention"


@dataclass(frozen=True)
class SummarizationStarted(DiscussionEvent):
    range: tuple[int, int]
    name: ClassVar[str] = "summarizationStarted"


@dataclass(frozen=True)
class SummarizationCompleted(DiscussionEvent):
    range: tuple[int, int]
    summary: Summary
    name: ClassVar[str] = "summarizationCompleted"


@dataclass(frozen=True)
class SummarizationFailed(DiscussionEvent):
    range: tuple[int, int]
    error: str
    name: ClassVar[str] = "summarizationError"


@dataclass(frozen=True)
class BudgetWarning(DiscussionEvent):
    cause: str  # "time", "rounds" or "tokens"
    name: ClassVar[str] = "budgetWarning"


EVENT_TYPES: dict[str, type[DiscussionEvent]] = {
    cls.name: cls
    for cls in (
        DiscussionStarted,
        DiscussionPaused,
        DiscussionResumed,
        DiscussionCompleted,
        DiscussionAutoStopped,
        DiscussionTimeout,
        DiscussionStopped,
        DiscussionError,
        AgentSpoke,
        AgentError,
        HumanInterventionAdded,
        SummarizationStarted,
        SummarizationCompleted,
        SummarizationFailed,
        BudgetWarning,
    )
}

Handler = Callable[[DiscussionEvent], None]


class EventBus:
    """Synchronous fan-out. A failing handler is logged and skipped."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_name: str, handler: Handler) -> None:
        if event_name != ALL_EVENTS and event_name not in EVENT_TYPES:
            raise ValueError(f"Unknown event name: {event_name}")
        with self._lock:
            self._handlers.setdefault(event_name, []).append(handler)

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._handlers.get(event_name, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: DiscussionEvent) -> None:
        with self._lock:
            handlers = list(self._handlers.get(event.name, ()))
            handlers += self._handlers.get(ALL_EVENTS, ())
        logger.debug("Publishing %s for discussion %s", event.name, event.discussion_id)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler %r failed on %s", handler, event.name)
