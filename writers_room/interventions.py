"""FIFO of pending human interventions, safe to fill from another thread."""

import threading
from collections import deque

from writers_room.models import AgentMessage, AgentRole, HumanIntervention, Impact, MessageMetadata

HUMAN_AGENT_ID = "human"
HUMAN_AGENT_NAME = "Human editor"


class InterventionQueue:
    def __init__(self) -> None:
        self._items: deque[HumanIntervention] = deque()
        self._lock = threading.Lock()

    def put(self, content: str, impact: Impact = Impact.MEDIUM) -> HumanIntervention:
        intervention = HumanIntervention(content=content, impact=impact)
        with self._lock:
            self._items.append(intervention)
        return intervention

    def pop(self) -> HumanIntervention | None:
        """Oldest pending intervention, or None when empty."""
        with self._lock:
            return self._items.popleft() if self._items else None

    def drain(self) -> list[HumanIntervention]:
        with self._lock:
            items = list(self._items)
            self._items.clear()
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def to_message(intervention: HumanIntervention, reply_to: str | None = None) -> AgentMessage:
    """Turn a dequeued intervention into a log entry with role 'human'."""
    return AgentMessage(
        agent_id=HUMAN_AGENT_ID,
        agent_name=HUMAN_AGENT_NAME,
        role=AgentRole.HUMAN,
        content=intervention.content,
        id=intervention.id,
        timestamp=intervention.timestamp,
        metadata=MessageMetadata(
            emotional_tone="authoritative",
            reply_to=reply_to,
            impact=intervention.impact,
        ),
    )
