"""Turn scheduling: round-robin rotation, mediator-closes-the-round, human messages first."""

import logging
from dataclasses import dataclass

from writers_room.interventions import InterventionQueue
from writers_room.models import Discussion, HumanIntervention
from writers_room.personas import Persona

logger = logging.getLogger(__name__)

STOP_MAX_ROUNDS = "max_rounds"
STOP_DECISION = "decision"


@dataclass(frozen=True)
class HumanTurn:
    intervention: HumanIntervention


@dataclass(frozen=True)
class AgentTurn:
    persona: Persona
    round_number: int        # 1-indexed round this turn belongs to
    closes_round: bool = False


class TurnScheduler:
    """Decides who speaks next.

    Rotation order is persona registration order. A mediator, when
    configured, is held back and speaks once at the end of each round.
    Callers report each finished agent turn via `complete_turn`; the round
    counter moves when the last slot of the round is reported.
    """

    def __init__(
        self,
        personas: list[Persona],
        interventions: InterventionQueue,
        max_rounds: int,
    ) -> None:
        self._rotation = [p for p in personas if not p.is_mediator]
        self._mediator = next((p for p in personas if p.is_mediator), None)
        self._interventions = interventions
        self.max_rounds = max_rounds
        self.round_count = 0
        self._spoken: set[str] = set()
        self._retired: set[str] = set()

    @property
    def has_rotation_participants(self) -> bool:
        return any(p.id not in self._retired for p in self._rotation)

    @property
    def mediator(self) -> Persona | None:
        if self._mediator is None or self._mediator.id in self._retired:
            return None
        return self._mediator

    def next_turn(self) -> HumanTurn | AgentTurn | None:
        """Pending human message first, else the next agent. None when nobody is left."""
        intervention = self._interventions.pop()
        if intervention is not None:
            return HumanTurn(intervention)

        if not self.has_rotation_participants:
            return None

        for persona in self._rotation:
            if persona.id not in self._retired and persona.id not in self._spoken:
                return AgentTurn(persona, self.round_count + 1)

        mediator = self.mediator
        if mediator is not None and mediator.id not in self._spoken:
            return AgentTurn(mediator, self.round_count + 1, closes_round=True)

        # Every slot already reported; close the round and start over.
        self._close_round()
        return self.next_turn()

    def complete_turn(self, persona_id: str) -> None:
        self._spoken.add(persona_id)
        self._maybe_close_round()

    def retire(self, persona_id: str) -> None:
        """Drop a persona from all future rounds (after a fatal error)."""
        self._retired.add(persona_id)
        logger.warning("Persona %s retired from the discussion", persona_id)
        if self.has_rotation_participants:
            self._maybe_close_round()

    def _maybe_close_round(self) -> None:
        active = [p.id for p in self._rotation if p.id not in self._retired]
        if not active or not all(pid in self._spoken for pid in active):
            return
        mediator = self.mediator
        if mediator is not None and mediator.id not in self._spoken:
            return
        self._close_round()

    def _close_round(self) -> None:
        self.round_count += 1
        self._spoken.clear()
        logger.info("Round %d complete", self.round_count)

    def stop_reason(self, discussion: Discussion) -> str | None:
        if discussion.decisions:
            return STOP_DECISION
        if self.round_count >= self.max_rounds:
            return STOP_MAX_ROUNDS
        return None

    def should_stop(self, discussion: Discussion) -> bool:
        return self.stop_reason(discussion) is not None
