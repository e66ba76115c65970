"""Quality evaluation of mediator messages: score, recommendation, suggestions and decisions."""

import logging
import re
from dataclasses import dataclass, field
from typing import Protocol

from config.config_loader import QualityConfig
from writers_room.models import AgentMessage, Discussion

logger = logging.getLogger(__name__)

ACCEPT = "accept"
REVISE = "revise"
REJECT = "reject"


@dataclass(frozen=True)
class QualityEvaluation:
    score: float | None
    recommendation: str | None
    suggestions: tuple[str, ...] = ()
    decision: str | None = None  # set only when the evaluation settles the discussion


class QualityEvaluator(Protocol):
    def evaluate(
        self, discussion: Discussion, message: AgentMessage, round_number: int
    ) -> QualityEvaluation | None:
        """Return None when the message carries no evaluation."""
        ...


def _bullets(text: str) -> tuple[str, ...]:
    return tuple(
        line.strip()[1:].strip()
        for line in text.splitlines()
        if line.strip().startswith("- ") and line.strip()[1:].strip()
    )


@dataclass
class MarkerQualityEvaluator:
    """Reads "Overall score: N" and "Recommendation: accept|revise|reject" markers.

    An accept with a score at or above `acceptance_threshold`, seen in
    round `config.min_round` or later, becomes a decision.
    """

    config: QualityConfig = field(default_factory=QualityConfig)
    acceptance_threshold: float = 65.0

    def __post_init__(self) -> None:
        self._score_re = re.compile(self.config.score_pattern, re.IGNORECASE)

    def parse(self, content: str) -> QualityEvaluation | None:
        text = content.lower()
        match = self._score_re.search(content)
        score = float(match.group(1)) if match else None

        recommendation = None
        for label, markers in (
            (ACCEPT, self.config.accept_markers),
            (REVISE, self.config.revise_markers),
            (REJECT, self.config.reject_markers),
        ):
            if any(marker.lower() in text for marker in markers):
                recommendation = label
                break

        if score is None and recommendation is None:
            return None
        return QualityEvaluation(score, recommendation, _bullets(content))

    def evaluate(
        self, discussion: Discussion, message: AgentMessage, round_number: int
    ) -> QualityEvaluation | None:
        evaluation = self.parse(message.content)
        if evaluation is None:
            return None

        accepted = (
            evaluation.recommendation == ACCEPT
            and evaluation.score is not None
            and evaluation.score >= self.acceptance_threshold
        )
        if not accepted or round_number < self.config.min_round:
            return evaluation

        decision = f"{ACCEPT} (score {evaluation.score:g}) in round {round_number}"
        logger.info("Discussion %s reached a decision: %s", discussion.id, decision)
        return QualityEvaluation(
            evaluation.score, evaluation.recommendation, evaluation.suggestions, decision
        )
