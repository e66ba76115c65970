"""Agent runtime: one persona, one context window, one LLM call (with retries)."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from config.config_loader import PromptsConfig
from writers_room.errors import FatalAgentError, TransientApiError
from writers_room.ledger import STATUS_ERROR, STATUS_SUCCESS, UsageLedger
from writers_room.models import (
    AgentMessage,
    Completion,
    MessageMetadata,
    TokenUsage,
    TurnContext,
    TurnOutcome,
    TurnResult,
)
from writers_room.personas import Persona
from writers_room.providers.base import ErrorKind, LLMClient, ProviderError
from writers_room.retry import ExponentialBackoff, RetryPolicy
from writers_room.tokens import estimate_cost

logger = logging.getLogger(__name__)

OPERATION_TURN = "agent.turn"

_FATAL_KINDS = {ErrorKind.AUTH, ErrorKind.BAD_REQUEST}

_CONFIDENT_PHRASES = ("certainly", "definitely", "clearly", "without doubt", "must")
_HEDGING_PHRASES = ("maybe", "perhaps", "might", "possibly", "i think", "not sure")


def classify_error(agent_id: str, exc: Exception) -> TransientApiError | FatalAgentError:
    """Auth and malformed-request failures are fatal for the agent; everything else is retryable."""
    if isinstance(exc, ProviderError) and exc.kind in _FATAL_KINDS:
        return FatalAgentError(agent_id, str(exc))
    return TransientApiError(str(exc))


def estimate_confidence(content: str) -> float:
    """0..1, nudged up by assertive phrases and down by hedging ones."""
    text = content.lower()
    score = 0.5
    score += 0.1 * sum(1 for phrase in _CONFIDENT_PHRASES if phrase in text)
    score -= 0.1 * sum(1 for phrase in _HEDGING_PHRASES if phrase in text)
    return round(max(0.0, min(1.0, score)), 2)


def detect_tone(content: str) -> str:
    text = content.lower()
    if "!" in content or "wonderful" in text or "love" in text:
        return "enthusiastic"
    if "problem" in text or "concern" in text or "worried" in text:
        return "concerned"
    if "?" in content and len(content) < 100:
        return "questioning"
    return "neutral"


def _format_line(message: AgentMessage) -> str:
    return f"[{message.agent_name} ({message.role.value})]: {message.content}"


class AgentRuntime:
    """Turns (persona, context) into a single agent message.

    Transient failures are retried per `retry_policy`; once exhausted the
    turn comes back DEGRADED with no message. Fatal failures raise
    FatalAgentError. Every attempt is written to the usage ledger.
    """

    def __init__(
        self,
        client: LLMClient,
        prompts: PromptsConfig,
        retry_policy: RetryPolicy | None = None,
        ledger: UsageLedger | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._prompts = prompts
        self.retry_policy: RetryPolicy = retry_policy or ExponentialBackoff()
        self._ledger = ledger
        self._sleep = sleep

    @property
    def client(self) -> LLMClient:
        return self._client

    def build_system_prompt(self, persona: Persona, knowledge: str | None = None) -> str:
        parts = [persona.system_prompt.strip(), f"You are {persona.name}, the {persona.role.value}."]
        if persona.tone:
            parts.append(f"Tone: {persona.tone}.")
        if persona.traits:
            parts.append(f"Personality traits: {', '.join(persona.traits)}.")
        if persona.goals:
            parts.append("Goals:\n" + "\n".join(f"- {g}" for g in persona.goals))
        if persona.constraints:
            parts.append("Constraints:\n" + "\n".join(f"- {c}" for c in persona.constraints))
        parts.extend(persona.guidance())
        if knowledge:
            parts.append(f"Relevant background and settings:\n{knowledge}")
        return "\n\n".join(parts)

    def build_prompt(self, persona: Persona, context: TurnContext) -> list[dict[str, str]]:
        """System prompt, then one user message: summaries, recent transcript, instruction."""
        summaries = "\n\n".join(
            f"(messages {s.start + 1}-{s.end}) {s.text}" for s in context.summaries
        ) or "(none yet)"
        transcript = "\n\n".join(_format_line(m) for m in context.recent_messages) or "(nobody has spoken yet)"
        user_prompt = self._prompts.turn.format(
            topic=context.topic,
            round=context.round_number,
            name=persona.name,
            role=persona.role.value,
            summaries=summaries,
            transcript=transcript,
        )
        return [
            {"role": "system", "content": self.build_system_prompt(persona, context.knowledge)},
            {"role": "user", "content": user_prompt},
        ]

    def _check_persona(self, persona: Persona) -> None:
        if not persona.system_prompt or not persona.system_prompt.strip():
            raise FatalAgentError(persona.id, "Persona has an empty system prompt")
        if persona.max_tokens <= 0:
            raise FatalAgentError(persona.id, "Persona max_tokens must be positive")

    async def produce_turn(self, persona: Persona, context: TurnContext) -> TurnResult:
        self._check_persona(persona)
        messages = self.build_prompt(persona, context)
        model = persona.model or self._client.model_string()
        logger.debug("Prompt for %s: %d chars", persona.id, sum(len(m["content"]) for m in messages))

        started = time.monotonic()
        attempt = 0
        while True:
            attempt += 1
            call_started = time.monotonic()
            try:
                completion = await self._client.complete(
                    model, messages, persona.max_tokens, persona.temperature
                )
            except Exception as exc:
                error = classify_error(persona.id, exc)
                self._record(
                    model, TokenUsage(), call_started, STATUS_ERROR, persona, context, attempt, str(exc)
                )
                if isinstance(error, FatalAgentError):
                    logger.warning("Persona %s failed fatally: %s", persona.id, exc)
                    raise error from exc
                if attempt >= self.retry_policy.max_attempts:
                    logger.warning(
                        "Persona %s failed after %d attempts in round %d: %s",
                        persona.id, attempt, context.round_number, exc,
                    )
                    return TurnResult(
                        persona_id=persona.id,
                        outcome=TurnOutcome.DEGRADED,
                        message=None,
                        usage=TokenUsage(),
                        attempts=attempt,
                        duration_sec=time.monotonic() - started,
                        error=str(error),
                    )
                delay = self.retry_policy.delay_for(attempt)
                logger.warning(
                    "Persona %s transient failure (attempt %d/%d), retrying in %.1fs: %s",
                    persona.id, attempt, self.retry_policy.max_attempts, delay, exc,
                )
                await self._sleep(delay)
                continue

            self._record(model, completion.usage, call_started, STATUS_SUCCESS, persona, context, attempt)
            return TurnResult(
                persona_id=persona.id,
                outcome=TurnOutcome.OK,
                message=self._to_message(persona, context, completion),
                usage=completion.usage,
                attempts=attempt,
                duration_sec=time.monotonic() - started,
            )

    def _to_message(self, persona: Persona, context: TurnContext, completion: Completion) -> AgentMessage:
        reply_to = context.recent_messages[-1].id if context.recent_messages else None
        return AgentMessage(
            agent_id=persona.id,
            agent_name=persona.name,
            role=persona.role,
            content=completion.content,
            metadata=MessageMetadata(
                confidence=estimate_confidence(completion.content),
                emotional_tone=detect_tone(completion.content),
                thinking_time_sec=completion.latency_sec,
                reply_to=reply_to,
                tokens_used=completion.usage.total_tokens,
            ),
        )

    def _record(
        self,
        model: str,
        usage: TokenUsage,
        call_started: float,
        status: str,
        persona: Persona,
        context: TurnContext,
        attempt: int,
        error_message: str | None = None,
    ) -> None:
        if self._ledger is None:
            return
        try:
            self._ledger.record(
                api_type="chat",
                provider=self._client.name(),
                model=model,
                operation=OPERATION_TURN,
                tokens=usage,
                cost=estimate_cost(usage.prompt_tokens, usage.completion_tokens, model),
                duration_ms=int((time.monotonic() - call_started) * 1000),
                status=status,
                error_message=error_message,
                metadata={
                    "discussion_id": context.discussion_id,
                    "agent_id": persona.id,
                    "role": persona.role.value,
                    "round": context.round_number,
                    "attempt": attempt,
                },
            )
        except Exception as exc:
            logger.warning("Usage ledger write failed for %s: %s", persona.id, exc)
