"""Summarization engine: compacts the oldest unsummarized stretch of the log into one Summary."""

import dataclasses
import logging
import time

from config.config_loader import THRESHOLD_MODES, PromptsConfig, SummarizationConfig
from writers_room.errors import SummarizationError, ValidationError
from writers_room.ledger import STATUS_ERROR, STATUS_SUCCESS, UsageLedger
from writers_room.models import Discussion, Summary, TokenUsage
from writers_room.providers.base import LLMClient
from writers_room.report import format_transcript
from writers_room.tokens import count_tokens, estimate_cost

logger = logging.getLogger(__name__)

OPERATION_SUMMARY = "message.summarization"

SUMMARY_TEMPERATURE = 0.3


class SummarizationEngine:
    """Decides when the tail is too long and produces the covering summary.

    The engine never mutates the discussion; the controller appends the
    returned Summary through `Discussion.add_summary`.
    """

    def __init__(
        self,
        client: LLMClient,
        prompts: PromptsConfig,
        config: SummarizationConfig | None = None,
        ledger: UsageLedger | None = None,
    ) -> None:
        self._client = client
        self._prompts = prompts
        self._config = config or SummarizationConfig()
        self._ledger = ledger

    def get_config(self) -> SummarizationConfig:
        return dataclasses.replace(self._config)

    def update_config(self, **changes) -> SummarizationConfig:
        known = {f.name for f in dataclasses.fields(SummarizationConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ValidationError(f"Unknown summarization settings: {', '.join(sorted(unknown))}")
        updated = dataclasses.replace(self._config, **changes)
        if updated.threshold <= 0:
            raise ValidationError("Summarization threshold must be positive")
        if updated.threshold_mode not in THRESHOLD_MODES:
            raise ValidationError(f"threshold_mode must be one of {THRESHOLD_MODES}")
        if updated.target_length <= 0:
            raise ValidationError("target_length must be positive")
        if updated.preserve_recent < 0:
            raise ValidationError("preserve_recent cannot be negative")
        self._config = updated
        logger.info("Summarization config updated: %s", changes)
        return self.get_config()

    def next_window(self, discussion: Discussion) -> tuple[int, int] | None:
        """Half-open index range to summarize next, or None while under the threshold."""
        cfg = self._config
        if not cfg.enabled:
            return None
        start = discussion.summarized_upto
        tail = discussion.messages[start:]

        if cfg.threshold_mode == "messages":
            if len(tail) > cfg.threshold:
                return start, start + cfg.threshold
            return None

        tail_tokens = sum(count_tokens(m.content) for m in tail)
        if tail_tokens > cfg.threshold and len(tail) > cfg.preserve_recent:
            return start, len(discussion.messages) - cfg.preserve_recent
        return None

    def should_summarize(self, discussion: Discussion) -> bool:
        return self.next_window(discussion) is not None

    def build_prompt(self, discussion: Discussion, window: tuple[int, int]) -> list[dict[str, str]]:
        start, end = window
        transcript = format_transcript(discussion.messages[start:end], offset=start)
        content = self._prompts.summary.format(
            topic=discussion.topic,
            transcript=transcript,
            target_length=self._config.target_length,
        )
        return [{"role": "user", "content": content}]

    async def summarize(
        self, discussion: Discussion, window: tuple[int, int] | None = None
    ) -> tuple[Summary, TokenUsage]:
        """One LLM call covering `window` (default: `next_window`).

        Raises SummarizationError on any failure; the messages stay
        unsummarized and are picked up again at the next breach.
        """
        window = window or self.next_window(discussion)
        if window is None:
            raise SummarizationError("Nothing to summarize")
        start, end = window
        model = self._config.summary_model or self._client.model_string()
        try:
            messages = self.build_prompt(discussion, window)
        except (KeyError, IndexError, ValueError) as exc:
            raise SummarizationError(f"Invalid summary prompt template: {exc!r}") from exc

        started = time.monotonic()
        try:
            completion = await self._client.complete(
                model, messages, self._config.target_length, SUMMARY_TEMPERATURE
            )
        except Exception as exc:
            self._record(model, TokenUsage(), started, STATUS_ERROR, discussion.id, window, str(exc))
            raise SummarizationError(
                f"Summarizing messages {start + 1}-{end} failed: {exc}"
            ) from exc

        self._record(model, completion.usage, started, STATUS_SUCCESS, discussion.id, window)
        text = completion.content.strip()
        summary = Summary(
            start=start,
            end=end,
            text=text,
            token_count=count_tokens(text),
            model=completion.model or model,
        )
        logger.info(
            "Summarized messages %d-%d of %s into %d tokens",
            start + 1, end, discussion.id, summary.token_count,
        )
        return summary, completion.usage

    def _record(
        self,
        model: str,
        usage: TokenUsage,
        started: float,
        status: str,
        discussion_id: str,
        window: tuple[int, int],
        error_message: str | None = None,
    ) -> None:
        if self._ledger is None:
            return
        try:
            self._ledger.record(
                api_type="chat",
                provider=self._client.name(),
                model=model,
                operation=OPERATION_SUMMARY,
                tokens=usage,
                cost=estimate_cost(usage.prompt_tokens, usage.completion_tokens, model),
                duration_ms=int((time.monotonic() - started) * 1000),
                status=status,
                error_message=error_message,
                metadata={"discussion_id": discussion_id, "start": window[0], "end": window[1]},
            )
        except Exception as exc:
            logger.warning("Usage ledger write failed for summarization: %s", exc)
