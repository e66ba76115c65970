"""Heuristic token estimation, model context limits and cost estimates.

The estimate is deliberately provider-agnostic: roughly one token per two
CJK characters and one token per four characters of anything else, plus a
fixed per-message overhead for role and separators.
"""

import re
from dataclasses import dataclass

_CJK_PATTERN = re.compile(r"[\u3000-\u303f\u3040-\u309f\u30a0-\u30ff\u4e00-\u9faf\uff00-\uffef]")

MESSAGE_OVERHEAD_TOKENS = 4


@dataclass(frozen=True)
class ModelLimits:
    max_context_tokens: int
    max_output_tokens: int
    input_cost_per_1k: float
    output_cost_per_1k: float


_MODEL_LIMITS: dict[str, ModelLimits] = {
    "gpt-4o": ModelLimits(128_000, 16_384, 0.0025, 0.01),
    "gpt-4o-mini": ModelLimits(128_000, 16_384, 0.00015, 0.0006),
    "gpt-4-turbo": ModelLimits(128_000, 4_096, 0.01, 0.03),
    "claude-sonnet-4-20250514": ModelLimits(200_000, 8_192, 0.003, 0.015),
    "claude-3-5-haiku-latest": ModelLimits(200_000, 8_192, 0.0008, 0.004),
    "gemini-2.5-flash": ModelLimits(1_048_576, 8_192, 0.0003, 0.0025),
}

DEFAULT_CONTEXT_TOKENS = 128_000


def count_tokens(text: str) -> int:
    cjk_chars = len(_CJK_PATTERN.findall(text))
    other_chars = len(text) - cjk_chars
    return -(-cjk_chars // 2) + -(-other_chars // 4)


def count_messages_tokens(messages: list[dict[str, str]]) -> int:
    """Estimate tokens for chat messages shaped like {"role": ..., "content": ...}."""
    total = 0
    for message in messages:
        total += count_tokens(message["content"]) + MESSAGE_OVERHEAD_TOKENS
        total += count_tokens(message["role"])
    return total


def model_limits(model: str) -> ModelLimits | None:
    return _MODEL_LIMITS.get(model)


def context_window(model: str) -> int:
    limits = _MODEL_LIMITS.get(model)
    return limits.max_context_tokens if limits else DEFAULT_CONTEXT_TOKENS


def estimate_cost(prompt_tokens: int, completion_tokens: int, model: str) -> float:
    """USD estimate; 0.0 for models without a price entry."""
    limits = _MODEL_LIMITS.get(model)
    if limits is None:
        return 0.0
    return (prompt_tokens / 1000) * limits.input_cost_per_1k + (
        completion_tokens / 1000
    ) * limits.output_cost_per_1k
