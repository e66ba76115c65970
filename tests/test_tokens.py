"""Tests for writers_room/tokens.py."""

import pytest

from writers_room.tokens import (
    DEFAULT_CONTEXT_TOKENS,
    MESSAGE_OVERHEAD_TOKENS,
    context_window,
    count_messages_tokens,
    count_tokens,
    estimate_cost,
    model_limits,
)


def test_count_tokens_latin_text():
    assert count_tokens("") == 0
    assert count_tokens("abcd") == 1
    assert count_tokens("abcde") == 2


def test_count_tokens_cjk_is_denser():
    assert count_tokens("物語の舞台") == 3
    assert count_tokens("城ab") == 2


def test_count_messages_adds_overhead():
    messages = [
        {"role": "system", "content": "abcd"},
        {"role": "user", "content": "abcdabcd"},
    ]
    expected = (1 + MESSAGE_OVERHEAD_TOKENS + 2) + (2 + MESSAGE_OVERHEAD_TOKENS + 1)
    assert count_messages_tokens(messages) == expected


def test_context_window_falls_back_for_unknown_models():
    assert model_limits("mystery-model") is None
    assert model_limits("gpt-4o-mini").max_output_tokens == 16_384
    assert context_window("claude-sonnet-4-20250514") == 200_000
    assert context_window("mystery-model") == DEFAULT_CONTEXT_TOKENS


def test_estimate_cost():
    assert estimate_cost(1000, 1000, "gpt-4o") == pytest.approx(0.0125)
    assert estimate_cost(1000, 1000, "mystery-model") == 0.0
