"""Shared pytest fixtures."""

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from config.config_loader import (
    AppConfig,
    DiscussionDefaults,
    ModelConfig,
    PromptsConfig,
    QualityConfig,
    SummarizationConfig,
)
from writers_room.agent import AgentRuntime
from writers_room.budget import BudgetMonitor
from writers_room.controller import SessionController
from writers_room.ledger import InMemoryUsageLedger
from writers_room.models import Completion, TokenUsage
from writers_room.personas import EditorPersona, MediatorPersona, ProofreaderPersona, WriterPersona
from writers_room.providers.base import LLMClient
from writers_room.quality import MarkerQualityEvaluator
from writers_room.retry import ExponentialBackoff
from writers_room.summarizer import SummarizationEngine


class FakeClient(LLMClient):
    """Scripted LLMClient double.

    `replies` are consumed in order: a str becomes a Completion, a
    Completion is returned as is, an Exception is raised. Once the
    script runs out every call answers "Reply number N." where N is the
    1-indexed call count. Set `gate` to an unset asyncio.Event to hold
    calls in flight.
    """

    def __init__(
        self,
        replies: list | None = None,
        usage: TokenUsage = TokenUsage(10, 5, 15),
        on_call: Callable[[], None] | None = None,
    ) -> None:
        self.replies = list(replies or [])
        self.usage = usage
        self.on_call = on_call
        self.calls: list[dict] = []
        self.gate: asyncio.Event | None = None

    def name(self) -> str:
        return "fake"

    def model_string(self) -> str:
        return "fake-model"

    async def complete(self, model, messages, max_tokens, temperature=None) -> Completion:
        self.calls.append(
            {"model": model, "messages": messages, "max_tokens": max_tokens, "temperature": temperature}
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.on_call is not None:
            self.on_call()
        reply = self.replies.pop(0) if self.replies else f"Reply number {len(self.calls)}."
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, Completion):
            return reply
        return Completion(content=reply, usage=self.usage, finish_reason="stop", model=model, latency_sec=0.01)

    def user_prompt(self, call_index: int) -> str:
        return self.calls[call_index]["messages"][-1]["content"]


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until predicate() holds; fail the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not reached in time")
        await asyncio.sleep(0.001)


async def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def prompts_config() -> PromptsConfig:
    return PromptsConfig(
        turn=(
            "Topic: {topic}\nRound: {round}\n\nSummary:\n{summaries}\n\n"
            "Recent:\n{transcript}\n\nYou are {name} ({role}). Respond."
        ),
        summary="Summarize the discussion about {topic} in {target_length} tokens:\n\n{transcript}",
    )


@pytest.fixture
def writer() -> WriterPersona:
    return WriterPersona(id="writer", name="Mara", system_prompt="You pitch story ideas.", genres=("fantasy",))


@pytest.fixture
def editor() -> EditorPersona:
    return EditorPersona(id="editor", name="Jonas", system_prompt="You edit stories.", focus_areas=("pacing",))


@pytest.fixture
def proofreader() -> ProofreaderPersona:
    return ProofreaderPersona(id="proofreader", name="Ines", system_prompt="You check continuity.")


@pytest.fixture
def mediator() -> MediatorPersona:
    return MediatorPersona(id="mediator", name="Deputy", system_prompt="You chair the session.")


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def ledger() -> InMemoryUsageLedger:
    return InMemoryUsageLedger()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_runtime(prompts_config, ledger):
    def _make(client: LLMClient, **kwargs) -> AgentRuntime:
        kwargs.setdefault("retry_policy", ExponentialBackoff(max_attempts=3, initial_delay=0.0))
        kwargs.setdefault("ledger", ledger)
        kwargs.setdefault("sleep", _no_sleep)
        return AgentRuntime(client, prompts_config, **kwargs)

    return _make


@pytest.fixture
def make_controller(prompts_config, ledger, make_runtime):
    """Build a SessionController around a FakeClient.

    Pass `summarization=SummarizationConfig(...)` to enable the summarizer
    and `clock=` to drive the budget monitor from a FakeClock.
    """

    def _make(
        personas,
        client: FakeClient | None = None,
        summarization: SummarizationConfig | None = None,
        clock: FakeClock | None = None,
        quality: QualityConfig | None = None,
        store=None,
    ) -> SessionController:
        client = client or FakeClient()
        summarizer = None
        if summarization is not None:
            summarizer = SummarizationEngine(client, prompts_config, summarization, ledger=ledger)
        budget = BudgetMonitor(clock=clock) if clock is not None else BudgetMonitor()
        return SessionController(
            personas,
            make_runtime(client),
            summarizer=summarizer,
            store=store,
            evaluator=MarkerQualityEvaluator(quality or QualityConfig()),
            budget=budget,
        )

    return _make


@pytest.fixture
def sample_app_config(tmp_path: Path, prompts_config: PromptsConfig) -> AppConfig:
    model_cfg = ModelConfig(
        name="claude",
        sdk="anthropic",
        model="claude-sonnet-4-20250514",
        api_key_env="ANTHROPIC_API_KEY",
        timeout_sec=60,
        max_tokens=1024,
    )
    return AppConfig(
        defaults=DiscussionDefaults(
            provider="claude",
            max_rounds=2,
            time_limit_sec=None,
            auto_stop=False,
            output_dir=tmp_path / "output",
            database_path=tmp_path / "room.db",
        ),
        models={"claude": model_cfg},
        prompts=prompts_config,
        personas=[
            {"id": "writer", "role": "writer", "name": "Mara", "system_prompt": "You write."},
            {"id": "editor", "role": "editor", "name": "Jonas", "system_prompt": "You edit."},
        ],
        available_providers={"claude"},
    )
