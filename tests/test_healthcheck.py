"""Unit tests for writers_room/healthcheck.py, no real API calls."""

import asyncio
from unittest.mock import AsyncMock

from writers_room.healthcheck import HealthResult, run_health_checks
from writers_room.models import Completion, TokenUsage
from writers_room.providers.base import ErrorKind, ProviderError

from tests.conftest import FakeClient


async def test_all_clients_pass():
    clients = {"claude": FakeClient(["OK"]), "gemini": FakeClient(["OK"])}

    results = await run_health_checks(clients)

    assert set(results) == {"claude", "gemini"}
    for result in results.values():
        assert result.ok is True
        assert result.error == ""
        assert result.kind is None
        assert result.latency_sec >= 0
    call = clients["claude"].calls[0]
    assert call["model"] == "fake-model"
    assert call["max_tokens"] == 10


async def test_reports_model_from_completion():
    reply = Completion(
        content="OK", usage=TokenUsage(3, 1, 4), finish_reason="stop", model="gpt-4o-mini-2024-07-18"
    )

    results = await run_health_checks({"openai": FakeClient([reply])})

    assert results["openai"].model == "gpt-4o-mini-2024-07-18"


async def test_one_client_fails():
    clients = {
        "claude": FakeClient(["OK"]),
        "grok": FakeClient([ProviderError("grok", "403 Forbidden", kind=ErrorKind.AUTH, status_code=403)]),
    }

    results = await run_health_checks(clients)

    assert results["claude"].ok is True
    grok = results["grok"]
    assert grok.ok is False
    assert grok.kind is ErrorKind.AUTH
    assert grok.model == "fake-model"
    assert "403" in grok.error


async def test_all_clients_fail():
    clients = {"openai": FakeClient(), "gemini": FakeClient()}
    for name, client in clients.items():
        client.complete = AsyncMock(side_effect=Exception(f"{name} down"))

    results = await run_health_checks(clients)

    for name in clients:
        assert results[name].ok is False
        assert name in results[name].error
        assert results[name].kind is None


async def test_empty_clients():
    assert await run_health_checks({}) == {}


async def test_timeout_counts_as_failure():
    client = FakeClient()
    client.gate = asyncio.Event()

    results = await run_health_checks({"slow": client}, timeout_sec=0.05)

    assert results["slow"] == HealthResult(
        ok=False,
        model="fake-model",
        latency_sec=results["slow"].latency_sec,
        error="No answer within 0.05s",
        kind=ErrorKind.TIMEOUT,
    )
    assert results["slow"].latency_sec > 0
