"""Integration tests: real API calls, no mocks. Requires .env with at least one API key."""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

load_dotenv()

_PROVIDER_KEYS = {
    "openai": "OPENAI_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "grok": "XAI_API_KEY",
}
_AVAILABLE = [name for name, key in _PROVIDER_KEYS.items() if os.environ.get(key, "").strip()]
pytestmark = pytest.mark.integration

if not _AVAILABLE:
    pytestmark = pytest.mark.skip(reason="Need at least one API key")


async def test_one_round_discussion(tmp_path: Path):
    """Run a real one-round discussion with the shipped personas, verify no crash."""
    from config.config_loader import load_config
    from writers_room.cli import build_client, build_controller
    from writers_room.ledger import InMemoryUsageLedger
    from writers_room.models import DiscussionOptions, DiscussionStatus, TopicContext
    from writers_room.output import save_transcript

    config = load_config()
    provider = config.defaults.provider if config.defaults.provider in _AVAILABLE else _AVAILABLE[0]
    client = build_client(config, provider)
    ledger = InMemoryUsageLedger()
    controller = build_controller(config, client, ledger=ledger)

    discussion_id = await controller.start_discussion(
        "A lighthouse keeper discovers the light has been guiding ships onto the rocks",
        TopicContext(knowledge="Short story, about 5000 words, literary fiction."),
        DiscussionOptions(max_rounds=1, time_limit_sec=600, token_limit=50_000),
    )
    report = await controller.wait_for_completion(discussion_id)

    assert report.status is DiscussionStatus.COMPLETED, report.error
    assert report.message_count == len(controller.get_agents())
    assert report.tokens.total > 0

    discussion = controller.get_discussion(discussion_id)
    for message in discussion.messages:
        assert message.content, f"Empty content from {message.agent_name}"

    stats = ledger.query_stats()
    assert sum(s.request_count for s in stats) >= report.message_count

    saved = save_transcript(discussion, report, tmp_path / "output")
    content = saved.read_text(encoding="utf-8")
    assert "## Transcript" in content
    assert len(content) > 500
