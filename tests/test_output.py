"""Tests for writers_room/output.py and writers_room/report.py."""

from pathlib import Path

import pytest

from writers_room.interventions import InterventionQueue, to_message
from writers_room.models import (
    AgentMessage,
    AgentRole,
    Discussion,
    DiscussionStatus,
    Impact,
    MessageMetadata,
    Summary,
    TokenUsageStats,
)
from writers_room.output import _slug, console, print_message, print_report, save_transcript
from writers_room.report import build_report, format_transcript


def test_slug_basic():
    assert _slug("Should the dragon die in act two?") == "should-the-dragon-die-in-act-two"


def test_slug_max_len():
    assert len(_slug("a" * 100)) <= 40


def test_slug_special_chars():
    result = _slug("Chapter 3: Mara's (secret) plan!")
    assert ":" not in result
    assert "(" not in result
    assert "'" not in result


@pytest.fixture
def finished_discussion() -> Discussion:
    discussion = Discussion(
        topic="World setting for a floating city",
        project_id="novel-1",
        participants=("writer", "editor"),
    )
    discussion.transition(DiscussionStatus.ACTIVE)
    discussion.append_message(AgentMessage("writer", "Mara", AgentRole.WRITER, "The city drifts on storms."))
    discussion.append_message(AgentMessage("editor", "Jonas", AgentRole.EDITOR, "Who steers it?"))
    discussion.append_message(to_message(InterventionQueue().put("Keep it grounded", Impact.HIGH)))
    discussion.add_summary(Summary(start=0, end=2, text="Mara proposed a drifting city."))
    discussion.decisions.append("accept (score 80) in round 2")
    discussion.quality_score = 80.0
    discussion.transition(DiscussionStatus.COMPLETED)
    return discussion


@pytest.fixture
def report(finished_discussion: Discussion):
    tokens = TokenUsageStats(prompt=100, completion=50, total=150, calls=3, token_limit=300, usage_percentage=50.0)
    return build_report(finished_discussion, "decision", rounds=2, tokens=tokens, duration_sec=12.5)


def test_format_transcript_numbers_from_offset():
    messages = [
        AgentMessage("writer", "Mara", AgentRole.WRITER, "First idea."),
        AgentMessage("editor", "Jonas", AgentRole.EDITOR, "A note."),
    ]
    text = format_transcript(messages, offset=4)
    assert text == "[5] Mara (writer):\nFirst idea.\n\n[6] Jonas (editor):\nA note."


def test_build_report_copies_discussion_state(finished_discussion: Discussion, report):
    assert report.discussion_id == finished_discussion.id
    assert report.status is DiscussionStatus.COMPLETED
    assert report.reason == "decision"
    assert report.message_count == 3
    assert report.summary_count == 1
    assert report.decisions == ["accept (score 80) in round 2"]
    assert report.quality_score == 80.0
    assert report.error is None

    finished_discussion.decisions.append("later")
    assert report.decisions == ["accept (score 80) in round 2"]


def test_save_transcript_creates_nested_dir(tmp_path: Path, finished_discussion, report):
    output_dir = tmp_path / "nested" / "output"
    saved = save_transcript(finished_discussion, report, output_dir)
    assert saved.exists()
    assert saved.suffix == ".md"
    assert "world-setting" in saved.name


def test_save_transcript_content(tmp_path: Path, finished_discussion, report):
    content = save_transcript(finished_discussion, report, tmp_path).read_text(encoding="utf-8")
    assert "# Writers' Room: World setting for a floating city" in content
    assert "**Participants:** writer, editor" in content
    assert "**End reason:** decision" in content
    assert "**Project:** novel-1" in content
    assert "**Plot:**" not in content
    assert "### Messages 1-2" in content
    assert "Mara proposed a drifting city." in content
    assert "### 3. Human editor (human)" in content
    assert "Quality score: 80" in content
    assert "- accept (score 80) in round 2" in content


def test_save_transcript_without_report(tmp_path: Path, finished_discussion):
    content = save_transcript(finished_discussion, None, tmp_path).read_text(encoding="utf-8")
    assert "**End reason:**" not in content
    assert "## Transcript" in content


def test_print_functions_render(finished_discussion, report):
    message = AgentMessage(
        "writer", "Mara", AgentRole.WRITER, "**Bold** idea",
        metadata=MessageMetadata(thinking_time_sec=1.25, tokens_used=42),
    )
    with console.capture() as capture:
        print_message(message)
        print_report(report)
    text = capture.get()
    assert "Mara" in text
    assert "42 tokens" in text
    assert "Discussion Report" in text
    assert "50.0% of limit" in text
    assert "accept (score 80) in round 2" in text
