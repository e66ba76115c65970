"""Transcript formatting and the end-of-discussion report."""

from writers_room.models import AgentMessage, Discussion, DiscussionReport, TokenUsageStats


def format_transcript(messages: list[AgentMessage], offset: int = 0) -> str:
    """Number messages from offset + 1 so summaries can reference log positions."""
    parts: list[str] = []
    for index, message in enumerate(messages, start=offset + 1):
        parts.append(f"[{index}] {message.agent_name} ({message.role.value}):\n{message.content}")
    return "\n\n".join(parts)


def build_report(
    discussion: Discussion,
    reason: str,
    rounds: int,
    tokens: TokenUsageStats,
    duration_sec: float,
    error: str | None = None,
) -> DiscussionReport:
    return DiscussionReport(
        discussion_id=discussion.id,
        status=discussion.status,
        reason=reason,
        rounds=rounds,
        message_count=len(discussion.messages),
        summary_count=len(discussion.summaries),
        decisions=list(discussion.decisions),
        quality_score=discussion.quality_score,
        tokens=tokens,
        duration_sec=duration_sec,
        error=error,
    )
