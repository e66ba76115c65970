"""Rich console output and markdown transcript save for discussions."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from writers_room.models import AgentMessage, AgentRole, Discussion, DiscussionReport

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_ROLE_STYLES = {
    AgentRole.WRITER: "cyan",
    AgentRole.EDITOR: "magenta",
    AgentRole.PROOFREADER: "yellow",
    AgentRole.MEDIATOR: "green",
    AgentRole.HUMAN: "bold red",
    AgentRole.SYSTEM: "dim",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def print_message(message: AgentMessage) -> None:
    """Print one discussion message as a panel coloured by role."""
    meta = message.metadata
    subtitle_parts = []
    if meta.thinking_time_sec is not None:
        subtitle_parts.append(f"{meta.thinking_time_sec:.1f}s")
    if meta.tokens_used:
        subtitle_parts.append(f"{meta.tokens_used} tokens")
    if meta.impact is not None:
        subtitle_parts.append(f"impact: {meta.impact.value}")
    console.print(
        Panel(
            Markdown(message.content),
            title=f"[bold]{message.agent_name}[/bold] ({message.role.value})",
            subtitle=" | ".join(subtitle_parts) or None,
            border_style=_ROLE_STYLES.get(message.role, "dim"),
        )
    )


def print_report(report: DiscussionReport) -> None:
    """Print the end-of-discussion report."""
    console.print(Rule("[bold green]Discussion Report[/bold green]"))
    table = Table(show_header=False, box=None)
    table.add_row("Status", f"{report.status.value} ({report.reason})")
    table.add_row("Rounds", str(report.rounds))
    table.add_row("Messages", str(report.message_count))
    table.add_row("Summaries", str(report.summary_count))
    table.add_row("Duration", f"{report.duration_sec:.1f}s")
    tokens = f"{report.tokens.total} in {report.tokens.calls} calls"
    if report.tokens.usage_percentage is not None:
        tokens += f" ({report.tokens.usage_percentage:.1f}% of limit)"
    table.add_row("Tokens", tokens)
    if report.quality_score is not None:
        table.add_row("Quality score", f"{report.quality_score:g}")
    console.print(table)
    for decision in report.decisions:
        console.print(Text(f"Decision: {decision}", style="bold green"))
    if report.error:
        console.print(Text(f"Error: {report.error}", style="bold red"))


def save_transcript(
    discussion: Discussion,
    report: DiscussionReport | None,
    output_dir: Path,
) -> Path:
    """Save the full discussion transcript as a markdown file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(discussion.topic)}.md"

    lines: list[str] = [
        f"# Writers' Room: {discussion.topic[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Participants:** {', '.join(discussion.participants)}",
        f"**Status:** {discussion.status.value}",
    ]
    if report is not None:
        lines += [
            f"**End reason:** {report.reason}",
            f"**Rounds:** {report.rounds}",
            f"**Duration:** {report.duration_sec:.1f}s",
            f"**Tokens:** {report.tokens.total}",
        ]
    for label, value in (
        ("Project", discussion.project_id),
        ("Plot", discussion.plot_id),
        ("Chapter", discussion.chapter_id),
    ):
        if value:
            lines.append(f"**{label}:** {value}")
    lines += ["", "---", ""]

    if discussion.summaries:
        lines += ["## Summaries", ""]
        for summary in discussion.summaries:
            lines.append(f"### Messages {summary.start + 1}-{summary.end}")
            lines.append("")
            lines.append(summary.text)
            lines.append("")

    lines += ["## Transcript", ""]
    for index, message in enumerate(discussion.messages, start=1):
        lines.append(f"### {index}. {message.agent_name} ({message.role.value})")
        lines.append("")
        lines.append(message.content)
        lines.append("")

    if discussion.decisions or discussion.quality_score is not None:
        lines += ["## Outcome", ""]
        if discussion.quality_score is not None:
            lines.append(f"Quality score: {discussion.quality_score:g}")
        for decision in discussion.decisions:
            lines.append(f"- {decision}")
        lines.append("")

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Transcript saved to: %s", filepath)
    return filepath
