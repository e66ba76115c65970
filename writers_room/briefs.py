"""Discussion briefs: markdown files whose front matter carries the discussion setup."""

import logging
from dataclasses import dataclass
from pathlib import Path

import frontmatter

from writers_room.errors import ValidationError
from writers_room.models import TopicContext

logger = logging.getLogger(__name__)

_KNOWN_KEYS = {"topic", "project_id", "plot_id", "chapter_id", "rounds", "time_limit", "knowledge"}


@dataclass
class Brief:
    topic: str
    context: TopicContext
    rounds: int | None = None
    time_limit_sec: float | None = None


def parse_brief(file_path: Path) -> Brief:
    """Parse a brief file with optional YAML front matter.

    The topic is the `topic` key when present, else the body text. Any
    body text beyond a `topic` key is appended to the knowledge context.

    Raises:
        ValidationError: no topic, or a non-numeric rounds/time_limit.
    """
    post = frontmatter.load(str(file_path))
    body = post.content.strip()
    meta = dict(post.metadata)

    unknown = sorted(set(meta) - _KNOWN_KEYS)
    if unknown:
        logger.warning("Ignoring unknown brief keys in %s: %s", file_path.name, ", ".join(unknown))

    topic = str(meta.get("topic") or "").strip()
    knowledge_parts = [str(meta["knowledge"]).strip()] if meta.get("knowledge") else []
    if topic:
        if body:
            knowledge_parts.append(body)
    else:
        topic = body
    if not topic:
        raise ValidationError(f"Brief {file_path.name} has no topic")

    try:
        rounds = int(meta["rounds"]) if meta.get("rounds") is not None else None
        time_limit = float(meta["time_limit"]) if meta.get("time_limit") is not None else None
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Brief {file_path.name}: rounds/time_limit must be numbers") from exc

    context = TopicContext(
        project_id=_optional_str(meta.get("project_id")),
        plot_id=_optional_str(meta.get("plot_id")),
        chapter_id=_optional_str(meta.get("chapter_id")),
        knowledge="\n\n".join(knowledge_parts) or None,
    )
    return Brief(topic=topic, context=context, rounds=rounds, time_limit_sec=time_limit)


def _optional_str(value) -> str | None:
    return None if value is None else str(value)
