"""Discussion persistence: a store protocol and its SQLite implementation."""

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from writers_room.errors import PersistenceError
from writers_room.models import AgentMessage, AgentRole, Discussion

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS discussions (
    id           TEXT PRIMARY KEY,
    project_id   TEXT,
    plot_id      TEXT,
    chapter_id   TEXT,
    topic        TEXT NOT NULL,
    status       TEXT NOT NULL,
    thread_id    TEXT,
    participants TEXT NOT NULL DEFAULT '[]',
    metadata     TEXT NOT NULL DEFAULT '{}',
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS agent_discussions (
    id            TEXT PRIMARY KEY,
    discussion_id TEXT NOT NULL REFERENCES discussions(id) ON DELETE CASCADE,
    agent_role    TEXT NOT NULL,
    agent_name    TEXT NOT NULL,
    message       TEXT NOT NULL,
    message_type  TEXT NOT NULL DEFAULT 'agent',
    metadata      TEXT NOT NULL DEFAULT '{}',
    created_at    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_discussions_project ON discussions(project_id);
CREATE INDEX IF NOT EXISTS idx_discussions_plot ON discussions(plot_id);
CREATE INDEX IF NOT EXISTS idx_discussions_updated ON discussions(updated_at);
CREATE INDEX IF NOT EXISTS idx_agent_discussions_discussion ON agent_discussions(discussion_id);
"""

_DISCUSSION_COLUMNS = (
    "id,project_id,plot_id,chapter_id,topic,status,thread_id,"
    "participants,metadata,created_at,updated_at"
)
_MESSAGE_COLUMNS = "id,discussion_id,agent_role,agent_name,message,message_type,metadata,created_at"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DiscussionStore(Protocol):
    def save_discussion(self, discussion: Discussion) -> None: ...

    def update_status(self, discussion: Discussion) -> None: ...

    def append_message(self, discussion_id: str, message: AgentMessage) -> None: ...

    def get_discussion_row(self, discussion_id: str) -> dict | None: ...

    def find_discussions(
        self,
        project_id: str | None = None,
        plot_id: str | None = None,
        status: str | None = None,
        limit: int = 20,
    ) -> list[dict]: ...

    def get_messages(self, discussion_id: str) -> list[dict]: ...


def _message_metadata(message: AgentMessage) -> dict:
    meta = message.metadata
    data = {
        "agent_id": message.agent_id,
        "confidence": meta.confidence,
        "emotional_tone": meta.emotional_tone,
        "thinking_time_sec": meta.thinking_time_sec,
        "reply_to": meta.reply_to,
        "tokens_used": meta.tokens_used,
        "impact": meta.impact.value if meta.impact else None,
    }
    return {k: v for k, v in data.items() if v is not None}


class SqliteDiscussionStore:
    """Discussion and message rows in one SQLite file.

    Every sqlite3 failure is re-raised as PersistenceError; callers decide
    whether that is fatal.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _write(self, sql: str, params: tuple) -> None:
        try:
            with self._lock:
                self._conn.execute(sql, params)
                self._conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"SQLite write failed: {exc}") from exc

    def _read(self, sql: str, params: tuple) -> list[tuple]:
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"SQLite read failed: {exc}") from exc

    def save_discussion(self, discussion: Discussion) -> None:
        now = _now()
        created = discussion.started_at.isoformat() if discussion.started_at else now
        self._write(
            f"INSERT OR REPLACE INTO discussions ({_DISCUSSION_COLUMNS}) "
            "VALUES (?,?,?,?,?,?,?,?,?,?,?)",
            (
                discussion.id,
                discussion.project_id,
                discussion.plot_id,
                discussion.chapter_id,
                discussion.topic,
                discussion.status.value,
                discussion.metadata.get("thread_id"),
                json.dumps(list(discussion.participants)),
                json.dumps(discussion.metadata, default=str),
                created,
                now,
            ),
        )
        logger.debug("Saved discussion %s", discussion.id)

    def update_status(self, discussion: Discussion) -> None:
        self._write(
            "UPDATE discussions SET status=?, metadata=?, updated_at=? WHERE id=?",
            (
                discussion.status.value,
                json.dumps(discussion.metadata, default=str),
                _now(),
                discussion.id,
            ),
        )

    def append_message(self, discussion_id: str, message: AgentMessage) -> None:
        message_type = "human" if message.role is AgentRole.HUMAN else "agent"
        self._write(
            f"INSERT INTO agent_discussions ({_MESSAGE_COLUMNS}) VALUES (?,?,?,?,?,?,?,?)",
            (
                message.id,
                discussion_id,
                message.role.value,
                message.agent_name,
                message.content,
                message_type,
                json.dumps(_message_metadata(message)),
                message.timestamp.isoformat(),
            ),
        )

    def get_discussion_row(self, discussion_id: str) -> dict | None:
        rows = self._read(
            f"SELECT {_DISCUSSION_COLUMNS} FROM discussions WHERE id=?", (discussion_id,)
        )
        return self._discussion_to_dict(rows[0]) if rows else None

    def find_discussions(
        self,
        project_id: str | None = None,
        plot_id: str | None = None,
        status: str | None = None,
        limit: int = 20,
    ) -> list[dict]:
        """Most recently updated first."""
        clauses: list[str] = []
        params: list = []
        for column, value in (("project_id", project_id), ("plot_id", plot_id), ("status", status)):
            if value is not None:
                clauses.append(f"{column}=?")
                params.append(value)
        where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
        rows = self._read(
            f"SELECT {_DISCUSSION_COLUMNS} FROM discussions {where}"
            "ORDER BY updated_at DESC, rowid DESC LIMIT ?",
            (*params, limit),
        )
        return [self._discussion_to_dict(r) for r in rows]

    def get_messages(self, discussion_id: str) -> list[dict]:
        rows = self._read(
            f"SELECT {_MESSAGE_COLUMNS} FROM agent_discussions "
            "WHERE discussion_id=? ORDER BY rowid",
            (discussion_id,),
        )
        return [
            {
                "id": r[0],
                "discussion_id": r[1],
                "agent_role": r[2],
                "agent_name": r[3],
                "message": r[4],
                "message_type": r[5],
                "metadata": json.loads(r[6]),
                "created_at": r[7],
            }
            for r in rows
        ]

    @staticmethod
    def _discussion_to_dict(row: tuple) -> dict:
        return {
            "id": row[0],
            "project_id": row[1],
            "plot_id": row[2],
            "chapter_id": row[3],
            "topic": row[4],
            "status": row[5],
            "thread_id": row[6],
            "participants": json.loads(row[7]),
            "metadata": json.loads(row[8]),
            "created_at": row[9],
            "updated_at": row[10],
        }
