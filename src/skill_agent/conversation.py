# conversation.py
# File-backed conversation threads.
#
# Persistence is the caller's job: run the executor, then append the turns
# from RunResult.conversation. recent_turns() feeds a thread back in as the
# `history` argument of Executor.run.

import os
import tempfile
import threading
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from skill_agent.models import ConversationTurn, Role


class ThreadNotFoundError(Exception):
    """Raised when a thread id has no file in the store."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Thread(BaseModel):
    id: str
    title: str = ""
    project_id: str = ""
    summary: str = ""
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    metadata: dict[str, Any] = Field(default_factory=dict)
    turns: list[ConversationTurn] = Field(default_factory=list)


class FileConversationStore:
    """
    One JSON file per thread under `directory`.

    A lock serialises writes from concurrent runs in the same process.
    """

    def __init__(self, directory: str | Path = ".llm_threads") -> None:
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, thread_id: str) -> Path:
        return self._dir / f"{thread_id}.json"

    def _save(self, thread: Thread) -> None:
        """Write to a temp file in the same directory, then rename over the target."""
        fd, tmp_path = tempfile.mkstemp(dir=self._dir, prefix=f".{thread.id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(thread.model_dump_json(indent=2))
            os.replace(tmp_path, self._path(thread.id))
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _load(self, thread_id: str) -> Thread:
        path = self._path(thread_id)
        if not path.is_file():
            raise ThreadNotFoundError(f"thread not found: {thread_id}")
        return Thread.model_validate_json(path.read_text(encoding="utf-8"))

    def create_thread(self, title: str, project_id: str = "") -> Thread:
        thread = Thread(id=uuid.uuid4().hex, title=title, project_id=project_id)
        with self._lock:
            self._save(thread)
        return thread

    def get_thread(self, thread_id: str) -> Thread:
        return self._load(thread_id)

    def list_threads(self) -> list[Thread]:
        """Every readable thread, most recently updated first. Unreadable files are skipped."""
        threads = []
        for path in self._dir.glob("*.json"):
            try:
                threads.append(Thread.model_validate_json(path.read_text(encoding="utf-8")))
            except (OSError, ValidationError):
                continue
        return sorted(threads, key=lambda t: t.updated_at, reverse=True)

    def append_turns(self, thread_id: str, turns: Iterable[ConversationTurn]) -> Thread:
        with self._lock:
            thread = self._load(thread_id)
            thread.turns.extend(turns)
            thread.updated_at = _now()
            self._save(thread)
        return thread

    def update_summary(self, thread_id: str, summary: str) -> None:
        with self._lock:
            thread = self._load(thread_id)
            thread.summary = summary
            thread.updated_at = _now()
            self._save(thread)

    def recent_turns(self, thread_id: str, limit: int = 10) -> list[ConversationTurn]:
        """
        The last `limit` user/assistant exchanges, safe to replay as history.

        System turns, tool replies and tool-requesting assistant turns are
        left out so replayed history never carries an unanswered request.
        """
        thread = self._load(thread_id)
        replayable = [
            turn
            for turn in thread.turns
            if turn.role in (Role.USER, Role.ASSISTANT) and not turn.tool_requests
        ]
        return replayable[-limit:] if limit > 0 else []
