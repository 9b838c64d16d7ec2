"""
Local storage for plans and training history.

FileStore keeps everything under one directory:

    store.json      key/value documents (plans live under plan:<user>:<date>)
    history.jsonl   one completed session per line, tagged with user_id
    profile.json    the local user id, used as the Auth collaborator

InMemoryStore offers the same interface without touching the disk.
"""

import json
import os
import threading
from pathlib import Path
from typing import Any

from ..core.models import SessionRecord
from .serializers import ValidationError, dict_to_session_record, session_record_to_dict

PLAN_PREFIX = "plan:"


def _history_line(session: SessionRecord, user_id: str) -> str:
    data = {"user_id": user_id, **session_record_to_dict(session)}
    return json.dumps(data, separators=(",", ":"))


class FileStore:
    """
    JSON-file implementation of the Storage and Auth interfaces.

    Writes go through a lock so the background persistence thread and the
    planning thread never interleave partial files.
    """

    def __init__(self, root: str | Path):
        """
        Initialize the store.

        Args:
            root: Directory holding store.json, history.jsonl and profile.json
        """
        self.root = Path(root)
        self.store_path = self.root / "store.json"
        self.history_path = self.root / "history.jsonl"
        self.profile_path = self.root / "profile.json"
        self._lock = threading.Lock()

    def exists(self) -> bool:
        """Check if the store directory exists."""
        return self.root.exists()

    def init(self, user_id: str | None = None) -> None:
        """
        Create the directory and empty files if they don't exist.

        Args:
            user_id: Local user id to record in profile.json
        """
        self.root.mkdir(parents=True, exist_ok=True)
        if not self.history_path.exists():
            self.history_path.touch()
        if user_id is not None:
            self.set_current_user(user_id)

    # ── key/value ─────────────────────────────────────────────────────────

    def _load_documents(self) -> dict[str, Any]:
        if not self.store_path.exists():
            return {}
        try:
            with open(self.store_path, "r") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (json.JSONDecodeError, OSError):
            return {}

    def get(self, key: str) -> Any | None:
        return self._load_documents().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self.root.mkdir(parents=True, exist_ok=True)
            documents = self._load_documents()
            documents[key] = value
            tmp = self.store_path.with_suffix(".json.tmp")
            with open(tmp, "w") as f:
                json.dump(documents, f, indent=2)
            os.replace(tmp, self.store_path)

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._load_documents() if k.startswith(prefix))

    def list_plans(self, user_id: str | None = None) -> list[tuple[str, dict]]:
        """
        Stored plans as (date, plan dict), oldest first.

        Args:
            user_id: Only plans for this user; all users when None
        """
        documents = self._load_documents()
        out = []
        for key in sorted(documents):
            if not key.startswith(PLAN_PREFIX):
                continue
            _, owner, date = key.split(":", 2)
            if user_id is None or owner == user_id:
                out.append((date, documents[key]))
        return sorted(out, key=lambda item: item[0])

    # ── history ───────────────────────────────────────────────────────────

    def load_history(self) -> list[tuple[str, SessionRecord]]:
        """
        Load all sessions from the history file.

        Returns:
            List of (user_id, SessionRecord), sorted by date

        Raises:
            ValidationError: If a line cannot be parsed
        """
        if not self.history_path.exists():
            return []

        sessions: list[tuple[str, SessionRecord]] = []
        with open(self.history_path, "r") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                    user_id = str(data.pop("user_id", "") or "")
                    sessions.append((user_id, dict_to_session_record(data)))
                except (json.JSONDecodeError, ValidationError) as e:
                    raise ValidationError(
                        f"Error parsing line {line_num} in {self.history_path}: {e}"
                    ) from e

        sessions.sort(key=lambda item: item[1].date)
        return sessions

    def get_history(self, user_id: str, since: str) -> list[SessionRecord]:
        """Sessions for *user_id* dated on or after *since*; untagged lines match any user."""
        return [
            s for owner, s in self.load_history()
            if (not owner or owner == user_id) and s.date >= since
        ]

    def append_session(self, session: SessionRecord, user_id: str = "") -> None:
        """
        Append a session, replacing an existing one for the same user and date.

        Args:
            session: Completed session
            user_id: Owner of the session
        """
        with self._lock:
            self.root.mkdir(parents=True, exist_ok=True)
            sessions = [
                (owner, s) for owner, s in self.load_history()
                if not (owner == user_id and s.date == session.date)
            ]
            sessions.append((user_id, session))
            sessions.sort(key=lambda item: item[1].date)
            with open(self.history_path, "w") as f:
                for owner, s in sessions:
                    f.write(_history_line(s, owner) + "\n")

    # ── auth ──────────────────────────────────────────────────────────────

    def get_current_user_id(self) -> str | None:
        if not self.profile_path.exists():
            return None
        try:
            with open(self.profile_path, "r") as f:
                data = json.load(f)
            return data.get("user_id") or None
        except (json.JSONDecodeError, OSError, AttributeError):
            return None

    def set_current_user(self, user_id: str) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        with open(self.profile_path, "w") as f:
            json.dump({"user_id": user_id}, f, indent=2)


class InMemoryStore:
    """Dict-backed Storage and Auth for tests and embedding."""

    def __init__(
        self,
        user_id: str | None = None,
        history: dict[str, list[SessionRecord]] | None = None,
    ):
        self.user_id = user_id
        self.documents: dict[str, Any] = {}
        self.history = {k: list(v) for k, v in (history or {}).items()}
        self.history_calls: list[tuple[str, str]] = []

    def get(self, key: str) -> Any | None:
        return self.documents.get(key)

    def set(self, key: str, value: Any) -> None:
        self.documents[key] = value

    def get_history(self, user_id: str, since: str) -> list[SessionRecord]:
        self.history_calls.append((user_id, since))
        return [s for s in self.history.get(user_id, []) if s.date >= since]

    def get_current_user_id(self) -> str | None:
        return self.user_id


def get_default_store() -> FileStore:
    """FileStore at ~/.daily-coach."""
    return FileStore(Path.home() / ".daily-coach")
