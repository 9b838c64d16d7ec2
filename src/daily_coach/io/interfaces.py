"""
Collaborator interfaces the coordinator talks to.

Storage, authentication and remote sync live outside the planning core.
Anything with these methods can be passed to a Coordinator; plan_store.py
provides a JSON-file and an in-memory implementation.
"""

from typing import Any, Protocol, runtime_checkable

from ..core.models import Plan, SessionRecord


@runtime_checkable
class Storage(Protocol):
    """Key/value store plus session history lookup."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def get_history(self, user_id: str, since: str) -> list[SessionRecord | dict]:
        """Sessions for *user_id* dated on or after *since* (ISO date), oldest first."""
        ...


@runtime_checkable
class Auth(Protocol):
    def get_current_user_id(self) -> str | None: ...


@runtime_checkable
class RemotePersistence(Protocol):
    def persist_plan(self, plan: Plan) -> Any:
        """Push *plan* upstream; a falsy or error result is logged by the caller."""
        ...


def plan_key(user_id: str, date: str) -> str:
    """Storage key for the plan of *user_id* on *date*."""
    return f"plan:{user_id}:{date}"
