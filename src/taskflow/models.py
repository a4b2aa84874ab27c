"""Summary: Domain model dataclasses for TaskFlow.

Importance: Defines the task and credential records shared by storage, sync, and the API.
Alternatives: Use Pydantic models or ORM classes directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


DEFAULT_PRIORITY = "medium"
DEFAULT_CATEGORY = "other"
DEFAULT_REMINDER = "none"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Task:
    """Summary: Represents a user task and its calendar mirror state.

    Importance: Core unit for CRUD and calendar reconciliation.
    Alternatives: Store tasks as loose dictionaries.
    """

    id: str
    title: str
    description: str = ""
    due_date_time: str | None = None
    timezone: str = ""
    calendar_sync: bool = False
    calendar_event_id: str | None = None
    priority: str = DEFAULT_PRIORITY
    category: str = DEFAULT_CATEGORY
    tags: list[str] = field(default_factory=list)
    reminder: str = DEFAULT_REMINDER
    completed: bool = False
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Summary: Render the task with the camelCase keys clients expect.

        Importance: Keeps the wire format stable while Python code uses snake_case.
        Alternatives: Use Pydantic response models with aliases.
        """

        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "dueDateTime": self.due_date_time,
            "timezone": self.timezone,
            "calendarSync": self.calendar_sync,
            "calendarEventId": self.calendar_event_id,
            "priority": self.priority,
            "category": self.category,
            "tags": list(self.tags),
            "reminder": self.reminder,
            "completed": self.completed,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


# Fields a client may set on create or patch.
TASK_MUTABLE_FIELDS = (
    "title",
    "description",
    "due_date_time",
    "timezone",
    "calendar_sync",
    "priority",
    "category",
    "tags",
    "reminder",
    "completed",
)


@dataclass(frozen=True)
class StoredCredential:
    """Summary: Persisted OAuth token material for one user and provider.

    Importance: Lets calendar calls outlive the request that connected the account.
    Alternatives: Re-run OAuth consent on every sync.
    """

    access_token: str | None
    refresh_token: str | None = None
    expiry: str | None = None
    scope: str | None = None
    token_type: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def connected(self) -> bool:
        return bool(self.refresh_token or self.access_token)

    def __repr__(self) -> str:
        return (
            "StoredCredential("
            f"access_token={'<REDACTED>' if self.access_token else None}, "
            f"refresh_token={'<REDACTED>' if self.refresh_token else None}, "
            f"expiry={self.expiry!r}, scope={self.scope!r})"
        )


@dataclass(frozen=True)
class ApiKey:
    """Summary: Hashed bearer token issued to a user."""

    id: int
    user_uid: str
    token_hash: str
    label: str | None
    created_at: str
