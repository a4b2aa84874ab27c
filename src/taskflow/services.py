"""Summary: Core application services for TaskFlow.

Importance: Orchestrates task CRUD, calendar connection, and caller identity.
Alternatives: Put the logic directly into the HTTP handlers.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import secrets
import hashlib
from typing import Any

from taskflow.credentials import CredentialStore
from taskflow.errors import TaskNotFound, ValidationFailure
from taskflow.models import (
    DEFAULT_CATEGORY,
    DEFAULT_PRIORITY,
    DEFAULT_REMINDER,
    ApiKey,
    Task,
    utc_now,
)
from taskflow.oauth import OAuthSession, OAuthState
from taskflow.storage.sqlite_store import SqliteStore
from taskflow.sync import TaskSyncOrchestrator, parse_due_date_time


logger = logging.getLogger(__name__)

# Applied when a client sends an explicit null for a non-nullable field.
_NULL_DEFAULTS: dict[str, Any] = {
    "description": "",
    "priority": DEFAULT_PRIORITY,
    "category": DEFAULT_CATEGORY,
    "reminder": DEFAULT_REMINDER,
    "completed": False,
}


@dataclass(frozen=True)
class IdentityService:
    """Summary: Issues and verifies bearer tokens for users.

    Importance: Resolves the caller identity every protected endpoint needs.
    Alternatives: Verify identity tokens with an external auth provider.
    """

    store: SqliteStore
    token_secret: str

    def create_api_key(self, user_uid: str, label: str | None = None) -> tuple[int, str]:
        """Summary: Create a new bearer token for a user.

        Importance: Returns a one-time plaintext token for client storage.
        Alternatives: Store raw tokens in the database.
        """

        raw_token = secrets.token_urlsafe(32)
        key_id = self.store.create_api_key(
            user_uid=user_uid,
            token_hash=self._hash_token(raw_token),
            label=label,
            created_at=utc_now(),
        )
        logger.info("Issued API key %s for user %s.", key_id, user_uid)
        return key_id, raw_token

    def revoke_api_key(self, user_uid: str, key_id: int) -> bool:
        return self.store.delete_api_key(user_uid, key_id)

    def list_api_keys(self, user_uid: str) -> list[ApiKey]:
        return self.store.list_api_keys(user_uid)

    def resolve_uid(self, token: str) -> str | None:
        return self.store.get_user_uid_by_api_key(self._hash_token(token))

    def _hash_token(self, token: str) -> str:
        salt = self.token_secret or "taskflow"
        return hashlib.sha256(f"{salt}:{token}".encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class TaskService:
    """Summary: Task CRUD with calendar sync hooks.

    Importance: Every mutation passes through the sync orchestrator so remote events follow tasks.
    Alternatives: Sync from a background job that scans for changed tasks.
    """

    store: SqliteStore
    sync: TaskSyncOrchestrator
    default_timezone: str

    def list_tasks(self, user_uid: str) -> list[Task]:
        return self.store.list_tasks(user_uid)

    def get_task(self, user_uid: str, task_id: str) -> Task:
        task = self.store.get_task(user_uid, task_id)
        if task is None:
            raise TaskNotFound(f"Task {task_id} not found")
        return task

    def create_task(self, user_uid: str, fields: dict[str, Any]) -> Task:
        """Summary: Create a task and sync it when it has sync enabled and a due date.

        Importance: Validation happens before the first write so a bad request stores nothing.
        Alternatives: Let the database reject malformed rows.
        """

        values = _normalize(fields)
        title = values.get("title")
        if not title:
            raise ValidationFailure("title is required")
        timezone = values.get("timezone") or self.default_timezone
        due = values.get("due_date_time") or None
        if due:
            parse_due_date_time(due, timezone)
        now = utc_now()
        draft = Task(
            id="",
            title=title,
            description=values.get("description", ""),
            due_date_time=due,
            timezone=timezone,
            calendar_sync=bool(values.get("calendar_sync", False)),
            priority=values.get("priority", DEFAULT_PRIORITY),
            category=values.get("category", DEFAULT_CATEGORY),
            tags=list(values.get("tags") or []),
            reminder=values.get("reminder", DEFAULT_REMINDER),
            completed=False,
            created_at=now,
            updated_at=now,
        )
        task = self.store.create_task(user_uid, draft)
        logger.info("Created task %s for user %s.", task.id, user_uid)
        return self.sync.after_create(user_uid, task)

    def update_task(self, user_uid: str, task_id: str, changes: dict[str, Any]) -> Task:
        """Summary: Merge a partial update into a task and re-sync when needed."""

        existing = self.get_task(user_uid, task_id)
        values = _normalize(changes)
        if "title" in values and not values["title"]:
            raise ValidationFailure("title cannot be empty")
        if "timezone" in values and not values["timezone"]:
            values["timezone"] = self.default_timezone
        due = values["due_date_time"] if "due_date_time" in values else existing.due_date_time
        if due:
            parse_due_date_time(due, values.get("timezone") or existing.timezone or self.default_timezone)
        self.store.update_task(user_uid, task_id, {**values, "updated_at": utc_now()})
        logger.info("Updated task %s (%s).", task_id, ", ".join(sorted(values)) or "timestamp only")
        updated = self.sync.after_update(user_uid, task_id, values)
        if updated is None:
            raise TaskNotFound(f"Task {task_id} not found")
        return updated

    def delete_task(self, user_uid: str, task_id: str) -> None:
        """Summary: Delete a task after a best-effort removal of its remote event."""

        task = self.store.get_task(user_uid, task_id)
        if task is None:
            return
        self.sync.before_delete(user_uid, task)
        self.store.delete_task(user_uid, task_id)
        logger.info("Deleted task %s for user %s.", task_id, user_uid)


@dataclass(frozen=True)
class CalendarConnectService:
    """Summary: Drives the calendar consent flow for a user.

    Importance: Stores the first token set so later syncs can act on the user's behalf.
    Alternatives: Ask users to paste tokens manually.
    """

    oauth: OAuthSession
    credentials: CredentialStore
    post_oauth_redirect: str

    def authorization_url(self, user_uid: str, return_to: str | None = None) -> str:
        state = OAuthState(uid=user_uid, return_to=return_to or "")
        return self.oauth.build_authorization_url(state.encode())

    def complete_authorization(self, code: str, raw_state: str | None) -> str:
        """Summary: Exchange the callback code and store the tokens under the state's user.

        Importance: The state is untrusted input; a missing user identity stops the flow
        before the single-use code is spent.
        Alternatives: Exchange first and validate afterwards.
        """

        state = OAuthState.decode(raw_state)
        if not code:
            raise ValidationFailure("Missing authorization code.")
        result = self.oauth.exchange_code(code)
        self.credentials.merge(state.uid, result.as_delta())
        logger.info("Connected Google Calendar for user %s.", state.uid)
        return state.return_to or self.post_oauth_redirect or "/"

    def is_connected(self, user_uid: str) -> bool:
        credential = self.credentials.get(user_uid)
        return credential is not None and credential.connected


def _normalize(fields: dict[str, Any]) -> dict[str, Any]:
    values = dict(fields)
    # A null sync flag leaves the stored flag unchanged.
    if "calendar_sync" in values and values["calendar_sync"] is None:
        del values["calendar_sync"]
    for name, default in _NULL_DEFAULTS.items():
        if name in values and values[name] is None:
            values[name] = default
    if "tags" in values:
        values["tags"] = list(values["tags"] or [])
    return values
