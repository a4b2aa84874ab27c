"""Summary: Task-to-calendar reconciliation and sync orchestration.

Importance: Keeps each synced task and its Google Calendar event in lockstep.
Alternatives: Run a periodic batch sync instead of syncing on each mutation.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from taskflow.calendar import CalendarCapability
from taskflow.errors import CalendarProviderError, StoreUnavailable, ValidationFailure
from taskflow.models import Task, utc_now
from taskflow.storage.sqlite_store import SqliteStore


logger = logging.getLogger(__name__)

# Edits to these fields change what the remote event shows.
_EVENT_FIELDS = ("title", "description", "timezone", "due_date_time")


class CalendarResolver(Protocol):
    def resolve(self, user_uid: str) -> CalendarCapability | None: ...


def parse_due_date_time(value: str, zone_name: str) -> datetime:
    """Summary: Interpret an ISO-8601 due date in the given IANA zone.

    Importance: A naive value is wall time in the task's zone; an offset-bearing
    value is converted into it.
    Alternatives: Treat every due date as UTC.
    """

    try:
        zone = ZoneInfo(zone_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationFailure(f"Unknown timezone: {zone_name}") from exc
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationFailure(f"dueDateTime is not ISO-8601: {value}") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=zone)
    return parsed.astimezone(zone)


class EventReconciler:
    """Summary: Decides between creating and updating a task's remote event.

    Importance: Updating by stored event id is what prevents duplicate events.
    Alternatives: Search the calendar for a matching event before each write.
    """

    def __init__(self, clients: CalendarResolver, default_timezone: str, duration_minutes: int) -> None:
        self._clients = clients
        self._default_timezone = default_timezone
        self._duration = timedelta(minutes=duration_minutes)

    def build_event(self, task: Task) -> dict[str, Any]:
        """Summary: Map a task onto a Google Calendar event body.

        Importance: Tasks have no end time, so events span a fixed window from the due time.
        Alternatives: Create all-day events on the due date.
        """

        if not task.due_date_time:
            raise ValidationFailure("Task has no dueDateTime to schedule")
        zone_name = task.timezone or self._default_timezone
        start = parse_due_date_time(task.due_date_time, zone_name)
        # Add elapsed time, not wall-clock time.
        end = (start.astimezone(timezone.utc) + self._duration).astimezone(start.tzinfo)
        return {
            "summary": task.title,
            "description": task.description or "",
            "start": {"dateTime": start.isoformat(), "timeZone": zone_name},
            "end": {"dateTime": end.isoformat(), "timeZone": zone_name},
        }

    def upsert(self, user_uid: str, task: Task) -> str | None:
        """Summary: Create or update the remote event for a task.

        Importance: Returns None when the user never connected a calendar, which
        callers treat as "sync skipped".
        Alternatives: Raise a dedicated NotConnected error.
        """

        client = self._clients.resolve(user_uid)
        if client is None:
            logger.info("Calendar not connected for user %s; skipping task %s.", user_uid, task.id)
            return None
        event = self.build_event(task)
        if task.calendar_event_id:
            response = client.update_event(task.calendar_event_id, event)
            logger.info("Updated calendar event %s for task %s.", task.calendar_event_id, task.id)
            return response.get("id") or task.calendar_event_id
        response = client.insert_event(event)
        event_id = response.get("id")
        if not event_id:
            raise CalendarProviderError("Calendar did not return an event id")
        logger.info("Created calendar event %s for task %s.", event_id, task.id)
        return event_id

    def delete(self, user_uid: str, event_id: str) -> None:
        """Summary: Remove a remote event, ignoring failures.

        Importance: The event is a derived artifact; task deletion never waits on it.
        Alternatives: Block task deletion until the provider confirms.
        """

        try:
            client = self._clients.resolve(user_uid)
            if client is None:
                return
            client.delete_event(event_id)
            logger.info("Deleted calendar event %s.", event_id)
        except (CalendarProviderError, StoreUnavailable) as exc:
            logger.warning("Could not delete calendar event %s: %s", event_id, exc)


class TaskSyncOrchestrator:
    """Summary: Runs calendar sync after task mutations.

    Importance: Decides whether a mutation needs sync and writes the event id back.
    Alternatives: Let each CRUD handler talk to the reconciler directly.
    """

    def __init__(self, reconciler: EventReconciler, store: SqliteStore) -> None:
        self._reconciler = reconciler
        self._store = store

    def after_create(self, user_uid: str, task: Task) -> Task:
        """Summary: Sync a freshly created task when it asks for it.

        Importance: The task row is already written; a provider failure here leaves it
        without an event id and is raised to the caller.
        Alternatives: Write the task only after the event exists.
        """

        if not (task.calendar_sync and task.due_date_time):
            return task
        event_id = self._reconciler.upsert(user_uid, task)
        return self._persist_event_id(user_uid, task, event_id)

    def after_update(self, user_uid: str, task_id: str, changes: dict[str, Any]) -> Task | None:
        """Summary: Re-sync a task after a patch when the patch affects its event.

        Importance: An explicit calendar_sync=False makes no provider call; any existing
        remote event is left in place.
        Alternatives: Delete the remote event when sync is switched off.
        """

        sync_flag = changes.get("calendar_sync")
        if sync_flag is False:
            logger.info("Calendar sync disabled for task %s; leaving any remote event.", task_id)
            return self._store.get_task(user_uid, task_id)
        requested = bool(sync_flag) or bool(changes.get("due_date_time"))
        task = self._store.get_task(user_uid, task_id)
        if task is None:
            return None
        edited = task.calendar_event_id is not None and any(name in changes for name in _EVENT_FIELDS)
        if not (requested or edited):
            return task
        if not (task.calendar_sync and task.due_date_time):
            return task
        event_id = self._reconciler.upsert(user_uid, task)
        return self._persist_event_id(user_uid, task, event_id)

    def before_delete(self, user_uid: str, task: Task) -> None:
        if task.calendar_event_id:
            self._reconciler.delete(user_uid, task.calendar_event_id)

    def _persist_event_id(self, user_uid: str, task: Task, event_id: str | None) -> Task:
        if event_id is None or event_id == task.calendar_event_id:
            return task
        updated = self._store.update_task(
            user_uid, task.id, {"calendar_event_id": event_id, "updated_at": utc_now()}
        )
        return updated or task
