"""Summary: Application factory wiring core services.

Importance: Centralizes dependency creation for the CLI and the API.
Alternatives: Instantiate services manually in each entrypoint.
"""

from __future__ import annotations

from dataclasses import dataclass

from taskflow.calendar import CalendarClientFactory
from taskflow.config import AppConfig
from taskflow.credentials import CredentialStore
from taskflow.oauth import OAuthSession
from taskflow.services import CalendarConnectService, IdentityService, TaskService
from taskflow.storage.sqlite_store import SqliteStore
from taskflow.sync import CalendarResolver, EventReconciler, TaskSyncOrchestrator
from taskflow.token_codec import TokenCodec


@dataclass(frozen=True)
class AppServices:
    """Summary: Bundle of core services for TaskFlow.

    Importance: Simplifies passing dependencies to UI or API layers.
    Alternatives: Use a dependency injection container.
    """

    tasks: TaskService
    calendar: CalendarConnectService
    identity: IdentityService
    credentials: CredentialStore
    store: SqliteStore


def build_services(config: AppConfig, clients: CalendarResolver | None = None) -> AppServices:
    """Summary: Build core services from configuration.

    Importance: Provides a single construction path; ``clients`` swaps the calendar
    resolver used for sync, which tests use to avoid network calls.
    Alternatives: Construct dependencies separately per request.
    """

    store = SqliteStore(config.db_path)
    store.initialize()
    credentials = CredentialStore(store=store, codec=TokenCodec(config.token_secret))
    oauth = OAuthSession(config)
    factory = CalendarClientFactory(credentials, oauth, config)
    reconciler = EventReconciler(
        clients or factory,
        default_timezone=config.default_timezone,
        duration_minutes=config.event_duration_minutes,
    )
    orchestrator = TaskSyncOrchestrator(reconciler, store)
    return AppServices(
        tasks=TaskService(store=store, sync=orchestrator, default_timezone=config.default_timezone),
        calendar=CalendarConnectService(
            oauth=oauth,
            credentials=credentials,
            post_oauth_redirect=config.post_oauth_redirect,
        ),
        identity=IdentityService(store=store, token_secret=config.token_secret),
        credentials=credentials,
        store=store,
    )
