"""Summary: Calendar capability and per-user client resolution.

Importance: Turns stored credentials into a ready-to-call Google Calendar client.
Alternatives: Use provider SDKs directly inside the sync code.
"""

from __future__ import annotations

import logging
import urllib.parse
from abc import ABC, abstractmethod
from typing import Any

from taskflow.config import AppConfig
from taskflow.credentials import CredentialStore
from taskflow.oauth import BoundSession, OAuthSession


logger = logging.getLogger(__name__)


class CalendarCapability(ABC):
    """Summary: Event operations on one user's calendar.

    Importance: Lets reconciliation run against Google or an in-memory double.
    Alternatives: Couple reconciliation to the Google REST client.
    """

    @abstractmethod
    def insert_event(self, body: dict[str, Any]) -> dict[str, Any]:
        """Summary: Create an event and return the provider's representation."""

    @abstractmethod
    def update_event(self, event_id: str, body: dict[str, Any]) -> dict[str, Any]:
        """Summary: Replace an existing event in place."""

    @abstractmethod
    def delete_event(self, event_id: str) -> None:
        """Summary: Remove an event."""


class GoogleCalendarClient(CalendarCapability):
    """Summary: Google Calendar v3 events API over an authorized session.

    Importance: Every call goes through BoundSession so token refreshes are persisted.
    Alternatives: Use googleapiclient's discovery-based service.
    """

    def __init__(self, session: BoundSession, base_url: str, calendar_id: str) -> None:
        self._session = session
        self._events_url = (
            base_url.rstrip("/") + "/calendars/" + urllib.parse.quote(calendar_id, safe="") + "/events"
        )

    def insert_event(self, body: dict[str, Any]) -> dict[str, Any]:
        return self._session.request("POST", self._events_url, body)

    def update_event(self, event_id: str, body: dict[str, Any]) -> dict[str, Any]:
        return self._session.request("PUT", self._event_url(event_id), body)

    def delete_event(self, event_id: str) -> None:
        self._session.request("DELETE", self._event_url(event_id))

    def _event_url(self, event_id: str) -> str:
        return self._events_url + "/" + urllib.parse.quote(event_id, safe="")


class CalendarClientFactory:
    """Summary: Resolves a calendar client for a user, or None when not connected.

    Importance: "Not connected" is a normal outcome meaning sync is skipped, not an error.
    Alternatives: Raise when a user has no stored credential.
    """

    def __init__(self, credentials: CredentialStore, oauth: OAuthSession, config: AppConfig) -> None:
        self._credentials = credentials
        self._oauth = oauth
        self._config = config

    def resolve(self, user_uid: str) -> CalendarCapability | None:
        credential = self._credentials.get(user_uid)
        if credential is None or not credential.connected:
            logger.debug("User %s has no calendar connection.", user_uid)
            return None

        def _persist_refresh(delta: dict[str, Any]) -> None:
            self._credentials.merge(user_uid, delta)

        session = self._oauth.bind(credential, on_refresh=_persist_refresh)
        return GoogleCalendarClient(
            session,
            base_url=self._config.google_calendar_base_url,
            calendar_id=self._config.calendar_id,
        )
