"""Summary: Tests for the FastAPI surface.

Importance: Ensures status codes, identity scoping, and calendar sync hold end to end.
Alternatives: Rely on manual API testing.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from fakes import FakeCalendar, FakeResolver
from taskflow.api import create_app
from taskflow.app import AppServices, build_services
from taskflow.config import AppConfig
from taskflow.credentials import CredentialStore
from taskflow.errors import CalendarProviderError, OAuthExchangeFailed
from taskflow.models import Task
from taskflow.oauth import OAuthSession, OAuthState, OAuthTokenResult
from taskflow.token_codec import TokenCodec


@pytest.fixture()
def calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture()
def services(config: AppConfig, calendar: FakeCalendar) -> AppServices:
    return build_services(config, clients=FakeResolver(calendar))


@pytest.fixture()
def client(config: AppConfig, services: AppServices) -> TestClient:
    return TestClient(create_app(config, services))


def _auth(services: AppServices, user_uid: str = "user-1") -> dict[str, str]:
    _key_id, token = services.identity.create_api_key(user_uid)
    return {"Authorization": f"Bearer {token}"}


def test_health_needs_no_auth(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_missing_or_invalid_token_is_rejected(client: TestClient) -> None:
    missing = client.get("/tasks")
    assert missing.status_code == 401
    assert missing.json() == {"error": "Missing Authorization header"}
    invalid = client.get("/tasks", headers={"Authorization": "Bearer nope"})
    assert invalid.status_code == 401
    assert invalid.json() == {"error": "Invalid or expired ID token"}


def test_create_without_title_stores_nothing(
    client: TestClient, services: AppServices, calendar: FakeCalendar
) -> None:
    headers = _auth(services)
    response = client.post("/tasks", json={"dueDateTime": "2026-03-01T09:00:00", "calendarSync": True}, headers=headers)
    assert response.status_code == 400
    assert response.json() == {"error": "title is required"}
    assert client.get("/tasks", headers=headers).json() == {"tasks": []}
    assert calendar.calls == []


def test_create_applies_defaults(client: TestClient, services: AppServices) -> None:
    response = client.post("/tasks", json={"title": "Groceries"}, headers=_auth(services))
    assert response.status_code == 201
    body = response.json()
    assert body["priority"] == "medium"
    assert body["category"] == "other"
    assert body["tags"] == []
    assert body["timezone"] == "Africa/Lagos"
    assert body["completed"] is False
    assert body["calendarEventId"] is None


def test_create_with_sync_stores_event_id(
    client: TestClient, services: AppServices, calendar: FakeCalendar
) -> None:
    """Summary: A synced task comes back with the event id of its new calendar event.

    Importance: The stored id is what later updates target.
    Alternatives: Look events up by title when updating.
    """

    headers = _auth(services)
    response = client.post(
        "/tasks",
        json={"title": "Dentist", "dueDateTime": "2026-03-01T09:00:00", "calendarSync": True},
        headers=headers,
    )
    assert response.status_code == 201
    created = response.json()
    assert created["calendarEventId"] == "evt-1"
    listed = client.get("/tasks", headers=headers).json()["tasks"]
    assert listed[0]["calendarEventId"] == "evt-1"
    assert calendar.events["evt-1"]["start"]["dateTime"] == "2026-03-01T09:00:00+01:00"


def test_patch_updates_the_same_event(
    client: TestClient, services: AppServices, calendar: FakeCalendar
) -> None:
    headers = _auth(services)
    created = client.post(
        "/tasks",
        json={"title": "Dentist", "dueDateTime": "2026-03-01T09:00:00", "calendarSync": True},
        headers=headers,
    ).json()
    response = client.patch(
        f"/tasks/{created['id']}", json={"dueDateTime": "2026-03-02T10:00:00"}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["calendarEventId"] == "evt-1"
    assert list(calendar.events) == ["evt-1"]
    assert calendar.events["evt-1"]["start"]["dateTime"] == "2026-03-02T10:00:00+01:00"


def test_patch_disabling_sync_makes_no_calendar_call(
    client: TestClient, services: AppServices, calendar: FakeCalendar
) -> None:
    headers = _auth(services)
    created = client.post(
        "/tasks",
        json={"title": "Dentist", "dueDateTime": "2026-03-01T09:00:00", "calendarSync": True},
        headers=headers,
    ).json()
    response = client.patch(
        f"/tasks/{created['id']}",
        json={"calendarSync": False, "dueDateTime": "2026-03-05T09:00:00"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["calendarSync"] is False
    assert calendar.calls == [("insert", None)]


def test_patch_unknown_task_is_not_found(client: TestClient, services: AppServices) -> None:
    response = client.patch("/tasks/missing", json={"completed": True}, headers=_auth(services))
    assert response.status_code == 404


def test_tasks_are_scoped_to_their_owner(client: TestClient, services: AppServices) -> None:
    created = client.post("/tasks", json={"title": "Private"}, headers=_auth(services, "user-1")).json()
    other = _auth(services, "user-2")
    assert client.get("/tasks", headers=other).json() == {"tasks": []}
    assert client.patch(f"/tasks/{created['id']}", json={"title": "x"}, headers=other).status_code == 404


def test_delete_survives_calendar_failure(config: AppConfig) -> None:
    calendar = FakeCalendar(fail_deletes=True)
    services = build_services(config, clients=FakeResolver(calendar))
    client = TestClient(create_app(config, services))
    headers = _auth(services)
    created = client.post(
        "/tasks",
        json={"title": "Dentist", "dueDateTime": "2026-03-01T09:00:00", "calendarSync": True},
        headers=headers,
    ).json()
    response = client.delete(f"/tasks/{created['id']}", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert client.get("/tasks", headers=headers).json() == {"tasks": []}
    assert ("delete", "evt-1") in calendar.calls


def test_calendar_failure_on_create_returns_bad_gateway(config: AppConfig) -> None:
    services = build_services(config, clients=FakeResolver(FakeCalendar(fail_writes=True)))
    client = TestClient(create_app(config, services))
    response = client.post(
        "/tasks",
        json={"title": "Dentist", "dueDateTime": "2026-03-01T09:00:00", "calendarSync": True},
        headers=_auth(services),
    )
    assert response.status_code == 502


def test_sync_skipped_when_not_connected(config: AppConfig) -> None:
    services = build_services(config, clients=FakeResolver(None))
    client = TestClient(create_app(config, services))
    response = client.post(
        "/tasks",
        json={"title": "Dentist", "dueDateTime": "2026-03-01T09:00:00", "calendarSync": True},
        headers=_auth(services),
    )
    assert response.status_code == 201
    assert response.json()["calendarEventId"] is None


def test_invalid_due_date_is_rejected(client: TestClient, services: AppServices) -> None:
    headers = _auth(services)
    response = client.post("/tasks", json={"title": "x", "dueDateTime": "soon"}, headers=headers)
    assert response.status_code == 400
    assert client.get("/tasks", headers=headers).json() == {"tasks": []}


def test_authorize_returns_consent_url_with_state(client: TestClient, services: AppServices) -> None:
    response = client.get("/calendar/authorize", params={"returnTo": "/app"}, headers=_auth(services))
    assert response.status_code == 200
    query = parse_qs(urlparse(response.json()["url"]).query)
    assert json.loads(query["state"][0]) == {"uid": "user-1", "returnTo": "/app"}
    assert query["access_type"] == ["offline"]


def test_callback_without_user_context_is_rejected(client: TestClient) -> None:
    response = client.get("/calendar/oauth2callback", params={"code": "abc", "state": json.dumps({})})
    assert response.status_code == 400
    assert response.text == "Missing user context."


def test_callback_exchange_failure_returns_oauth_error(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _fail(self: OAuthSession, code: str) -> OAuthTokenResult:
        raise OAuthExchangeFailed("invalid_grant")

    monkeypatch.setattr(OAuthSession, "exchange_code", _fail)
    state = OAuthState(uid="user-1").encode()
    response = client.get("/calendar/oauth2callback", params={"code": "used", "state": state})
    assert response.status_code == 500
    assert response.text == "OAuth error"


def test_callback_stores_credential_and_redirects(
    client: TestClient, services: AppServices, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _exchange(self: OAuthSession, code: str) -> OAuthTokenResult:
        payload: dict[str, Any] = {"access_token": "A", "refresh_token": "R", "expires_in": 3599}
        return OAuthTokenResult.from_response(payload)

    monkeypatch.setattr(OAuthSession, "exchange_code", _exchange)
    headers = _auth(services)
    assert client.get("/calendar/status", headers=headers).json() == {"connected": False}
    state = OAuthState(uid="user-1", return_to="/app</script>").encode()
    response = client.get("/calendar/oauth2callback", params={"code": "good", "state": state})
    assert response.status_code == 200
    assert "google-connected" in response.text
    assert "/app<\\/script>" in response.text
    stored = services.credentials.get("user-1")
    assert stored is not None and stored.refresh_token == "R"
    assert client.get("/calendar/status", headers=headers).json() == {"connected": True}


def test_patch_with_null_sync_flag_keeps_sync_enabled(
    client: TestClient, services: AppServices, calendar: FakeCalendar
) -> None:
    headers = _auth(services)
    created = client.post(
        "/tasks",
        json={"title": "Dentist", "dueDateTime": "2026-03-01T09:00:00", "calendarSync": True},
        headers=headers,
    ).json()
    response = client.patch(
        f"/tasks/{created['id']}",
        json={"calendarSync": None, "dueDateTime": "2026-03-04T09:00:00"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["calendarSync"] is True
    assert calendar.calls == [("insert", None), ("update", "evt-1")]
    assert calendar.events["evt-1"]["start"]["dateTime"] == "2026-03-04T09:00:00+01:00"


def test_delete_survives_unreadable_credential(config: AppConfig, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: A credential stored under another token secret does not block task deletion.

    Importance: Rotating TASKFLOW_TOKEN_SECRET must not strand tasks that hold event ids.
    Alternatives: Require users to reconnect before deleting synced tasks.
    """

    def _unreachable(*_args: object, **_kwargs: object) -> dict[str, Any]:
        raise CalendarProviderError("calendar unavailable", status=503)

    monkeypatch.setattr("taskflow.oauth._request_json", _unreachable)
    services = build_services(config)
    CredentialStore(store=services.store, codec=TokenCodec("old-secret")).merge(
        "user-1",
        {
            "access_token": "ya29.a0AfH6SMBx-access-token-value-0123456789",
            "refresh_token": "1//0g-refresh-token-value-abcdefghijklmnop",
            "raw": {"token_type": "Bearer", "scope": "https://www.googleapis.com/auth/calendar.events"},
        },
    )
    task = services.store.create_task(
        "user-1",
        Task(
            id="",
            title="Dentist",
            due_date_time="2026-03-01T09:00:00",
            timezone="Africa/Lagos",
            calendar_sync=True,
            calendar_event_id="evt-1",
            created_at="2026-02-01T00:00:00+00:00",
            updated_at="2026-02-01T00:00:00+00:00",
        ),
    )
    client = TestClient(create_app(config, services))
    headers = _auth(services)
    response = client.delete(f"/tasks/{task.id}", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert services.store.get_task("user-1", task.id) is None


def test_sync_with_unreadable_credential_reports_storage_failure(config: AppConfig) -> None:
    services = build_services(config)
    CredentialStore(store=services.store, codec=TokenCodec("old-secret")).merge(
        "user-1",
        {
            "access_token": "ya29.a0AfH6SMBx-access-token-value-0123456789",
            "refresh_token": "1//0g-refresh-token-value-abcdefghijklmnop",
            "raw": {"token_type": "Bearer"},
        },
    )
    client = TestClient(create_app(config, services))
    response = client.post(
        "/tasks",
        json={"title": "Dentist", "dueDateTime": "2026-03-01T09:00:00", "calendarSync": True},
        headers=_auth(services),
    )
    assert response.status_code == 503
    assert response.json() == {"error": "Storage unavailable"}
