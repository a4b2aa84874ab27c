"""Summary: FastAPI application for TaskFlow.

Importance: Exposes task CRUD and the calendar connection flow to the web client.
Alternatives: Use a different web framework or a CLI-only workflow.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from taskflow.app import AppServices, build_services
from taskflow.config import AppConfig
from taskflow.errors import (
    AuthFailure,
    CalendarProviderError,
    OAuthExchangeFailed,
    StoreUnavailable,
    TaskNotFound,
    ValidationFailure,
)


logger = logging.getLogger(__name__)


class TaskCreateRequest(BaseModel):
    """Summary: Request payload for task creation.

    Importance: Accepts the web client's camelCase fields; title is checked by the
    service so a missing title yields a 400 rather than a schema error.
    Alternatives: Declare title as required and accept FastAPI's 422.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    description: str | None = None
    due_date_time: str | None = Field(default=None, alias="dueDateTime")
    timezone: str | None = None
    calendar_sync: bool | None = Field(default=None, alias="calendarSync")
    priority: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    reminder: str | None = None


class TaskUpdateRequest(TaskCreateRequest):
    """Summary: Request payload for partial task updates.

    Importance: Only fields the client actually sent are applied.
    Alternatives: Require the full task on every update.
    """

    completed: bool | None = None


def create_app(config: AppConfig, services: AppServices | None = None) -> FastAPI:
    """Summary: Create a FastAPI app wired to TaskFlow services.

    Importance: Ensures the API layer shares the same configuration and storage.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app = FastAPI(title="TaskFlow API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    services = services or build_services(config)

    @app.exception_handler(ValidationFailure)
    def _validation_failure(_request: Request, exc: ValidationFailure) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(AuthFailure)
    def _auth_failure(_request: Request, exc: AuthFailure) -> JSONResponse:
        return JSONResponse(status_code=401, content={"error": str(exc)})

    @app.exception_handler(TaskNotFound)
    def _task_not_found(_request: Request, exc: TaskNotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(CalendarProviderError)
    def _calendar_failure(_request: Request, exc: CalendarProviderError) -> JSONResponse:
        logger.error("Calendar sync failed: %s", exc)
        return JSONResponse(status_code=502, content={"error": "Calendar sync failed"})

    @app.exception_handler(StoreUnavailable)
    def _store_unavailable(_request: Request, exc: StoreUnavailable) -> JSONResponse:
        logger.error("Store unavailable: %s", exc)
        return JSONResponse(status_code=503, content={"error": "Storage unavailable"})

    def require_user(authorization: str | None = Header(default=None)) -> str:
        """Summary: Resolve the caller's identity from a bearer token.

        Importance: Every task and calendar endpoint is scoped to this identity.
        Alternatives: Use session cookies.
        """

        header = authorization or ""
        token = header[7:].strip() if header.startswith("Bearer ") else ""
        if not token:
            raise AuthFailure("Missing Authorization header")
        user_uid = services.identity.resolve_uid(token)
        if not user_uid:
            raise AuthFailure("Invalid or expired ID token")
        return user_uid

    @app.get("/health")
    def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/calendar/authorize")
    def calendar_authorize(
        return_to: str | None = Query(default=None, alias="returnTo"),
        user_uid: str = Depends(require_user),
    ) -> dict[str, str]:
        """Summary: Return a consent URL for the client to open in a popup.

        Importance: Starts the calendar connection for the calling user.
        Alternatives: Redirect the browser directly.
        """

        return {"url": services.calendar.authorization_url(user_uid, return_to)}

    @app.get("/calendar/oauth2callback", response_class=HTMLResponse)
    def calendar_callback(code: str = "", state: str | None = None) -> Any:
        """Summary: Complete the consent flow Google redirects back to.

        Importance: Persists the token set, notifies the opener window, and navigates on.
        Alternatives: Return JSON and let the frontend handle navigation.
        """

        try:
            return_to = services.calendar.complete_authorization(code, state)
        except ValidationFailure as exc:
            return PlainTextResponse(str(exc), status_code=400)
        except (OAuthExchangeFailed, StoreUnavailable) as exc:
            logger.error("OAuth callback failed: %s", exc)
            return PlainTextResponse("OAuth error", status_code=500)
        target = json.dumps(return_to).replace("</", "<\\/")
        return (
            "<script>window.opener && window.opener.postMessage({type:\"google-connected\"}, \"*\"); "
            f"window.location = {target};</script>"
        )

    @app.get("/calendar/status")
    def calendar_status(user_uid: str = Depends(require_user)) -> dict[str, bool]:
        return {"connected": services.calendar.is_connected(user_uid)}

    @app.get("/tasks")
    def list_tasks(user_uid: str = Depends(require_user)) -> dict[str, Any]:
        return {"tasks": [task.to_dict() for task in services.tasks.list_tasks(user_uid)]}

    @app.post("/tasks", status_code=201)
    def create_task(payload: TaskCreateRequest, user_uid: str = Depends(require_user)) -> dict[str, Any]:
        """Summary: Create a task, syncing it to the calendar when requested.

        Importance: A calendar failure fails the request so the user sees it.
        Alternatives: Return 201 and report sync problems out of band.
        """

        fields = payload.model_dump(exclude_unset=True)
        return services.tasks.create_task(user_uid, fields).to_dict()

    @app.patch("/tasks/{task_id}")
    def update_task(
        task_id: str, payload: TaskUpdateRequest, user_uid: str = Depends(require_user)
    ) -> dict[str, Any]:
        fields = payload.model_dump(exclude_unset=True)
        return services.tasks.update_task(user_uid, task_id, fields).to_dict()

    @app.delete("/tasks/{task_id}")
    def delete_task(task_id: str, user_uid: str = Depends(require_user)) -> dict[str, bool]:
        services.tasks.delete_task(user_uid, task_id)
        return {"ok": True}

    return app


def get_app() -> FastAPI:
    """Summary: Build the app from environment configuration for ASGI servers."""

    return create_app(AppConfig.from_env())

