"""Summary: Application configuration for TaskFlow.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from dataclasses import dataclass


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for storage, OAuth, and calendar sync.

    Importance: Loaded once at process start and shared by every request.
    Alternatives: Read environment variables lazily inside each service.
    """

    db_path: str
    api_host: str
    api_port: int
    token_secret: str
    google_client_id: str
    google_client_secret: str
    google_redirect_uri: str
    google_auth_url: str
    google_token_url: str
    google_calendar_base_url: str
    calendar_scopes: str
    calendar_id: str
    default_timezone: str
    event_duration_minutes: int
    cors_origins: list[str]
    post_oauth_redirect: str
    http_timeout_seconds: float

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        return AppConfig(
            db_path=os.getenv("TASKFLOW_DB_PATH", defaults["db_path"]),
            api_host=os.getenv("TASKFLOW_API_HOST", defaults["api_host"]),
            api_port=int(os.getenv("PORT", defaults["api_port"])),
            token_secret=os.getenv("TASKFLOW_TOKEN_SECRET", defaults["token_secret"]),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID", defaults["google_client_id"]),
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET", defaults["google_client_secret"]),
            google_redirect_uri=os.getenv("GOOGLE_REDIRECT_URI", defaults["google_redirect_uri"]),
            google_auth_url=os.getenv("TASKFLOW_GOOGLE_AUTH_URL", defaults["google_auth_url"]),
            google_token_url=os.getenv("TASKFLOW_GOOGLE_TOKEN_URL", defaults["google_token_url"]),
            google_calendar_base_url=os.getenv(
                "TASKFLOW_GOOGLE_CALENDAR_BASE_URL", defaults["google_calendar_base_url"]
            ),
            calendar_scopes=os.getenv("TASKFLOW_CALENDAR_SCOPES", defaults["calendar_scopes"]),
            calendar_id=os.getenv("TASKFLOW_CALENDAR_ID", defaults["calendar_id"]),
            default_timezone=os.getenv("TASKFLOW_DEFAULT_TIMEZONE", defaults["default_timezone"]),
            event_duration_minutes=int(
                os.getenv("TASKFLOW_EVENT_DURATION_MINUTES", defaults["event_duration_minutes"])
            ),
            cors_origins=_split_csv(os.getenv("CORS_ORIGIN") or defaults["cors_origins"]),
            post_oauth_redirect=os.getenv("POST_OAUTH_REDIRECT", defaults["post_oauth_redirect"]),
            http_timeout_seconds=float(
                os.getenv("TASKFLOW_HTTP_TIMEOUT_SECONDS", defaults["http_timeout_seconds"])
            ),
        )


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps OAuth client secrets out of code during local runs.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]
