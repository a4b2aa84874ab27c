"""Summary: Google OAuth2 authorization-code flow and authorized request sessions.

Importance: Connects a user's calendar once and keeps calls working as access tokens expire.
Alternatives: Use google-auth-oauthlib and google-api-python-client.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
import urllib.error
import urllib.parse
import urllib.request

from taskflow.config import AppConfig
from taskflow.errors import CalendarProviderError, OAuthExchangeFailed, ValidationFailure
from taskflow.models import StoredCredential


logger = logging.getLogger(__name__)

# Receives the token fields a refresh produced; wired to CredentialStore.merge.
RefreshSink = Callable[[dict[str, Any]], None]

_EXPIRY_SKEW = timedelta(seconds=60)


@dataclass(frozen=True)
class OAuthTokenResult:
    """Summary: Normalized OAuth token response data.

    Importance: Gives the credential store one shape for code exchanges and refreshes.
    Alternatives: Store the raw provider response without normalization.
    """

    access_token: str
    refresh_token: str | None
    expires_at: str | None
    token_type: str | None
    scope: str | None
    raw: dict[str, Any]

    @staticmethod
    def from_response(payload: dict[str, Any]) -> "OAuthTokenResult":
        access_token = payload.get("access_token")
        if not access_token:
            raise OAuthExchangeFailed("Token response did not include an access token")
        expires_at = None
        expires_in = payload.get("expires_in")
        if isinstance(expires_in, (int, str)) and str(expires_in).isdigit():
            expires_at = (datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))).isoformat()
        return OAuthTokenResult(
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
            expires_at=expires_at,
            token_type=payload.get("token_type"),
            scope=payload.get("scope"),
            raw=payload,
        )

    def as_delta(self) -> dict[str, Any]:
        """Summary: Express the result as a partial credential for merging."""

        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expiry": self.expires_at,
            "scope": self.scope,
            "token_type": self.token_type,
            "raw": self.raw,
        }


@dataclass(frozen=True)
class OAuthState:
    """Summary: Context carried through the consent redirect.

    Importance: Lets the unauthenticated callback know which user connected.
    Alternatives: Keep pending flows in a server-side session table.
    """

    uid: str
    return_to: str = ""

    def encode(self) -> str:
        return json.dumps({"uid": self.uid, "returnTo": self.return_to})

    @staticmethod
    def decode(raw: str | None) -> "OAuthState":
        """Summary: Parse and validate an untrusted state payload.

        Importance: The callback must not act on a state without a user identity.
        Alternatives: Sign the state and trust it after verification.
        """

        try:
            parsed = json.loads(raw) if raw else {}
        except json.JSONDecodeError as exc:
            raise ValidationFailure("Malformed OAuth state.") from exc
        if not isinstance(parsed, dict):
            raise ValidationFailure("Malformed OAuth state.")
        uid = parsed.get("uid")
        if not isinstance(uid, str) or not uid:
            raise ValidationFailure("Missing user context.")
        return_to = parsed.get("returnTo")
        return OAuthState(uid=uid, return_to=return_to if isinstance(return_to, str) else "")


class OAuthSession:
    """Summary: One configured Google OAuth client for the process.

    Importance: Holds only static client configuration, so it is safe to share across requests.
    Alternatives: Keep a global client and mutate its credentials per call.
    """

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    def build_authorization_url(self, state: str) -> str:
        """Summary: Build the Google consent URL.

        Importance: Offline access plus a forced consent prompt makes Google re-issue
        a refresh token even when the user already granted access.
        Alternatives: Request online access and re-consent on every expiry.
        """

        params = {
            "client_id": self._config.google_client_id,
            "redirect_uri": self._config.google_redirect_uri,
            "response_type": "code",
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
            "scope": self._config.calendar_scopes,
            "state": state,
        }
        return self._config.google_auth_url + "?" + urllib.parse.urlencode(params)

    def exchange_code(self, code: str) -> OAuthTokenResult:
        """Summary: Exchange an authorization code for tokens.

        Importance: Completes the consent flow; codes are single-use.
        Alternatives: Let the frontend exchange codes directly.
        """

        self._ensure_client_config()
        payload = {
            "client_id": self._config.google_client_id,
            "client_secret": self._config.google_client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self._config.google_redirect_uri,
        }
        response = _post_form(self._config.google_token_url, payload, self._config.http_timeout_seconds)
        return OAuthTokenResult.from_response(response)

    def refresh(self, refresh_token: str) -> OAuthTokenResult:
        self._ensure_client_config()
        payload = {
            "client_id": self._config.google_client_id,
            "client_secret": self._config.google_client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        response = _post_form(self._config.google_token_url, payload, self._config.http_timeout_seconds)
        return OAuthTokenResult.from_response(response)

    def bind(self, credential: StoredCredential, on_refresh: RefreshSink | None = None) -> "BoundSession":
        """Summary: Create a per-request session authorized with the given credential.

        Importance: Credentials travel explicitly instead of through shared mutable state.
        Alternatives: Call set_credentials on a process-wide client.
        """

        return BoundSession(self, credential, on_refresh, self._config.http_timeout_seconds)

    def _ensure_client_config(self) -> None:
        if not self._config.google_client_id or not self._config.google_client_secret:
            raise OAuthExchangeFailed("Missing OAuth client credentials for google")


class BoundSession:
    """Summary: Authorized JSON requests for one user's credential.

    Importance: Refreshes an expired access token transparently and reports the new
    material through the refresh sink so it can be persisted.
    Alternatives: Refresh eagerly before every request.
    """

    def __init__(
        self,
        oauth: OAuthSession,
        credential: StoredCredential,
        on_refresh: RefreshSink | None,
        timeout: float,
    ) -> None:
        self._oauth = oauth
        self._access_token = credential.access_token
        self._refresh_token = credential.refresh_token
        self._expiry = credential.expiry
        self._on_refresh = on_refresh
        self._timeout = timeout
        self._refreshed = False

    def request(self, method: str, url: str, body: dict[str, Any] | None = None) -> dict[str, Any]:
        if self._needs_refresh():
            self._refresh()
        try:
            return _request_json(method, url, self._access_token or "", body, self._timeout)
        except CalendarProviderError as exc:
            if exc.status != 401 or not self._refresh_token or self._refreshed:
                raise
            logger.info("Access token rejected; refreshing and replaying %s request.", method)
        self._refresh()
        return _request_json(method, url, self._access_token or "", body, self._timeout)

    def _needs_refresh(self) -> bool:
        if not self._refresh_token:
            return False
        if not self._access_token:
            return True
        return _expires_soon(self._expiry)

    def _refresh(self) -> None:
        if not self._refresh_token:
            raise CalendarProviderError("Access token expired and no refresh token is stored", status=401)
        try:
            result = self._oauth.refresh(self._refresh_token)
        except OAuthExchangeFailed as exc:
            raise CalendarProviderError(f"Token refresh failed: {exc}") from exc
        self._access_token = result.access_token
        self._refresh_token = result.refresh_token or self._refresh_token
        self._expiry = result.expires_at
        self._refreshed = True
        if self._on_refresh is not None:
            self._on_refresh(result.as_delta())


def _expires_soon(expiry: str | None) -> bool:
    if not expiry:
        return False
    try:
        expires = datetime.fromisoformat(expiry)
    except ValueError:
        return False
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires <= datetime.now(timezone.utc) + _EXPIRY_SKEW


def _post_form(url: str, payload: dict[str, str], timeout: float) -> dict[str, Any]:
    """Summary: Send a form-encoded POST to the token endpoint and parse JSON.

    Importance: Keeps the OAuth exchange free of extra HTTP dependencies.
    Alternatives: Use requests or a provider SDK.
    """

    data = urllib.parse.urlencode(payload).encode("utf-8")
    request = urllib.request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        method="POST",
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            raw = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8", errors="replace")
        raise OAuthExchangeFailed(f"Token exchange failed: {error_body or exc.reason}") from exc
    except (urllib.error.URLError, OSError) as exc:
        raise OAuthExchangeFailed(f"Token endpoint unreachable: {exc}") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise OAuthExchangeFailed("Token endpoint returned invalid JSON") from exc


def _request_json(
    method: str, url: str, access_token: str, body: dict[str, Any] | None, timeout: float
) -> dict[str, Any]:
    """Summary: Send an authorized JSON request to a Google API.

    Importance: Normalizes transport and HTTP failures into CalendarProviderError.
    Alternatives: Use googleapiclient discovery clients.
    """

    headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
    data = None
    if body is not None:
        data = json.dumps(body).encode("utf-8")
        headers["Content-Type"] = "application/json"
    request = urllib.request.Request(url, data=data, headers=headers, method=method)
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            raw = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8", errors="replace")
        raise CalendarProviderError(
            f"Google Calendar request failed ({exc.code}): {error_body or exc.reason}",
            status=exc.code,
        ) from exc
    except (urllib.error.URLError, OSError) as exc:
        raise CalendarProviderError(f"Google Calendar unreachable: {exc}") from exc
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CalendarProviderError("Google Calendar returned invalid JSON") from exc
