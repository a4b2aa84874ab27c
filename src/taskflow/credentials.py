"""Summary: Per-user OAuth credential persistence for calendar sync.

Importance: Refresh tokens must survive across requests while access tokens rotate underneath them.
Alternatives: Keep credentials in process memory and re-consent after restarts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from taskflow.errors import StoreUnavailable
from taskflow.models import StoredCredential
from taskflow.storage.sqlite_store import SqliteStore, StoredCredentialRow
from taskflow.token_codec import TokenCodec


logger = logging.getLogger(__name__)

GOOGLE_PROVIDER = "google"

_MERGE_FIELDS = ("access_token", "refresh_token", "expiry", "scope", "token_type")


@dataclass(frozen=True)
class CredentialStore:
    """Summary: Reads and field-merges StoredCredential records.

    Importance: Providers omit unchanged fields (notably refresh tokens) on refresh,
    so updates are merged into the existing record rather than replacing it.
    Alternatives: Overwrite the whole record on every token response.
    """

    store: SqliteStore
    codec: TokenCodec
    provider: str = GOOGLE_PROVIDER

    def get(self, user_uid: str) -> StoredCredential | None:
        row = self.store.get_credential(user_uid, self.provider)
        if row is None:
            return None
        return self._decode(row)

    def merge(self, user_uid: str, delta: dict[str, Any]) -> StoredCredential:
        """Summary: Merge a partial credential into the user's record, creating it if absent.

        Importance: Called on first code exchange and from every refresh notification.
        Alternatives: Persist only at connect time and lose refreshed access tokens.
        """

        merged: dict[str, StoredCredential] = {}

        def _apply(row: StoredCredentialRow | None) -> StoredCredentialRow:
            current = self._decode(row) if row else None
            result = merge_credential(current, delta)
            merged["value"] = result
            return self._encode(result)

        self.store.update_credential(user_uid, self.provider, _apply)
        logger.info(
            "Merged %s credential fields for user %s.",
            ", ".join(sorted(key for key in delta if delta[key] is not None)) or "no",
            user_uid,
        )
        return merged["value"]

    def _decode(self, row: StoredCredentialRow) -> StoredCredential:
        """Summary: Restore a stored row into plaintext token material.

        Importance: A row written under a different token secret is unreadable; that is
        reported as StoreUnavailable so callers treat it like any storage failure.
        Alternatives: Return None and treat the user as never connected.
        """

        try:
            return StoredCredential(
                access_token=self.codec.decode_optional(row.access_token),
                refresh_token=self.codec.decode_optional(row.refresh_token),
                expiry=row.expiry,
                scope=row.scope,
                token_type=row.token_type,
                raw=self.codec.decode_json(row.raw),
            )
        except ValueError as exc:
            raise StoreUnavailable(f"Stored {self.provider} credential could not be decoded") from exc

    def _encode(self, credential: StoredCredential) -> StoredCredentialRow:
        return StoredCredentialRow(
            access_token=self.codec.encode_optional(credential.access_token),
            refresh_token=self.codec.encode_optional(credential.refresh_token),
            expiry=credential.expiry,
            scope=credential.scope,
            token_type=credential.token_type,
            raw=self.codec.encode_json(credential.raw),
        )


def merge_credential(current: StoredCredential | None, delta: dict[str, Any]) -> StoredCredential:
    """Summary: Overlay non-null delta fields onto a credential.

    Importance: A refresh carrying only an access token keeps the stored refresh token.
    Alternatives: Treat missing fields as deletions.
    """

    base = current or StoredCredential(access_token=None)
    values: dict[str, Any] = {name: getattr(base, name) for name in _MERGE_FIELDS}
    for name in _MERGE_FIELDS:
        if delta.get(name) is not None:
            values[name] = delta[name]
    raw = dict(base.raw)
    raw.update(delta.get("raw") or {})
    return StoredCredential(raw=raw, **values)
