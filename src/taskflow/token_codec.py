"""Summary: Obfuscation for OAuth token material at rest.

Importance: Keeps calendar access and refresh tokens out of the database in plain text.
Alternatives: Use a secrets manager or an authenticated encryption library.
"""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any


class TokenCodec:
    """Summary: Reversible keystream codec keyed by the deployment secret.

    Importance: The same secret must be configured for every process sharing a database.
    Alternatives: Derive per-user keys and store them separately.
    """

    def __init__(self, secret: str) -> None:
        self._secret = (secret or "taskflow").encode("utf-8")

    def encode(self, plaintext: str) -> str:
        raw = plaintext.encode("utf-8")
        return base64.urlsafe_b64encode(self._xor(raw)).decode("utf-8")

    def decode(self, payload: str) -> str:
        raw = base64.urlsafe_b64decode(payload.encode("utf-8"))
        return self._xor(raw).decode("utf-8")

    def encode_optional(self, plaintext: str | None) -> str | None:
        """Summary: Encode a value that may be absent.

        Importance: Refresh tokens are frequently missing from provider responses.
        Alternatives: Store empty strings for missing tokens.
        """

        return self.encode(plaintext) if plaintext else None

    def decode_optional(self, payload: str | None) -> str | None:
        return self.decode(payload) if payload else None

    def encode_json(self, data: dict[str, Any]) -> str:
        return self.encode(json.dumps(data, sort_keys=True))

    def decode_json(self, payload: str | None) -> dict[str, Any]:
        if not payload:
            return {}
        return json.loads(self.decode(payload))

    def _xor(self, raw: bytes) -> bytes:
        key = _keystream(self._secret, len(raw))
        return bytes([b ^ k for b, k in zip(raw, key)])


def _keystream(secret: bytes, length: int) -> bytes:
    """Summary: Derive a deterministic keystream from a secret."""

    output = b""
    counter = 0
    while len(output) < length:
        output += hashlib.sha256(secret + counter.to_bytes(4, "big")).digest()
        counter += 1
    return output[:length]
