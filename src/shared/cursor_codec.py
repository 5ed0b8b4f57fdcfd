"""
Opaque pagination cursors.

A cursor wraps the store's native resume point (the Cosmos continuation token)
together with the name of the index it belongs to, signed so that only tokens
minted here are accepted back. Decoding never falls back to a default start
position: anything that is not an intact cursor for the same index raises
``InvalidCursorError``.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
from typing import Optional

from src.specs.common.errors import InvalidCursorError

CURSOR_VERSION = 1
_SIGNATURE_LENGTH = 32


class CursorCodec:
    def __init__(self, signing_key: str):
        if not signing_key:
            raise ValueError("signing_key is required")
        self._key = signing_key.encode("utf-8")

    def _sign(self, index_name: str, continuation: str) -> str:
        message = f"{CURSOR_VERSION}\n{index_name}\n{continuation}".encode("utf-8")
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()[:_SIGNATURE_LENGTH]

    def encode(self, index_name: str, continuation: Optional[str]) -> Optional[str]:
        """Wrap a continuation token; None (no more pages) stays None."""
        if continuation is None:
            return None
        payload = {
            "v": CURSOR_VERSION,
            "idx": index_name,
            "ct": continuation,
            "sig": self._sign(index_name, continuation),
        }
        raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii")

    def decode(self, index_name: str, cursor: Optional[str]) -> Optional[str]:
        """Return the continuation token inside ``cursor`` (None when no cursor was given)."""
        if cursor is None:
            return None
        if not isinstance(cursor, str) or not cursor:
            raise InvalidCursorError("Cursor must be a non-empty string")

        try:
            padded = cursor + "=" * (-len(cursor) % 4)
            raw = base64.urlsafe_b64decode(padded.encode("ascii"))
            payload = json.loads(raw.decode("utf-8"))
        except (binascii.Error, UnicodeError, ValueError):
            raise InvalidCursorError("Cursor is not a valid encoded token")

        if not isinstance(payload, dict):
            raise InvalidCursorError("Cursor payload is malformed")
        if payload.get("v") != CURSOR_VERSION:
            raise InvalidCursorError("Cursor version is not supported", details={"version": payload.get("v")})

        idx = payload.get("idx")
        continuation = payload.get("ct")
        signature = payload.get("sig")
        if not isinstance(idx, str) or not isinstance(continuation, str) or not isinstance(signature, str):
            raise InvalidCursorError("Cursor payload is malformed")
        if not hmac.compare_digest(signature, self._sign(idx, continuation)):
            raise InvalidCursorError("Cursor signature does not match")
        if idx != index_name:
            raise InvalidCursorError(
                "Cursor was issued for a different query", details={"expected": index_name, "actual": idx}
            )
        return continuation
