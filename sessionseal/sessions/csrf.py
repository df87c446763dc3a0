"""
SessionSeal Sessions - CSRF helpers.

A CSRF secret is generated at login and stored in the session payload
as ``{"csrf": "<token>"}``. The client reads it from a non-HttpOnly
cookie and echoes it in a header; the server compares the header with
the payload copy.
"""

from __future__ import annotations

import base64
import hmac
import json
import secrets
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from sessionseal.request import Request
    from .core import SessionRecord


DEFAULT_CSRF_HEADER = "X-CSRF-Token"
DEFAULT_CSRF_COOKIE = "csrf"
CSRF_TOKEN_BYTES = 32


def generate_csrf_token(nbytes: int = CSRF_TOKEN_BYTES) -> str:
    """Return ``nbytes`` of randomness as padded URL-safe base64."""
    return base64.urlsafe_b64encode(secrets.token_bytes(nbytes)).decode("ascii")


def csrf_payload(csrf_token: str, **extra) -> str:
    """Build the JSON payload stored with a session."""
    return json.dumps({"csrf": csrf_token, **extra})


def csrf_from_record(record: SessionRecord) -> Optional[str]:
    """Extract the CSRF secret from a record payload, if present."""
    try:
        data = json.loads(record.payload) if record.payload else None
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    value = data.get("csrf")
    return value if isinstance(value, str) else None


def csrf_matches(
    record: SessionRecord,
    request: Request,
    header_name: str = DEFAULT_CSRF_HEADER,
) -> bool:
    """
    Check the request's CSRF header against the session payload.

    Returns False when either side is missing. Comparison is constant-time.
    """
    expected = csrf_from_record(record)
    supplied = request.header(header_name)
    if not expected or not supplied:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


__all__ = [
    "DEFAULT_CSRF_HEADER",
    "DEFAULT_CSRF_COOKIE",
    "generate_csrf_token",
    "csrf_payload",
    "csrf_from_record",
    "csrf_matches",
]
