"""
SessionSeal Sessions - Core types.

Defines fundamental session data structures:
- SessionRecord: Server-side session state
- Found / Absent: Result of a store lookup
- Authenticated / Unauthenticated / Faulted: Result of validating a request
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Union

from .faults import SessionFault


# Canonical textual UUID length ("xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx")
SESSION_ID_WIDTH = 36


def new_session_id() -> str:
    """
    Generate a new opaque session identifier.

    Returns the 36-character canonical form of a random UUID4.
    """
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# ============================================================================
# SessionRecord
# ============================================================================

@dataclass
class SessionRecord:
    """
    Server-side session state addressed by a signed token.

    The record is what the store persists; the client only ever holds a
    signed copy of ``id``. ``expires_at`` is the only field that changes
    after issue, and only through ``SessionEngine.extend``.

    Attributes:
        id: Opaque identifier (36-character UUID text)
        user_id: Caller-supplied user identifier
        payload: Caller-supplied opaque string (typically JSON)
        expires_at: Absolute UTC expiry

    Example:
        >>> record = SessionRecord(
        ...     id=new_session_id(),
        ...     user_id="u1",
        ...     payload="{}",
        ...     expires_at=utcnow() + timedelta(hours=72),
        ... )
    """

    id: str
    user_id: str
    payload: str = ""
    expires_at: datetime = field(default_factory=utcnow)

    def __repr__(self) -> str:
        return (
            f"SessionRecord(id={self.id[:8]}..., user_id={self.user_id!r}, "
            f"expires_at={self.expires_at.isoformat()})"
        )

    @property
    def expires_at_seconds(self) -> int:
        """Expiry as integer Unix seconds (store wire form)."""
        return int(self.expires_at.timestamp())


# ============================================================================
# Store lookup result
# ============================================================================

@dataclass(frozen=True)
class Found:
    """A live entry exists for the requested id."""

    record: SessionRecord


class Absent:
    """
    No live entry exists (expired, revoked, or never issued).

    This is an expected outcome, not a fault. Use the ``ABSENT`` singleton.
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = Absent()

FetchResult = Union[Found, Absent]


# ============================================================================
# Validation outcome
# ============================================================================

@dataclass(frozen=True)
class Authenticated:
    """Request carries a valid, live session."""

    record: SessionRecord

    is_authenticated = True
    status_code = 200


@dataclass(frozen=True)
class Unauthenticated:
    """
    Request has no usable session.

    ``reason`` is for logs only and must not be echoed to clients: a
    tampered token and a missing cookie look the same from outside.
    """

    reason: str = "no_session"

    is_authenticated = False
    status_code = 401


@dataclass(frozen=True)
class Faulted:
    """
    Session state could not be determined because infrastructure failed.

    Distinct from Unauthenticated so that an outage never looks like a
    mass logout.
    """

    fault: SessionFault

    is_authenticated = False

    @property
    def status_code(self) -> int:
        return 503 if self.fault.retryable else 500


ValidationOutcome = Union[Authenticated, Unauthenticated, Faulted]


__all__ = [
    "SESSION_ID_WIDTH",
    "new_session_id",
    "utcnow",
    "SessionRecord",
    "Found",
    "Absent",
    "ABSENT",
    "FetchResult",
    "Authenticated",
    "Unauthenticated",
    "Faulted",
    "ValidationOutcome",
]
