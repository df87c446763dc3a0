"""
SessionSeal Sessions - Session storage abstraction.

Defines SessionStore protocol and the in-process implementation:
- MemoryStore: In-memory storage with its own expiry table (dev/testing)

The Redis implementation lives in ``redis_store``.

Stores own expiry. A record is live while the store's clock is before
the expiry recorded at save time; ``record.expires_at`` is data, not
the deciding field.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Protocol, TypeVar

from .core import ABSENT, FetchResult, Found, SessionRecord, utcnow
from .faults import StoreUnavailableError


logger = logging.getLogger("sessionseal.sessions.store")

T = TypeVar("T")

# Delete moves expiry this far into the past instead of removing the key
REVOKE_BACKDATE = timedelta(hours=1000)


async def run_with_deadline(
    awaitable: Awaitable[T],
    timeout: Optional[float],
    *,
    store_name: str,
    operation: str,
) -> T:
    """
    Await ``awaitable`` under an optional deadline.

    A missed deadline is reported as StoreUnavailableError so that a slow
    backend is never mistaken for a missing session.
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError:
        raise StoreUnavailableError(
            store_name,
            cause=f"deadline of {timeout}s exceeded",
            operation=operation,
        )


# ============================================================================
# SessionStore Protocol
# ============================================================================

class SessionStore(Protocol):
    """
    Abstract session storage interface.

    Stores are responsible ONLY for persistence and native expiry - they
    do NOT sign, read cookies or decide policy. That happens in
    SessionEngine.

    All methods must be async and cancellation-safe. ``timeout`` bounds
    the whole operation in seconds; ``None`` means no deadline.
    """

    name: str

    async def save(self, record: SessionRecord, *, timeout: Optional[float] = None) -> None:
        """
        Upsert a record and set its native expiry to ``record.expires_at``.

        Raises:
            StoreUnavailableError: Store is unavailable or the deadline passed
        """
        ...

    async def fetch_valid(self, session_id: str, *, timeout: Optional[float] = None) -> FetchResult:
        """
        Fetch a live record.

        Returns:
            Found(record) if a live entry exists, ABSENT otherwise

        Raises:
            StoreUnavailableError: Store is unavailable or the deadline passed
            CorruptRecordError: Entry exists but is incomplete
        """
        ...

    async def delete(self, session_id: str, *, timeout: Optional[float] = None) -> None:
        """
        Revoke a record. Idempotent: deleting an unknown id succeeds.

        Raises:
            StoreUnavailableError: Store is unavailable or the deadline passed
        """
        ...

    async def shutdown(self) -> None:
        """Gracefully shutdown store (close connections)."""
        ...


# ============================================================================
# MemoryStore - In-Memory Storage
# ============================================================================

class MemoryStore:
    """
    In-memory session storage for development and testing.

    Keeps records and expiries in separate tables. Expiry is checked
    against an injectable clock on every fetch, and delete backdates
    the expiry the same way the Redis store does.

    NOT suitable for production (no persistence, no sharing across
    processes).

    Example:
        >>> store = MemoryStore()
        >>> await store.save(record)
        >>> result = await store.fetch_valid(record.id)
        >>> assert result.record.user_id == record.user_id
    """

    name = "memory"

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        """
        Initialize memory store.

        Args:
            clock: Returns the current aware UTC time
        """
        self._clock = clock
        self._records: dict[str, SessionRecord] = {}
        self._expiry: dict[str, datetime] = {}
        self._lock = asyncio.Lock()

    async def save(self, record: SessionRecord, *, timeout: Optional[float] = None) -> None:
        """Save record and its expiry."""
        await run_with_deadline(
            self._save(record), timeout, store_name=self.name, operation="save",
        )

    async def _save(self, record: SessionRecord) -> None:
        async with self._lock:
            # Copy so later caller mutations do not leak into the store
            self._records[record.id] = replace(record)
            self._expiry[record.id] = record.expires_at

    async def fetch_valid(self, session_id: str, *, timeout: Optional[float] = None) -> FetchResult:
        """Fetch record if its stored expiry is still in the future."""
        return await run_with_deadline(
            self._fetch_valid(session_id), timeout, store_name=self.name, operation="fetch",
        )

    async def _fetch_valid(self, session_id: str) -> FetchResult:
        async with self._lock:
            expires = self._expiry.get(session_id)
            if expires is None or expires <= self._clock():
                return ABSENT
            return Found(replace(self._records[session_id]))

    async def delete(self, session_id: str, *, timeout: Optional[float] = None) -> None:
        """Revoke by moving the expiry into the past."""
        await run_with_deadline(
            self._delete(session_id), timeout, store_name=self.name, operation="delete",
        )

    async def _delete(self, session_id: str) -> None:
        async with self._lock:
            if session_id in self._expiry:
                self._expiry[session_id] = self._clock() - REVOKE_BACKDATE

    async def purge_expired(self) -> int:
        """
        Drop entries whose expiry has passed.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            now = self._clock()
            expired = [sid for sid, exp in self._expiry.items() if exp <= now]
            for sid in expired:
                del self._expiry[sid]
                self._records.pop(sid, None)

        if expired:
            logger.debug(f"Purged {len(expired)} expired sessions")
        return len(expired)

    async def shutdown(self) -> None:
        """Clear all records."""
        async with self._lock:
            self._records.clear()
            self._expiry.clear()

    def __len__(self) -> int:
        return len(self._expiry)


__all__ = [
    "REVOKE_BACKDATE",
    "run_with_deadline",
    "SessionStore",
    "MemoryStore",
]
