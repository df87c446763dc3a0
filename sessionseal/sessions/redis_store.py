"""
SessionSeal Sessions - Redis session store.

Each session is a hash at ``<key_prefix><session_id>`` with three fields:

- ``UserID``: user identifier
- ``JSON``: opaque payload
- ``ExpiresAtSeconds``: expiry as Unix seconds (decimal text)

and a native key expiry set with EXPIREAT. Redis evicts the key on its
own; the engine never compares timestamps. Revocation backdates the
expiry so the key disappears immediately, which keeps delete idempotent.

Connections come from a bounded BlockingConnectionPool: callers wait up
to ``pool_timeout`` for a free connection and every pipeline releases
its connection when the ``async with`` block exits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from .core import ABSENT, FetchResult, Found, SessionRecord, utcnow
from .faults import CorruptRecordError, StoreUnavailableError, hash_session_id
from .options import StoreOptions, with_defaults
from .store import REVOKE_BACKDATE, run_with_deadline


logger = logging.getLogger("sessionseal.sessions.redis")

FIELD_USER_ID = "UserID"
FIELD_PAYLOAD = "JSON"
FIELD_EXPIRES = "ExpiresAtSeconds"
FIELDS = (FIELD_USER_ID, FIELD_PAYLOAD, FIELD_EXPIRES)


def build_client(options: StoreOptions) -> "aioredis.Redis":
    """
    Build a Redis client over a bounded, blocking connection pool.

    No network traffic happens here; connections are opened on first use.
    """
    pool = aioredis.BlockingConnectionPool.from_url(
        options.url,
        max_connections=options.max_connections,
        timeout=options.pool_timeout,
        socket_timeout=options.socket_timeout,
        socket_connect_timeout=options.socket_connect_timeout,
        health_check_interval=options.health_check_interval,
        decode_responses=True,
    )
    return aioredis.Redis(connection_pool=pool)


class RedisStore:
    """
    Redis-backed session storage.

    Features:
    - Bounded connection pool with wait timeout
    - Atomic save (HSET + EXPIREAT in one MULTI/EXEC)
    - Atomic existence + field read on fetch
    - Per-operation deadline (StoreOptions.operation_timeout by default)

    Example:
        >>> store = RedisStore(StoreOptions(url="redis://localhost:6379/0"))
        >>> await store.save(record)
        >>> await store.fetch_valid(record.id)
        Found(record=...)
    """

    __slots__ = ("_options", "_redis", "_owns_client", "_clock")

    name = "redis"

    def __init__(
        self,
        options: StoreOptions | None = None,
        *,
        client: Any = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize Redis store.

        Args:
            options: Connection options (defaults applied)
            client: Pre-built ``redis.asyncio.Redis`` client. When given,
                the store does not close it on shutdown.
            clock: Current-time source for revocation timestamps
        """
        self._options = with_defaults(options or StoreOptions())
        self._owns_client = client is None
        self._clock = clock
        self._redis = client if client is not None else build_client(self._options)

    @property
    def options(self) -> StoreOptions:
        return self._options

    def _key(self, session_id: str) -> str:
        """Build prefixed key."""
        return f"{self._options.key_prefix}{session_id}"

    def _deadline(self, timeout: Optional[float]) -> Optional[float]:
        return self._options.operation_timeout if timeout is None else timeout

    def _unavailable(self, error: Exception, operation: str, session_id: str) -> StoreUnavailableError:
        logger.error(
            f"Redis {operation} failed for session {hash_session_id(session_id)}: "
            f"{type(error).__name__}: {error}"
        )
        return StoreUnavailableError(self.name, cause=str(error) or type(error).__name__, operation=operation)

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    async def save(self, record: SessionRecord, *, timeout: Optional[float] = None) -> None:
        """Upsert the record and set its native expiry."""
        await run_with_deadline(
            self._save(record), self._deadline(timeout), store_name=self.name, operation="save",
        )

    async def _save(self, record: SessionRecord) -> None:
        key = self._key(record.id)
        expires = record.expires_at_seconds
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hset(
                    key,
                    mapping={
                        FIELD_USER_ID: record.user_id,
                        FIELD_PAYLOAD: record.payload,
                        FIELD_EXPIRES: str(expires),
                    },
                )
                pipe.expireat(key, expires)
                await pipe.execute()
        except (RedisError, OSError) as e:
            raise self._unavailable(e, "save", record.id)

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    async def fetch_valid(self, session_id: str, *, timeout: Optional[float] = None) -> FetchResult:
        """Fetch a live record, or ABSENT when Redis has no such key."""
        return await run_with_deadline(
            self._fetch_valid(session_id), self._deadline(timeout), store_name=self.name, operation="fetch",
        )

    async def _fetch_valid(self, session_id: str) -> FetchResult:
        key = self._key(session_id)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.exists(key)
                pipe.hmget(key, FIELDS)
                exists, values = await pipe.execute()
        except UnicodeDecodeError:
            # decode_responses=True fails inside the reply parser
            logger.error(f"Undecodable fields in session {hash_session_id(session_id)}")
            raise CorruptRecordError(session_id, "undecodable field")
        except (RedisError, OSError) as e:
            raise self._unavailable(e, "fetch", session_id)

        if not exists:
            return ABSENT

        return Found(self._decode(session_id, values))

    def _decode(self, session_id: str, values: list) -> SessionRecord:
        """Rebuild a record from HMGET values."""
        fields = dict(zip(FIELDS, values))
        missing = [name for name, value in fields.items() if value is None]
        if missing:
            raise CorruptRecordError(session_id, f"missing fields: {', '.join(missing)}")

        try:
            expires = datetime.fromtimestamp(int(fields[FIELD_EXPIRES]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            raise CorruptRecordError(session_id, f"bad {FIELD_EXPIRES} value")

        try:
            user_id = _text(fields[FIELD_USER_ID])
            payload = _text(fields[FIELD_PAYLOAD])
        except UnicodeDecodeError:
            raise CorruptRecordError(session_id, "undecodable field")

        return SessionRecord(id=session_id, user_id=user_id, payload=payload, expires_at=expires)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete(self, session_id: str, *, timeout: Optional[float] = None) -> None:
        """Revoke by setting the key expiry far in the past."""
        await run_with_deadline(
            self._delete(session_id), self._deadline(timeout), store_name=self.name, operation="delete",
        )

    async def _delete(self, session_id: str) -> None:
        revoked_at = int((self._clock() - REVOKE_BACKDATE).timestamp())
        try:
            await self._redis.expireat(self._key(session_id), revoked_at)
        except (RedisError, OSError) as e:
            raise self._unavailable(e, "delete", session_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def ping(self, *, timeout: Optional[float] = None) -> bool:
        """Check connectivity. Returns False instead of raising."""
        try:
            return bool(await run_with_deadline(
                self._redis.ping(), self._deadline(timeout), store_name=self.name, operation="ping",
            ))
        except StoreUnavailableError:
            return False
        except (RedisError, OSError) as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def shutdown(self) -> None:
        """Close Redis connection pool."""
        if self._owns_client and self._redis is not None:
            # The pool was passed in explicitly, so the client would not close it
            await self._redis.aclose(close_connection_pool=True)
            logger.info("Redis session store closed")


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


__all__ = ["RedisStore", "build_client", "FIELDS"]
