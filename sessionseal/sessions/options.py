"""
SessionSeal Sessions - Option types.

Defines the configuration values consumed by the session subsystem:
- SessionOptions: Secret key and session lifetime
- TransportOptions: Cookie carrier shape
- StoreOptions: Redis connection parameters

Options are frozen. Unset fields are ``None`` and are filled in by the
pure ``with_defaults`` function, which returns a new value and never
mutates its argument.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta
from functools import singledispatch
from typing import Literal, Optional


# ============================================================================
# Defaults
# ============================================================================

DEFAULT_EXPIRATION = timedelta(hours=72)  # 3 days

DEFAULT_COOKIE_NAME = "session"
DEFAULT_COOKIE_PATH = "/"
DEFAULT_COOKIE_HTTPONLY = True
DEFAULT_COOKIE_SECURE = True
DEFAULT_COOKIE_SAMESITE = "Lax"

DEFAULT_REDIS_URL = "redis://localhost:6379/0"
DEFAULT_MAX_CONNECTIONS = 10
DEFAULT_POOL_TIMEOUT = 5.0
DEFAULT_SOCKET_TIMEOUT = 5.0
DEFAULT_SOCKET_CONNECT_TIMEOUT = 5.0
DEFAULT_HEALTH_CHECK_INTERVAL = 10.0
DEFAULT_OPERATION_TIMEOUT = 5.0
DEFAULT_KEY_PREFIX = ""


# ============================================================================
# Option types
# ============================================================================

@dataclass(frozen=True)
class SessionOptions:
    """
    Controls session lifetime and signing.

    Attributes:
        key: Secret key for HMAC signing (required, non-empty)
        expiration: Lifetime granted by Issue and by each Extend

    Example:
        >>> options = with_defaults(SessionOptions(key=b"secret"))
        >>> options.expiration
        datetime.timedelta(days=3)
    """

    key: bytes = b""
    expiration: Optional[timedelta] = None


@dataclass(frozen=True)
class TransportOptions:
    """
    Controls the cookie that carries the token.

    Attributes:
        cookie_name: Name of session cookie
        cookie_path: Cookie path
        http_only: HttpOnly flag (prevents script access)
        secure: Secure flag (HTTPS only)
        samesite: SameSite policy (None disables the attribute)
        cookie_domain: Cookie domain
    """

    cookie_name: Optional[str] = None
    cookie_path: Optional[str] = None
    http_only: Optional[bool] = None
    secure: Optional[bool] = None
    samesite: Optional[Literal["Strict", "Lax", "None"]] = None
    cookie_domain: Optional[str] = None


@dataclass(frozen=True)
class StoreOptions:
    """
    Redis store connection parameters.

    These are opaque to the session engine; only RedisStore reads them.

    Attributes:
        url: Redis URL
        max_connections: Upper bound of the connection pool
        pool_timeout: Seconds to wait for a free pooled connection
        socket_timeout: Per-command socket timeout
        socket_connect_timeout: Connect timeout
        health_check_interval: Ping connections idle longer than this
        operation_timeout: Default deadline for one store operation
        key_prefix: Prefix prepended to every session key
    """

    url: Optional[str] = None
    max_connections: Optional[int] = None
    pool_timeout: Optional[float] = None
    socket_timeout: Optional[float] = None
    socket_connect_timeout: Optional[float] = None
    health_check_interval: Optional[float] = None
    operation_timeout: Optional[float] = None
    key_prefix: Optional[str] = None


# ============================================================================
# Defaulting
# ============================================================================

def _fill(value, default):
    return default if value is None else value


@singledispatch
def with_defaults(options):
    """
    Return a fully-populated copy of ``options``.

    Fields left as ``None`` take the documented default; explicit values,
    including ``False`` and ``0``, are kept.
    """
    raise TypeError(f"No defaults registered for {type(options).__name__}")


@with_defaults.register
def _(options: SessionOptions) -> SessionOptions:
    # A zero duration would issue already-expired sessions
    expiration = options.expiration
    if not expiration:
        expiration = DEFAULT_EXPIRATION
    return replace(options, expiration=expiration)


@with_defaults.register
def _(options: TransportOptions) -> TransportOptions:
    return replace(
        options,
        cookie_name=options.cookie_name or DEFAULT_COOKIE_NAME,
        cookie_path=options.cookie_path or DEFAULT_COOKIE_PATH,
        http_only=_fill(options.http_only, DEFAULT_COOKIE_HTTPONLY),
        secure=_fill(options.secure, DEFAULT_COOKIE_SECURE),
        samesite=_fill(options.samesite, DEFAULT_COOKIE_SAMESITE),
    )


@with_defaults.register
def _(options: StoreOptions) -> StoreOptions:
    return replace(
        options,
        url=options.url or DEFAULT_REDIS_URL,
        max_connections=options.max_connections or DEFAULT_MAX_CONNECTIONS,
        pool_timeout=_fill(options.pool_timeout, DEFAULT_POOL_TIMEOUT),
        socket_timeout=_fill(options.socket_timeout, DEFAULT_SOCKET_TIMEOUT),
        socket_connect_timeout=_fill(options.socket_connect_timeout, DEFAULT_SOCKET_CONNECT_TIMEOUT),
        health_check_interval=_fill(options.health_check_interval, DEFAULT_HEALTH_CHECK_INTERVAL),
        operation_timeout=_fill(options.operation_timeout, DEFAULT_OPERATION_TIMEOUT),
        key_prefix=_fill(options.key_prefix, DEFAULT_KEY_PREFIX),
    )


__all__ = [
    "DEFAULT_EXPIRATION",
    "SessionOptions",
    "TransportOptions",
    "StoreOptions",
    "with_defaults",
]
