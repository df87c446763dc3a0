"""
SessionSeal Sessions - signed, store-backed user sessions.

The client holds only ``base64url(id || HMAC-SHA512(key, id))``; user
data and expiry live server-side in a store with native TTL.

Core exports:
- SessionEngine: Issue / Validate / Extend / Clear
- HMACSigner: Token signing and verification
- RedisStore, MemoryStore: Session persistence
- CookieTransport: Token delivery over cookies
- SessionMiddleware: ASGI integration
- Outcomes: Authenticated, Unauthenticated, Faulted
"""

from .core import (
    SESSION_ID_WIDTH,
    ABSENT,
    Absent,
    Authenticated,
    Faulted,
    FetchResult,
    Found,
    SessionRecord,
    Unauthenticated,
    ValidationOutcome,
    new_session_id,
    utcnow,
)
from .faults import (
    ConfigurationError,
    CorruptRecordError,
    DecodeError,
    InvalidTokenError,
    NoTokenError,
    SessionFault,
    StoreUnavailableError,
    TokenRejectedError,
    hash_session_id,
)
from .options import (
    DEFAULT_EXPIRATION,
    SessionOptions,
    StoreOptions,
    TransportOptions,
    with_defaults,
)
from .signer import HMACSigner, Signer
from .store import MemoryStore, SessionStore
from .redis_store import RedisStore
from .transport import CookieTransport, SessionTransport
from .engine import SessionEngine
from .csrf import csrf_matches, generate_csrf_token
from .middleware import SessionMiddleware


__all__ = [
    # Core
    "SESSION_ID_WIDTH",
    "SessionRecord",
    "Found",
    "Absent",
    "ABSENT",
    "FetchResult",
    "Authenticated",
    "Unauthenticated",
    "Faulted",
    "ValidationOutcome",
    "new_session_id",
    "utcnow",
    # Faults
    "SessionFault",
    "ConfigurationError",
    "NoTokenError",
    "TokenRejectedError",
    "DecodeError",
    "InvalidTokenError",
    "StoreUnavailableError",
    "CorruptRecordError",
    "hash_session_id",
    # Options
    "DEFAULT_EXPIRATION",
    "SessionOptions",
    "TransportOptions",
    "StoreOptions",
    "with_defaults",
    # Components
    "Signer",
    "HMACSigner",
    "SessionStore",
    "MemoryStore",
    "RedisStore",
    "SessionTransport",
    "CookieTransport",
    "SessionEngine",
    "SessionMiddleware",
    # CSRF
    "generate_csrf_token",
    "csrf_matches",
]
