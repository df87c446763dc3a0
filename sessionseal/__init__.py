"""
SessionSeal - signed, server-side user sessions for ASGI services.

Tokens are ``base64url(id || HMAC-SHA512(key, id))``; session data and
expiry live in Redis (or memory for development).

Usage:
    from sessionseal.sessions import SessionEngine, HMACSigner, RedisStore, CookieTransport
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
