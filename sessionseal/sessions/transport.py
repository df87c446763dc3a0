"""
SessionSeal Sessions - Transport adapters.

Handles token extraction and injection on the HTTP boundary:
- CookieTransport: HTTP cookies

Transports never inspect token contents; verification is the signer's
job and lifecycle is the engine's.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Protocol

from .core import utcnow
from .faults import NoTokenError
from .options import TransportOptions, with_defaults

if TYPE_CHECKING:
    from sessionseal.request import Request
    from sessionseal.response import Response


# Clearing writes an Expires this far in the past
CLEAR_BACKDATE = timedelta(hours=1000)


# ============================================================================
# SessionTransport Protocol
# ============================================================================

class SessionTransport(Protocol):
    """
    Abstract transport interface for token delivery.

    Transports are responsible for:
    - Extracting the token from requests
    - Injecting the token into responses
    - Clearing the token from responses

    Transports do NOT handle:
    - Token verification (that's the Signer)
    - Session lifecycle (that's SessionEngine)
    - Session persistence (that's SessionStore)
    """

    def write_token(self, token: str, expires_at: datetime, response: Response) -> None:
        """Attach ``token`` to the response with the given expiry."""
        ...

    def clear_token(self, response: Response) -> None:
        """Instruct the client to discard its token."""
        ...

    def read_token(self, request: Request) -> str:
        """
        Return the raw token from the request.

        Raises:
            NoTokenError: Request carries no token
        """
        ...


# ============================================================================
# CookieTransport - HTTP Cookies
# ============================================================================

class CookieTransport:
    """
    Cookie-based session transport.

    Features:
    - HttpOnly flag (XSS protection)
    - Secure flag (HTTPS only)
    - SameSite policy (CSRF protection)
    - Configurable path and domain
    - Expires taken from the session record

    Example:
        >>> transport = CookieTransport(TransportOptions(cookie_name="sid"))
        >>> transport.write_token(token, record.expires_at, response)
        >>> transport.read_token(request) == token
        True
    """

    def __init__(
        self,
        options: TransportOptions | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize cookie transport.

        Args:
            options: Cookie settings (defaults applied)
            clock: Current-time source used for Max-Age and clearing
        """
        self.options = with_defaults(options or TransportOptions())
        self.cookie_name = self.options.cookie_name
        self._clock = clock

    def write_token(self, token: str, expires_at: datetime, response: Response) -> None:
        """Set the session cookie."""
        max_age = int((expires_at - self._clock()).total_seconds())
        self._set(response, token, expires_at, max(max_age, 0))

    def clear_token(self, response: Response) -> None:
        """Overwrite the session cookie with an empty, expired one."""
        self._set(response, "", self._clock() - CLEAR_BACKDATE, 0)

    def read_token(self, request: Request) -> str:
        """Extract token from cookie."""
        token = request.cookie(self.cookie_name)
        if not token:
            raise NoTokenError(carrier=f"cookie:{self.cookie_name}")
        return token

    def _set(self, response: Response, value: str, expires: datetime, max_age: int) -> None:
        options = self.options
        response.set_cookie(
            options.cookie_name,
            value,
            max_age=max_age,
            expires=expires,
            path=options.cookie_path,
            domain=options.cookie_domain,
            secure=options.secure,
            httponly=options.http_only,
            samesite=options.samesite,
        )


__all__ = ["SessionTransport", "CookieTransport"]
