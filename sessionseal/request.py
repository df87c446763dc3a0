"""
SessionSeal Request - ASGI request wrapper.

Exposes what the session layer and the demo handlers need from an ASGI
scope: method, path, client, headers, cookies, a body reader with JSON
parsing, and a per-request ``state`` dict.
"""

from __future__ import annotations

import json as stdlib_json
from http.cookies import CookieError, SimpleCookie
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from ._datastructures import Headers
from .faults import Fault, FaultDomain, Severity


# ============================================================================
# Request Faults
# ============================================================================

class RequestFault(Fault):
    """Base class for request parsing faults."""

    domain = FaultDomain.IO
    severity = Severity.WARN
    public = True
    retryable = False


class PayloadTooLarge(RequestFault):
    code = "PAYLOAD_TOO_LARGE"
    message = "Request body too large"


class InvalidJSON(RequestFault):
    code = "INVALID_JSON"
    message = "Invalid JSON body"


class ClientDisconnect(RequestFault):
    code = "CLIENT_DISCONNECT"
    message = "Client disconnected"


# ============================================================================
# Request
# ============================================================================

class Request:
    """
    Request object over an ASGI scope.

    Header and cookie parsing is lazy and cached. The body is read once
    and cached, so ``body()`` and ``json()`` are idempotent.
    """

    def __init__(
        self,
        scope: Mapping[str, Any],
        receive: Optional[Callable[..., Awaitable[dict]]] = None,
        send: Optional[Callable] = None,
        *,
        max_body_size: int = 1_048_576,  # 1 MiB
    ):
        """
        Initialize Request.

        Args:
            scope: ASGI scope dict
            receive: ASGI receive callable
            send: ASGI send callable (optional)
            max_body_size: Maximum request body size in bytes
        """
        self.scope = scope
        self._receive = receive
        self._send = send
        self.max_body_size = max_body_size

        # Share state with the scope so middleware and handlers see the same dict
        if isinstance(scope, dict):
            self.state: Dict[str, Any] = scope.setdefault("state", {})
        else:
            self.state = {}

        self._body: Optional[bytes] = None
        self._headers: Optional[Headers] = None
        self._cookies: Optional[Dict[str, str]] = None

    # ========================================================================
    # Basic Properties
    # ========================================================================

    @property
    def method(self) -> str:
        """HTTP method (GET, POST, etc.)."""
        return self.scope.get("method", "GET")

    @property
    def path(self) -> str:
        """Request path (decoded)."""
        return self.scope.get("path", "/")

    @property
    def client(self) -> Optional[tuple]:
        """Client address (host, port)."""
        return self.scope.get("client")

    # ========================================================================
    # Headers
    # ========================================================================

    @property
    def headers(self) -> Headers:
        """Get parsed headers."""
        if self._headers is None:
            self._headers = Headers(raw=list(self.scope.get("headers", [])))
        return self._headers

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get single header (case-insensitive)."""
        return self.headers.get(name, default)

    # ========================================================================
    # Cookies
    # ========================================================================

    @property
    def cookies(self) -> Mapping[str, str]:
        """Get parsed cookies."""
        if self._cookies is None:
            self._cookies = {}
            for cookie_header in self.headers.get_all("cookie"):
                cookie = SimpleCookie()
                try:
                    cookie.load(cookie_header)
                except CookieError:
                    continue
                self._cookies.update({key: morsel.value for key, morsel in cookie.items()})
        return self._cookies

    def cookie(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get single cookie value."""
        return self.cookies.get(name, default)

    # ========================================================================
    # Body
    # ========================================================================

    async def body(self) -> bytes:
        """
        Read full request body (idempotent).

        Raises:
            ClientDisconnect: If client disconnects
            PayloadTooLarge: If body exceeds max_body_size
        """
        if self._body is not None:
            return self._body

        if self._receive is None:
            self._body = b""
            return self._body

        chunks = []
        total_size = 0
        more_body = True
        while more_body:
            message = await self._receive()
            if message["type"] == "http.disconnect":
                raise ClientDisconnect()
            chunk = message.get("body", b"")
            total_size += len(chunk)
            if total_size > self.max_body_size:
                raise PayloadTooLarge(metadata={"max_allowed": self.max_body_size})
            chunks.append(chunk)
            more_body = message.get("more_body", False)

        self._body = b"".join(chunks)
        return self._body

    async def json(self) -> Any:
        """
        Parse request body as JSON. An empty body parses as ``None``.

        Raises:
            InvalidJSON: If JSON is malformed
        """
        body_bytes = await self.body()
        if not body_bytes:
            return None
        try:
            return stdlib_json.loads(body_bytes.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise InvalidJSON(message=f"Invalid UTF-8 in JSON payload: {e}")
        except stdlib_json.JSONDecodeError as e:
            raise InvalidJSON(message=f"Invalid JSON: {e}")

    # ========================================================================
    # Session
    # ========================================================================

    @property
    def session(self) -> Optional[Any]:
        """Validation outcome stored by SessionMiddleware, if any."""
        return self.state.get("session")

    def __repr__(self) -> str:
        return f"<Request {self.method} {self.path}>"
