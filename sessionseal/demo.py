"""
SessionSeal demo application.

A small ASGI app exercising the whole session lifecycle:

- ``POST /login``  body ``{"user_id": "..."}``: issues a session whose
  payload carries a CSRF secret, and sets a readable ``csrf`` cookie
- ``GET /me``: requires a session and a matching ``X-CSRF-Token``
  header, then extends the session
- ``POST /logout``: requires a session and clears it

Run with ``sessionseal serve``.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, Tuple

from .request import InvalidJSON, Request
from .response import Forbidden, NotFound, Response, Unauthorized
from .sessions.csrf import (
    DEFAULT_CSRF_COOKIE,
    csrf_from_record,
    csrf_matches,
    csrf_payload,
    generate_csrf_token,
)
from .sessions.engine import SessionEngine
from .sessions.faults import SessionFault
from .sessions.middleware import SessionMiddleware


logger = logging.getLogger("sessionseal.demo")

Handler = Callable[[Request], Awaitable[Response]]


class DemoApp:
    """Route table plus handlers bound to one SessionEngine."""

    def __init__(self, engine: SessionEngine, *, csrf_cookie_secure: bool | None = None):
        self.engine = engine
        # The CSRF cookie follows the session cookie's Secure flag by default
        if csrf_cookie_secure is None:
            csrf_cookie_secure = bool(getattr(getattr(engine.transport, "options", None), "secure", True))
        self.csrf_cookie_secure = csrf_cookie_secure
        self.routes: Dict[Tuple[str, str], Handler] = {
            ("POST", "/login"): self.login,
            ("GET", "/me"): self.me,
            ("POST", "/logout"): self.logout,
        }

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] == "lifespan":
            await self._lifespan(receive, send)
            return
        if scope["type"] != "http":
            return

        request = Request(scope, receive, send)
        handler = self.routes.get((request.method, request.path))
        if handler is None:
            await NotFound().send_asgi(send)
            return

        try:
            response = await handler(request)
        except InvalidJSON as e:
            response = Response.json({"error": e.code, "message": e.message}, status=400)
        except SessionFault as e:
            logger.error(f"Session operation failed on {request.path}: {e}")
            response = Response.from_fault(e, status=503 if e.retryable else 500)
        await response.send_asgi(send)

    async def _lifespan(self, receive, send) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await self.engine.shutdown()
                await send({"type": "lifespan.shutdown.complete"})
                return

    def _set_csrf_cookie(self, response: Response, csrf: str, record) -> None:
        response.set_cookie(
            DEFAULT_CSRF_COOKIE,
            csrf,
            expires=record.expires_at,
            path="/",
            secure=self.csrf_cookie_secure,
            httponly=False,
        )

    # ========================================================================
    # Handlers
    # ========================================================================

    async def login(self, request: Request) -> Response:
        data = await request.json()
        user_id = data.get("user_id") if isinstance(data, dict) else None
        if not user_id or not isinstance(user_id, str):
            return Response.json({"error": "BAD_REQUEST", "message": "user_id is required"}, status=400)

        csrf = generate_csrf_token()
        response = Response.json({"user_id": user_id, "csrf": csrf})
        record = await self.engine.issue(user_id, csrf_payload(csrf), response)
        self._set_csrf_cookie(response, csrf, record)
        return response

    async def me(self, request: Request) -> Response:
        outcome = request.session
        if outcome is None or not outcome.is_authenticated:
            return Unauthorized()

        record = outcome.record
        if not csrf_matches(record, request):
            logger.warning("CSRF token does not match session")
            return Forbidden("CSRF token mismatch")

        # Cookies are collected first; the body needs the extended expiry
        cookies = Response()
        await self.engine.extend(record, request, cookies)
        self._set_csrf_cookie(cookies, csrf_from_record(record), record)

        return Response.json(
            {"user_id": record.user_id, "expires_at": record.expires_at.isoformat()},
            headers={"set-cookie": cookies.get_all("set-cookie")},
        )

    async def logout(self, request: Request) -> Response:
        outcome = request.session
        if outcome is None or not outcome.is_authenticated:
            return Unauthorized()

        response = Response(b"", status=204)
        await self.engine.clear(outcome.record, response)
        return response


def create_app(engine: SessionEngine):
    """
    Build the demo ASGI application.

    The session middleware validates every request except ``/login``.
    """
    return SessionMiddleware(DemoApp(engine), engine, exempt_paths={"/login"})


__all__ = ["DemoApp", "create_app"]
