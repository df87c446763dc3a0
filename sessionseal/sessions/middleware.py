"""
Session Middleware - Integrates SessionEngine with the ASGI request lifecycle.

For every HTTP request the middleware:
1. Validates the session through SessionEngine
2. Stores the outcome in ``scope["state"]["session"]``
3. Short-circuits infrastructure faults with a 5xx JSON response
4. Optionally rejects unauthenticated requests with 401
5. Calls the wrapped application
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, MutableMapping

from sessionseal.request import Request
from sessionseal.response import Response, Unauthorized

from .core import Faulted

if TYPE_CHECKING:
    from .engine import SessionEngine


Scope = MutableMapping[str, Any]
Receive = Callable[[], Awaitable[dict]]
Send = Callable[[dict], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]


class SessionMiddleware:
    """
    ASGI middleware that validates sessions before the application runs.

    Outcomes:
    - Authenticated: app runs, ``scope["state"]["session"]`` holds it
    - Unauthenticated: app runs, unless ``require`` is set (401)
    - Faulted: app does not run; 503 for retryable faults, else 500

    Example:
        >>> app = SessionMiddleware(app, engine, exempt_paths={"/login"})
        >>> uvicorn.run(app)
    """

    def __init__(
        self,
        app: ASGIApp,
        engine: "SessionEngine",
        *,
        require: bool = False,
        exempt_paths: Iterable[str] = (),
        state_key: str = "session",
    ):
        """
        Initialize session middleware.

        Args:
            app: Wrapped ASGI application
            engine: SessionEngine instance (app-scoped)
            require: Reject unauthenticated requests with 401
            exempt_paths: Paths that skip validation entirely
            state_key: Key under ``scope["state"]`` for the outcome
        """
        self.app = app
        self.engine = engine
        self.require = require
        self.exempt_paths = frozenset(exempt_paths)
        self.state_key = state_key
        self.logger = logging.getLogger("sessionseal.middleware.session")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path") in self.exempt_paths:
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive, send)
        outcome = await self.engine.validate(request)
        request.state[self.state_key] = outcome

        if isinstance(outcome, Faulted):
            self.logger.error(
                f"Session validation faulted on {request.method} {request.path}: {outcome.fault}"
            )
            response = Response.from_fault(outcome.fault, status=outcome.status_code)
            await response.send_asgi(send)
            return

        if self.require and not outcome.is_authenticated:
            self.logger.debug(f"Unauthenticated request rejected: {request.method} {request.path}")
            await Unauthorized().send_asgi(send)
            return

        await self.app(scope, receive, send)


__all__ = ["SessionMiddleware"]
