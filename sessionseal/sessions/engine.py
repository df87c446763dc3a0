"""
SessionSeal Sessions - Session Engine.

The SessionEngine orchestrates the session lifecycle:
1. Issue - Create record, persist, sign, hand token to the transport
2. Validate - Read token, verify signature, ask the store
3. Extend - Push expiry forward and refresh the carrier
4. Clear - Revoke in the store, then clear the carrier

Validation collapses every categorized failure into exactly one of
three outcomes (Authenticated, Unauthenticated, Faulted). Everything
else propagates as a Fault.

The engine never compares ``expires_at`` against the clock to decide
validity: the store's native expiry is the only authority.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Optional

from .core import (
    SESSION_ID_WIDTH,
    Authenticated,
    Faulted,
    Found,
    SessionRecord,
    Unauthenticated,
    ValidationOutcome,
    new_session_id,
    utcnow,
)
from .faults import (
    ConfigurationError,
    NoTokenError,
    SessionFault,
    StoreUnavailableError,
    TokenRejectedError,
    hash_session_id,
)
from .options import SessionOptions, with_defaults
from .signer import HMACSigner

if TYPE_CHECKING:
    from sessionseal.request import Request
    from sessionseal.response import Response
    from .signer import Signer
    from .store import SessionStore
    from .transport import SessionTransport


# ============================================================================
# SessionEngine - Lifecycle Orchestrator
# ============================================================================

class SessionEngine:
    """
    Session lifecycle orchestrator.

    The engine is app-scoped and holds no per-request state, so one
    instance serves every concurrent request.

    Example:
        >>> engine = SessionEngine(
        ...     signer=HMACSigner(key),
        ...     store=RedisStore(),
        ...     transport=CookieTransport(),
        ... )
        >>> record = await engine.issue("u1", "{}", response)
        >>> outcome = await engine.validate(request)
        >>> if outcome.is_authenticated:
        ...     await engine.extend(outcome.record, request, response)
    """

    def __init__(
        self,
        signer: Signer,
        store: SessionStore,
        transport: SessionTransport,
        options: SessionOptions | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_session_id,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize session engine.

        Args:
            signer: Token signer
            store: Session store (persistence and expiry)
            transport: Session transport (delivery)
            options: Session options; only ``expiration`` is read here
            clock: Current-time source
            id_factory: Session id generator
            logger: Optional logger

        Raises:
            ConfigurationError: Expiration is negative
        """
        self.options = with_defaults(options or SessionOptions())
        if self.options.expiration.total_seconds() < 0:
            raise ConfigurationError("session expiration must not be negative")

        self.signer = signer
        self.store = store
        self.transport = transport
        self.logger = logger or logging.getLogger("sessionseal.sessions")

        self._clock = clock
        self._id_factory = id_factory

        # Event callbacks (for observability)
        self._event_handlers: list = []

    @classmethod
    def from_options(
        cls,
        options: SessionOptions,
        store: SessionStore,
        transport: SessionTransport,
        **kwargs: Any,
    ) -> "SessionEngine":
        """
        Build an engine whose signer uses ``options.key``.

        Raises:
            ConfigurationError: Key is empty
        """
        return cls(HMACSigner(options.key), store, transport, options, **kwargs)

    @property
    def expiration(self):
        return self.options.expiration

    # ========================================================================
    # Issue
    # ========================================================================

    async def issue(
        self,
        user_id: str,
        payload: str,
        response: Response,
        *,
        timeout: Optional[float] = None,
    ) -> SessionRecord:
        """
        Create a session and attach its token to the response.

        Args:
            user_id: User identifier
            payload: Opaque session data (typically JSON)
            response: Outgoing response
            timeout: Store deadline in seconds

        Returns:
            The persisted record

        Raises:
            ConfigurationError: id_factory produced an id of the wrong width
            StoreUnavailableError: Save failed; no token was written
        """
        session_id = self._id_factory()
        width = getattr(self.signer, "id_width", SESSION_ID_WIDTH)
        if len(session_id.encode("utf-8")) != width:
            raise ConfigurationError(
                f"session id factory produced a {len(session_id.encode('utf-8'))}-byte id, "
                f"signer expects {width}"
            )

        record = SessionRecord(
            id=session_id,
            user_id=user_id,
            payload=payload,
            expires_at=self._clock() + self.expiration,
        )

        try:
            await self.store.save(record, timeout=timeout)
        except SessionFault as e:
            self.logger.error(f"Failed to persist new session: {e}")
            self._emit_event("session_fault", record, None, fault=e)
            raise

        token = self.signer.sign(record.id)
        self.transport.write_token(token, record.expires_at, response)

        self.logger.info(f"Session issued {hash_session_id(record.id)}")
        self._emit_event("session_issued", record, None)
        return record

    # ========================================================================
    # Validate
    # ========================================================================

    async def validate(
        self,
        request: Request,
        *,
        timeout: Optional[float] = None,
    ) -> ValidationOutcome:
        """
        Decide whether the request carries a live session.

        Never raises for token or store faults:
        - no token -> Unauthenticated (no store call)
        - malformed or tampered token -> Unauthenticated
        - record absent or expired -> Unauthenticated
        - store failure -> Faulted
        - live record -> Authenticated

        Args:
            request: Incoming request
            timeout: Store deadline in seconds

        Returns:
            Exactly one of Authenticated, Unauthenticated, Faulted
        """
        try:
            token = self.transport.read_token(request)
        except NoTokenError:
            self.logger.debug("No session token on request")
            return Unauthenticated("no_token")

        try:
            session_id = self.signer.verify(token)
        except TokenRejectedError as e:
            self.logger.warning(f"Rejected session token: {e}")
            self._emit_event("session_rejected", None, request, fault=e)
            return Unauthenticated("invalid_token")

        try:
            result = await self.store.fetch_valid(session_id, timeout=timeout)
        except SessionFault as e:
            return self._faulted(e, session_id, request)
        except Exception as e:
            wrapped = StoreUnavailableError(
                getattr(self.store, "name", type(self.store).__name__),
                cause=f"{type(e).__name__}: {e}",
                operation="fetch",
            )
            return self._faulted(wrapped, session_id, request)

        if not isinstance(result, Found):
            self.logger.info(f"Session {hash_session_id(session_id)} not found or expired")
            self._emit_event("session_rejected", None, request)
            return Unauthenticated("no_session")

        self._emit_event("session_validated", result.record, request)
        return Authenticated(result.record)

    def _faulted(self, fault: SessionFault, session_id: str, request: Request) -> Faulted:
        self.logger.error(f"Session lookup failed for {hash_session_id(session_id)}: {fault}")
        self._emit_event("session_fault", None, request, fault=fault)
        return Faulted(fault)

    # ========================================================================
    # Extend
    # ========================================================================

    async def extend(
        self,
        record: SessionRecord,
        request: Request,
        response: Response,
        *,
        timeout: Optional[float] = None,
    ) -> SessionRecord:
        """
        Push the session expiry to now + expiration.

        The store is written first; ``record.expires_at`` changes only
        after the save succeeds. The carrier is refreshed with the token
        already on the request, or a freshly signed one when the request
        holds none for this session (e.g. issued in this same request).

        Args:
            record: Session to extend (mutated on success)
            request: Incoming request
            response: Outgoing response
            timeout: Store deadline in seconds

        Returns:
            The same record, with its new expiry

        Raises:
            StoreUnavailableError: Save failed; record and carrier untouched
        """
        expires_at = self._clock() + self.expiration

        try:
            await self.store.save(replace(record, expires_at=expires_at), timeout=timeout)
        except SessionFault as e:
            self.logger.error(f"Failed to extend session {hash_session_id(record.id)}: {e}")
            self._emit_event("session_fault", record, request, fault=e)
            raise

        record.expires_at = expires_at
        self.transport.write_token(self._token_for(record, request), expires_at, response)

        self._emit_event("session_extended", record, request)
        return record

    def _token_for(self, record: SessionRecord, request: Request) -> str:
        """Reuse the request's token if it names this record, else re-sign."""
        try:
            token = self.transport.read_token(request)
            if self.signer.verify(token) == record.id:
                return token
        except (NoTokenError, TokenRejectedError):
            pass
        return self.signer.sign(record.id)

    # ========================================================================
    # Clear
    # ========================================================================

    async def clear(
        self,
        record: SessionRecord,
        response: Response,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Revoke the session and clear the carrier.

        Idempotent. If the store delete fails the fault propagates and
        the cookie is left in place.

        Raises:
            StoreUnavailableError: Delete failed
        """
        try:
            await self.store.delete(record.id, timeout=timeout)
        except SessionFault as e:
            self.logger.error(f"Failed to clear session {hash_session_id(record.id)}: {e}")
            self._emit_event("session_fault", record, None, fault=e)
            raise

        self.transport.clear_token(response)
        self.logger.info(f"Session cleared {hash_session_id(record.id)}")
        self._emit_event("session_cleared", record, None)

    # ========================================================================
    # Events
    # ========================================================================

    def _emit_event(
        self,
        event_name: str,
        record: SessionRecord | None,
        request: Request | None,
        *,
        fault: SessionFault | None = None,
    ) -> None:
        """
        Emit session event for observability.

        Args:
            event_name: Event name
            record: Session record (if available)
            request: Request (if available)
            fault: Fault behind the event (if any)
        """
        event_data: dict[str, Any] = {
            "event": event_name,
            "timestamp": self._clock().isoformat(),
        }

        if record:
            event_data.update({
                "session_id_hash": hash_session_id(record.id),
                "user_id": record.user_id,
                "expires_at": record.expires_at.isoformat(),
            })

        if request:
            event_data.update({
                "request_path": request.path,
                "request_method": request.method,
            })

            if request.client:
                event_data["client_ip"] = request.client[0]

        if fault is not None:
            event_data["fault"] = fault.code

        # Call registered event handlers
        for handler in self._event_handlers:
            try:
                handler(event_data)
            except Exception as e:
                self.logger.error(f"Event handler error: {e}")

        self.logger.debug(f"Session event: {event_name}", extra={"session_event": event_data})

    def on_event(self, handler: Callable[[dict], None]) -> None:
        """
        Register event handler for observability.

        Args:
            handler: Callable that receives event dict
        """
        self._event_handlers.append(handler)

    async def shutdown(self) -> None:
        """Gracefully shutdown engine."""
        await self.store.shutdown()


__all__ = ["SessionEngine"]
