"""
SessionSeal Sessions - Fault definitions.

Defines session-specific faults on top of the SessionSeal fault system.
All session errors are structured Faults, not bare exceptions.

Taxonomy:
- ConfigurationError: fatal at construction (missing key, bad options)
- NoTokenError: expected, anonymous request
- DecodeError / InvalidTokenError: client data failed integrity checks
- StoreUnavailableError / CorruptRecordError: infrastructure faults
"""

from __future__ import annotations

import hashlib

from sessionseal.faults.core import Fault, FaultDomain, Severity


# Register session fault domain
FaultDomain.SESSION = FaultDomain("session", "Session lifecycle faults")


def hash_session_id(session_id: str) -> str:
    """Hash session ID for logging (privacy)."""
    return f"sha256:{hashlib.sha256(session_id.encode()).hexdigest()[:16]}"


# ============================================================================
# Session Fault Base
# ============================================================================

class SessionFault(Fault):
    """Base class for session-related faults."""

    domain = FaultDomain.SESSION


# ============================================================================
# Configuration
# ============================================================================

class ConfigurationError(SessionFault):
    """
    Session subsystem is misconfigured.

    Raised at construction time, never while serving a request.
    """

    code = "SESSION_CONFIG_INVALID"
    message = "Invalid session configuration"
    domain = FaultDomain.CONFIG
    severity = Severity.FATAL
    public = False
    retryable = False

    def __init__(self, reason: str, **kwargs):
        super().__init__(
            message=f"Invalid session configuration: {reason}",
            metadata={"reason": reason},
            **kwargs,
        )
        self.reason = reason


# ============================================================================
# Transport Faults
# ============================================================================

class NoTokenError(SessionFault):
    """
    No session carrier on the request.

    This is the normal state of an anonymous request and is never
    logged as a fault.
    """

    code = "SESSION_TOKEN_MISSING"
    message = "No session on request"
    severity = Severity.INFO
    public = True
    retryable = False

    def __init__(self, carrier: str = "cookie", **kwargs):
        super().__init__(metadata={"carrier": carrier}, **kwargs)
        self.carrier = carrier


# ============================================================================
# Token Integrity Faults
# ============================================================================

class TokenRejectedError(SessionFault):
    """
    Client-supplied token failed integrity checks.

    Subclasses distinguish the cause for logging only; callers must not
    reveal the difference to clients.
    """

    code = "SESSION_TOKEN_REJECTED"
    message = "Invalid session"
    domain = FaultDomain.SECURITY
    severity = Severity.WARN
    public = True
    retryable = False

    def __init__(self, reason: str | None = None, **kwargs):
        super().__init__(metadata={"reason": reason} if reason else None, **kwargs)
        self.reason = reason


class DecodeError(TokenRejectedError):
    """Token is not valid URL-safe base64 (bad alphabet or padding)."""

    code = "SESSION_TOKEN_MALFORMED"
    message = "Session token could not be decoded"


class InvalidTokenError(TokenRejectedError):
    """Token is truncated or its MAC tag does not match."""

    code = "SESSION_TOKEN_INVALID"
    message = "Invalid session signature"


# ============================================================================
# Storage Faults
# ============================================================================

class StoreUnavailableError(SessionFault):
    """
    Session store is unavailable.

    This is a transient error - retry may succeed.
    Examples: Redis connection failure, pool exhausted, deadline exceeded.
    """

    code = "SESSION_STORE_UNAVAILABLE"
    message = "Session storage unavailable"
    severity = Severity.ERROR
    public = False
    retryable = True

    def __init__(
        self,
        store_name: str,
        cause: str | None = None,
        operation: str | None = None,
        **kwargs,
    ):
        if cause:
            message = f"Session store '{store_name}' unavailable: {cause}"
        else:
            message = f"Session store '{store_name}' unavailable"
        super().__init__(
            message=message,
            metadata={"store": store_name, "operation": operation, "cause": cause},
            **kwargs,
        )
        self.store_name = store_name
        self.operation = operation
        self.cause = cause


class CorruptRecordError(SessionFault):
    """
    Session entry exists but cannot be fully decoded.

    Indicates a partial write or an inconsistent backend.
    """

    code = "SESSION_STORE_CORRUPTED"
    message = "Session data corrupted"
    severity = Severity.ERROR
    public = False
    retryable = False

    def __init__(self, session_id: str, reason: str, **kwargs):
        super().__init__(
            message=f"Session data corrupted: {reason}",
            metadata={"session_id_hash": hash_session_id(session_id), "reason": reason},
            **kwargs,
        )
        self.session_id_hash = hash_session_id(session_id)
        self.reason = reason


__all__ = [
    "hash_session_id",
    "SessionFault",
    "ConfigurationError",
    "NoTokenError",
    "TokenRejectedError",
    "DecodeError",
    "InvalidTokenError",
    "StoreUnavailableError",
    "CorruptRecordError",
]
