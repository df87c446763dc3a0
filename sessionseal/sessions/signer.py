"""
SessionSeal Sessions - Token signing.

A token is ``base64url(id_bytes || HMAC-SHA512(key, id_bytes))``.
The MAC covers only the identifier: user data and expiry live in the
store, so the token's only job is proving that this service handed the
client this exact identifier.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import re
from typing import Protocol, Union

from .core import SESSION_ID_WIDTH
from .faults import ConfigurationError, DecodeError, InvalidTokenError


# URL-safe alphabet with up to two trailing pad characters
_TOKEN_RE = re.compile(r"[A-Za-z0-9_-]+={0,2}")


# ============================================================================
# Signer Protocol
# ============================================================================

class Signer(Protocol):
    """
    Token signing interface.

    Signers are stateless apart from their secret key.
    """

    def sign(self, session_id: str) -> str:
        """Return the signed, encoded token for ``session_id``."""
        ...

    def verify(self, token: str) -> str:
        """
        Verify a token and return the session id it carries.

        Raises:
            DecodeError: Token is not URL-safe base64
            InvalidTokenError: Token is truncated or the tag does not match
        """
        ...


# ============================================================================
# HMACSigner
# ============================================================================

class HMACSigner:
    """
    HMAC-SHA512 token signer.

    The key is only checked for being non-empty; there is no length policy.

    Example:
        >>> signer = HMACSigner(b"secret")
        >>> token = signer.sign(session_id)
        >>> signer.verify(token) == session_id
        True
    """

    __slots__ = ("_key", "_id_width")

    digestmod = "sha512"

    def __init__(self, key: Union[str, bytes], *, id_width: int = SESSION_ID_WIDTH):
        """
        Initialize signer.

        Args:
            key: Secret key (str is UTF-8 encoded)
            id_width: Byte width of the identifier prefix

        Raises:
            ConfigurationError: Key is empty
        """
        if isinstance(key, str):
            key = key.encode("utf-8")
        if not key:
            raise ConfigurationError("no session key")
        if id_width <= 0:
            raise ConfigurationError(f"identifier width must be positive, got {id_width}")

        self._key = bytes(key)
        self._id_width = id_width

    @property
    def id_width(self) -> int:
        return self._id_width

    def _tag(self, message: bytes) -> bytes:
        return hmac.new(self._key, message, self.digestmod).digest()

    def sign(self, session_id: str) -> str:
        """Sign the session id and return the base64url token."""
        id_bytes = session_id.encode("utf-8")
        return base64.urlsafe_b64encode(id_bytes + self._tag(id_bytes)).decode("ascii")

    def verify(self, token: str) -> str:
        """
        Verify token and strip the signature.

        Args:
            token: Encoded token from the client

        Returns:
            Session id carried by the token

        Raises:
            DecodeError: Token is not URL-safe base64
            InvalidTokenError: Token has no room for a tag or the tag is wrong
        """
        decoded = self._decode(token)

        if len(decoded) <= self._id_width:
            raise InvalidTokenError("token too short to carry a signature")

        id_bytes = decoded[:self._id_width]
        tag = decoded[self._id_width:]

        if not hmac.compare_digest(tag, self._tag(id_bytes)):
            raise InvalidTokenError("signature mismatch")

        try:
            return id_bytes.decode("utf-8")
        except UnicodeDecodeError:
            # Only reachable with a valid tag over non-UTF-8 bytes
            raise InvalidTokenError("identifier is not valid text")

    @staticmethod
    def _decode(token: str) -> bytes:
        """Decode URL-safe base64, tolerating missing padding."""
        if not token or not _TOKEN_RE.fullmatch(token):
            raise DecodeError("token is not url-safe base64")

        stripped = token.rstrip("=")
        padded = stripped + "=" * (-len(stripped) % 4)
        if len(token) > len(stripped) and token != padded:
            raise DecodeError("incorrect padding")

        try:
            return base64.urlsafe_b64decode(padded)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"base64 decoding failed: {e}")


__all__ = ["Signer", "HMACSigner"]
