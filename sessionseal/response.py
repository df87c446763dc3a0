"""
SessionSeal Response - HTTP response with ASGI send support.

Features:
- Multi-value headers (repeated Set-Cookie)
- Cookie helpers
- JSON factory and fault mapping
- Header injection checks
"""

from __future__ import annotations

import json
from datetime import datetime
from email.utils import formatdate
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from .faults import Fault, FaultDomain, Severity


class InvalidHeaderError(Fault):
    domain = FaultDomain.IO
    severity = Severity.ERROR
    code = "INVALID_HEADER"
    message = "Invalid header name or value"


def _json_default_serializer(o):
    """JSON fallback for datetimes and other simple objects."""
    if isinstance(o, datetime):
        return o.isoformat()
    if hasattr(o, "to_dict"):
        return o.to_dict()
    raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")


class Response:
    """
    HTTP response.

    Headers are stored lowercase; a list value is sent as repeated header
    lines.
    """

    def __init__(
        self,
        content: Union[bytes, str, Mapping, list] = b"",
        status: int = 200,
        headers: Optional[Mapping[str, Union[str, List[str]]]] = None,
        media_type: Optional[str] = None,
        *,
        encoding: str = "utf-8",
        validate_headers: bool = True,
    ):
        """
        Initialize Response.

        Args:
            content: Response body (bytes, str, dict or list)
            status: HTTP status code
            headers: Response headers (supports multi-value)
            media_type: Content-Type override
            encoding: Text encoding (default utf-8)
            validate_headers: Validate headers against injection attacks
        """
        self.status = status
        self._content = content
        self.encoding = encoding
        self.validate_headers = validate_headers

        self._headers: Dict[str, Union[str, List[str]]] = {}
        if headers:
            for key, value in headers.items():
                if isinstance(value, (list, tuple)):
                    self._headers[key.lower()] = list(value)
                else:
                    self._headers[key.lower()] = value

        if media_type:
            self._headers["content-type"] = media_type
        elif "content-type" not in self._headers:
            self._headers["content-type"] = self._detect_media_type(content)

    @property
    def headers(self) -> Dict[str, Union[str, List[str]]]:
        """Get response headers."""
        return self._headers

    @property
    def body(self) -> bytes:
        return self._encode_body(self._content)

    def _detect_media_type(self, content: Any) -> str:
        if isinstance(content, (dict, list)):
            return "application/json; charset=utf-8"
        if isinstance(content, str):
            return "text/plain; charset=utf-8"
        return "application/octet-stream"

    # ========================================================================
    # Factory Methods
    # ========================================================================

    @classmethod
    def json(
        cls,
        obj: Any,
        status: int = 200,
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> "Response":
        """Create JSON response."""
        return cls(
            content=json.dumps(obj, default=_json_default_serializer),
            status=status,
            headers=headers,
            media_type="application/json; charset=utf-8",
        )

    @classmethod
    def from_fault(cls, fault: Fault, status: int = 500) -> "Response":
        """
        Create a JSON error response from a Fault.

        Only public faults expose their message.
        """
        body = fault.to_public_dict()
        return cls.json({"error": body["code"], "message": body["message"]}, status=status)

    # ========================================================================
    # Cookie Helpers
    # ========================================================================

    def set_cookie(
        self,
        name: str,
        value: str,
        *,
        max_age: Optional[int] = None,
        expires: Optional[datetime] = None,
        path: str = "/",
        domain: Optional[str] = None,
        secure: bool = True,
        httponly: bool = True,
        samesite: Optional[str] = "Lax",
    ) -> None:
        """
        Set a cookie.

        Args:
            name: Cookie name
            value: Cookie value
            max_age: Max age in seconds
            expires: Expiration datetime
            path: Cookie path
            domain: Cookie domain
            secure: Secure flag
            httponly: HttpOnly flag
            samesite: SameSite policy (Strict, Lax, None)
        """
        cookie_parts = [f"{name}={value}"]

        if max_age is not None:
            cookie_parts.append(f"Max-Age={max_age}")

        if expires:
            cookie_parts.append(f"Expires={formatdate(expires.timestamp(), usegmt=True)}")

        cookie_parts.append(f"Path={path}")

        if domain:
            cookie_parts.append(f"Domain={domain}")

        if secure:
            cookie_parts.append("Secure")

        if httponly:
            cookie_parts.append("HttpOnly")

        if samesite:
            cookie_parts.append(f"SameSite={samesite}")

        # Support multiple Set-Cookie headers
        self.add_header("set-cookie", "; ".join(cookie_parts))

    def get_all(self, name: str) -> List[str]:
        """All values of a header, in insertion order."""
        value = self._headers.get(name.lower())
        if value is None:
            return []
        if isinstance(value, list):
            return list(value)
        return [value]

    # ========================================================================
    # Header Helpers
    # ========================================================================

    def add_header(self, name: str, value: str) -> None:
        """Add header (supports multiple values)."""
        if self.validate_headers:
            self._validate_header(name, value)

        name_lower = name.lower()
        existing = self._headers.get(name_lower)
        if existing is None:
            self._headers[name_lower] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            self._headers[name_lower] = [existing, value]

    def _validate_header(self, name: str, value: str) -> None:
        """Reject CR/LF to prevent header injection."""
        if "\r" in name or "\n" in name or "\r" in value or "\n" in value:
            raise InvalidHeaderError(metadata={"header": name})

    # ========================================================================
    # ASGI
    # ========================================================================

    async def send_asgi(self, send: Callable[[dict], Awaitable[None]]) -> None:
        """Send response via ASGI."""
        body = self._encode_body(self._content)
        if "content-length" not in self._headers:
            self._headers["content-length"] = str(len(body))

        await send({
            "type": "http.response.start",
            "status": self.status,
            "headers": self._prepare_headers(),
        })
        await send({"type": "http.response.body", "body": body})

    def _prepare_headers(self) -> List[tuple]:
        """Prepare headers for ASGI (convert to list of byte tuples)."""
        headers_list = []
        for name, value in self._headers.items():
            name_bytes = name.encode("latin1")
            if isinstance(value, list):
                # Multiple values (e.g., Set-Cookie)
                for v in value:
                    headers_list.append((name_bytes, v.encode("latin1")))
            else:
                headers_list.append((name_bytes, value.encode("latin1")))
        return headers_list

    def _encode_body(self, content: Any) -> bytes:
        if isinstance(content, bytes):
            return content
        if isinstance(content, str):
            return content.encode(self.encoding)
        if isinstance(content, (dict, list)):
            return json.dumps(content, default=_json_default_serializer).encode(self.encoding)
        return str(content).encode(self.encoding)

    def __repr__(self) -> str:
        return f"<Response {self.status}>"


def Unauthorized(message: str = "Unauthorized", **kwargs) -> Response:
    return Response.json({"error": "UNAUTHORIZED", "message": message}, status=401, **kwargs)


def Forbidden(message: str = "Forbidden", **kwargs) -> Response:
    return Response.json({"error": "FORBIDDEN", "message": message}, status=403, **kwargs)


def NotFound(message: str = "Not Found", **kwargs) -> Response:
    return Response.json({"error": "NOT_FOUND", "message": message}, status=404, **kwargs)
