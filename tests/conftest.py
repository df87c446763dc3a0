"""
Shared test fixtures and helpers for the SessionSeal test suite.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from http.cookies import SimpleCookie
from typing import Any, Dict, List, Optional

import pytest

from sessionseal.request import Request
from sessionseal.response import Response
from sessionseal.sessions.engine import SessionEngine
from sessionseal.sessions.faults import StoreUnavailableError
from sessionseal.sessions.options import SessionOptions, TransportOptions
from sessionseal.sessions.signer import HMACSigner
from sessionseal.sessions.store import MemoryStore
from sessionseal.sessions.transport import CookieTransport


TEST_KEY = b"test-signing-key-0123456789abcdef"


# ============================================================================
# Request Helpers
# ============================================================================


def make_scope(
    method: str = "GET",
    path: str = "/",
    headers: Optional[List[tuple]] = None,
    client: Optional[tuple] = None,
) -> dict:
    """Build a minimal ASGI HTTP scope."""
    raw_headers = []
    for name, value in headers or []:
        raw_headers.append(
            (name.encode("latin-1") if isinstance(name, str) else name,
             value.encode("latin-1") if isinstance(value, str) else value)
        )
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": b"",
        "headers": raw_headers,
        "scheme": "http",
        "server": ("127.0.0.1", 8000),
        "client": client or ("127.0.0.1", 12345),
        "root_path": "",
    }


def make_receive(body: bytes = b""):
    """Create an ASGI receive callable that yields ``body`` once."""
    messages = [{"type": "http.request", "body": body, "more_body": False}]

    async def receive():
        if messages:
            return messages.pop(0)
        return {"type": "http.disconnect"}

    return receive


def make_request(
    method: str = "GET",
    path: str = "/",
    headers: Optional[List[tuple]] = None,
    cookies: Optional[Dict[str, str]] = None,
    body: bytes = b"",
) -> Request:
    """Build a full Request object for testing."""
    headers = list(headers or [])
    if cookies:
        headers.append(("cookie", "; ".join(f"{k}={v}" for k, v in cookies.items())))
    return Request(make_scope(method=method, path=path, headers=headers), make_receive(body))


def set_cookies(response: Response) -> Dict[str, Any]:
    """Parse every Set-Cookie header of a response into morsels by name."""
    morsels = {}
    for header in response.get_all("set-cookie"):
        cookie = SimpleCookie()
        cookie.load(header)
        morsels.update(cookie)
    return morsels


class ASGIRecorder:
    """ASGI ``send`` callable that records messages."""

    def __init__(self):
        self.messages: List[dict] = []

    async def __call__(self, message: dict) -> None:
        self.messages.append(message)

    @property
    def status(self) -> Optional[int]:
        for message in self.messages:
            if message["type"] == "http.response.start":
                return message["status"]
        return None

    @property
    def body(self) -> bytes:
        return b"".join(m.get("body", b"") for m in self.messages if m["type"] == "http.response.body")


# ============================================================================
# Clock
# ============================================================================


class FakeClock:
    """Settable UTC clock shared by store, transport and engine."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def epoch(self) -> float:
        return self.now.timestamp()


# ============================================================================
# Store doubles
# ============================================================================


class RecordingStore(MemoryStore):
    """MemoryStore that records calls."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls: List[tuple] = []

    async def save(self, record, *, timeout=None):
        self.calls.append(("save", record.id, timeout))
        await super().save(record, timeout=timeout)

    async def fetch_valid(self, session_id, *, timeout=None):
        self.calls.append(("fetch", session_id, timeout))
        return await super().fetch_valid(session_id, timeout=timeout)

    async def delete(self, session_id, *, timeout=None):
        self.calls.append(("delete", session_id, timeout))
        await super().delete(session_id, timeout=timeout)

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)


class FailingStore:
    """Store whose every operation raises ``error``."""

    name = "failing"

    def __init__(self, error: Optional[Exception] = None):
        self.error = error or StoreUnavailableError("failing", cause="connection refused")
        self.calls: List[str] = []

    async def save(self, record, *, timeout=None):
        self.calls.append("save")
        raise self.error

    async def fetch_valid(self, session_id, *, timeout=None):
        self.calls.append("fetch")
        raise self.error

    async def delete(self, session_id, *, timeout=None):
        self.calls.append("delete")
        raise self.error

    async def shutdown(self):
        pass


class FakeRedis:
    """
    In-memory stand-in for ``redis.asyncio.Redis``.

    Implements the commands the session store issues (HSET, EXPIREAT,
    EXISTS, HMGET) with native key expiry against a fake clock. EXPIREAT
    with a past timestamp removes the key, as Redis does. Hash values may
    be stored as bytes; with ``decode_responses`` they are decoded as UTF-8
    on the way out, so undecodable bytes raise UnicodeDecodeError from
    ``execute()`` like the redis-py reply parser.
    """

    def __init__(self, clock: FakeClock, decode_responses: bool = True):
        self.clock = clock
        self.decode_responses = decode_responses
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.expiry: Dict[str, float] = {}
        self.fail_with: Optional[Exception] = None
        self.delay: float = 0.0
        self.commands: List[tuple] = []
        self.closed = False

    def _purge(self, key: str) -> None:
        expires = self.expiry.get(key)
        if expires is not None and expires <= self.clock.epoch():
            self.hashes.pop(key, None)
            self.expiry.pop(key, None)

    async def _maybe_fail(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

    # Commands
    def _hset(self, key, mapping):
        self._purge(key)
        self.hashes.setdefault(key, {}).update({k: str(v) for k, v in mapping.items()})
        return len(mapping)

    def _expireat(self, key, when):
        self._purge(key)
        if key not in self.hashes:
            return 0
        self.expiry[key] = float(when)
        self._purge(key)
        return 1

    def _exists(self, key):
        self._purge(key)
        return int(key in self.hashes)

    def _hmget(self, key, fields):
        self._purge(key)
        entry = self.hashes.get(key, {})
        values = [entry.get(field) for field in fields]
        if self.decode_responses:
            values = [v.decode("utf-8") if isinstance(v, bytes) else v for v in values]
        return values

    # Client API
    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self)

    async def expireat(self, key, when):
        self.commands.append(("expireat", key, when))
        await self._maybe_fail()
        return self._expireat(key, when)

    async def ping(self):
        await self._maybe_fail()
        return True

    async def aclose(self, close_connection_pool=None):
        self.closed = True


class FakePipeline:
    """Buffers commands and runs them together on execute()."""

    def __init__(self, redis: FakeRedis):
        self.redis = redis
        self.queued: List[tuple] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.queued.clear()

    def hset(self, key, mapping=None):
        self.queued.append(("hset", key, mapping))
        return self

    def expireat(self, key, when):
        self.queued.append(("expireat", key, when))
        return self

    def exists(self, key):
        self.queued.append(("exists", key))
        return self

    def hmget(self, key, fields):
        self.queued.append(("hmget", key, list(fields)))
        return self

    async def execute(self):
        self.redis.commands.extend(self.queued)
        await self.redis._maybe_fail()
        results = []
        for name, *args in self.queued:
            results.append(getattr(self.redis, f"_{name}")(*args))
        self.queued.clear()
        return results


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def signer():
    return HMACSigner(TEST_KEY)


@pytest.fixture
def store(clock):
    return RecordingStore(clock=clock)


@pytest.fixture
def transport(clock):
    return CookieTransport(TransportOptions(), clock=clock)


@pytest.fixture
def engine(signer, store, transport, clock):
    return SessionEngine(
        signer,
        store,
        transport,
        SessionOptions(key=TEST_KEY, expiration=timedelta(hours=72)),
        clock=clock,
    )


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


def request_with_token(token: str, cookie_name: str = "session", **kwargs) -> Request:
    """Request carrying ``token`` in the session cookie."""
    return make_request(cookies={cookie_name: token}, **kwargs)


def token_from(response: Response, cookie_name: str = "session") -> Optional[str]:
    """Value of the session cookie set on ``response``."""
    morsel = set_cookies(response).get(cookie_name)
    return morsel.value if morsel is not None else None


