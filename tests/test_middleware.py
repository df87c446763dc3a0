"""
SessionMiddleware: outcome routing over raw ASGI calls.
"""

import json

import pytest

from sessionseal.request import Request
from sessionseal.response import Response
from sessionseal.sessions.core import Authenticated, Faulted, Unauthenticated, new_session_id
from sessionseal.sessions.engine import SessionEngine
from sessionseal.sessions.middleware import SessionMiddleware

from tests.conftest import ASGIRecorder, FailingStore, make_receive, make_scope


class EchoApp:
    """Records the outcome the middleware left in scope state."""

    def __init__(self):
        self.calls = 0
        self.outcome = None

    async def __call__(self, scope, receive, send):
        self.calls += 1
        if scope["type"] != "http":
            return
        self.outcome = Request(scope, receive, send).session
        await Response("ok").send_asgi(send)


def scope_with_token(token=None, path="/"):
    headers = [("cookie", f"session={token}")] if token else []
    return make_scope(path=path, headers=headers)


async def run(app, scope):
    send = ASGIRecorder()
    await app(scope, make_receive(), send)
    return send


@pytest.mark.asyncio
async def test_authenticated_outcome_reaches_app(engine, signer):
    record = await engine.issue("user-1", "{}", Response())
    inner = EchoApp()

    send = await run(SessionMiddleware(inner, engine), scope_with_token(signer.sign(record.id)))

    assert send.status == 200
    assert isinstance(inner.outcome, Authenticated)
    assert inner.outcome.record.user_id == "user-1"


@pytest.mark.asyncio
async def test_anonymous_request_passes_through(engine):
    inner = EchoApp()
    send = await run(SessionMiddleware(inner, engine), scope_with_token())

    assert send.status == 200
    assert isinstance(inner.outcome, Unauthenticated)


@pytest.mark.asyncio
async def test_required_session_rejects_anonymous(engine):
    inner = EchoApp()
    send = await run(SessionMiddleware(inner, engine, require=True), scope_with_token("garbage"))

    assert send.status == 401
    assert json.loads(send.body)["error"] == "UNAUTHORIZED"
    assert inner.calls == 0


@pytest.mark.asyncio
async def test_fault_short_circuits_with_503(signer, transport, clock):
    engine = SessionEngine(signer, FailingStore(), transport, clock=clock)
    inner = EchoApp()

    send = await run(SessionMiddleware(inner, engine), scope_with_token(signer.sign(new_session_id())))

    assert send.status == 503
    body = json.loads(send.body)
    assert body["error"] == "SESSION_STORE_UNAVAILABLE"
    assert "failing" not in body["message"]
    assert inner.calls == 0


@pytest.mark.asyncio
async def test_fault_state_recorded(signer, transport, clock):
    engine = SessionEngine(signer, FailingStore(), transport, clock=clock)
    scope = scope_with_token(signer.sign(new_session_id()))

    await run(SessionMiddleware(EchoApp(), engine), scope)
    assert isinstance(scope["state"]["session"], Faulted)


@pytest.mark.asyncio
async def test_exempt_path_skips_validation(engine, store):
    inner = EchoApp()
    app = SessionMiddleware(inner, engine, require=True, exempt_paths={"/login"})

    send = await run(app, scope_with_token("garbage", path="/login"))

    assert send.status == 200
    assert inner.outcome is None
    assert store.calls == []


@pytest.mark.asyncio
async def test_non_http_scope_passes_through(engine, store):
    inner = EchoApp()
    app = SessionMiddleware(inner, engine, require=True)

    await app({"type": "lifespan"}, make_receive(), ASGIRecorder())

    assert inner.calls == 1
    assert store.calls == []


@pytest.mark.asyncio
async def test_custom_state_key(engine):
    scope = scope_with_token()
    await run(SessionMiddleware(EchoApp(), engine, state_key="auth"), scope)
    assert isinstance(scope["state"]["auth"], Unauthenticated)
