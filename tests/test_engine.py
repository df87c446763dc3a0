"""
SessionEngine: Issue / Validate / Extend / Clear.
"""

import logging
from datetime import timedelta

import pytest

from sessionseal.response import Response
from sessionseal.sessions.core import (
    Authenticated,
    Faulted,
    SessionRecord,
    Unauthenticated,
    new_session_id,
)
from sessionseal.sessions.engine import SessionEngine
from sessionseal.sessions.faults import (
    ConfigurationError,
    CorruptRecordError,
    StoreUnavailableError,
)
from sessionseal.sessions.options import SessionOptions, TransportOptions
from sessionseal.sessions.redis_store import RedisStore
from sessionseal.sessions.signer import HMACSigner
from sessionseal.sessions.transport import CookieTransport

from tests.conftest import (
    TEST_KEY,
    FailingStore,
    FakeRedis,
    make_request,
    request_with_token,
    set_cookies,
    token_from,
)


async def issue(engine, user_id="user-1", payload='{"csrf": "c"}'):
    response = Response()
    record = await engine.issue(user_id, payload, response)
    return record, token_from(response)


# ============================================================================
# Construction
# ============================================================================

class TestConstruction:

    def test_from_options_requires_key(self, store, transport):
        with pytest.raises(ConfigurationError):
            SessionEngine.from_options(SessionOptions(key=b""), store, transport)

    def test_default_expiration(self, signer, store, transport):
        engine = SessionEngine(signer, store, transport)
        assert engine.expiration == timedelta(hours=72)

    def test_negative_expiration_rejected(self, signer, store, transport):
        with pytest.raises(ConfigurationError):
            SessionEngine(signer, store, transport, SessionOptions(key=TEST_KEY, expiration=timedelta(seconds=-1)))


# ============================================================================
# Issue
# ============================================================================

class TestIssue:

    @pytest.mark.asyncio
    async def test_issue_persists_and_writes_cookie(self, engine, store, signer, clock):
        record, token = await issue(engine)

        assert record.user_id == "user-1"
        assert record.payload == '{"csrf": "c"}'
        assert len(record.id) == 36
        assert record.expires_at == clock() + timedelta(hours=72)
        assert store.count("save") == 1
        assert token == signer.sign(record.id)

    @pytest.mark.asyncio
    async def test_issue_uses_id_factory(self, signer, store, transport, clock):
        engine = SessionEngine(
            signer, store, transport, clock=clock,
            id_factory=lambda: "00000000-0000-4000-8000-000000000000",
        )
        record, _ = await issue(engine)
        assert record.id == "00000000-0000-4000-8000-000000000000"

    @pytest.mark.asyncio
    async def test_issue_unique_ids(self, engine):
        ids = set()
        for _ in range(20):
            record, _ = await issue(engine)
            ids.add(record.id)
        assert len(ids) == 20

    @pytest.mark.asyncio
    async def test_issue_store_failure_writes_no_cookie(self, signer, transport, clock):
        engine = SessionEngine(signer, FailingStore(), transport, clock=clock)
        response = Response()

        with pytest.raises(StoreUnavailableError):
            await engine.issue("user-1", "{}", response)
        assert response.get_all("set-cookie") == []

    @pytest.mark.asyncio
    async def test_issue_forwards_timeout(self, engine, store):
        await engine.issue("user-1", "{}", Response(), timeout=0.25)
        assert store.calls[-1][2] == 0.25

    @pytest.mark.asyncio
    async def test_issue_rejects_wrong_width_id(self, signer, store, transport, clock):
        engine = SessionEngine(signer, store, transport, clock=clock, id_factory=lambda: "short")
        response = Response()

        with pytest.raises(ConfigurationError):
            await engine.issue("user-1", "{}", response)
        assert store.calls == []
        assert response.get_all("set-cookie") == []

    @pytest.mark.asyncio
    async def test_issue_logs_no_user_id(self, engine, caplog):
        with caplog.at_level(logging.INFO, logger="sessionseal.sessions"):
            await issue(engine, user_id="alice@example.com")
        assert "alice@example.com" not in caplog.text


# ============================================================================
# Validate
# ============================================================================

class TestValidate:

    @pytest.mark.asyncio
    async def test_issue_then_validate(self, engine):
        record, token = await issue(engine, payload='{"csrf": "c"}')

        outcome = await engine.validate(request_with_token(token))
        assert isinstance(outcome, Authenticated)
        assert outcome.record.user_id == "user-1"
        assert outcome.record.payload == '{"csrf": "c"}'
        assert outcome.status_code == 200

    @pytest.mark.asyncio
    async def test_no_cookie_skips_store(self, engine, store):
        outcome = await engine.validate(make_request())

        assert isinstance(outcome, Unauthenticated)
        assert outcome.status_code == 401
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_garbage_token_unauthenticated(self, engine, store):
        outcome = await engine.validate(request_with_token("garbage-not-base64"))

        assert isinstance(outcome, Unauthenticated)
        assert store.count("fetch") == 0

    @pytest.mark.asyncio
    async def test_undecodable_token_unauthenticated(self, engine):
        outcome = await engine.validate(make_request(headers=[("cookie", "session=abc$def")]))
        assert isinstance(outcome, Unauthenticated)

    @pytest.mark.asyncio
    async def test_tampered_token_unauthenticated(self, engine, store):
        _, token = await issue(engine)
        tampered = token[:70] + ("B" if token[70] != "B" else "C") + token[71:]

        outcome = await engine.validate(request_with_token(tampered))
        assert isinstance(outcome, Unauthenticated)
        assert store.count("fetch") == 0

    @pytest.mark.asyncio
    async def test_tampered_token_logged_as_warning(self, engine, caplog):
        _, token = await issue(engine)
        with caplog.at_level(logging.WARNING, logger="sessionseal.sessions"):
            await engine.validate(request_with_token(token[:-8]))
        assert any(r.levelno == logging.WARNING for r in caplog.records)

    @pytest.mark.asyncio
    async def test_other_key_unauthenticated(self, engine):
        foreign = HMACSigner(b"another-key").sign(new_session_id())
        outcome = await engine.validate(request_with_token(foreign))
        assert isinstance(outcome, Unauthenticated)

    @pytest.mark.asyncio
    async def test_unknown_session_unauthenticated(self, engine, signer, store):
        outcome = await engine.validate(request_with_token(signer.sign(new_session_id())))

        assert isinstance(outcome, Unauthenticated)
        assert store.count("fetch") == 1

    @pytest.mark.asyncio
    async def test_expiry_boundary(self, engine, clock):
        _, token = await issue(engine)

        clock.advance(hours=72, seconds=-1)
        assert isinstance(await engine.validate(request_with_token(token)), Authenticated)

        clock.advance(seconds=2)
        outcome = await engine.validate(request_with_token(token))
        assert isinstance(outcome, Unauthenticated)

    @pytest.mark.asyncio
    async def test_store_unavailable_faulted(self, signer, transport, clock):
        engine = SessionEngine(signer, FailingStore(), transport, clock=clock)
        token = signer.sign(new_session_id())

        outcome = await engine.validate(request_with_token(token))
        assert isinstance(outcome, Faulted)
        assert isinstance(outcome.fault, StoreUnavailableError)
        assert outcome.status_code == 503
        assert not outcome.is_authenticated

    @pytest.mark.asyncio
    async def test_corrupt_record_faulted(self, signer, transport, clock):
        store = FailingStore(CorruptRecordError(new_session_id(), "missing fields: JSON"))
        engine = SessionEngine(signer, store, transport, clock=clock)

        outcome = await engine.validate(request_with_token(signer.sign(new_session_id())))
        assert isinstance(outcome, Faulted)
        assert outcome.status_code == 500

    @pytest.mark.asyncio
    async def test_undecodable_redis_record_faulted_as_corrupt(self, signer, transport, clock):
        redis = FakeRedis(clock)
        engine = SessionEngine(signer, RedisStore(client=redis, clock=clock), transport, clock=clock)
        record, token = await issue(engine)
        redis.hashes[record.id]["JSON"] = b"\xff\xfe"

        outcome = await engine.validate(request_with_token(token))
        assert isinstance(outcome, Faulted)
        assert outcome.fault.code == "SESSION_STORE_CORRUPTED"
        assert outcome.status_code == 500

    @pytest.mark.asyncio
    async def test_unexpected_store_error_faulted(self, signer, transport, clock):
        engine = SessionEngine(signer, FailingStore(RuntimeError("boom")), transport, clock=clock)

        outcome = await engine.validate(request_with_token(signer.sign(new_session_id())))
        assert isinstance(outcome, Faulted)
        assert isinstance(outcome.fault, StoreUnavailableError)

    @pytest.mark.asyncio
    async def test_validate_does_not_extend(self, engine, store, clock):
        record, token = await issue(engine)
        await engine.validate(request_with_token(token))

        assert store.count("save") == 1
        clock.advance(hours=72)
        assert isinstance(await engine.validate(request_with_token(token)), Unauthenticated)


# ============================================================================
# Extend
# ============================================================================

class TestExtend:

    @pytest.mark.asyncio
    async def test_extend_pushes_expiry(self, engine, clock):
        record, token = await issue(engine)
        clock.advance(hours=10)

        response = Response()
        await engine.extend(record, request_with_token(token), response)

        assert record.expires_at == clock() + timedelta(hours=72)
        clock.advance(hours=70)
        assert isinstance(await engine.validate(request_with_token(token)), Authenticated)

    @pytest.mark.asyncio
    async def test_extend_is_monotonic(self, engine, clock):
        record, token = await issue(engine)
        before = record.expires_at

        clock.advance(minutes=5)
        await engine.extend(record, request_with_token(token), Response())

        assert record.expires_at > before
        delta = record.expires_at - clock()
        assert abs(delta - timedelta(hours=72)) <= timedelta(seconds=1)

    @pytest.mark.asyncio
    async def test_extend_rewrites_same_token(self, engine, clock):
        record, token = await issue(engine)
        response = Response()
        await engine.extend(record, request_with_token(token), response)

        assert token_from(response) == token
        assert set_cookies(response)["session"]["expires"]

    @pytest.mark.asyncio
    async def test_extend_without_cookie_resigns(self, engine, signer):
        record, token = await issue(engine)
        response = Response()
        await engine.extend(record, make_request(), response)
        assert token_from(response) == signer.sign(record.id) == token

    @pytest.mark.asyncio
    async def test_extend_ignores_foreign_token(self, engine, signer):
        record, _ = await issue(engine)
        other, other_token = await issue(engine)

        response = Response()
        await engine.extend(record, request_with_token(other_token), response)
        assert token_from(response) == signer.sign(record.id)

    @pytest.mark.asyncio
    async def test_extend_failure_leaves_record_and_cookie(self, signer, transport, clock):
        engine = SessionEngine(signer, FailingStore(), transport, clock=clock)
        record = SessionRecord(
            id=new_session_id(), user_id="u", payload="", expires_at=clock() + timedelta(hours=1),
        )
        before = record.expires_at
        response = Response()

        with pytest.raises(StoreUnavailableError):
            await engine.extend(record, make_request(), response)
        assert record.expires_at == before
        assert response.get_all("set-cookie") == []

    @pytest.mark.asyncio
    async def test_concurrent_extends_last_writer_wins(self, engine, clock):
        record, token = await issue(engine)
        await engine.extend(record, request_with_token(token), Response())
        clock.advance(seconds=30)
        await engine.extend(record, request_with_token(token), Response())

        clock.advance(hours=72, seconds=-1)
        assert isinstance(await engine.validate(request_with_token(token)), Authenticated)


# ============================================================================
# Clear
# ============================================================================

class TestClear:

    @pytest.mark.asyncio
    async def test_clear_revokes(self, engine):
        record, token = await issue(engine)
        response = Response()
        await engine.clear(record, response)

        assert isinstance(await engine.validate(request_with_token(token)), Unauthenticated)
        assert set_cookies(response)["session"].value == ""

    @pytest.mark.asyncio
    async def test_clear_is_idempotent(self, engine):
        record, token = await issue(engine)
        await engine.clear(record, Response())
        await engine.clear(record, Response())

        assert isinstance(await engine.validate(request_with_token(token)), Unauthenticated)

    @pytest.mark.asyncio
    async def test_clear_failure_keeps_cookie(self, signer, transport, clock):
        engine = SessionEngine(signer, FailingStore(), transport, clock=clock)
        record = SessionRecord(id=new_session_id(), user_id="u")
        response = Response()

        with pytest.raises(StoreUnavailableError):
            await engine.clear(record, response)
        assert response.get_all("set-cookie") == []


# ============================================================================
# Events
# ============================================================================

class TestEvents:

    @pytest.mark.asyncio
    async def test_lifecycle_events(self, engine):
        events = []
        engine.on_event(events.append)

        record, token = await issue(engine)
        await engine.validate(request_with_token(token))
        await engine.extend(record, request_with_token(token), Response())
        await engine.clear(record, Response())
        await engine.validate(request_with_token(token))

        names = [e["event"] for e in events]
        assert names == [
            "session_issued",
            "session_validated",
            "session_extended",
            "session_cleared",
            "session_rejected",
        ]
        assert all(record.id not in str(e) for e in events)
        assert events[0]["session_id_hash"].startswith("sha256:")

    @pytest.mark.asyncio
    async def test_fault_event(self, signer, transport, clock):
        engine = SessionEngine(signer, FailingStore(), transport, clock=clock)
        events = []
        engine.on_event(events.append)

        await engine.validate(request_with_token(signer.sign(new_session_id())))
        assert events[-1]["event"] == "session_fault"
        assert events[-1]["fault"] == "SESSION_STORE_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_propagate(self, engine):
        def broken(event):
            raise RuntimeError("handler failed")

        engine.on_event(broken)
        record, _ = await issue(engine)
        assert record.user_id == "user-1"


class TestCustomTransport:

    @pytest.mark.asyncio
    async def test_cookie_name_respected(self, signer, store, clock):
        transport = CookieTransport(TransportOptions(cookie_name="sid"), clock=clock)
        engine = SessionEngine(signer, store, transport, clock=clock)
        response = Response()
        await engine.issue("user-1", "{}", response)

        token = token_from(response, cookie_name="sid")
        outcome = await engine.validate(request_with_token(token, cookie_name="sid"))
        assert isinstance(outcome, Authenticated)
