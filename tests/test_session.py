"""Tests for the session registry and the processed-call registry."""

import re

from smartcare.session import CallSession, ProcessedCallRegistry, SessionManager


class TestCallSession:

    def test_session_defaults(self):
        session = CallSession(key="CA1")
        assert session.transcript == ""
        assert session.stream_sid is None
        assert session.ai_link_open is False
        assert session.ticket_created is False
        assert session.dropped_frames == 0

    def test_transcript_appends_in_order(self):
        session = CallSession(key="CA1")
        session.append_turn("User", "my AC is broken")
        session.append_turn("Agent", "sorry, unit number?")
        session.append_turn("User", "52")
        assert session.transcript == "User: my AC is broken\nAgent: sorry, unit number?\nUser: 52\n"
        assert session.turn_count == 3

    def test_session_end(self):
        session = CallSession(key="CA1")
        session.end()
        ended = session.ended_at
        assert ended is not None
        session.end()
        assert session.ended_at == ended


class TestSessionManager:

    def test_get_or_create(self):
        manager = SessionManager()
        session = manager.get_or_create("CA1", caller_phone="+1555")
        assert session.key == "CA1"
        assert session.caller_phone == "+1555"
        assert manager.get_or_create("CA1") is session
        assert manager.active_count == 1

    def test_update(self):
        manager = SessionManager()
        manager.get_or_create("CA1")
        updated = manager.update("CA1", lambda s: s.append_turn("User", "hello"))
        assert updated.transcript == "User: hello\n"

    def test_update_missing_returns_none(self):
        assert SessionManager().update("nope", lambda s: None) is None

    def test_remove(self):
        manager = SessionManager()
        manager.get_or_create("CA1")
        removed = manager.remove("CA1")
        assert removed is not None
        assert removed.ended_at is not None
        assert manager.get("CA1") is None
        assert manager.remove("CA1") is None

    def test_fallback_keys_unique(self):
        manager = SessionManager()
        keys = {manager.new_fallback_key() for _ in range(1000)}
        assert len(keys) == 1000
        assert all(re.fullmatch(r"session_\d+_\d+", k) for k in keys)

    def test_clear(self):
        manager = SessionManager()
        manager.get_or_create("a")
        manager.get_or_create("b")
        assert manager.clear() == 2
        assert manager.active_count == 0
        assert manager.all_sessions == []

    def test_managers_are_independent(self):
        first, second = SessionManager(), SessionManager()
        first.get_or_create("CA1")
        assert second.get("CA1") is None


class TestProcessedCallRegistry:

    def test_first_claim_wins(self):
        registry = ProcessedCallRegistry()
        won, record = registry.claim("CA1")
        assert won is True
        assert record.key == "CA1"
        assert record.done is False

    def test_second_claim_loses_and_sees_winner(self):
        registry = ProcessedCallRegistry()
        _, first = registry.claim("CA1")
        won, record = registry.claim("CA1")
        assert won is False
        assert record is first

    def test_complete_records_outcome(self):
        registry = ProcessedCallRegistry()
        registry.claim("CA1")
        registry.complete("CA1", "outcome")
        record = registry.get("CA1")
        assert record.done is True
        assert record.outcome == "outcome"

    def test_complete_unknown_key_is_noop(self):
        registry = ProcessedCallRegistry()
        registry.complete("missing", "x")
        assert "missing" not in registry

    def test_release_allows_new_claim(self):
        registry = ProcessedCallRegistry()
        registry.claim("CA1")
        registry.release("CA1")
        won, _ = registry.claim("CA1")
        assert won is True

    def test_keys_independent(self):
        registry = ProcessedCallRegistry()
        assert registry.claim("CA1")[0] is True
        assert registry.claim("CA2")[0] is True
        assert len(registry) == 2
