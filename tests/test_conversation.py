"""Tests for glubook.conversation."""
from datetime import UTC, datetime

import pytest

from glubook.conversation import ROLE_ASSISTANT, ROLE_USER, ConversationLog
from glubook.errors import NotFound
from glubook.locations import Reference

FROZEN = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def _frozen_log() -> ConversationLog:
    return ConversationLog(clock=lambda: FROZEN)


class TestAppend:
    def test_roles_and_order(self) -> None:
        log = ConversationLog()
        u = log.append_user("summarize this")
        a = log.append_assistant("Here you go", [Reference.page(0)], in_reply_to=u.message_id)
        assert [m.role for m in log] == [ROLE_USER, ROLE_ASSISTANT]
        assert a.in_reply_to == u.message_id
        assert a.references == (Reference.page(0),)
        assert log.reply_to(u.message_id) is a

    def test_blank_user_text_rejected(self) -> None:
        with pytest.raises(ValueError):
            ConversationLog().append_user("   ")

    def test_unknown_reply_target(self) -> None:
        with pytest.raises(ValueError):
            ConversationLog().append_assistant("hi", in_reply_to="msg_missing")

    def test_timestamps_strictly_increase_with_frozen_clock(self) -> None:
        log = _frozen_log()
        for n in range(5):
            log.append_user(f"m{n}")
        stamps = [m.timestamp for m in log]
        assert all(b > a for a, b in zip(stamps, stamps[1:]))
        assert stamps[0] == FROZEN

    def test_clock_going_backwards(self) -> None:
        times = iter([FROZEN, datetime(2020, 1, 1, tzinfo=UTC)])
        log = ConversationLog(clock=lambda: next(times))
        first = log.append_user("a")
        second = log.append_user("b")
        assert second.timestamp > first.timestamp

    def test_ids_unique(self) -> None:
        log = _frozen_log()
        ids = {log.append_user("x").message_id for _ in range(20)}
        assert len(ids) == 20


class TestQuery:
    def test_get_and_last(self) -> None:
        log = ConversationLog()
        u = log.append_user("q")
        log.append_assistant("a1")
        assert log.get(u.message_id) is u
        assert log.last().text == "a1"
        assert log.last(ROLE_USER) is u
        assert len(log.by_role(ROLE_ASSISTANT)) == 1
        with pytest.raises(NotFound):
            log.get("nope")

    def test_messages_is_a_snapshot(self) -> None:
        log = ConversationLog()
        log.append_user("q")
        snapshot = log.messages
        log.append_user("r")
        assert len(snapshot) == 1
        assert len(log) == 2

    def test_to_dict(self) -> None:
        log = _frozen_log()
        msg = log.append_assistant("see page 2", [Reference.page(1)])
        data = msg.to_dict()
        assert data["role"] == "assistant"
        assert data["references"] == [{"kind": "page", "target": 1}]
        assert data["timestamp"].startswith("2024-05-01T12:00:00")


class TestStreaming:
    def test_commit_appends_once(self) -> None:
        log = ConversationLog()
        u = log.append_user("q")
        stream = log.stream_assistant(in_reply_to=u.message_id)
        assert log.typing
        stream.feed("Hel")
        stream.feed("lo")
        assert len(log) == 1
        msg = stream.commit([Reference.section("1")])
        assert msg.text == "Hello"
        assert msg.in_reply_to == u.message_id
        assert not log.typing
        assert len(log) == 2

    def test_abort_leaves_no_trace(self) -> None:
        log = ConversationLog()
        stream = log.stream_assistant()
        stream.feed("partial")
        stream.abort()
        assert len(log) == 0
        assert not log.typing
        with pytest.raises(RuntimeError):
            stream.feed("more")

    def test_one_stream_at_a_time(self) -> None:
        log = ConversationLog()
        log.stream_assistant()
        with pytest.raises(RuntimeError):
            log.stream_assistant()
