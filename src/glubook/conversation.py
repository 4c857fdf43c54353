"""Append-only conversation log.

Messages are never edited or removed. A regenerated reply is a new message.
The log does not talk to the response generator; the session does, and
appends what comes back.

Invariants:
    - message ids are unique
    - timestamps strictly increase in append order
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

from glubook.errors import NotFound
from glubook.locations import Reference

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

ALL_ROLES = (ROLE_USER, ROLE_ASSISTANT)

_TICK = timedelta(microseconds=1)


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class Message:
    """One chat message."""
    message_id: str
    role: str                             # ROLE_USER | ROLE_ASSISTANT
    text: str
    timestamp: datetime
    references: tuple[Reference, ...] = ()
    in_reply_to: str = ""                 # User message id this reply answers ("" if none)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.message_id,
            "role": self.role,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
            "references": [r.to_dict() for r in self.references],
            "inReplyTo": self.in_reply_to,
        }


class AssistantStream:
    """An assistant reply being typed out.

    Nothing reaches the log until ``commit``; an aborted stream leaves no
    trace. Obtain one from ``ConversationLog.stream_assistant``.
    """
    __slots__ = ("_log", "_chunks", "_in_reply_to", "_closed")

    def __init__(self, log: ConversationLog, in_reply_to: str) -> None:
        self._log = log
        self._chunks: list[str] = []
        self._in_reply_to = in_reply_to
        self._closed = False

    @property
    def text(self) -> str:
        return "".join(self._chunks)

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, chunk: str) -> None:
        if self._closed:
            raise RuntimeError("Cannot feed a closed stream")
        self._chunks.append(chunk)

    def commit(self, references: Iterable[Reference] = ()) -> Message:
        if self._closed:
            raise RuntimeError("Stream already closed")
        self._closed = True
        self._log._end_stream(self)
        return self._log.append_assistant(self.text, references, in_reply_to=self._in_reply_to)

    def abort(self) -> None:
        if not self._closed:
            self._closed = True
            self._log._end_stream(self)


class ConversationLog:
    """Ordered, append-only message history for one document."""

    def __init__(self, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._messages: list[Message] = []
        self._by_id: dict[str, Message] = {}
        self._stream: AssistantStream | None = None

    # ── Append ───────────────────────────────────────────────

    def _next_timestamp(self) -> datetime:
        ts = self._clock()
        if self._messages and ts <= self._messages[-1].timestamp:
            ts = self._messages[-1].timestamp + _TICK
        return ts

    def _append(self, role: str, text: str, references: Iterable[Reference], in_reply_to: str) -> Message:
        msg = Message(
            message_id=f"msg_{len(self._messages) + 1:04d}_{uuid4().hex[:8]}",
            role=role,
            text=text,
            timestamp=self._next_timestamp(),
            references=tuple(references),
            in_reply_to=in_reply_to,
        )
        self._messages.append(msg)
        self._by_id[msg.message_id] = msg
        return msg

    def append_user(self, text: str) -> Message:
        """Append a user message. Blank text is rejected."""
        if not text.strip():
            raise ValueError("User message text must not be blank")
        return self._append(ROLE_USER, text, (), "")

    def append_assistant(
        self,
        text: str,
        references: Iterable[Reference] = (),
        *,
        in_reply_to: str = "",
    ) -> Message:
        if in_reply_to and in_reply_to not in self._by_id:
            raise ValueError(f"in_reply_to names unknown message {in_reply_to!r}")
        return self._append(ROLE_ASSISTANT, text, references, in_reply_to)

    def stream_assistant(self, in_reply_to: str = "") -> AssistantStream:
        """Open a streaming reply. Only one stream may be open at a time."""
        if self._stream is not None:
            raise RuntimeError("An assistant reply is already being streamed")
        self._stream = AssistantStream(self, in_reply_to)
        return self._stream

    def _end_stream(self, stream: AssistantStream) -> None:
        if self._stream is stream:
            self._stream = None

    # ── Query ────────────────────────────────────────────────

    @property
    def typing(self) -> bool:
        """True while an assistant reply is being streamed."""
        return self._stream is not None

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def get(self, message_id: str) -> Message:
        msg = self._by_id.get(message_id)
        if msg is None:
            raise NotFound(f"No message with id {message_id!r}")
        return msg

    def last(self, role: str | None = None) -> Message | None:
        for msg in reversed(self._messages):
            if role is None or msg.role == role:
                return msg
        return None

    def reply_to(self, user_message_id: str) -> Message | None:
        """Latest assistant reply to ``user_message_id``, if any."""
        for msg in reversed(self._messages):
            if msg.in_reply_to == user_message_id:
                return msg
        return None

    def by_role(self, role: str) -> list[Message]:
        return [m for m in self._messages if m.role == role]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))
