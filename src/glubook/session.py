"""Asynchronous review session: analysis arrival and the chat turn queue.

One session serves one open document at a time. Everything it exposes is a
snapshot (Document, NavigationState) or an append-only log; nothing the UI
is holding gets mutated underneath it.

Two things are asynchronous:

- Analysis. Opening a document puts the session in "pending" and starts the
  analysis service. When it returns, the current Document is replaced by a
  new snapshot with the analysis attached. "failed" is its own state with
  the error kept for display and ``retry_analysis``.
- Chat turns. ``send`` appends the user message at once and queues the turn.
  A single worker drains the queue FIFO, so at most one generator call is
  outstanding. A failed turn is recorded; ``retry_turn`` queues it again
  without appending the user message a second time.

Every task remembers the epoch it started in. Opening another document (or
closing) bumps the epoch and cancels outstanding tasks; a result that still
comes back from an older epoch raises StaleResponse internally and is
dropped.

Usage::

    session = ReviewSession(analyzer, generator)
    await session.open_document(doc)
    await session.wait_for_analysis()
    await session.send("summarize this")
    await session.drain()
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Protocol

from glubook.annotations import Analysis, severity_rank
from glubook.config import DEFAULT_CONFIG, ReviewConfig
from glubook.conversation import ConversationLog, Message, utc_now
from glubook.document import Document, attach_analysis
from glubook.errors import (
    AnalysisFailed,
    DanglingReference,
    GenerationFailed,
    ReviewError,
    StaleResponse,
)
from glubook.library import DocumentLibrary
from glubook.locations import LocationResolver, NavigationState, Reference
from glubook.spans import Err, Result

log = logging.getLogger(__name__)

ANALYSIS_IDLE = "idle"          # No document open
ANALYSIS_PENDING = "pending"
ANALYSIS_READY = "ready"
ANALYSIS_FAILED = "failed"

ALL_ANALYSIS_STATES = (ANALYSIS_IDLE, ANALYSIS_PENDING, ANALYSIS_READY, ANALYSIS_FAILED)


class AnalysisService(Protocol):
    async def analyze(self, document: Document) -> Analysis: ...


class ResponseGenerator(Protocol):
    async def respond(
        self,
        conversation: tuple[Message, ...],
        document: Document,
        new_user_text: str,
    ) -> tuple[str, Sequence[Reference]]: ...


def greeting_for(document: Document) -> str:
    """Opening assistant message for a freshly opened document."""
    return (
        f"Hello! I'm your AI assistant for \"{document.title}\". "
        f"I have full access to all {document.page_count} pages of your document. "
        "You can ask me to:\n\n"
        "• Find specific information\n"
        "• Summarize sections or themes\n"
        "• Detect contradictions\n"
        "• Extract quotes or references\n"
        "• Navigate to specific content\n\n"
        "What would you like to know about your document?"
    )


def analysis_summary(document: Document, analysis: Analysis) -> tuple[str, list[Reference]]:
    """Summary message posted when analysis lands, citing every issue, worst first."""
    ordered = sorted(analysis.issues, key=lambda i: -severity_rank(i.severity))
    text = (
        f"I've analyzed your draft \"{document.title}\" and found "
        f"{len(analysis.issues)} areas for improvement. Here's what I noticed:"
    )
    return text, [Reference.issue(i.issue_id) for i in ordered]


class ReviewSession:
    """Owns the current document snapshot, its analysis state and its chat."""

    def __init__(
        self,
        analyzer: AnalysisService,
        generator: ResponseGenerator,
        *,
        config: ReviewConfig = DEFAULT_CONFIG,
        library: DocumentLibrary | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._analyzer = analyzer
        self._generator = generator
        self._config = config
        self._library = library if library is not None else DocumentLibrary()
        self._clock = clock

        self._epoch = 0
        self._document: Document | None = None
        self._navigation: NavigationState | None = None
        self._analysis_state = ANALYSIS_IDLE
        self._analysis_error: ReviewError | None = None
        self._analysis_task: asyncio.Task[None] | None = None

        self._conversation = ConversationLog(clock=clock)
        self._queue: deque[str] = deque()        # user message ids awaiting a reply
        self._in_flight: str | None = None
        self._failed: dict[str, GenerationFailed] = {}
        self._worker: asyncio.Task[None] | None = None

    # ── Read-only state ──────────────────────────────────────

    @property
    def document(self) -> Document | None:
        return self._document

    @property
    def library(self) -> DocumentLibrary:
        return self._library

    @property
    def conversation(self) -> ConversationLog:
        return self._conversation

    @property
    def navigation(self) -> NavigationState | None:
        return self._navigation

    @property
    def analysis_state(self) -> str:
        return self._analysis_state

    @property
    def analysis_error(self) -> ReviewError | None:
        return self._analysis_error

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def pending_turns(self) -> tuple[str, ...]:
        """User message ids not yet answered: the one in flight, then the queue."""
        head = (self._in_flight,) if self._in_flight else ()
        return head + tuple(self._queue)

    @property
    def failed_turns(self) -> dict[str, GenerationFailed]:
        return dict(self._failed)

    @property
    def busy(self) -> bool:
        """True while a generator call is outstanding or turns are queued."""
        return self._in_flight is not None or bool(self._queue)

    def _require_document(self) -> Document:
        if self._document is None:
            raise RuntimeError("No document is open")
        return self._document

    def resolver(self) -> LocationResolver:
        return LocationResolver(self._require_document())

    # ── Document lifecycle ───────────────────────────────────

    async def open_document(self, document: Document) -> None:
        """Make ``document`` current. Cancels everything started for the previous one."""
        self._cancel_outstanding()
        self._epoch += 1
        self._document = document
        self._library.upsert(document)
        self._conversation = ConversationLog(clock=self._clock)
        self._queue.clear()
        self._failed.clear()
        self._analysis_error = None
        self._navigation = LocationResolver(document).initial_state()
        log.info("Opened document %s (epoch %d)", document.doc_id, self._epoch)

        if self._config.greet_on_open:
            self._conversation.append_assistant(greeting_for(document))

        if document.analysis is not None:
            self._analysis_state = ANALYSIS_READY
        else:
            self._start_analysis(document)

    async def close(self) -> None:
        self._cancel_outstanding()
        self._epoch += 1
        self._document = None
        self._navigation = None
        self._analysis_state = ANALYSIS_IDLE
        self._analysis_error = None
        self._conversation = ConversationLog(clock=self._clock)
        self._queue.clear()
        self._failed.clear()

    def _cancel_outstanding(self) -> None:
        # Not awaited: a collaborator that ignores cancellation must not block
        # the switch. Whatever it returns later fails the epoch check.
        for task in (self._analysis_task, self._worker):
            if task is not None and not task.done():
                task.cancel()
        self._analysis_task = None
        self._worker = None
        self._in_flight = None

    def _ensure_current(self, doc_id: str, epoch: int) -> None:
        if epoch != self._epoch or self._document is None or self._document.doc_id != doc_id:
            raise StaleResponse(doc_id, epoch, self._epoch)

    # ── Analysis ─────────────────────────────────────────────

    def _start_analysis(self, document: Document) -> None:
        self._analysis_state = ANALYSIS_PENDING
        self._analysis_error = None
        self._analysis_task = asyncio.create_task(self._run_analysis(document, self._epoch))

    async def _run_analysis(self, document: Document, epoch: int) -> None:
        try:
            try:
                analysis = await self._analyzer.analyze(document)
            except (AnalysisFailed, StaleResponse):
                raise
            except Exception as exc:
                raise AnalysisFailed(f"Analysis service error: {exc}") from exc
            self._ensure_current(document.doc_id, epoch)
            updated = attach_analysis(self._require_document(), analysis)
        except StaleResponse as exc:
            log.debug("Discarding stale analysis: %s", exc)
            return
        except (AnalysisFailed, DanglingReference) as exc:
            if epoch != self._epoch:
                log.debug("Discarding stale analysis failure for %s", document.doc_id)
                return
            self._analysis_state = ANALYSIS_FAILED
            self._analysis_error = exc
            log.warning("Analysis of %s failed: %s", document.doc_id, exc)
            return

        self._document = updated
        self._library.upsert(updated)
        self._analysis_state = ANALYSIS_READY
        log.info(
            "Analysis of %s ready: %d issues, score %.1f",
            updated.doc_id, len(analysis.issues), analysis.overall_score,
        )
        if self._config.announce_analysis:
            text, refs = analysis_summary(updated, analysis)
            self._conversation.append_assistant(text, refs)

    async def retry_analysis(self) -> None:
        """Re-run the analysis service after a failure."""
        document = self._require_document()
        if self._analysis_state == ANALYSIS_PENDING:
            raise RuntimeError("Analysis is already running")
        if self._analysis_state == ANALYSIS_READY:
            return
        self._start_analysis(document)

    async def wait_for_analysis(self) -> str:
        """Wait until the current analysis task settles; returns the state."""
        task = self._analysis_task
        if task is not None and not task.done():
            await asyncio.wait([task])
        return self._analysis_state

    # ── Chat ─────────────────────────────────────────────────

    async def send(self, text: str) -> Message:
        """Append the user's message now and queue the generator call."""
        self._require_document()
        message = self._conversation.append_user(text)
        self._queue.append(message.message_id)
        self._ensure_worker()
        return message

    async def retry_turn(self, user_message_id: str) -> None:
        """Queue a failed turn again. The user message is not duplicated."""
        self._require_document()
        if user_message_id not in self._failed:
            raise ValueError(f"Turn {user_message_id!r} has not failed")
        del self._failed[user_message_id]
        self._queue.append(user_message_id)
        self._ensure_worker()

    async def drain(self) -> None:
        """Wait until every queued turn has been answered or has failed."""
        while self._worker is not None and not self._worker.done():
            await asyncio.wait([self._worker])

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain_queue(self._epoch))

    async def _drain_queue(self, epoch: int) -> None:
        while self._queue and epoch == self._epoch:
            user_id = self._queue.popleft()
            self._in_flight = user_id
            try:
                await self._run_turn(user_id, epoch)
            finally:
                if epoch == self._epoch:
                    self._in_flight = None

    async def _run_turn(self, user_id: str, epoch: int) -> None:
        conversation = self._conversation
        document = self._require_document()
        user_msg = conversation.get(user_id)
        # Everything logged so far, minus this turn and turns still waiting.
        waiting = {user_id, *self._queue}
        history = tuple(m for m in conversation.messages if m.message_id not in waiting)
        try:
            try:
                text, references = await self._generator.respond(history, document, user_msg.text)
            except (GenerationFailed, StaleResponse):
                raise
            except Exception as exc:
                raise GenerationFailed(f"Response generator error: {exc}") from exc
            self._ensure_current(document.doc_id, epoch)
        except StaleResponse as exc:
            log.debug("Discarding stale reply: %s", exc)
            return
        except GenerationFailed as exc:
            self._failed[user_id] = exc
            log.warning("Reply to %s failed: %s", user_id, exc)
            return

        reply = await self._deliver(conversation, text, references, user_id)
        for result in self.resolver().resolve_all(reply.references):
            if isinstance(result, Err):
                log.warning("Reply %s carries a dangling reference: %s", reply.message_id, result.error)

    async def _deliver(
        self,
        conversation: ConversationLog,
        text: str,
        references: Sequence[Reference],
        user_id: str,
    ) -> Message:
        size = self._config.typing_chunk_chars
        if size <= 0:
            return conversation.append_assistant(text, references, in_reply_to=user_id)
        stream = conversation.stream_assistant(in_reply_to=user_id)
        try:
            for i in range(0, len(text), size):
                stream.feed(text[i:i + size])
                await asyncio.sleep(self._config.typing_delay_sec)
            return stream.commit(references)
        finally:
            if not stream.closed:
                stream.abort()

    # ── Navigation ───────────────────────────────────────────

    def reference_results(self, message: Message) -> list[Result]:
        """Resolution outcome of each reference on ``message``."""
        return self.resolver().resolve_all(message.references)

    def follow(self, reference: Reference) -> NavigationState:
        """Navigate to a reference. DanglingReference propagates to the caller."""
        resolver = self.resolver()
        state = self._navigation or resolver.initial_state()
        self._navigation = resolver.navigate(state, reference)
        return self._navigation

    def jump_to_page(self, page_index: int) -> NavigationState:
        return self.follow(Reference.page(page_index))

    def select_issue(self, issue_id: str) -> NavigationState:
        return self.follow(Reference.issue(issue_id))
