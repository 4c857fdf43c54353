"""Reference resolution and page navigation.

A Reference is what the conversation hands us: "page 3", "section 2",
"issue 7". Resolution maps it to a concrete Location (page to show, section
to scroll to, anchor to focus). The inverse direction, "the user is on page
N, what is visible?", uses the very same offset tables on the Document, so
the two directions cannot drift apart.

Page references come from generated text and may be hallucinated; they are
clamped. Section and issue references that point nowhere are
DanglingReference, because clamping them would jump somewhere unrelated.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any

from glubook.annotations import issue_by_id
from glubook.document import Document
from glubook.errors import DanglingReference, NotFound
from glubook.spans import Err, Ok, Result, TextRange

REF_PAGE = "page"
REF_SECTION = "section"
REF_ISSUE = "issue"

ALL_REFERENCE_KINDS = (REF_PAGE, REF_SECTION, REF_ISSUE)


@dataclass(frozen=True, slots=True)
class Reference:
    """Pointer from a message to a page (int), section (id) or issue (id)."""
    kind: str
    target: int | str

    @classmethod
    def page(cls, index: int) -> Reference:
        return cls(REF_PAGE, index)

    @classmethod
    def section(cls, section_id: str) -> Reference:
        return cls(REF_SECTION, section_id)

    @classmethod
    def issue(cls, issue_id: str) -> Reference:
        return cls(REF_ISSUE, issue_id)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Reference:
        return cls(kind=data["kind"], target=data["target"])

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "target": self.target}

    def label(self) -> str:
        """Link text shown under a chat message (pages are 1-based for humans)."""
        if self.kind == REF_PAGE and isinstance(self.target, int):
            return f"Page {self.target + 1}"
        return f"{self.kind.capitalize()} {self.target}"


@dataclass(frozen=True, slots=True)
class Location:
    """Concrete navigation target."""
    page_index: int
    section_id: str
    scroll_anchor: str     # DOM-style anchor: "page-0", "section-2", "issue-7"
    char_offset: int       # Global offset the anchor points at


@dataclass(frozen=True, slots=True)
class PageView:
    """What is visible on one page."""
    page_index: int
    span: TextRange
    section_ids: tuple[str, ...]
    issue_ids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class NavigationState:
    """UI navigation state for one document. Replaced, never mutated."""
    doc_id: str
    page_index: int = 0
    section_id: str = ""
    selected_issue_id: str | None = None
    scroll_anchor: str = ""


def page_anchor(page_index: int) -> str:
    return f"page-{page_index}"


def section_anchor(section_id: str) -> str:
    return f"section-{section_id}"


def issue_anchor(issue_id: str) -> str:
    return f"issue-{issue_id}"


class LocationResolver:
    """Resolves references against one Document snapshot.

    Holds no tables of its own; every lookup delegates to the document's
    section and page offset tables.
    """
    __slots__ = ("_doc",)

    def __init__(self, document: Document) -> None:
        self._doc = document

    @property
    def document(self) -> Document:
        return self._doc

    # ── Forward: Reference -> Location ──────────────────────

    def _section_for_offset(self, offset: int) -> str:
        doc = self._doc
        if not doc.content:
            return doc.sections[0].section_id
        hits = doc.sections_overlapping(TextRange(offset, offset))
        return hits[0].section_id if hits else ""

    def _page_for_offset(self, offset: int) -> int:
        return self._doc.clamp_page(self._doc.page_at(offset))

    def resolve(self, reference: Reference) -> Location:
        """Resolve one reference.

        Raises:
            DanglingReference: unknown kind, unknown section or issue, a
                non-integer page target, or an issue reference on a
                document without analysis.
        """
        kind, target = reference.kind, reference.target
        if kind == REF_PAGE:
            if not isinstance(target, int) or isinstance(target, bool):
                raise DanglingReference(
                    f"Page reference target must be an integer, got {target!r}",
                    targets=(str(target),),
                )
            index = self._doc.clamp_page(target)
            start = self._doc.page_starts[index]
            return Location(
                page_index=index,
                section_id=self._section_for_offset(start),
                scroll_anchor=page_anchor(index),
                char_offset=start,
            )
        if kind == REF_SECTION:
            section = self._doc.section(str(target))
            return Location(
                page_index=self._page_for_offset(section.offset),
                section_id=section.section_id,
                scroll_anchor=section_anchor(section.section_id),
                char_offset=section.offset,
            )
        if kind == REF_ISSUE:
            analysis = self._doc.analysis
            if analysis is None:
                raise DanglingReference(
                    f"Issue reference {target!r} on unanalyzed document {self._doc.doc_id!r}",
                    targets=(str(target),),
                )
            try:
                issue = issue_by_id(analysis, str(target))
            except NotFound as exc:
                raise DanglingReference(str(exc), targets=(str(target),)) from exc
            section = self._doc.section(issue.section_id)
            return Location(
                page_index=self._page_for_offset(section.offset),
                section_id=section.section_id,
                scroll_anchor=issue_anchor(issue.issue_id),
                char_offset=section.offset + issue.span.start,
            )
        raise DanglingReference(f"Unknown reference kind {kind!r}", targets=(str(target),))

    def resolve_all(
        self, references: Iterable[Reference],
    ) -> list[Result[Location, DanglingReference]]:
        """Resolve each reference, keeping failures in place as Err."""
        results: list[Result[Location, DanglingReference]] = []
        for ref in references:
            try:
                results.append(Ok(self.resolve(ref)))
            except DanglingReference as exc:
                results.append(Err(exc))
        return results

    # ── Inverse: page -> visible content ────────────────────

    def view_page(self, page_index: int) -> PageView:
        """Sections and issues visible on a page (index is clamped)."""
        doc = self._doc
        index = doc.clamp_page(page_index)
        span = doc.page_span(index)
        sections = doc.sections_overlapping(span)
        issue_ids: list[str] = []
        if doc.analysis is not None:
            for issue in doc.analysis.issues:
                if not doc.has_section(issue.section_id):
                    continue
                g = doc.section(issue.section_id).to_global(issue.span)
                if g.overlaps(span) or (g.is_point and _point_on_page(g.start, span, doc, index)):
                    issue_ids.append(issue.issue_id)
        return PageView(
            page_index=index,
            span=span,
            section_ids=tuple(s.section_id for s in sections),
            issue_ids=tuple(issue_ids),
        )

    # ── Navigation state transitions ────────────────────────

    def initial_state(self) -> NavigationState:
        loc = self.resolve(Reference.page(0))
        return NavigationState(
            doc_id=self._doc.doc_id,
            page_index=loc.page_index,
            section_id=loc.section_id,
            scroll_anchor=loc.scroll_anchor,
        )

    def navigate(self, state: NavigationState, reference: Reference) -> NavigationState:
        """State after following ``reference``. Issue references also select."""
        loc = self.resolve(reference)
        selected = str(reference.target) if reference.kind == REF_ISSUE else state.selected_issue_id
        return replace(
            state,
            page_index=loc.page_index,
            section_id=loc.section_id,
            scroll_anchor=loc.scroll_anchor,
            selected_issue_id=selected,
        )

    def jump_to_page(self, state: NavigationState, page_index: int) -> NavigationState:
        """Manual page change; out-of-range indexes are clamped."""
        return self.navigate(state, Reference.page(page_index))

    def select_issue(self, state: NavigationState, issue_id: str) -> NavigationState:
        return self.navigate(state, Reference.issue(issue_id))


def _point_on_page(offset: int, span: TextRange, doc: Document, index: int) -> bool:
    # Points at the very end of the document belong to the last page.
    if span.contains(offset):
        return True
    return index == doc.page_count - 1 and offset == span.end
