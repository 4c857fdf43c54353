"""Highlight rendering by interval partition.

Input: a section's text and the issues anchored to it (section-local
ranges). Output: segments covering the text with no gaps, each carrying
every issue active over that character span, plus zero-width markers for
point issues.

Partitioning instead of splicing markup strings is what keeps overlapping
issues correct: splicing in reverse start order shifts the offsets of any
issue that straddles an earlier insertion, and the second tag lands in the
wrong place or disappears.

Usage::

    hs = highlight_section(section.content, issues, selected_issue_id="2")
    assert hs.text == section.content
    html = render_html(hs)
"""

from __future__ import annotations

import html
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from glubook.annotations import SEVERITY_RANK, Issue, issues_for_section
from glubook.config import DEFAULT_CONFIG, ReviewConfig
from glubook.document import Document
from glubook.errors import OutOfRange
from glubook.spans import TextRange


@dataclass(frozen=True, slots=True)
class Segment:
    """A maximal run of text over which the set of active issues is constant."""
    span: TextRange                 # Section-local
    text: str
    issue_ids: tuple[str, ...]      # Active issues, production order
    severity: str | None            # Dominant severity; None when unannotated
    selected: bool = False

    @property
    def is_highlighted(self) -> bool:
        return bool(self.issue_ids)


@dataclass(frozen=True, slots=True)
class PointMarker:
    """A zero-width issue. Sits between the segments meeting at ``offset``."""
    offset: int
    issue_id: str
    severity: str
    selected: bool = False


@dataclass(frozen=True, slots=True)
class HighlightedSection:
    section_id: str
    segments: tuple[Segment, ...]
    markers: tuple[PointMarker, ...] = ()

    @property
    def text(self) -> str:
        return "".join(s.text for s in self.segments)

    def issues_at(self, offset: int) -> tuple[str, ...]:
        """Issue ids under a clicked character (plus markers exactly at it)."""
        ids: list[str] = []
        for seg in self.segments:
            if seg.span.contains(offset):
                ids.extend(seg.issue_ids)
                break
        ids.extend(m.issue_id for m in self.markers if m.offset == offset)
        return tuple(ids)

    def segments_for(self, issue_id: str) -> list[Segment]:
        return [s for s in self.segments if issue_id in s.issue_ids]


def _dominant(issues: Sequence[Issue]) -> str | None:
    best: Issue | None = None
    for issue in issues:
        # Strict '>' keeps the earlier issue on ties.
        if best is None or SEVERITY_RANK[issue.severity] > SEVERITY_RANK[best.severity]:
            best = issue
    return best.severity if best else None


def highlight_section(
    text: str,
    issues: Iterable[Issue],
    *,
    section_id: str = "",
    selected_issue_id: str | None = None,
) -> HighlightedSection:
    """Partition ``text`` into styled segments.

    Args:
        text: The section's own text.
        issues: Issues anchored to this section, in production order.
        section_id: Carried through to the result.
        selected_issue_id: Segments and markers of this issue get ``selected``.

    Raises:
        OutOfRange: an issue range extends past the end of ``text``.
    """
    issues = list(issues)
    n = len(text)
    for issue in issues:
        if issue.span.end > n:
            raise OutOfRange(
                f"Issue {issue.issue_id!r} range {issue.span.start}-{issue.span.end} "
                f"exceeds text length {n}"
            )

    markers = tuple(
        PointMarker(
            offset=i.span.start,
            issue_id=i.issue_id,
            severity=i.severity,
            selected=i.issue_id == selected_issue_id,
        )
        for i in sorted(
            (i for i in issues if i.is_point),
            key=lambda i: i.span.start,   # sorted() is stable: ties keep production order
        )
    )

    if n == 0:
        return HighlightedSection(
            section_id=section_id,
            segments=(Segment(TextRange(0, 0), "", (), None),),
            markers=markers,
        )

    cuts: set[int] = {0, n}
    for issue in issues:
        cuts.add(issue.span.start)
        cuts.add(issue.span.end)
    points = sorted(cuts)

    # Sweep: issues open at their start cut and close at their end cut.
    ranged = [(idx, i) for idx, i in enumerate(issues) if not i.is_point]
    opening: dict[int, list[int]] = {}
    closing: dict[int, list[int]] = {}
    for idx, issue in ranged:
        opening.setdefault(issue.span.start, []).append(idx)
        closing.setdefault(issue.span.end, []).append(idx)

    active: set[int] = set()
    segments: list[Segment] = []
    for a, b in zip(points, points[1:]):
        active.difference_update(closing.get(a, ()))
        active.update(opening.get(a, ()))
        current = [issues[idx] for idx in sorted(active)]
        ids = tuple(i.issue_id for i in current)
        segments.append(Segment(
            span=TextRange(a, b),
            text=text[a:b],
            issue_ids=ids,
            severity=_dominant(current),
            selected=selected_issue_id is not None and selected_issue_id in ids,
        ))

    return HighlightedSection(section_id=section_id, segments=tuple(segments), markers=markers)


def highlight_document(
    document: Document,
    *,
    selected_issue_id: str | None = None,
) -> list[HighlightedSection]:
    """Highlight every section of ``document`` in order.

    An unanalyzed document yields plain single-segment sections.
    """
    out: list[HighlightedSection] = []
    for section in document.sections:
        issues = (
            issues_for_section(document.analysis, section.section_id)
            if document.analysis is not None else []
        )
        out.append(highlight_section(
            section.content,
            issues,
            section_id=section.section_id,
            selected_issue_id=selected_issue_id,
        ))
    return out


# ---------------------------------------------------------------------------
# HTML output
# ---------------------------------------------------------------------------

def _segment_html(seg: Segment, config: ReviewConfig) -> str:
    body = html.escape(seg.text)
    if not seg.is_highlighted:
        return body
    classes = [config.highlight_class, config.severity_class(seg.severity or "")]
    if seg.selected:
        classes.append(config.selected_class)
    cls = " ".join(c for c in classes if c)
    ids = html.escape(" ".join(seg.issue_ids))
    return f'<span class="{cls} px-1 cursor-pointer" data-issue-ids="{ids}">{body}</span>'


def _marker_html(marker: PointMarker, config: ReviewConfig) -> str:
    classes = [config.marker_class, config.severity_class(marker.severity)]
    if marker.selected:
        classes.append(config.selected_class)
    cls = " ".join(c for c in classes if c)
    return (
        f'<span class="{cls} cursor-pointer" '
        f'data-issue-id="{html.escape(marker.issue_id)}">{config.marker_glyph}</span>'
    )


def render_html(highlighted: HighlightedSection, config: ReviewConfig = DEFAULT_CONFIG) -> str:
    """Escaped HTML: one span per highlighted segment, a caret per point issue."""
    parts: list[str] = []
    pending = list(highlighted.markers)
    for seg in highlighted.segments:
        while pending and pending[0].offset <= seg.span.start:
            parts.append(_marker_html(pending.pop(0), config))
        parts.append(_segment_html(seg, config))
    parts.extend(_marker_html(m, config) for m in pending)
    return "".join(parts)
