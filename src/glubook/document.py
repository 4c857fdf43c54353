"""Document model: content, section partition, page partition.

A Document is a frozen snapshot. Sections and pages are two independent
partitions of the same content; each has one sorted start-offset table,
computed once at construction. Every positional lookup in both directions
(offset -> section, offset -> page, page -> visible sections) goes through
those two tables, so there is exactly one source of truth per partition.

Offsets of sections built by ``build_document`` are prefix sums and tile the
content with no gaps. ``Document.from_sections`` accepts externally supplied
sections with gaps or overlaps; ``tiling_problems`` reports where they
disagree with the content instead of failing the construction. Negative
offsets and pages starting past the end are still rejected.
"""

from __future__ import annotations

import hashlib
import uuid
from bisect import bisect_right
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from glubook.annotations import Analysis, check_analysis, offending_issue_ids
from glubook.errors import DanglingReference, InvalidSectioning, OutOfRange
from glubook.spans import TextRange

DEFAULT_SECTION_TITLE = "Document"
DEFAULT_PAGE_SEPARATOR = "\n\n"


def compute_doc_fingerprint(text: str) -> str:
    """SHA256 fingerprint of document text."""
    return hashlib.sha256(text.encode()).hexdigest()


def generate_doc_id() -> str:
    """Short random document id."""
    return uuid.uuid4().hex[:12]


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class SectionSpec:
    """One entry of a sectioning strategy: a titled run of ``length`` chars."""
    title: str
    length: int
    section_id: str = ""   # "" -> positional id ("1", "2", ...)


@dataclass(frozen=True, slots=True)
class Section:
    """A titled, ordered chunk of document text with a stable id."""
    section_id: str
    title: str
    content: str
    offset: int          # Global char offset of content[0]

    @property
    def span(self) -> TextRange:
        """Global range covered by this section."""
        return TextRange(self.offset, self.offset + len(self.content))

    def to_local(self, global_range: TextRange) -> TextRange:
        """Translate a document-global range into this section's coordinates."""
        if not self.span.covers(global_range):
            raise OutOfRange(
                f"Range {global_range.start}-{global_range.end} is outside "
                f"section {self.section_id!r} ({self.span.start}-{self.span.end})"
            )
        return global_range.shift(-self.offset)

    def to_global(self, local_range: TextRange) -> TextRange:
        """Translate a section-local range into document coordinates."""
        if local_range.end > len(self.content):
            raise OutOfRange(
                f"Local range {local_range.start}-{local_range.end} exceeds "
                f"section {self.section_id!r} length {len(self.content)}"
            )
        return local_range.shift(self.offset)


@dataclass(frozen=True, slots=True)
class DocumentMetadata:
    """Upload metadata carried alongside the text."""
    mime_type: str = "text/plain"
    uploaded_at: str = ""        # ISO timestamp
    file_size: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.mime_type,
            "uploadDate": self.uploaded_at,
            "fileSize": self.file_size,
        }


@dataclass(frozen=True, slots=True)
class Document:
    """Immutable snapshot of an uploaded document and, optionally, its analysis.

    Use ``build_document`` / ``build_document_from_pages`` for ingested text and
    ``Document.from_sections`` for sections supplied by someone else.
    """
    doc_id: str
    title: str
    content: str
    sections: tuple[Section, ...]
    page_starts: tuple[int, ...]      # Sorted global start offset of each page
    analysis: Analysis | None = None
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    # Derived lookup tables (section partition)
    _section_starts: tuple[int, ...] = field(init=False, repr=False, compare=False)
    _section_order: tuple[int, ...] = field(init=False, repr=False, compare=False)
    _section_by_id: dict[str, Section] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.sections:
            raise InvalidSectioning("A document needs at least one section")
        if not self.page_starts or self.page_starts[0] != 0:
            raise InvalidSectioning("The first page must start at offset 0")
        if any(b < a for a, b in zip(self.page_starts, self.page_starts[1:])):
            raise InvalidSectioning(f"Page starts must be sorted, got {self.page_starts}")
        if self.page_starts[-1] > len(self.content):
            raise InvalidSectioning(
                f"Page {len(self.page_starts) - 1} starts at {self.page_starts[-1]}, "
                f"past document end {len(self.content)}"
            )
        by_id: dict[str, Section] = {}
        for s in self.sections:
            if s.offset < 0:
                raise InvalidSectioning(
                    f"Section {s.section_id!r} has negative offset {s.offset}"
                )
            if s.section_id in by_id:
                raise InvalidSectioning(f"Duplicate section id {s.section_id!r}")
            by_id[s.section_id] = s
        # Stable sort so equal offsets keep document order.
        order = tuple(sorted(range(len(self.sections)), key=lambda i: self.sections[i].offset))
        object.__setattr__(self, "_section_order", order)
        object.__setattr__(self, "_section_starts", tuple(self.sections[i].offset for i in order))
        object.__setattr__(self, "_section_by_id", by_id)

    # ── Construction from external sections ──────────────────

    @classmethod
    def from_sections(
        cls,
        title: str,
        content: str,
        sections: Sequence[Section],
        *,
        page_starts: Sequence[int] = (0,),
        doc_id: str | None = None,
        metadata: DocumentMetadata | None = None,
    ) -> Document:
        """Wrap sections whose offsets were computed elsewhere.

        Gaps and overlaps are allowed and show up in ``tiling_problems``.
        Negative offsets and pages starting past the content are not.
        """
        return cls(
            doc_id=doc_id or generate_doc_id(),
            title=title,
            content=content,
            sections=tuple(sections),
            page_starts=tuple(page_starts),
            metadata=metadata or DocumentMetadata(uploaded_at=datetime.now(UTC).isoformat()),
        )

    # ── Properties ───────────────────────────────────────────

    @property
    def fingerprint(self) -> str:
        return compute_doc_fingerprint(self.content)

    @property
    def page_count(self) -> int:
        return len(self.page_starts)

    @property
    def pages(self) -> tuple[str, ...]:
        """Text of every page (separators stay with the preceding page)."""
        return tuple(self.page_span(i).slice(self.content) for i in range(self.page_count))

    @property
    def is_analyzed(self) -> bool:
        return self.analysis is not None

    # ── Section partition ────────────────────────────────────

    def section(self, section_id: str) -> Section:
        """Section by id; DanglingReference when unknown."""
        sec = self._section_by_id.get(section_id)
        if sec is None:
            raise DanglingReference(
                f"Document {self.doc_id!r} has no section {section_id!r}",
                targets=(section_id,),
            )
        return sec

    def has_section(self, section_id: str) -> bool:
        return section_id in self._section_by_id

    def section_at(self, global_offset: int) -> Section:
        """Section containing a char position. O(log N) via bisect_right."""
        if not 0 <= global_offset < len(self.content):
            raise OutOfRange(
                f"Offset {global_offset} outside document [0, {len(self.content)})"
            )
        idx = bisect_right(self._section_starts, global_offset) - 1
        # Walk back over empty or short sections sharing/preceding this start;
        # only externally supplied sections can make this loop run more than once.
        while idx >= 0:
            sec = self.sections[self._section_order[idx]]
            if sec.span.contains(global_offset):
                return sec
            idx -= 1
        raise OutOfRange(f"Offset {global_offset} falls in a gap between sections")

    def sections_overlapping(self, global_range: TextRange) -> list[Section]:
        """Sections sharing at least one character with ``global_range``, in order.

        A point range selects the section containing that position.
        """
        if global_range.is_point:
            if global_range.start >= len(self.content):
                return [self.sections[self._section_order[-1]]]
            try:
                return [self.section_at(global_range.start)]
            except OutOfRange:
                return []
        hi = bisect_right(self._section_starts, global_range.end - 1)
        return [
            self.sections[i] for i in self._section_order[:hi]
            if self.sections[i].span.overlaps(global_range)
        ]

    def tiling_problems(self) -> list[str]:
        """Gaps, overlaps and content mismatches of the section partition."""
        problems: list[str] = []
        cursor = 0
        for i in self._section_order:
            sec = self.sections[i]
            if sec.offset > cursor:
                problems.append(f"gap {cursor}-{sec.offset} before section {sec.section_id!r}")
            elif sec.offset < cursor:
                problems.append(f"section {sec.section_id!r} overlaps previous section at {sec.offset}")
            if sec.span.end > len(self.content):
                problems.append(
                    f"section {sec.section_id!r} ends at {sec.span.end}, "
                    f"past document end {len(self.content)}"
                )
            elif self.content[sec.offset:sec.span.end] != sec.content:
                problems.append(f"section {sec.section_id!r} content differs from document text")
            cursor = max(cursor, sec.span.end)
        if cursor < len(self.content):
            problems.append(f"gap {cursor}-{len(self.content)} after last section")
        return problems

    # ── Page partition ───────────────────────────────────────

    def clamp_page(self, page_index: int) -> int:
        return max(0, min(page_index, self.page_count - 1))

    def page_span(self, page_index: int) -> TextRange:
        """Global range of a page; OutOfRange for a bad index."""
        if not 0 <= page_index < self.page_count:
            raise OutOfRange(f"Page {page_index} outside [0, {self.page_count})")
        start = self.page_starts[page_index]
        if page_index + 1 < self.page_count:
            end = self.page_starts[page_index + 1]
        else:
            end = len(self.content)
        return TextRange(start, end)

    def page_at(self, global_offset: int) -> int:
        """Page containing a char position. Positions at or past the end map to the last page."""
        if global_offset < 0:
            raise OutOfRange(f"Offset {global_offset} is negative")
        return bisect_right(self.page_starts, global_offset) - 1


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def _normalize_sectioning(
    sectioning: Sequence[SectionSpec | tuple[str, int]] | None,
    content_length: int,
    default_title: str,
) -> list[SectionSpec]:
    if sectioning is None:
        return [SectionSpec(default_title, content_length)]
    specs = [s if isinstance(s, SectionSpec) else SectionSpec(s[0], s[1]) for s in sectioning]
    if not specs:
        raise InvalidSectioning("Sectioning must contain at least one section")
    for spec in specs:
        if spec.length < 0:
            raise InvalidSectioning(f"Section {spec.title!r} has negative length {spec.length}")
    total = sum(s.length for s in specs)
    if total != content_length:
        raise InvalidSectioning(
            f"Section lengths sum to {total}, content length is {content_length}"
        )
    return specs


def _locate_pages(content: str, pages: Sequence[str]) -> tuple[int, ...]:
    """Start offset of every page, found in order inside ``content``."""
    if not pages:
        return (0,)
    starts: list[int] = []
    cursor = 0
    for n, page in enumerate(pages):
        pos = content.find(page, cursor)
        if pos < 0:
            raise InvalidSectioning(f"Page {n} text does not occur in content after offset {cursor}")
        starts.append(pos)
        cursor = pos + len(page)
    # Leading text before page 0 belongs to page 0.
    starts[0] = 0
    return tuple(starts)


def build_document(
    title: str,
    content: str,
    sectioning: Sequence[SectionSpec | tuple[str, int]] | None = None,
    *,
    pages: Sequence[str] | None = None,
    doc_id: str | None = None,
    metadata: DocumentMetadata | None = None,
    default_title: str = DEFAULT_SECTION_TITLE,
) -> Document:
    """Build a document whose sections tile ``content`` by prefix sums.

    Args:
        title: Display title.
        content: Full document text.
        sectioning: ``(title, length)`` pairs or SectionSpecs, in order.
            None means one section titled ``default_title`` spanning everything.
        pages: Optional pre-split page texts; each must occur, in order,
            inside ``content``.
        doc_id: Stable id; generated when omitted.
        metadata: Upload metadata; defaults to text/plain uploaded now.
        default_title: Title of the single section used when
            ``sectioning`` is None.

    Raises:
        InvalidSectioning: lengths negative or not summing to len(content),
            duplicate section ids, or pages not found in content.
    """
    specs = _normalize_sectioning(sectioning, len(content), default_title)
    sections: list[Section] = []
    offset = 0
    for n, spec in enumerate(specs, start=1):
        sections.append(Section(
            section_id=spec.section_id or str(n),
            title=spec.title,
            content=content[offset:offset + spec.length],
            offset=offset,
        ))
        offset += spec.length
    return Document(
        doc_id=doc_id or generate_doc_id(),
        title=title,
        content=content,
        sections=tuple(sections),
        page_starts=_locate_pages(content, pages or ()),
        metadata=metadata or DocumentMetadata(uploaded_at=datetime.now(UTC).isoformat()),
    )


def build_document_from_pages(
    title: str,
    pages: Sequence[str],
    sectioning: Sequence[SectionSpec | tuple[str, int]] | None = None,
    *,
    separator: str = DEFAULT_PAGE_SEPARATOR,
    doc_id: str | None = None,
    metadata: DocumentMetadata | None = None,
    default_title: str = DEFAULT_SECTION_TITLE,
) -> Document:
    """Build a document whose content is ``separator.join(pages)``."""
    if not pages:
        pages = [""]
    content = separator.join(pages)
    starts: list[int] = []
    offset = 0
    for page in pages:
        starts.append(offset)
        offset += len(page) + len(separator)
    document = build_document(
        title, content, sectioning,
        doc_id=doc_id, metadata=metadata, default_title=default_title,
    )
    return replace(document, page_starts=tuple(starts))


# ---------------------------------------------------------------------------
# Snapshot operations
# ---------------------------------------------------------------------------

def section_at(document: Document, global_offset: int) -> Section:
    """Section containing ``global_offset``; OutOfRange outside [0, len)."""
    return document.section_at(global_offset)


def page_at(document: Document, global_offset: int) -> int:
    return document.page_at(global_offset)


def page_span(document: Document, page_index: int) -> TextRange:
    return document.page_span(page_index)


def attach_analysis(document: Document, analysis: Analysis) -> Document:
    """New snapshot with ``analysis`` attached. The argument is not touched.

    Raises:
        DanglingReference: some issue names a missing section or runs past
            the end of its section. Every offending issue id is listed.
    """
    problems = check_analysis(document, analysis)
    if problems:
        raise DanglingReference(
            f"Analysis does not fit document {document.doc_id!r}: " + "; ".join(problems),
            targets=offending_issue_ids(document, analysis),
        )
    return replace(document, analysis=analysis)
