"""Tests for glubook.document."""
import pytest

from glubook.annotations import Analysis, Issue
from glubook.document import (
    DEFAULT_SECTION_TITLE,
    Document,
    Section,
    SectionSpec,
    attach_analysis,
    build_document,
    build_document_from_pages,
    page_at,
    page_span,
    section_at,
)
from glubook.errors import DanglingReference, InvalidSectioning, OutOfRange
from glubook.spans import TextRange


def _issue(issue_id: str, section_id: str, start: int, end: int) -> Issue:
    return Issue(
        issue_id=issue_id,
        issue_type="tone",
        severity="minor",
        title="t",
        description="d",
        suggestion="s",
        section_id=section_id,
        span=TextRange(start, end),
    )


class TestBuildDocument:
    def test_default_single_section(self) -> None:
        doc = build_document("Draft", "hello world")
        assert len(doc.sections) == 1
        sec = doc.sections[0]
        assert sec.section_id == "1"
        assert sec.title == DEFAULT_SECTION_TITLE
        assert sec.content == "hello world"
        assert doc.page_starts == (0,)

    def test_custom_default_title(self) -> None:
        doc = build_document("Draft", "hello", default_title="Body")
        assert doc.sections[0].title == "Body"
        paged = build_document_from_pages("Draft", ["a", "b"], default_title="Body")
        assert paged.sections[0].title == "Body"

    def test_prefix_sum_offsets(self) -> None:
        doc = build_document("D", "abcdefghij", [("A", 3), ("B", 0), ("C", 7)])
        assert [s.offset for s in doc.sections] == [0, 3, 3]
        assert [s.content for s in doc.sections] == ["abc", "", "defghij"]
        assert [s.section_id for s in doc.sections] == ["1", "2", "3"]
        assert doc.tiling_problems() == []

    def test_sections_concatenate_to_content(self) -> None:
        content = "Intro text.\nBody text here.\nEnd."
        doc = build_document("D", content, [("I", 12), ("B", 16), ("E", 4)])
        assert "".join(s.content for s in doc.sections) == content

    def test_length_mismatch(self) -> None:
        with pytest.raises(InvalidSectioning):
            build_document("D", "abc", [("A", 2)])

    def test_negative_length(self) -> None:
        with pytest.raises(InvalidSectioning):
            build_document("D", "abc", [("A", 4), ("B", -1)])

    def test_empty_sectioning(self) -> None:
        with pytest.raises(InvalidSectioning):
            build_document("D", "abc", [])

    def test_duplicate_explicit_ids(self) -> None:
        with pytest.raises(InvalidSectioning):
            build_document("D", "abcd", [SectionSpec("A", 2, "x"), SectionSpec("B", 2, "x")])

    def test_empty_document(self) -> None:
        doc = build_document("Empty", "")
        assert doc.sections[0].content == ""
        assert doc.page_count == 1
        assert doc.pages == ("",)

    def test_pages_located_in_content(self) -> None:
        doc = build_document("D", "one\n\ntwo\n\nthree", pages=["one", "two", "three"])
        assert doc.page_starts == (0, 5, 10)
        assert doc.pages == ("one\n\n", "two\n\n", "three")

    def test_missing_page_text(self) -> None:
        with pytest.raises(InvalidSectioning):
            build_document("D", "one two", pages=["one", "zzz"])

    def test_metadata_defaults(self) -> None:
        doc = build_document("D", "x")
        assert doc.metadata.mime_type == "text/plain"
        assert doc.metadata.uploaded_at

    def test_fingerprint_depends_on_content(self) -> None:
        a = build_document("A", "same")
        b = build_document("B", "same")
        c = build_document("C", "other")
        assert a.fingerprint == b.fingerprint
        assert a.fingerprint != c.fingerprint


class TestBuildFromPages:
    def test_join_with_separator(self) -> None:
        doc = build_document_from_pages("D", ["aaa", "bb", "c"])
        assert doc.content == "aaa\n\nbb\n\nc"
        assert doc.page_starts == (0, 5, 9)
        assert doc.page_count == 3

    def test_no_pages_is_one_empty_page(self) -> None:
        doc = build_document_from_pages("D", [])
        assert doc.content == ""
        assert doc.page_count == 1

    def test_custom_separator_and_sections(self) -> None:
        doc = build_document_from_pages("D", ["ab", "cd"], [("S1", 3), ("S2", 2)], separator="|")
        assert doc.content == "ab|cd"
        assert doc.sections[1].content == "cd"


class TestSectionAt:
    @pytest.fixture
    def doc(self) -> Document:
        return build_document("D", "abcdefghij", [("A", 3), ("B", 0), ("C", 7)])

    def test_boundaries(self, doc: Document) -> None:
        assert section_at(doc, 0).section_id == "1"
        assert section_at(doc, 2).section_id == "1"
        # Empty section "2" never contains a position.
        assert section_at(doc, 3).section_id == "3"
        assert section_at(doc, 9).section_id == "3"

    def test_out_of_range(self, doc: Document) -> None:
        with pytest.raises(OutOfRange):
            section_at(doc, 10)
        with pytest.raises(OutOfRange):
            section_at(doc, -1)

    def test_every_offset_maps_to_a_covering_section(self, doc: Document) -> None:
        for offset in range(len(doc.content)):
            assert doc.section_at(offset).span.contains(offset)

    def test_sections_overlapping(self, doc: Document) -> None:
        hits = doc.sections_overlapping(TextRange(2, 5))
        assert [s.section_id for s in hits] == ["1", "3"]

    def test_point_at_end_selects_last_section(self, doc: Document) -> None:
        hits = doc.sections_overlapping(TextRange(10, 10))
        assert [s.section_id for s in hits] == ["3"]


class TestPages:
    def test_page_at(self) -> None:
        doc = build_document_from_pages("D", ["aaa", "bb"])
        assert page_at(doc, 0) == 0
        assert page_at(doc, 4) == 0    # separator belongs to the preceding page
        assert page_at(doc, 5) == 1
        assert page_at(doc, 100) == 1

    def test_page_at_negative(self) -> None:
        doc = build_document("D", "abc")
        with pytest.raises(OutOfRange):
            page_at(doc, -1)

    def test_page_span_bad_index(self) -> None:
        doc = build_document("D", "abc")
        assert page_span(doc, 0) == TextRange(0, 3)
        with pytest.raises(OutOfRange):
            doc.page_span(1)

    def test_clamp_page(self) -> None:
        doc = build_document_from_pages("D", ["a", "b", "c"])
        assert doc.clamp_page(-3) == 0
        assert doc.clamp_page(99) == 2

    def test_unsorted_pages_rejected(self) -> None:
        sec = Section("1", "A", "abc", 0)
        with pytest.raises(InvalidSectioning):
            Document.from_sections("D", "abc", [sec], page_starts=(0, 2, 1))

    def test_first_page_must_start_at_zero(self) -> None:
        sec = Section("1", "A", "abc", 0)
        with pytest.raises(InvalidSectioning):
            Document.from_sections("D", "abc", [sec], page_starts=(1,))

    def test_page_past_content_rejected(self) -> None:
        sec = Section("1", "A", "0123456789", 0)
        with pytest.raises(InvalidSectioning, match="past document end 10"):
            Document.from_sections("D", "0123456789", [sec], page_starts=(0, 100))

    def test_page_at_content_end_is_empty(self) -> None:
        sec = Section("1", "A", "abc", 0)
        doc = Document.from_sections("D", "abc", [sec], page_starts=(0, 3))
        assert doc.pages == ("abc", "")


class TestExternalSections:
    def test_gap_reported(self) -> None:
        doc = Document.from_sections(
            "D", "abcdef", [Section("a", "A", "ab", 0), Section("b", "B", "ef", 4)],
        )
        problems = doc.tiling_problems()
        assert any("gap 2-4" in p for p in problems)
        with pytest.raises(OutOfRange):
            doc.section_at(3)

    def test_negative_offset_rejected(self) -> None:
        sections = [Section("1", "A", "01234", -3), Section("2", "B", "56789", 5)]
        with pytest.raises(InvalidSectioning, match="negative offset"):
            Document.from_sections("T", "0123456789", sections)

    def test_overlap_and_overrun_reported(self) -> None:
        doc = Document.from_sections(
            "D", "abcdef", [Section("a", "A", "abcd", 0), Section("b", "B", "defgh", 3)],
        )
        problems = doc.tiling_problems()
        assert any("overlaps previous section at 3" in p for p in problems)
        assert any("past document end 6" in p for p in problems)
        assert doc.section_at(1).section_id == "a"

    def test_section_lookup(self) -> None:
        doc = build_document("D", "abc")
        assert doc.section("1").content == "abc"
        assert doc.has_section("1")
        with pytest.raises(DanglingReference):
            doc.section("nope")

    def test_local_global_translation(self) -> None:
        doc = build_document("D", "abcdef", [("A", 2), ("B", 4)])
        sec = doc.section("2")
        assert sec.to_global(TextRange(1, 3)) == TextRange(3, 5)
        assert sec.to_local(TextRange(3, 5)) == TextRange(1, 3)
        with pytest.raises(OutOfRange):
            sec.to_global(TextRange(0, 5))
        with pytest.raises(OutOfRange):
            sec.to_local(TextRange(0, 3))


class TestAttachAnalysis:
    def test_returns_new_snapshot(self) -> None:
        doc = build_document("D", "abcdef", [("A", 2), ("B", 4)])
        analysis = Analysis(issues=(_issue("i1", "2", 0, 4),), overall_score=5.0)
        updated = attach_analysis(doc, analysis)
        assert updated.analysis is analysis
        assert doc.analysis is None
        assert updated.is_analyzed and not doc.is_analyzed
        assert updated.sections == doc.sections

    def test_unknown_section_raises_with_targets(self) -> None:
        doc = build_document("D", "abcdef")
        analysis = Analysis(
            issues=(_issue("ok", "1", 0, 1), _issue("bad", "9", 0, 1)),
            overall_score=5.0,
        )
        with pytest.raises(DanglingReference) as exc_info:
            attach_analysis(doc, analysis)
        assert exc_info.value.targets == ("bad",)

    def test_range_past_section_end(self) -> None:
        doc = build_document("D", "abcdef", [("A", 2), ("B", 4)])
        analysis = Analysis(issues=(_issue("long", "1", 0, 3),), overall_score=5.0)
        with pytest.raises(DanglingReference) as exc_info:
            attach_analysis(doc, analysis)
        assert exc_info.value.targets == ("long",)

    def test_point_at_section_end_is_fine(self) -> None:
        doc = build_document("D", "abc")
        analysis = Analysis(issues=(_issue("p", "1", 3, 3),), overall_score=5.0)
        assert attach_analysis(doc, analysis).analysis is analysis
