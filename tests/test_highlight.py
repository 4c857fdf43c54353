"""Tests for glubook.highlight."""
import pytest

from glubook.annotations import Analysis, Issue
from glubook.config import ReviewConfig
from glubook.document import attach_analysis, build_document
from glubook.errors import OutOfRange
from glubook.highlight import highlight_document, highlight_section, render_html
from glubook.spans import TextRange

TEXT = "The cat sat. The cat ran."


def _issue(issue_id: str, start: int, end: int, severity: str, section_id: str = "1") -> Issue:
    return Issue(
        issue_id=issue_id,
        issue_type="logic",
        severity=severity,
        title="",
        description="",
        suggestion="",
        section_id=section_id,
        span=TextRange(start, end),
    )


class TestHighlightSection:
    def test_overlapping_issues(self) -> None:
        i1 = _issue("i1", 0, 12, "moderate")
        i2 = _issue("i2", 9, 16, "critical")
        hs = highlight_section(TEXT, [i1, i2])
        spans = [(s.span.start, s.span.end) for s in hs.segments]
        assert spans == [(0, 9), (9, 12), (12, 16), (16, 25)]
        assert [s.issue_ids for s in hs.segments] == [("i1",), ("i1", "i2"), ("i2",), ()]
        assert [s.severity for s in hs.segments] == ["moderate", "critical", "critical", None]
        assert hs.text == TEXT

    def test_no_issues_single_segment(self) -> None:
        hs = highlight_section(TEXT, [])
        assert len(hs.segments) == 1
        assert hs.segments[0].text == TEXT
        assert not hs.segments[0].is_highlighted

    def test_empty_text(self) -> None:
        hs = highlight_section("", [])
        assert hs.text == ""
        assert len(hs.segments) == 1

    def test_point_issue_becomes_marker(self) -> None:
        hs = highlight_section(TEXT, [_issue("p", 4, 4, "minor")])
        assert hs.text == TEXT
        assert all(not s.issue_ids for s in hs.segments)
        assert [(m.offset, m.issue_id) for m in hs.markers] == [(4, "p")]
        assert hs.issues_at(4) == ("p",)

    def test_point_issue_at_end(self) -> None:
        hs = highlight_section(TEXT, [_issue("p", 25, 25, "minor")])
        assert hs.markers[0].offset == 25

    def test_range_past_end(self) -> None:
        with pytest.raises(OutOfRange):
            highlight_section(TEXT, [_issue("x", 20, 30, "minor")])

    def test_nested_and_identical_ranges(self) -> None:
        outer = _issue("outer", 0, 25, "minor")
        inner = _issue("inner", 4, 7, "moderate")
        twin = _issue("twin", 4, 7, "moderate")
        hs = highlight_section(TEXT, [outer, inner, twin])
        middle = hs.segments_for("inner")
        assert len(middle) == 1
        assert middle[0].issue_ids == ("outer", "inner", "twin")
        assert middle[0].severity == "moderate"
        assert hs.text == TEXT

    def test_tie_keeps_first_produced(self) -> None:
        a = _issue("a", 0, 5, "critical")
        b = _issue("b", 0, 5, "critical")
        hs = highlight_section(TEXT, [a, b])
        assert hs.segments[0].issue_ids == ("a", "b")
        assert hs.segments[0].severity == "critical"

    def test_partition_has_no_gaps(self) -> None:
        issues = [
            _issue("1", 0, 3, "minor"),
            _issue("2", 2, 10, "moderate"),
            _issue("3", 8, 8, "critical"),
            _issue("4", 9, 25, "critical"),
        ]
        hs = highlight_section(TEXT, issues)
        cursor = 0
        for seg in hs.segments:
            assert seg.span.start == cursor
            assert seg.text == TEXT[seg.span.start:seg.span.end]
            cursor = seg.span.end
        assert cursor == len(TEXT)

    def test_every_overlapping_pair_shares_a_segment(self) -> None:
        issues = [
            _issue("1", 0, 6, "minor"),
            _issue("2", 5, 12, "moderate"),
            _issue("3", 11, 20, "critical"),
        ]
        hs = highlight_section(TEXT, issues)
        for a in issues:
            for b in issues:
                if a is not b and a.span.overlaps(b.span):
                    assert any(
                        a.issue_id in s.issue_ids and b.issue_id in s.issue_ids
                        for s in hs.segments
                    )

    def test_selected(self) -> None:
        hs = highlight_section(
            TEXT, [_issue("i1", 0, 12, "moderate"), _issue("i2", 9, 16, "critical")],
            selected_issue_id="i2",
        )
        assert [s.selected for s in hs.segments] == [False, True, True, False]


class TestHighlightDocument:
    def test_per_section(self) -> None:
        doc = build_document("D", TEXT, [("First", 12), ("Second", 13)])
        analysis = Analysis(
            issues=(_issue("x", 5, 8, "minor", section_id="2"),),
            overall_score=5.0,
        )
        out = highlight_document(attach_analysis(doc, analysis))
        assert [h.section_id for h in out] == ["1", "2"]
        assert len(out[0].segments) == 1
        assert out[1].segments_for("x")[0].text == "cat"

    def test_unanalyzed(self) -> None:
        out = highlight_document(build_document("D", TEXT))
        assert out[0].text == TEXT


class TestRenderHtml:
    def test_escapes_and_classes(self) -> None:
        text = "a < b & c"
        hs = highlight_section(text, [_issue("i1", 2, 3, "critical")], selected_issue_id="i1")
        out = render_html(hs)
        assert out.startswith("a ")
        assert "&lt;" in out
        assert "&amp;" in out
        assert "bg-red-100 border-l-4 border-red-400" in out
        assert "ring-2 ring-blue-500" in out
        assert 'data-issue-ids="i1"' in out

    def test_marker_before_segment(self) -> None:
        hs = highlight_section("abcd", [_issue("p", 2, 2, "minor")])
        out = render_html(hs, ReviewConfig(marker_glyph="^"))
        assert out.index('data-issue-id="p"') < out.index("cd")
        assert "^" in out

    def test_marker_at_end(self) -> None:
        hs = highlight_section("abcd", [_issue("p", 4, 4, "minor")])
        out = render_html(hs)
        assert out.startswith("abcd")
        assert out.endswith("</span>")
