"""Issues, analyses and the queries the UI runs over them.

An Analysis is produced in bulk by the external analysis service and is
immutable afterwards. Issue order inside an Analysis is the order the service
produced them; every query here preserves it. Callers that need positional
order call ``sorted_by_position`` explicitly.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from glubook.errors import NotFound
from glubook.spans import TextRange

if TYPE_CHECKING:
    from glubook.document import Document

# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------

ISSUE_TONE = "tone"
ISSUE_LOGIC = "logic"
ISSUE_REPETITION = "repetition"
ISSUE_TRANSITION = "transition"
ISSUE_ARGUMENT = "argument"

ALL_ISSUE_TYPES = (
    ISSUE_TONE, ISSUE_LOGIC, ISSUE_REPETITION, ISSUE_TRANSITION, ISSUE_ARGUMENT,
)

SEVERITY_CRITICAL = "critical"
SEVERITY_MODERATE = "moderate"
SEVERITY_MINOR = "minor"

# Highest first.
ALL_SEVERITIES = (SEVERITY_CRITICAL, SEVERITY_MODERATE, SEVERITY_MINOR)

SEVERITY_RANK: dict[str, int] = {
    SEVERITY_CRITICAL: 3,
    SEVERITY_MODERATE: 2,
    SEVERITY_MINOR: 1,
}


def severity_rank(severity: str) -> int:
    """Numeric rank of a severity; higher is more severe."""
    return SEVERITY_RANK[severity]


# ---------------------------------------------------------------------------
# Issue / Analysis
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Issue:
    """A range-anchored finding. ``span`` is local to the section it names."""
    issue_id: str
    issue_type: str     # One of ALL_ISSUE_TYPES
    severity: str       # One of ALL_SEVERITIES
    title: str
    description: str
    suggestion: str
    section_id: str
    span: TextRange     # Section-local [start, end)

    def __post_init__(self) -> None:
        if self.issue_type not in ALL_ISSUE_TYPES:
            raise ValueError(
                f"Issue.issue_type must be one of {ALL_ISSUE_TYPES}, "
                f"got {self.issue_type!r}"
            )
        if self.severity not in SEVERITY_RANK:
            raise ValueError(
                f"Issue.severity must be one of {ALL_SEVERITIES}, "
                f"got {self.severity!r}"
            )

    @property
    def is_point(self) -> bool:
        return self.span.is_point

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Issue:
        """Build from a service payload.

        Accepts either ``{"range": {"start", "end"}}`` or the flat
        ``startIndex``/``endIndex`` keys the web client sends.
        """
        if "range" in data:
            start, end = int(data["range"]["start"]), int(data["range"]["end"])
        else:
            start, end = int(data["startIndex"]), int(data["endIndex"])
        return cls(
            issue_id=str(data["id"]),
            issue_type=data["type"],
            severity=data["severity"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            suggestion=data.get("suggestion", ""),
            section_id=str(data.get("sectionId", data.get("section_id", ""))),
            span=TextRange(start, end),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.issue_id,
            "type": self.issue_type,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "suggestion": self.suggestion,
            "sectionId": self.section_id,
            "range": {"start": self.span.start, "end": self.span.end},
        }


@dataclass(frozen=True, slots=True)
class Analysis:
    """Result of one analysis run over one document snapshot.

    Invariants (enforced in __post_init__):
        - issue ids are unique
    """
    issues: tuple[Issue, ...]
    overall_score: float
    strengths: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    complete: bool = True
    _by_id: dict[str, Issue] = field(
        init=False, repr=False, compare=False, default_factory=dict[str, Issue],
    )

    def __post_init__(self) -> None:
        seen: dict[str, Issue] = {}
        for issue in self.issues:
            if issue.issue_id in seen:
                raise ValueError(f"Duplicate issue id {issue.issue_id!r} in analysis")
            seen[issue.issue_id] = issue
        # frozen dataclass: index is derived state, set once here
        object.__setattr__(self, "_by_id", seen)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Analysis:
        """Build from an analysis-service payload (camelCase or snake_case)."""
        return cls(
            issues=tuple(Issue.from_dict(d) for d in data.get("issues", [])),
            overall_score=float(data.get("overallScore", data.get("overall_score", 0.0))),
            strengths=tuple(data.get("strengths", [])),
            suggestions=tuple(data.get("suggestions", [])),
            complete=bool(data.get("processingComplete", data.get("complete", True))),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues": [i.to_dict() for i in self.issues],
            "overallScore": self.overall_score,
            "strengths": list(self.strengths),
            "suggestions": list(self.suggestions),
            "processingComplete": self.complete,
        }


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def issues_for_section(analysis: Analysis, section_id: str) -> list[Issue]:
    """Issues anchored to ``section_id``, in production order."""
    return [i for i in analysis.issues if i.section_id == section_id]


def issue_by_id(analysis: Analysis, issue_id: str) -> Issue:
    """Lookup an issue; raises NotFound when the id is unknown."""
    issue = analysis._by_id.get(issue_id)
    if issue is None:
        raise NotFound(f"No issue with id {issue_id!r}")
    return issue


def issues_by_severity(analysis: Analysis, severity: str) -> list[Issue]:
    """Issues of exactly ``severity``, in production order."""
    if severity not in SEVERITY_RANK:
        raise ValueError(f"Unknown severity {severity!r}")
    return [i for i in analysis.issues if i.severity == severity]


def issues_at_least(analysis: Analysis, severity: str) -> list[Issue]:
    """Issues at ``severity`` or above, in production order."""
    floor = severity_rank(severity)
    return [i for i in analysis.issues if SEVERITY_RANK[i.severity] >= floor]


def sorted_by_position(issues: list[Issue] | tuple[Issue, ...]) -> list[Issue]:
    """Positional order: start asc, longer first on ties, then severity desc."""
    return sorted(
        issues,
        key=lambda i: (i.span.start, -i.span.end, -SEVERITY_RANK[i.severity]),
    )


def issue_counts(analysis: Analysis) -> Counter[str]:
    """Number of issues per section id (drives the per-section badge)."""
    return Counter(i.section_id for i in analysis.issues)


def check_analysis(document: Document, analysis: Analysis) -> list[str]:
    """Every integrity problem of ``analysis`` against ``document``.

    Returns one human-readable line per offending issue. An issue whose
    section does not exist, or whose range runs past the end of its section,
    is a problem; nothing is dropped silently.
    """
    problems: list[str] = []
    lengths = {s.section_id: len(s.content) for s in document.sections}
    for issue in analysis.issues:
        length = lengths.get(issue.section_id)
        if length is None:
            problems.append(
                f"issue {issue.issue_id!r}: section {issue.section_id!r} does not exist"
            )
        elif issue.span.end > length:
            problems.append(
                f"issue {issue.issue_id!r}: range {issue.span.start}-{issue.span.end} "
                f"exceeds section {issue.section_id!r} length {length}"
            )
    return problems


def offending_issue_ids(document: Document, analysis: Analysis) -> tuple[str, ...]:
    """Ids of the issues ``check_analysis`` complains about."""
    lengths = {s.section_id: len(s.content) for s in document.sections}
    return tuple(
        i.issue_id for i in analysis.issues
        if i.section_id not in lengths or i.span.end > lengths[i.section_id]
    )
