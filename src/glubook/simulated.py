"""Stand-in analysis service and response generator.

Both are deterministic and only sleep for their configured latency, which
makes them usable for demos, the CLI and tests. Real services implement the
same ``analyze`` / ``respond`` coroutines (see ``glubook.session``).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from glubook.annotations import (
    ISSUE_LOGIC,
    ISSUE_REPETITION,
    ISSUE_TONE,
    SEVERITY_CRITICAL,
    SEVERITY_MINOR,
    SEVERITY_MODERATE,
    Analysis,
    Issue,
    sorted_by_position,
)
from glubook.config import DEFAULT_CONFIG, ReviewConfig
from glubook.conversation import Message
from glubook.document import Document
from glubook.locations import Reference
from glubook.spans import TextRange

log = logging.getLogger(__name__)

# Issue templates: (id, type, severity, title, description, suggestion,
# section position, start, end). Offsets assume a section of _REFERENCE_LENGTH
# characters and are scaled down for shorter ones.
_ISSUE_TEMPLATES = (
    (
        "1", ISSUE_TONE, SEVERITY_MODERATE,
        "Tone Inconsistency",
        "The tone shifts from formal to casual mid-paragraph.",
        "Maintain consistent formal tone throughout this section.",
        0, 150, 300,
    ),
    (
        "2", ISSUE_REPETITION, SEVERITY_MINOR,
        "Repetitive Phrasing",
        'The phrase "in conclusion" appears multiple times.',
        'Use varied transitional phrases like "ultimately" or "to summarize".',
        1, 450, 500,
    ),
    (
        "3", ISSUE_LOGIC, SEVERITY_CRITICAL,
        "Logical Gap",
        "Argument jumps to conclusion without supporting evidence.",
        "Add transitional paragraph with supporting data or examples.",
        0, 800, 950,
    ),
)
_REFERENCE_LENGTH = 1000

SIMULATED_SCORE = 7.3
SIMULATED_STRENGTHS = (
    "Strong opening hook",
    "Clear thesis statement",
    "Good use of examples",
)
SIMULATED_SUGGESTIONS = (
    "Strengthen transitions between paragraphs",
    "Add more supporting evidence",
    "Vary sentence structure",
)

CALM_PREFIX = "Hey, here's something I noticed. Want to take a look together?\n\n"
RESPECT_PREFIX = "Looks like you've put solid thought into this section.\n\n"
SUGGESTIVE_SUFFIX = (
    "\n\nHere's one way to improve this… Or you might prefer to keep it, totally your call."
)


def _fit(start: int, end: int, length: int) -> TextRange:
    if end <= length:
        return TextRange(start, end)
    return TextRange(start * length // _REFERENCE_LENGTH, end * length // _REFERENCE_LENGTH)


def simulated_analysis(document: Document) -> Analysis:
    """The fixed three-issue analysis, fitted to ``document``'s sections."""
    issues: list[Issue] = []
    for issue_id, kind, severity, title, desc, suggestion, pos, start, end in _ISSUE_TEMPLATES:
        section = document.sections[min(pos, len(document.sections) - 1)]
        issues.append(Issue(
            issue_id=issue_id,
            issue_type=kind,
            severity=severity,
            title=title,
            description=desc,
            suggestion=suggestion,
            section_id=section.section_id,
            span=_fit(start, end, len(section.content)),
        ))
    return Analysis(
        issues=tuple(issues),
        overall_score=SIMULATED_SCORE,
        strengths=SIMULATED_STRENGTHS,
        suggestions=SIMULATED_SUGGESTIONS,
    )


class SimulatedAnalysisService:
    """Returns ``simulated_analysis`` after ``config.analysis_latency_sec``."""

    def __init__(self, config: ReviewConfig = DEFAULT_CONFIG) -> None:
        self._latency = config.analysis_latency_sec
        self.calls = 0

    async def analyze(self, document: Document) -> Analysis:
        self.calls += 1
        log.debug("Simulated analysis of %s (%.2fs)", document.doc_id, self._latency)
        await asyncio.sleep(self._latency)
        return simulated_analysis(document)


class StaticAnalysisService:
    """Serves an analysis loaded from elsewhere (e.g. a saved JSON payload)."""

    def __init__(self, analysis: Analysis, *, latency_sec: float = 0.0) -> None:
        self._analysis = analysis
        self._latency = latency_sec

    async def analyze(self, document: Document) -> Analysis:
        await asyncio.sleep(self._latency)
        return self._analysis


class SimulatedResponder:
    """Keyword-routed canned replies.

    ``summary``/``summarize``, ``find``/``search``, ``contradiction``,
    ``issue``/``problem`` get their own templates; anything else gets the
    generic one. Page references are always the first three pages, clamped
    or not, exactly as a generator guessing page numbers would produce them.
    """

    def __init__(self, config: ReviewConfig = DEFAULT_CONFIG) -> None:
        self._latency = config.response_latency_sec
        self.calls = 0

    async def respond(
        self,
        conversation: tuple[Message, ...],
        document: Document,
        new_user_text: str,
    ) -> tuple[str, Sequence[Reference]]:
        self.calls += 1
        await asyncio.sleep(self._latency)
        body, refs = _route(document, new_user_text)
        return CALM_PREFIX + RESPECT_PREFIX + body + SUGGESTIVE_SUFFIX, refs


def _first_pages() -> list[Reference]:
    return [Reference.page(i) for i in (0, 1, 2)]


def _route(document: Document, text: str) -> tuple[str, list[Reference]]:
    query = text.lower()
    if "summary" in query or "summarize" in query:
        return (
            f"Here's a summary of your document \"{document.title}\":\n\n"
            f"The document contains {document.page_count} pages covering various topics. "
            "Key themes include detailed analysis and comprehensive coverage of the subject matter.\n\n"
            "**Main Points:**\n"
            "• Introduction and overview (Page 1)\n"
            "• Core concepts and methodology (Page 2-3)\n"
            "• Detailed analysis and findings (Page 4+)",
            _first_pages(),
        )
    if "find" in query or "search" in query:
        return (
            "I found relevant content across several pages:\n\n"
            "**Page 1:** Contains introductory material related to your query\n"
            "**Page 2:** Discusses core concepts that match your search\n"
            "**Page 3:** Provides detailed analysis on the topic\n\n"
            "Click the page links above to jump directly to the relevant sections.",
            _first_pages(),
        )
    if "contradiction" in query:
        return (
            "I've analyzed the document for potential contradictions:\n\n"
            "**No major contradictions detected** ✅\n\n"
            "The document maintains consistency in:\n"
            "• Terminology usage\n"
            "• Data references\n"
            "• Argument flow\n\n"
            "All statements appear to be logically consistent throughout the document.",
            [],
        )
    if ("issue" in query or "problem" in query) and document.analysis is not None:
        issues = sorted_by_position(document.analysis.issues)
        lines = [f"• {i.title} ({i.severity}): {i.suggestion}" for i in issues]
        return (
            f"Here are the {len(issues)} things I flagged:\n\n" + "\n".join(lines),
            [Reference.issue(i.issue_id) for i in issues],
        )
    return (
        f"I understand you're asking about \"{text}\". Based on my analysis of "
        f"\"{document.title}\", I can help you with specific information.\n\n"
        "The document contains relevant information on pages 1-3. Would you like me to:\n"
        "• Provide more specific details?\n"
        "• Find exact quotes?\n"
        "• Summarize related sections?\n\n"
        "Feel free to ask more specific questions!",
        _first_pages(),
    )
