"""Review report export: JSON snapshot and standalone HTML page."""

from __future__ import annotations

import html
import logging
from pathlib import Path
from typing import Any

from glubook.annotations import issue_counts
from glubook.config import DEFAULT_CONFIG, ReviewConfig
from glubook.conversation import ConversationLog
from glubook.document import Document
from glubook.highlight import HighlightedSection, highlight_document, render_html
from glubook.io_utils import save_json, save_jsonl
from glubook.locations import LocationResolver
from glubook.spans import Ok

log = logging.getLogger(__name__)

REPORT_VERSION = "1.0"


def _section_entry(hs: HighlightedSection, title: str, count: int) -> dict[str, Any]:
    return {
        "id": hs.section_id,
        "title": title,
        "issueCount": count,
        "segments": [
            {
                "start": s.span.start,
                "end": s.span.end,
                "issueIds": list(s.issue_ids),
                "severity": s.severity,
                "selected": s.selected,
            }
            for s in hs.segments
        ],
        "markers": [
            {"offset": m.offset, "issueId": m.issue_id, "severity": m.severity}
            for m in hs.markers
        ],
    }


def build_review_report(
    document: Document,
    conversation: ConversationLog | None = None,
    *,
    selected_issue_id: str | None = None,
) -> dict[str, Any]:
    """Everything the workspace shows for ``document``, as plain JSON data.

    Message references are resolved; dangling ones are reported with their
    error instead of a location.
    """
    resolver = LocationResolver(document)
    counts = issue_counts(document.analysis) if document.analysis else {}
    highlighted = highlight_document(document, selected_issue_id=selected_issue_id)

    messages: list[dict[str, Any]] = []
    for msg in conversation or ():
        entry = msg.to_dict()
        resolved: list[dict[str, Any]] = []
        for ref, result in zip(msg.references, resolver.resolve_all(msg.references)):
            if isinstance(result, Ok):
                loc = result.value
                resolved.append({
                    "label": ref.label(),
                    "pageIndex": loc.page_index,
                    "sectionId": loc.section_id,
                    "anchor": loc.scroll_anchor,
                })
            else:
                resolved.append({"label": ref.label(), "error": str(result.error)})
        entry["resolved"] = resolved
        messages.append(entry)

    return {
        "version": REPORT_VERSION,
        "document": {
            "id": document.doc_id,
            "title": document.title,
            "fingerprint": document.fingerprint,
            "length": len(document.content),
            "pageCount": document.page_count,
            "metadata": document.metadata.to_dict(),
        },
        "sections": [
            _section_entry(hs, sec.title, counts.get(sec.section_id, 0))
            for hs, sec in zip(highlighted, document.sections)
        ],
        "pages": [
            {
                "index": view.page_index,
                "start": view.span.start,
                "end": view.span.end,
                "sectionIds": list(view.section_ids),
                "issueIds": list(view.issue_ids),
            }
            for view in (resolver.view_page(i) for i in range(document.page_count))
        ],
        "analysis": document.analysis.to_dict() if document.analysis else None,
        "messages": messages,
    }


def render_review_html(
    document: Document,
    config: ReviewConfig = DEFAULT_CONFIG,
    *,
    selected_issue_id: str | None = None,
) -> str:
    """Standalone HTML page: one block per section with its issue badge."""
    counts = issue_counts(document.analysis) if document.analysis else {}
    blocks: list[str] = []
    for hs, sec in zip(highlight_document(document, selected_issue_id=selected_issue_id), document.sections):
        badge = ""
        if counts.get(sec.section_id):
            badge = f' <span class="issue-count">{counts[sec.section_id]}</span>'
        blocks.append(
            f'<section id="section-{html.escape(sec.section_id)}">'
            f"<h2>{html.escape(sec.title)}{badge}</h2>"
            f'<div class="whitespace-pre-wrap">{render_html(hs, config)}</div>'
            "</section>"
        )
    title = html.escape(document.title)
    return (
        "<!DOCTYPE html>\n"
        f'<html><head><meta charset="utf-8"><title>{title}</title></head>'
        f"<body><h1>{title}</h1>{''.join(blocks)}</body></html>\n"
    )


def save_review_report(report: dict[str, Any], path: Path) -> None:
    save_json(report, path)
    log.info("Wrote review report to %s", path)


def save_transcript(conversation: ConversationLog, path: Path) -> None:
    """Conversation as JSON Lines, one message per line."""
    save_jsonl([m.to_dict() for m in conversation], path)
    log.info("Wrote %d messages to %s", len(conversation), path)
