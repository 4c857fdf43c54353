#!/usr/bin/env python3
"""Run a review session over a plain-text draft and print the report.

Pages are split on form feeds (or ``--page-break``). Markdown-style ``#``
heading lines start a new section; text before the first heading goes into
a section titled "Document". Without ``--analysis`` the simulated analysis
service is used.

Usage:
    python3 scripts/review_document.py --input draft.txt

    # Ask questions, write JSON + HTML, no simulated latency
    python3 scripts/review_document.py --input draft.txt --fast \
      --ask "summarize this" --ask "any issues?" \
      --out review.json --html review.html

    # Use an analysis payload produced by a real service
    python3 scripts/review_document.py --input draft.txt --analysis analysis.json
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import orjson

from glubook.annotations import Analysis
from glubook.config import DEFAULT_CONFIG, ReviewConfig
from glubook.document import (
    DEFAULT_SECTION_TITLE,
    Document,
    DocumentMetadata,
    SectionSpec,
    build_document_from_pages,
)
from glubook.io_utils import load_json
from glubook.report import (
    build_review_report,
    render_review_html,
    save_review_report,
    save_transcript,
)
from glubook.session import ANALYSIS_READY, ReviewSession
from glubook.simulated import (
    SimulatedAnalysisService,
    SimulatedResponder,
    StaticAnalysisService,
)

log = logging.getLogger("review_document")


def dump_json(obj: object) -> None:
    sys.stdout.buffer.write(orjson.dumps(obj, option=orjson.OPT_INDENT_2))
    sys.stdout.buffer.write(b"\n")


def heading_sections(content: str, default_title: str = DEFAULT_SECTION_TITLE) -> list[SectionSpec]:
    """Split ``content`` at lines starting with ``#``; lengths tile the text.

    Text before the first heading, and a heading with no words, get
    ``default_title``.
    """
    starts: list[tuple[int, str]] = []
    offset = 0
    for line in content.splitlines(keepends=True):
        if line.startswith("#"):
            starts.append((offset, line.lstrip("#").strip() or default_title))
        offset += len(line)
    if not starts or starts[0][0] != 0:
        starts.insert(0, (0, default_title))
    bounds = [s for s, _ in starts[1:]] + [len(content)]
    return [
        SectionSpec(title, end - start)
        for (start, title), end in zip(starts, bounds)
    ]


def load_document(
    path: Path,
    title: str | None,
    page_break: str,
    separator: str,
    default_title: str = DEFAULT_SECTION_TITLE,
) -> Document:
    raw = path.read_text()
    pages = raw.split(page_break) if page_break else [raw]
    content = separator.join(pages)
    return build_document_from_pages(
        title or path.stem,
        pages,
        heading_sections(content, default_title),
        separator=separator,
        metadata=DocumentMetadata(
            uploaded_at=datetime.now(UTC).isoformat(),
            file_size=path.stat().st_size,
        ),
    )


async def run_review(
    document: Document,
    config: ReviewConfig,
    questions: list[str],
    analysis: Analysis | None = None,
) -> ReviewSession:
    analyzer = (
        StaticAnalysisService(analysis, latency_sec=config.analysis_latency_sec)
        if analysis is not None else SimulatedAnalysisService(config)
    )
    session = ReviewSession(analyzer, SimulatedResponder(config), config=config)
    await session.open_document(document)
    state = await session.wait_for_analysis()
    if state != ANALYSIS_READY:
        log.error("Analysis did not complete: %s", session.analysis_error)
    for question in questions:
        await session.send(question)
    await session.drain()
    for user_id, err in session.failed_turns.items():
        log.error("Turn %s failed: %s", user_id, err)
    return session


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Run a (simulated) editorial review over a text file."
    )
    parser.add_argument("--input", type=Path, required=True, help="Plain-text draft")
    parser.add_argument("--title", default=None, help="Document title (default: file stem)")
    parser.add_argument("--config", type=Path, default=None, help="review_config.json")
    parser.add_argument("--analysis", type=Path, default=None, help="Analysis JSON payload")
    parser.add_argument("--page-break", default="\f", help="Page delimiter in the input")
    parser.add_argument(
        "--ask", action="append", default=[], metavar="QUESTION",
        help="Chat message to send after analysis (repeatable)",
    )
    parser.add_argument("--select", default=None, help="Issue id to mark as selected")
    parser.add_argument("--fast", action="store_true", help="Zero all simulated latency")
    parser.add_argument("--out", type=Path, default=None, help="Write report JSON here")
    parser.add_argument("--html", type=Path, default=None, help="Write highlighted HTML here")
    parser.add_argument("--transcript", type=Path, default=None, help="Write chat as JSONL")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    if not args.input.exists():
        log.error("Input not found: %s", args.input)
        return 1

    config = ReviewConfig.from_json(args.config) if args.config else replace(DEFAULT_CONFIG)
    if args.fast:
        config = replace(config, analysis_latency_sec=0.0, response_latency_sec=0.0, typing_chunk_chars=0)

    analysis = Analysis.from_dict(load_json(args.analysis)) if args.analysis else None
    document = load_document(
        args.input, args.title, args.page_break,
        config.page_separator, config.default_section_title,
    )
    log.info(
        "Loaded %s: %d chars, %d sections, %d pages",
        args.input, len(document.content), len(document.sections), document.page_count,
    )

    session = asyncio.run(run_review(document, config, args.ask, analysis))
    current = session.document or document
    report: dict[str, Any] = build_review_report(
        current, session.conversation, selected_issue_id=args.select,
    )
    report["analysisState"] = session.analysis_state

    if args.out:
        save_review_report(report, args.out)
    if args.html:
        args.html.parent.mkdir(parents=True, exist_ok=True)
        args.html.write_text(render_review_html(current, config, selected_issue_id=args.select))
        log.info("Wrote HTML to %s", args.html)
    if args.transcript:
        save_transcript(session.conversation, args.transcript)
    if not args.out:
        dump_json(report)
    return 0 if session.analysis_state == ANALYSIS_READY else 2


if __name__ == "__main__":
    sys.exit(main())
