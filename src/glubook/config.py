"""Review configuration, loaded from JSON.

Keeps latency knobs, rendering classes and chat behaviour out of the code:
changing how the workspace looks or how slow the simulated services feel
means editing a review_config.json, not the modules that read it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import orjson

# CSS classes of the web client, keyed by severity.
DEFAULT_SEVERITY_CLASSES: dict[str, str] = {
    "critical": "bg-red-100 border-l-4 border-red-400",
    "moderate": "bg-yellow-100 border-l-4 border-yellow-400",
    "minor": "bg-blue-100 border-l-4 border-blue-400",
}


@dataclass(slots=True)
class ReviewConfig:
    """Tunable behaviour of a review session and its renderers."""
    analysis_latency_sec: float = 3.0      # Simulated analysis delay
    response_latency_sec: float = 1.5      # Simulated reply delay
    typing_chunk_chars: int = 0            # 0 = insert replies whole, >0 = stream in chunks
    typing_delay_sec: float = 0.02         # Pause between streamed chunks
    page_separator: str = "\n\n"
    default_section_title: str = "Document"
    announce_analysis: bool = True         # Post a summary message when analysis lands
    greet_on_open: bool = True             # Post the assistant greeting on open
    highlight_class: str = "issue-highlight"
    marker_class: str = "issue-marker"
    marker_glyph: str = "‸"           # Caret for zero-width issues
    selected_class: str = "ring-2 ring-blue-500"
    severity_classes: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_SEVERITY_CLASSES),
    )

    def __post_init__(self) -> None:
        if self.analysis_latency_sec < 0 or self.response_latency_sec < 0:
            raise ValueError("Latencies must be >= 0")
        if self.typing_chunk_chars < 0:
            raise ValueError(
                f"typing_chunk_chars must be >= 0, got {self.typing_chunk_chars}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReviewConfig:
        """Build from a parsed JSON object; unknown keys are rejected."""
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown review config keys: {', '.join(unknown)}")
        classes = dict(DEFAULT_SEVERITY_CLASSES)
        classes.update(data.get("severity_classes", {}))
        fields = {k: v for k, v in data.items() if k != "severity_classes"}
        return cls(severity_classes=classes, **fields)

    @classmethod
    def from_json(cls, path: Path) -> ReviewConfig:
        """Load from a review_config.json file."""
        return cls.from_dict(orjson.loads(path.read_bytes()))

    def severity_class(self, severity: str) -> str:
        return self.severity_classes.get(severity, "")


DEFAULT_CONFIG = ReviewConfig()
