"""Range primitive and result type shared by every layer.

Type hierarchy:
  Ok[T] / Err[E]  Strict algebraic Result type
  TextRange       Half-open [start, end) interval over a text buffer

Offsets are character positions (Python ``str`` indices). Whether a range
is section-local or document-global is decided by the owner, never by the
range itself: ``Issue.span`` is section-local, ``Section.span`` is global.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")

# ---------------------------------------------------------------------------
# Result ADT: strict Ok/Err
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Success case of Result[T, E].

    Usage::

        result: Result[Location, DanglingReference] = Ok(location)
        match result:
            case Ok(value=v): print(v.page_index)
            case Err(error=e): print(e)
    """
    value: T


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Failure case of Result[T, E].

    Keeps the typed failure. A reference produced by the response generator
    that points at nothing is something the user must see, not a silent None.
    """
    error: E


Result = Union[Ok[T], Err[E]]


# ---------------------------------------------------------------------------
# TextRange: half-open character interval
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class TextRange:
    """Half-open character interval ``[start, end)``.

    Invariants (enforced in __post_init__):
        - start >= 0
        - end >= start

    A zero-length range is a valid *point* (a caret position). Under the
    strict overlap test a point overlaps nothing, not even itself.
    """
    start: int
    end: int

    def __post_init__(self) -> None:
        """Validate structural invariants at construction time."""
        if self.start < 0:
            raise ValueError(f"TextRange.start must be >= 0, got {self.start}")
        if self.end < self.start:
            raise ValueError(
                f"TextRange.end ({self.end}) must be >= start ({self.start})"
            )

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def is_point(self) -> bool:
        return self.start == self.end

    def overlaps(self, other: TextRange) -> bool:
        """Strict overlap: the two ranges share at least one character."""
        if self.is_point or other.is_point:
            return False
        return self.start < other.end and other.start < self.end

    def contains(self, offset: int) -> bool:
        """True when ``offset`` addresses a character inside the range."""
        return self.start <= offset < self.end

    def covers(self, other: TextRange) -> bool:
        """True when ``other`` lies entirely within this range."""
        return self.start <= other.start and other.end <= self.end

    def shift(self, delta: int) -> TextRange:
        """Translate by ``delta`` (negative moves left). Raises on underflow."""
        return TextRange(self.start + delta, self.end + delta)

    def slice(self, text: str) -> str:
        return text[self.start:self.end]

    def __repr__(self) -> str:
        return f"TextRange({self.start}, {self.end})"


def overlaps(a: TextRange, b: TextRange) -> bool:
    """Module-level spelling of :meth:`TextRange.overlaps`."""
    return a.overlaps(b)
