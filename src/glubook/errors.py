"""Exception taxonomy for the review core.

InvalidSectioning and DanglingReference mean an external collaborator handed
us inconsistent data; they are raised, never filtered away. OutOfRange on page
navigation is recovered by clamping at the call site. AnalysisFailed and
GenerationFailed are retryable. StaleResponse marks a result that arrived for
a document the user has already left; the session discards it.
"""

from __future__ import annotations


class ReviewError(Exception):
    """Base class for every error raised by glubook."""


class InvalidSectioning(ReviewError, ValueError):
    """Section lengths or page texts do not tile the document content."""


class OutOfRange(ReviewError, IndexError):
    """An offset, range or page index lies outside its bounds."""


class NotFound(ReviewError, LookupError):
    """Lookup by id found nothing."""


class DanglingReference(NotFound):
    """An Issue or Reference points at a section, issue or page that does not exist."""

    def __init__(self, message: str, *, targets: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.targets = targets


class AnalysisFailed(ReviewError, RuntimeError):
    """The analysis service could not produce an Analysis."""

    retryable = True


class GenerationFailed(ReviewError, RuntimeError):
    """The response generator could not produce a reply."""

    retryable = True


class StaleResponse(ReviewError):
    """A collaborator result arrived for a document that is no longer current."""

    def __init__(self, doc_id: str, started_epoch: int, current_epoch: int) -> None:
        super().__init__(
            f"Response for document {doc_id!r} started in epoch {started_epoch} "
            f"arrived in epoch {current_epoch}"
        )
        self.doc_id = doc_id
        self.started_epoch = started_epoch
        self.current_epoch = current_epoch
