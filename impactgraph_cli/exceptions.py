"""Exception hierarchy for the impact analysis engine."""

from __future__ import annotations

from typing import Optional


class ImpactGraphError(Exception):
    """Base exception for all ImpactGraph errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details


# ------------------------------------------------------------------
# Input errors: rejected before a run row exists
# ------------------------------------------------------------------

class InputError(ImpactGraphError):
    """Analysis request rejected synchronously."""


class ArtefactNotFound(InputError):
    """The artefact to analyse does not exist."""


class EmptyContent(InputError):
    """The artefact (or comparison document) has no content."""


class UnsupportedDocumentFormat(InputError):
    """The uploaded comparison document is not a supported text format."""


class DocumentTooLarge(InputError):
    """The uploaded comparison document exceeds the configured size."""


# ------------------------------------------------------------------
# Validation / lookup errors
# ------------------------------------------------------------------

class ValidationError(ImpactGraphError):
    """Local validation failure; never turns into a run failure."""


class InvalidReviewStatus(ValidationError):
    """Unknown review status name."""


class InvalidTransition(ValidationError):
    """Review status change not allowed from the current state."""

    def __init__(self, current: str, target: str):
        super().__init__(
            f"Cannot move impact item from '{current}' to '{target}'",
            details={"current": current, "target": target},
        )
        self.current = current
        self.target = target


class InvalidEdge(ValidationError):
    """Linkage edge rejected (self-reference, bad confidence, unknown type)."""


class InvalidSuggestion(ValidationError):
    """Link suggestion payload rejected."""


class NotFound(ImpactGraphError):
    """A requested row does not exist."""


class RunNotFound(NotFound):
    pass


class ItemNotFound(NotFound):
    pass


class EdgeNotFound(NotFound):
    pass


class SuggestionNotFound(NotFound):
    pass


class SuggestionAlreadyResolved(ImpactGraphError):
    """Accept/reject called on a suggestion that is no longer pending."""

    def __init__(self, suggestion_id: str, status: str):
        super().__init__(
            f"Suggestion {suggestion_id} is already {status}",
            details={"suggestion_id": suggestion_id, "status": status},
        )
        self.suggestion_id = suggestion_id
        self.status = status


# ------------------------------------------------------------------
# Oracle errors: isolated per target by the classifier
# ------------------------------------------------------------------

class OracleError(ImpactGraphError):
    """The classifier or link-suggestion oracle could not answer."""


class OracleTimeout(OracleError):
    pass


class MalformedOracleResponse(OracleError):
    pass


class RunFailed(ImpactGraphError):
    """Unrecoverable error inside a run; recorded on the run, never raised to callers."""
