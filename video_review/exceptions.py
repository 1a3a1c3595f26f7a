"""
Exception hierarchy for the video review service.

Every error that can end an analysis job carries an ErrorKind so the
status API can report a machine-readable cause next to the message.

Dependencies: None (pure domain layer)
System role: Centralized exception handling across the application
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    INVALID_REQUEST = "InvalidRequest"
    EXTERNAL_CALL_FAILED = "ExternalCallFailed"
    CONTENT_BLOCKED = "ContentBlocked"
    NO_STRUCTURED_DATA = "NoStructuredData"
    MISSING_FIELD = "MissingField"
    PERSISTENCE_FAILED = "PersistenceFailed"
    JOB_CONFLICT = "JobConflict"


class VideoReviewError(Exception):
    """Base exception for all video review errors."""

    kind: ErrorKind = ErrorKind.EXTERNAL_CALL_FAILED

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        if kind is not None:
            self.kind = kind
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class InvalidRequestError(VideoReviewError):
    """Raised synchronously when a submission is missing required input."""

    kind = ErrorKind.INVALID_REQUEST

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        details = {"field": field} if field else {}
        super().__init__(message, details=details)


class JobConflictError(VideoReviewError):
    """Raised when a job id is already tracked or already has a stored result."""

    kind = ErrorKind.JOB_CONFLICT

    def __init__(self, job_id: str) -> None:
        super().__init__(
            f"Analysis '{job_id}' already exists; use a new analysis ID",
            details={"job_id": job_id},
        )


class ExternalCallError(VideoReviewError):
    """Network, timeout or service failure from the analysis model."""

    kind = ErrorKind.EXTERNAL_CALL_FAILED


class ContentBlockedError(VideoReviewError):
    """The analysis model declined the video under its safety policy."""

    kind = ErrorKind.CONTENT_BLOCKED

    def __init__(self, reason: str) -> None:
        super().__init__(
            "The video was blocked by the analysis model's content policy "
            f"(reason: {reason}). Review the video content and try again.",
            details={"reason": reason},
        )


class ResponseParseError(VideoReviewError):
    """The model response could not be turned into any usable result."""

    def __init__(self, message: str, kind: ErrorKind, field: Optional[str] = None) -> None:
        details = {"field": field} if field else {}
        super().__init__(message, kind=kind, details=details)


class PersistenceError(VideoReviewError):
    """Writing or reading the result store failed."""

    kind = ErrorKind.PERSISTENCE_FAILED


class IncompleteRecordError(PersistenceError):
    """A stored record exists but is mid-write or unreadable."""
