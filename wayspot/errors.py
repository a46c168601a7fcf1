"""
Error kinds raised by the discovery, review and trust services.

Every error carries a stable machine-checkable ``kind`` token, the HTTP
status the API layer renders it with, and a human-readable message.
"""
from typing import Any, Optional


class WayspotError(Exception):
    """Base class for all service-level errors."""

    kind = "error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "kind": self.kind,
            "message": self.message,
            "status_code": self.status_code,
            "retryable": self.retryable,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(WayspotError):
    """Caller-fixable input problem (ranges, missing fields, limits)."""

    kind = "validation_error"
    status_code = 400


class NotFoundError(WayspotError):
    kind = "not_found"
    status_code = 404


class ConflictError(WayspotError):
    """Duplicate review, existing profile, or primary mode outside travel modes."""

    kind = "conflict"
    status_code = 409


class ForbiddenError(WayspotError):
    kind = "forbidden"
    status_code = 403


class StoreUnavailableError(WayspotError):
    """Timeout or connection failure in a repository. Safe to retry with backoff."""

    kind = "store_unavailable"
    status_code = 503
    retryable = True


class AggregateStaleError(WayspotError):
    """
    The review was persisted but recomputing the spot aggregates failed.

    The review is never rolled back; ``review`` holds the stored record so the
    caller can still acknowledge the submission.
    """

    kind = "aggregate_stale"
    status_code = 202

    def __init__(self, message: str, review: Any, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.review = review
        self.cause = cause
