"""
Exception taxonomy for the publishing core.

Only QueryValidationError and ArticleNotFound are meant to reach the routing
collaborator. The others are handled where they occur: parse errors skip a
file, reload failures keep the last good snapshot, verification errors become
Rejected records and store errors are logged per record.
"""

from __future__ import annotations


class WologError(Exception):
    """Base class for all wolog errors."""


class ContentParseError(WologError):
    """A single document has malformed or incomplete front matter."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class ReloadFailure(WologError):
    """The corpus could not be loaded at all."""


class QueryValidationError(WologError, ValueError):
    """A search or feed request has an invalid shape."""


class ArticleNotFound(WologError, LookupError):
    def __init__(self, path: str):
        super().__init__(f"No article at {path!r}")
        self.path = path


class WebmentionVerifyError(WologError):
    """Fetching or checking a webmention source failed.

    Attributes:
        reason: A RejectReason value
        status_code: HTTP status of the source, when one was received
    """

    def __init__(self, reason, detail: str = "", status_code: int | None = None):
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)
        self.reason = reason
        self.detail = detail
        self.status_code = status_code


class InvalidTransition(WologError):
    """A webmention record was moved along an edge its state machine lacks."""


class StoreError(WologError):
    """A durable write or read failed after all retries."""
