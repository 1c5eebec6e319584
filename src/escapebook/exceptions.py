"""Escapebook error hierarchy.

Every error carries a stable machine-readable ``code`` and the HTTP status the
API renders it with.
"""


class EscapebookError(Exception):
    """Base exception for all Escapebook errors."""

    code = "error"
    status_code = 400

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code}


class UnauthenticatedError(EscapebookError):
    """Caller holds no valid access token."""

    code = "unauthenticated"
    status_code = 401


class ForbiddenError(EscapebookError):
    """Administrator secret missing or wrong."""

    code = "forbidden"
    status_code = 403


class CommentNotFoundError(EscapebookError):
    """Comment id is not in the index."""

    code = "not_found"
    status_code = 404


class EmptyContentError(EscapebookError):
    """Comment text is empty after sanitization."""

    code = "empty_content"
    status_code = 400


class TooLongError(EscapebookError):
    """Request body exceeds the payload size cap."""

    code = "too_long"
    status_code = 413


class DuplicateSubmissionError(EscapebookError):
    """Identity already holds a comment claim."""

    code = "duplicate_submission"
    status_code = 403


class LockedError(EscapebookError):
    """Identity is locked out of login attempts."""

    code = "locked"
    status_code = 429

    def __init__(self, message: str, count: int = 0, locked_until=None, retry_after_seconds: float = 0.0):
        super().__init__(message)
        self.count = count
        self.locked_until = locked_until
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["stage"] = "locked"
        data["count"] = self.count
        data["until"] = self.locked_until.isoformat() if self.locked_until else None
        data["retry_after_seconds"] = round(self.retry_after_seconds, 1)
        return data


class MalformedInputError(EscapebookError):
    """Request payload could not be parsed."""

    code = "malformed_input"
    status_code = 400


class StoreError(EscapebookError):
    """Key-value storage operation failed."""

    code = "store_error"
    status_code = 500


class ConfigError(EscapebookError):
    """Environment configuration is invalid."""

    code = "config_error"
    status_code = 500
