"""Escapebook — one-comment-per-visitor guestbook with a throttled login gate."""

from pathlib import Path

_VERSION_FILE = Path(__file__).resolve().parent.parent.parent / "VERSION"
__version__ = _VERSION_FILE.read_text().strip() if _VERSION_FILE.exists() else "0.0.0"

from escapebook.exceptions import (
    EscapebookError,
    UnauthenticatedError,
    ForbiddenError,
    CommentNotFoundError,
    EmptyContentError,
    TooLongError,
    DuplicateSubmissionError,
    LockedError,
    MalformedInputError,
    StoreError,
    ConfigError,
)

__all__ = [
    "__version__",
    "EscapebookError",
    "UnauthenticatedError",
    "ForbiddenError",
    "CommentNotFoundError",
    "EmptyContentError",
    "TooLongError",
    "DuplicateSubmissionError",
    "LockedError",
    "MalformedInputError",
    "StoreError",
    "ConfigError",
]
