# sync_errors.py
# Description: Error taxonomy for note synchronisation and user-facing classification
#
# Imports
from enum import Enum
from typing import Any, Dict, Optional, Tuple
#
########################################################################################################################
#
# Classes:

class SyncError(Exception):
    """Base class for all synchronisation errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 is_retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.is_retryable = is_retryable

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'details': self.details,
            'is_retryable': self.is_retryable
        }


class NetworkError(SyncError):
    """Transport-level failure talking to the remote store."""
    pass


class RateLimitError(NetworkError):
    """The remote store refused the request because of rate limiting."""

    def __init__(self, message: str = "API rate limit exceeded",
                 retry_after: Optional[float] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details, is_retryable=True)
        self.retry_after = retry_after


class AuthError(SyncError):
    """The credential was rejected or lacks permission."""
    pass


class NotFoundError(SyncError):
    """A remote resource does not exist."""

    def __init__(self, message: str, path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)
        self.path = path


class IdentityError(SyncError):
    """The repository owner could not be derived from the credential."""
    pass


class ConflictError(SyncError):
    """Optimistic-concurrency revision mismatch on a write or delete."""

    def __init__(self, message: str, path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)
        self.path = path


class MissingContentError(SyncError):
    """The structure references a note id that has no content record."""

    def __init__(self, note_id: str):
        super().__init__(f"Note content not found: {note_id}", details={'note_id': note_id})
        self.note_id = note_id


class RemoteFormatError(SyncError):
    """A remote file could not be decoded into the expected JSON shape."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, details={'path': path} if path else None)
        self.path = path


class StructureError(SyncError):
    """Base class for structure (adjacency map) violations."""
    pass


class StructureValidationError(StructureError):
    """Externally supplied structure data breaks the forest invariants."""
    pass


class StructureCycleError(StructureError):
    """A move would place a note under itself or one of its descendants."""
    pass


class ProtectedNoteError(SyncError):
    """The reserved root note cannot be deleted."""
    pass


class ErrorKind(Enum):
    """Classification used to pick a user-facing message."""
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    IDENTITY = "identity"
    CONFLICT = "conflict"
    MISSING_CONTENT = "missing_content"
    INVALID_DATA = "invalid_data"
    PROTECTED = "protected"
    NETWORK = "network"
    BUSY = "busy"
    NOT_CONFIRMED = "not_confirmed"
    UNKNOWN = "unknown"


# Most specific classes first; RateLimitError must precede NetworkError.
_ERROR_KINDS: Tuple[Tuple[type, ErrorKind], ...] = (
    (RateLimitError, ErrorKind.RATE_LIMIT),
    (AuthError, ErrorKind.AUTH),
    (NotFoundError, ErrorKind.NOT_FOUND),
    (IdentityError, ErrorKind.IDENTITY),
    (ConflictError, ErrorKind.CONFLICT),
    (MissingContentError, ErrorKind.MISSING_CONTENT),
    (RemoteFormatError, ErrorKind.INVALID_DATA),
    (StructureError, ErrorKind.INVALID_DATA),
    (ProtectedNoteError, ErrorKind.PROTECTED),
    (NetworkError, ErrorKind.NETWORK),
)

_MESSAGES = {
    ErrorKind.RATE_LIMIT: "GitHub API rate limit reached. Try again later or sync less often.",
    ErrorKind.AUTH: "Authentication failed. Check that the GitHub token is set and has repo access.",
    ErrorKind.NOT_FOUND: "Remote resource not found",
    ErrorKind.IDENTITY: "Could not determine the GitHub username. Check that the token is correct.",
    ErrorKind.CONFLICT: "Remote file changed since it was last read. Pull and try again.",
    ErrorKind.MISSING_CONTENT: "Remote notes are incomplete",
    ErrorKind.INVALID_DATA: "Remote data is malformed",
    ErrorKind.PROTECTED: "The root note cannot be deleted.",
    ErrorKind.NETWORK: "Network error while contacting GitHub",
    ErrorKind.BUSY: "Another sync operation is already running.",
    ErrorKind.NOT_CONFIRMED: "The confirmation did not match the note id.",
    ErrorKind.UNKNOWN: "Unexpected error",
}


def classify_error(error: BaseException) -> ErrorKind:
    """Map an exception onto an ErrorKind."""
    for error_class, kind in _ERROR_KINDS:
        if isinstance(error, error_class):
            return kind
    return ErrorKind.UNKNOWN


def message_for(kind: ErrorKind) -> str:
    return _MESSAGES[kind]


def describe_error(error: BaseException, action: str = "Sync") -> Tuple[ErrorKind, str]:
    """
    Classify an error and build a human-readable failure message.

    Args:
        error: The exception raised by a sync operation
        action: Verb for the failed operation, used as a message prefix

    Returns:
        Tuple of (ErrorKind, message)
    """
    kind = classify_error(error)
    base = _MESSAGES[kind]
    if kind in (ErrorKind.RATE_LIMIT, ErrorKind.AUTH, ErrorKind.IDENTITY,
                ErrorKind.CONFLICT, ErrorKind.PROTECTED):
        return kind, f"{action} failed: {base}"
    return kind, f"{action} failed: {base}: {error}"

#
# End of sync_errors.py
########################################################################################################################
