"""Errors raised by the pattern store and the organization engine."""


class EngineError(Exception):
    """Base exception for pattern engine operations."""


class ValidationError(EngineError):
    """Raised when input is malformed, such as an empty trigger or unknown action."""


class NotFoundError(EngineError):
    """Raised when a pattern does not exist for the requesting owner."""


class StorageError(EngineError):
    """Raised when the pattern store cannot read or write data."""


class ConflictError(StorageError):
    """Raised when a write is based on a stale revision of a pattern."""


class DuplicatePatternError(ConflictError):
    """Raised when an active pattern with the same trigger and destination exists."""
