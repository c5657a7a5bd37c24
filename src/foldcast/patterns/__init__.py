"""Pattern records and their persistence."""

from .errors import (
    ConflictError,
    DuplicatePatternError,
    EngineError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .models import (
    FeedbackAction,
    FeedbackEvent,
    FeedbackSummary,
    FileDescriptor,
    FileNamePatternTrigger,
    FileTypeTrigger,
    MatchContext,
    ObservedContext,
    OrganizationPattern,
    PatternContext,
    PatternKind,
    ProjectTrigger,
    SourceFolderTrigger,
    Suggestion,
    TimeTrigger,
    Trigger,
)
from .store import InMemoryPatternStore, JsonPatternStore, PatternStore

__all__ = [
    "EngineError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "ConflictError",
    "DuplicatePatternError",
    "FeedbackAction",
    "FeedbackEvent",
    "FeedbackSummary",
    "FileDescriptor",
    "FileNamePatternTrigger",
    "FileTypeTrigger",
    "MatchContext",
    "ObservedContext",
    "OrganizationPattern",
    "PatternContext",
    "PatternKind",
    "ProjectTrigger",
    "SourceFolderTrigger",
    "Suggestion",
    "TimeTrigger",
    "Trigger",
    "PatternStore",
    "InMemoryPatternStore",
    "JsonPatternStore",
]
