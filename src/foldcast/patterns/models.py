"""Data models for learned organization patterns."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import ConfigDict, Field, field_validator, model_validator

from foldcast.config.models import FoldcastBaseModel


def utcnow() -> datetime:
    """Return the current moment as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; aware values are returned untouched."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_extension(value: Optional[str]) -> Optional[str]:
    """Return a lower-case extension without the leading dot, or ``None``."""
    if value is None:
        return None
    cleaned = value.strip().lstrip(".").lower()
    return cleaned or None


def extension_from_name(name: str) -> Optional[str]:
    """Derive an extension from a display name such as ``invoice.PDF``."""
    return normalize_extension(PurePosixPath(name.strip()).suffix)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


class PatternKind(str, Enum):
    """Kinds of learned rules; each kind activates a different trigger shape."""

    FILE_TYPE_TO_FOLDER = "file_type_to_folder"
    FILE_NAME_PATTERN_TO_FOLDER = "file_name_pattern_to_folder"
    SOURCE_FOLDER_TO_DESTINATION = "source_folder_to_destination"
    TIME_BASED = "time_based"
    PROJECT_BASED = "project_based"


class FeedbackAction(str, Enum):
    """User responses to a displayed suggestion."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IGNORED = "ignored"


class FileDescriptor(FoldcastBaseModel):
    """Metadata about a file supplied by the host file-management system.

    Attributes:
        id: Host identifier of the file.
        display_name: Name shown to the user, including its extension.
        mime_type: MIME type reported by the host.
        extension: Explicit extension; derived from ``display_name`` when absent.
        size: File size in bytes.
    """

    id: str
    display_name: str
    mime_type: Optional[str] = None
    extension: Optional[str] = None
    size: Optional[int] = Field(default=None, ge=0)

    @field_validator("mime_type")
    @classmethod
    def _normalize_mime(cls, value: Optional[str]) -> Optional[str]:
        cleaned = _blank_to_none(value)
        return cleaned.lower() if cleaned else None

    @field_validator("extension")
    @classmethod
    def _normalize_extension(cls, value: Optional[str]) -> Optional[str]:
        return normalize_extension(value)

    @property
    def resolved_extension(self) -> Optional[str]:
        """Return the explicit extension or the one implied by the display name."""
        return self.extension or extension_from_name(self.display_name)


class MatchContext(FoldcastBaseModel):
    """Caller-supplied circumstances of a suggestion request."""

    current_folder_id: Optional[str] = None
    project_context: Optional[str] = None
    moment: datetime = Field(default_factory=utcnow)


class ObservedContext(FoldcastBaseModel):
    """Circumstances captured when a move or upload is observed."""

    action_before: Optional[str] = None
    minutes_since_upload: Optional[float] = Field(default=None, ge=0)
    project_context: Optional[str] = None
    moment: datetime = Field(default_factory=utcnow)


class _TriggerBase(FoldcastBaseModel):
    """Behaviour shared by every trigger variant; unset fields are wildcards."""

    model_config = ConfigDict(frozen=True)

    @field_validator("extension", check_fields=False)
    @classmethod
    def _normalize_extension(cls, value: Optional[str]) -> Optional[str]:
        return normalize_extension(value)

    @field_validator("mime_type", check_fields=False)
    @classmethod
    def _normalize_mime(cls, value: Optional[str]) -> Optional[str]:
        cleaned = _blank_to_none(value)
        return cleaned.lower() if cleaned else None

    @field_validator("source_folder_id", "project_context", "name_pattern", check_fields=False)
    @classmethod
    def _strip_blank(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    def populated_fields(self) -> Dict[str, Any]:
        """Return the condition fields that carry a value."""
        return {
            name: value
            for name, value in self.model_dump(exclude={"kind"}).items()
            if value is not None
        }

    def is_empty(self) -> bool:
        """Return True when the trigger would match every file."""
        return not self.populated_fields()

    def key(self) -> tuple:
        """Return a hashable identity used for de-duplication."""
        fields = tuple(sorted(self.populated_fields().items()))
        return (self.kind, fields)  # type: ignore[attr-defined]


class FileTypeTrigger(_TriggerBase):
    """Match on MIME type and/or extension."""

    kind: Literal["file_type_to_folder"] = "file_type_to_folder"
    mime_type: Optional[str] = None
    extension: Optional[str] = None


class FileNamePatternTrigger(_TriggerBase):
    """Match display names against a generalized regular expression."""

    kind: Literal["file_name_pattern_to_folder"] = "file_name_pattern_to_folder"
    name_pattern: Optional[str] = None
    extension: Optional[str] = None


class SourceFolderTrigger(_TriggerBase):
    """Match files located in (or uploaded into) a particular folder."""

    kind: Literal["source_folder_to_destination"] = "source_folder_to_destination"
    source_folder_id: Optional[str] = None
    extension: Optional[str] = None


class TimeTrigger(_TriggerBase):
    """Match on the hour of day and/or weekday (Sunday is 0)."""

    kind: Literal["time_based"] = "time_based"
    hour_of_day: Optional[int] = Field(default=None, ge=0, le=23)
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)


class ProjectTrigger(_TriggerBase):
    """Match on the caller-supplied project label."""

    kind: Literal["project_based"] = "project_based"
    project_context: Optional[str] = None
    extension: Optional[str] = None


Trigger = Annotated[
    Union[
        FileTypeTrigger, FileNamePatternTrigger, SourceFolderTrigger, TimeTrigger, ProjectTrigger
    ],
    Field(discriminator="kind"),
]


class PatternContext(FoldcastBaseModel):
    """Auxiliary signal captured while a pattern was observed.

    Attributes:
        action_before: Action that most recently preceded the move.
        minutes_since_upload: Minutes between upload and move, when known.
        size_min: Smallest file size observed for this pattern.
        size_max: Largest file size observed for this pattern.
    """

    action_before: Optional[str] = None
    minutes_since_upload: Optional[float] = None
    size_min: Optional[int] = None
    size_max: Optional[int] = None

    def observe(
        self,
        *,
        action_before: Optional[str],
        minutes_since_upload: Optional[float],
        size: Optional[int],
    ) -> None:
        """Fold a new observation into the captured context."""
        if action_before:
            self.action_before = action_before
        if minutes_since_upload is not None:
            self.minutes_since_upload = minutes_since_upload
        if size is not None:
            self.size_min = size if self.size_min is None else min(self.size_min, size)
            self.size_max = size if self.size_max is None else max(self.size_max, size)


class FeedbackEvent(FoldcastBaseModel):
    """A single user response to a suggestion."""

    action: FeedbackAction
    timestamp: datetime = Field(default_factory=utcnow)


class FeedbackSummary(FoldcastBaseModel):
    """Running feedback counters plus a capped log of the latest events."""

    accepted_count: int = 0
    rejected_count: int = 0
    ignored_count: int = 0
    recent: List[FeedbackEvent] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.accepted_count + self.rejected_count + self.ignored_count

    def add(self, event: FeedbackEvent, *, limit: int) -> None:
        """Count ``event`` and keep at most ``limit`` recent events."""
        counter = f"{event.action.value}_count"
        setattr(self, counter, getattr(self, counter) + 1)
        self.recent.append(event)
        overflow = len(self.recent) - max(limit, 0)
        if overflow > 0:
            del self.recent[:overflow]


class OrganizationPattern(FoldcastBaseModel):
    """A learned rule mapping a trigger to a destination folder.

    Attributes:
        id: Unique identifier.
        owner_id: User owning the pattern; patterns are never shared.
        trigger: Conditions a file must satisfy; its ``kind`` is the pattern kind.
        destination_folder_id: Folder the rule suggests.
        destination_folder_name: Cached display name of the destination folder.
        confidence: Current belief that the pattern should be suggested.
        occurrences: Number of observed moves that reinforced the pattern.
        first_seen: First observation.
        last_occurrence: Most recent observation.
        context: Auxiliary signal captured at recording time.
        ai_explanation: Optional human-readable rationale.
        feedback: Feedback counters and recent events.
        is_active: Whether the pattern may be suggested.
        created_at: Creation timestamp.
        updated_at: Last persisted modification.
        revision: Write counter used for optimistic concurrency.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    owner_id: str = Field(min_length=1)
    trigger: Trigger
    destination_folder_id: str = Field(min_length=1)
    destination_folder_name: str = "Unknown"
    confidence: float = Field(ge=0.0, le=1.0)
    occurrences: int = Field(default=1, ge=1)
    first_seen: datetime = Field(default_factory=utcnow)
    last_occurrence: datetime = Field(default_factory=utcnow)
    context: PatternContext = Field(default_factory=PatternContext)
    ai_explanation: Optional[str] = None
    feedback: FeedbackSummary = Field(default_factory=FeedbackSummary)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    revision: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_window(self) -> "OrganizationPattern":
        self.first_seen = ensure_utc(self.first_seen)
        self.last_occurrence = ensure_utc(self.last_occurrence)
        if self.last_occurrence < self.first_seen:
            raise ValueError("last_occurrence must not precede first_seen")
        return self

    @property
    def pattern_kind(self) -> PatternKind:
        """Return the kind encoded by the trigger variant."""
        return PatternKind(self.trigger.kind)

    def key(self) -> tuple:
        """Return the uniqueness key among an owner's active patterns."""
        return (self.trigger.key(), self.destination_folder_id)


class Suggestion(FoldcastBaseModel):
    """A ranked destination proposal for a file."""

    destination_folder_id: str
    destination_folder_name: str
    confidence: float
    score: float
    pattern_id: str
    explanation: str
    occurrences: int
    merged_pattern_ids: List[str] = Field(default_factory=list)


class PatternCollection(FoldcastBaseModel):
    """Serialized form of a pattern store."""

    version: int = 1
    patterns: List[OrganizationPattern] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=utcnow)


__all__ = [
    "utcnow",
    "ensure_utc",
    "normalize_extension",
    "extension_from_name",
    "PatternKind",
    "FeedbackAction",
    "FileDescriptor",
    "MatchContext",
    "ObservedContext",
    "FileTypeTrigger",
    "FileNamePatternTrigger",
    "SourceFolderTrigger",
    "TimeTrigger",
    "ProjectTrigger",
    "Trigger",
    "PatternContext",
    "FeedbackEvent",
    "FeedbackSummary",
    "OrganizationPattern",
    "Suggestion",
    "PatternCollection",
]
