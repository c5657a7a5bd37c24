"""Configuration models describing foldcast engine settings."""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

PatternKindName = Literal[
    "file_type_to_folder",
    "file_name_pattern_to_folder",
    "source_folder_to_destination",
    "time_based",
    "project_based",
]


class FoldcastBaseModel(BaseModel):
    """Shared configuration for foldcast Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class StoreSettings(FoldcastBaseModel):
    """Pattern persistence options.

    Attributes:
        path: Location of the JSON document holding learned patterns.
        max_update_retries: Attempts made by optimistic read-modify-write cycles.
    """

    path: str = "~/.foldcast/patterns.json"
    max_update_retries: int = Field(default=8, ge=1)


class RecorderSettings(FoldcastBaseModel):
    """Settings that govern how observed moves become patterns.

    Attributes:
        initial_confidence: Confidence assigned to a freshly created pattern.
        reinforcement_rate: Fraction of the remaining distance to 1.0 gained per
            repeated observation.
        kind_precedence: Pattern kinds tried in order when deriving a trigger.
        name_generalization: How display names are turned into name patterns.
        narrow_by_extension: Whether folder, name, and project triggers also pin
            the observed file extension.
        generate_explanations: Whether new patterns request an explanation.
    """

    initial_confidence: float = Field(default=0.3, ge=0.0, le=0.5)
    reinforcement_rate: float = Field(default=0.2, gt=0.0, lt=1.0)
    kind_precedence: List[PatternKindName] = Field(
        default_factory=lambda: [
            "project_based",
            "source_folder_to_destination",
            "file_name_pattern_to_folder",
            "file_type_to_folder",
        ]
    )
    name_generalization: Literal["off", "exact", "digits", "aggressive"] = "digits"
    narrow_by_extension: bool = True
    generate_explanations: bool = True

    @field_validator("kind_precedence")
    @classmethod
    def _require_kinds(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("kind_precedence must list at least one pattern kind")
        return list(dict.fromkeys(value))


class ScoringSettings(FoldcastBaseModel):
    """Parameters for the effective-score computation.

    Attributes:
        decay_base: Multiplier applied once per idle decay period.
        decay_period_days: Length of one decay period in days.
        occurrence_floor: Occurrence weight of a pattern observed only once.
    """

    decay_base: float = Field(default=0.9, gt=0.0, lt=1.0)
    decay_period_days: float = Field(default=30.0, gt=0.0)
    occurrence_floor: float = Field(default=0.6, gt=0.0, le=1.0)


class SuggestionSettings(FoldcastBaseModel):
    """Suggestion ranking options.

    Attributes:
        default_top_n: Number of suggestions returned when the caller does not ask.
        min_score: Effective score below which matched patterns are discarded.
    """

    default_top_n: int = Field(default=3, ge=1)
    min_score: float = Field(default=0.1, ge=0.0, le=1.0)


class FeedbackSettings(FoldcastBaseModel):
    """How explicit user responses move confidence.

    Attributes:
        accept_rate: Fraction of the remaining distance to 1.0 gained on accept.
        reject_rate: Fraction of the current confidence lost on reject.
        ignore_rate: Fraction of the current confidence lost on ignore.
        deactivation_floor: Confidence below which negative feedback deactivates.
        history_limit: Number of recent feedback events kept per pattern.
    """

    accept_rate: float = Field(default=0.3, gt=0.0, lt=1.0)
    reject_rate: float = Field(default=0.5, gt=0.0, lt=1.0)
    ignore_rate: float = Field(default=0.1, gt=0.0, lt=1.0)
    deactivation_floor: float = Field(default=0.1, ge=0.0, lt=1.0)
    history_limit: int = Field(default=20, ge=0)


class LoggingSettings(FoldcastBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        log_dir: Directory receiving the rotating log file.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    log_dir: str = "~/.foldcast/logs"
    max_size_mb: int = 10
    backup_count: int = 5


class CLIOptions(FoldcastBaseModel):
    """CLI presentation defaults.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
    """

    quiet_default: bool = False


class FoldcastConfig(FoldcastBaseModel):
    """Top-level configuration struct for foldcast."""

    store: StoreSettings = Field(default_factory=StoreSettings)
    recorder: RecorderSettings = Field(default_factory=RecorderSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    suggestions: SuggestionSettings = Field(default_factory=SuggestionSettings)
    feedback: FeedbackSettings = Field(default_factory=FeedbackSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "FoldcastBaseModel",
    "PatternKindName",
    "StoreSettings",
    "RecorderSettings",
    "ScoringSettings",
    "SuggestionSettings",
    "FeedbackSettings",
    "LoggingSettings",
    "CLIOptions",
    "FoldcastConfig",
]
