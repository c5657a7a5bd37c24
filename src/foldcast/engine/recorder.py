"""Learn patterns from observed file moves and uploads."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from foldcast.config.models import RecorderSettings
from foldcast.patterns.errors import DuplicatePatternError, ValidationError
from foldcast.patterns.models import (
    FileDescriptor,
    FileNamePatternTrigger,
    FileTypeTrigger,
    ObservedContext,
    OrganizationPattern,
    PatternContext,
    PatternKind,
    ProjectTrigger,
    SourceFolderTrigger,
    TimeTrigger,
    Trigger,
    ensure_utc,
)
from foldcast.patterns.store import PatternStore

from .explanations import ExplanationProvider
from .folders import FolderDirectory
from .matcher import weekday_index
from .naming import NameGeneralizer
from .scoring import clamp_confidence, reinforce

LOGGER = logging.getLogger(__name__)

UNKNOWN_FOLDER_NAME = "Unknown"


class _InactivePattern(Exception):
    """Raised inside a store mutation when the target was deactivated meanwhile."""


class PatternRecorder:
    """Turn observed moves into new or reinforced patterns.

    Recording is best-effort telemetry: ``record`` logs and swallows every
    error so the caller's move or upload is never affected.
    """

    def __init__(
        self,
        store: PatternStore,
        settings: RecorderSettings | None = None,
        *,
        folders: FolderDirectory | None = None,
        explainer: ExplanationProvider | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or RecorderSettings()
        self.folders = folders
        self.explainer = explainer
        self._names = NameGeneralizer(self.settings.name_generalization)
        self._derivers: Dict[PatternKind, Callable[..., Optional[Trigger]]] = {
            PatternKind.PROJECT_BASED: self._project_trigger,
            PatternKind.SOURCE_FOLDER_TO_DESTINATION: self._source_trigger,
            PatternKind.FILE_NAME_PATTERN_TO_FOLDER: self._name_trigger,
            PatternKind.FILE_TYPE_TO_FOLDER: self._type_trigger,
            PatternKind.TIME_BASED: self._time_trigger,
        }

    def record(
        self,
        owner_id: str,
        file: FileDescriptor,
        source_folder_id: Optional[str],
        destination_folder_id: str,
        observed: ObservedContext | None = None,
        *,
        destination_folder_name: Optional[str] = None,
    ) -> Optional[OrganizationPattern]:
        """Record that ``file`` moved from ``source_folder_id`` to ``destination_folder_id``.

        Args:
            owner_id: User who performed the move.
            file: File that was moved or uploaded.
            source_folder_id: Folder the file left; ``None`` for uploads to a folder.
            destination_folder_id: Folder the file landed in.
            observed: Circumstances of the move.
            destination_folder_name: Display name of the destination, when known.

        Returns:
            OrganizationPattern | None: The created or reinforced pattern, or
            ``None`` when nothing was recorded.
        """
        try:
            return self._record(
                owner_id,
                file,
                source_folder_id,
                destination_folder_id,
                observed or ObservedContext(),
                destination_folder_name,
            )
        except Exception:  # recording must never fail the caller's move
            LOGGER.exception(
                "Failed to record organization pattern for owner=%s file=%s", owner_id, file.id
            )
            return None

    def derive_trigger(
        self,
        file: FileDescriptor,
        source_folder_id: Optional[str],
        observed: ObservedContext,
    ) -> Optional[Trigger]:
        """Return the trigger of the first derivable kind in ``kind_precedence``."""
        for kind_name in self.settings.kind_precedence:
            trigger = self._derivers[PatternKind(kind_name)](file, source_folder_id, observed)
            if trigger is not None and not trigger.is_empty():
                return trigger
        return None

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _record(
        self,
        owner_id: str,
        file: FileDescriptor,
        source_folder_id: Optional[str],
        destination_folder_id: str,
        observed: ObservedContext,
        destination_folder_name: Optional[str],
    ) -> Optional[OrganizationPattern]:
        if not owner_id:
            raise ValidationError("owner_id is required to record a pattern")
        if not destination_folder_id:
            raise ValidationError("destination_folder_id is required to record a pattern")
        if source_folder_id is not None and source_folder_id == destination_folder_id:
            LOGGER.debug("Skipping no-op move of %s within folder %s", file.id, source_folder_id)
            return None

        trigger = self.derive_trigger(file, source_folder_id, observed)
        if trigger is None:
            LOGGER.debug("No usable trigger signal for file %s; nothing recorded", file.id)
            return None

        existing = self.store.find_active(owner_id, trigger, destination_folder_id)
        if existing is not None:
            reinforced = self._reinforce(existing, file, observed, destination_folder_name)
            if reinforced is not None:
                return reinforced

        pattern = self._build(
            owner_id,
            file,
            source_folder_id,
            destination_folder_id,
            trigger,
            observed,
            destination_folder_name,
        )
        try:
            created = self.store.insert(pattern)
        except DuplicatePatternError:
            # Another writer created the same pattern between lookup and insert.
            existing = self.store.find_active(owner_id, trigger, destination_folder_id)
            if existing is None:
                raise
            reinforced = self._reinforce(existing, file, observed, destination_folder_name)
            if reinforced is None:
                raise
            return reinforced

        LOGGER.info(
            "Learned %s pattern %s for owner=%s -> %s",
            created.pattern_kind.value,
            created.id,
            owner_id,
            destination_folder_id,
        )
        return created

    def _reinforce(
        self,
        pattern: OrganizationPattern,
        file: FileDescriptor,
        observed: ObservedContext,
        destination_folder_name: Optional[str],
    ) -> Optional[OrganizationPattern]:
        """Reinforce ``pattern``, or return ``None`` if it is no longer active."""
        rate = self.settings.reinforcement_rate

        def _apply(target: OrganizationPattern) -> None:
            if not target.is_active:
                raise _InactivePattern(target.id)
            target.occurrences += 1
            target.last_occurrence = max(target.last_occurrence, ensure_utc(observed.moment))
            target.confidence = reinforce(target.confidence, rate)
            target.context.observe(
                action_before=observed.action_before,
                minutes_since_upload=observed.minutes_since_upload,
                size=file.size,
            )
            if destination_folder_name:
                target.destination_folder_name = destination_folder_name

        try:
            updated = self.store.mutate(pattern.owner_id, pattern.id, _apply)
        except _InactivePattern:
            LOGGER.debug("Pattern %s was deactivated before it could be reinforced", pattern.id)
            return None
        LOGGER.debug(
            "Reinforced pattern %s: occurrences=%d confidence=%.3f",
            updated.id,
            updated.occurrences,
            updated.confidence,
        )
        return updated

    def _build(
        self,
        owner_id: str,
        file: FileDescriptor,
        source_folder_id: Optional[str],
        destination_folder_id: str,
        trigger: Trigger,
        observed: ObservedContext,
        destination_folder_name: Optional[str],
    ) -> OrganizationPattern:
        name = (
            destination_folder_name
            or self._folder_name(owner_id, destination_folder_id)
            or UNKNOWN_FOLDER_NAME
        )
        context = PatternContext()
        context.observe(
            action_before=observed.action_before,
            minutes_since_upload=observed.minutes_since_upload,
            size=file.size,
        )
        pattern = OrganizationPattern(
            owner_id=owner_id,
            trigger=trigger,
            destination_folder_id=destination_folder_id,
            destination_folder_name=name,
            confidence=clamp_confidence(self.settings.initial_confidence),
            occurrences=1,
            first_seen=observed.moment,
            last_occurrence=observed.moment,
            context=context,
        )
        if self.settings.generate_explanations and self.explainer is not None:
            pattern.ai_explanation = self._explain(pattern, source_folder_id)
        return pattern

    def _explain(
        self, pattern: OrganizationPattern, source_folder_id: Optional[str]
    ) -> Optional[str]:
        source_name = None
        if source_folder_id is not None:
            source_name = self._folder_name(pattern.owner_id, source_folder_id)
        try:
            return self.explainer.explain(  # type: ignore[union-attr]
                pattern,
                source_folder_name=source_name,
                destination_folder_name=pattern.destination_folder_name,
            )
        except Exception as exc:  # explanations are optional decoration
            LOGGER.warning("Explanation provider failed for pattern %s: %s", pattern.id, exc)
            return None

    def _folder_name(self, owner_id: str, folder_id: str) -> Optional[str]:
        if self.folders is None:
            return None
        try:
            return self.folders.folder_name(owner_id, folder_id)
        except Exception as exc:  # folder lookups are advisory
            LOGGER.warning("Folder lookup failed for %s: %s", folder_id, exc)
            return None

    # Trigger derivation ------------------------------------------------

    def _extension(self, file: FileDescriptor) -> Optional[str]:
        return file.resolved_extension if self.settings.narrow_by_extension else None

    def _project_trigger(
        self, file: FileDescriptor, _: Optional[str], observed: ObservedContext
    ) -> Optional[Trigger]:
        if not observed.project_context or not observed.project_context.strip():
            return None
        return ProjectTrigger(
            project_context=observed.project_context, extension=self._extension(file)
        )

    def _source_trigger(
        self, file: FileDescriptor, source_folder_id: Optional[str], _: ObservedContext
    ) -> Optional[Trigger]:
        if not source_folder_id:
            return None
        return SourceFolderTrigger(
            source_folder_id=source_folder_id, extension=self._extension(file)
        )

    def _name_trigger(
        self, file: FileDescriptor, _: Optional[str], __: ObservedContext
    ) -> Optional[Trigger]:
        name_pattern = self._names.generalize(file.display_name)
        if name_pattern is None:
            return None
        return FileNamePatternTrigger(name_pattern=name_pattern, extension=self._extension(file))

    def _type_trigger(
        self, file: FileDescriptor, _: Optional[str], __: ObservedContext
    ) -> Optional[Trigger]:
        if not file.mime_type and not file.resolved_extension:
            return None
        return FileTypeTrigger(mime_type=file.mime_type, extension=file.resolved_extension)

    def _time_trigger(
        self, _: FileDescriptor, __: Optional[str], observed: ObservedContext
    ) -> Optional[Trigger]:
        return TimeTrigger(
            hour_of_day=observed.moment.hour, day_of_week=weekday_index(observed.moment)
        )


__all__ = ["PatternRecorder", "UNKNOWN_FOLDER_NAME"]
