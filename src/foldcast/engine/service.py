"""Facade wiring the engine components for host applications."""

from __future__ import annotations

import logging
from typing import List, Optional

from foldcast.config.models import FoldcastConfig
from foldcast.patterns.models import (
    FeedbackAction,
    FileDescriptor,
    MatchContext,
    ObservedContext,
    OrganizationPattern,
    Suggestion,
)
from foldcast.patterns.store import InMemoryPatternStore, JsonPatternStore, PatternStore

from .background import BackgroundRecorder, RecordRequest
from .explanations import ExplanationProvider, TemplateExplanationProvider
from .feedback import FeedbackProcessor
from .folders import FolderDirectory
from .matcher import TriggerMatcher
from .recorder import PatternRecorder
from .scoring import ConfidenceScorer
from .suggestions import SuggestionEngine

LOGGER = logging.getLogger(__name__)


class OrganizationEngine:
    """Entry point exposing the predictive organization operations.

    Attributes:
        store: Pattern store shared by every component.
        recorder: Learns patterns from observed moves.
        suggestions: Produces ranked destination suggestions.
        feedback: Applies explicit user responses.
    """

    def __init__(
        self,
        store: PatternStore,
        config: FoldcastConfig | None = None,
        *,
        folders: FolderDirectory | None = None,
        explainer: ExplanationProvider | None = None,
    ) -> None:
        self.config = config or FoldcastConfig()
        self.store = store
        self.recorder = PatternRecorder(
            store,
            self.config.recorder,
            folders=folders,
            explainer=explainer if explainer is not None else TemplateExplanationProvider(),
        )
        self.suggestions = SuggestionEngine(
            store,
            self.config.suggestions,
            matcher=TriggerMatcher(),
            scorer=ConfidenceScorer(self.config.scoring),
        )
        self.feedback = FeedbackProcessor(store, self.config.feedback)
        self._background: BackgroundRecorder | None = None

    @classmethod
    def from_config(
        cls,
        config: FoldcastConfig,
        *,
        persistent: bool = True,
        folders: FolderDirectory | None = None,
        explainer: ExplanationProvider | None = None,
    ) -> "OrganizationEngine":
        """Build an engine whose store follows ``config.store``.

        Args:
            config: Loaded configuration.
            persistent: Use the JSON store at ``config.store.path`` when True,
                otherwise keep patterns in memory.
            folders: Optional folder-name lookup.
            explainer: Optional explanation provider.

        Raises:
            StorageError: If the persisted store cannot be loaded.
        """
        retries = config.store.max_update_retries
        store: PatternStore
        if persistent:
            store = JsonPatternStore(config.store.path, max_update_retries=retries)
        else:
            store = InMemoryPatternStore(max_update_retries=retries)
        return cls(store, config, folders=folders, explainer=explainer)

    def get_suggestions(
        self,
        owner_id: str,
        file: FileDescriptor,
        context: MatchContext | None = None,
        top_n: Optional[int] = None,
    ) -> List[Suggestion]:
        """Return ranked destination suggestions; see ``SuggestionEngine.suggest``."""
        return self.suggestions.suggest(owner_id, file, context, top_n)

    def record_pattern(
        self,
        owner_id: str,
        file: FileDescriptor,
        source_folder_id: Optional[str],
        destination_folder_id: str,
        observed: ObservedContext | None = None,
        *,
        destination_folder_name: Optional[str] = None,
    ) -> Optional[OrganizationPattern]:
        """Learn from a completed move synchronously; never raises."""
        return self.recorder.record(
            owner_id,
            file,
            source_folder_id,
            destination_folder_id,
            observed,
            destination_folder_name=destination_folder_name,
        )

    def submit_record(
        self,
        owner_id: str,
        file: FileDescriptor,
        source_folder_id: Optional[str],
        destination_folder_id: str,
        observed: ObservedContext | None = None,
        *,
        destination_folder_name: Optional[str] = None,
    ) -> bool:
        """Queue a move for recording on the background worker."""
        if self._background is None:
            self._background = BackgroundRecorder(self.recorder)
        return self._background.submit(
            RecordRequest(
                owner_id=owner_id,
                file=file,
                source_folder_id=source_folder_id,
                destination_folder_id=destination_folder_id,
                observed=observed,
                destination_folder_name=destination_folder_name,
            )
        )

    def flush(self) -> None:
        """Wait for queued recordings to finish."""
        if self._background is not None:
            self._background.flush()

    def close(self) -> None:
        """Drain queued recordings and stop the background worker."""
        if self._background is not None:
            self._background.stop()
            if not self._background.running:
                self._background = None

    def record_feedback(
        self, owner_id: str, pattern_id: str, action: FeedbackAction | str
    ) -> OrganizationPattern:
        """Apply a user's response to a suggestion; errors propagate."""
        return self.feedback.record(owner_id, pattern_id, action)

    def list_patterns(
        self, owner_id: str, *, include_inactive: bool = False
    ) -> List[OrganizationPattern]:
        """Return the owner's patterns, strongest first."""
        patterns = self.store.list_patterns(owner_id, include_inactive=include_inactive)
        patterns.sort(key=lambda pattern: (-pattern.confidence, -pattern.occurrences))
        return patterns

    def dismiss_pattern(self, owner_id: str, pattern_id: str) -> OrganizationPattern:
        """Deactivate a pattern at the user's request; it is kept for history."""

        def _dismiss(pattern: OrganizationPattern) -> None:
            pattern.is_active = False

        dismissed = self.store.mutate(owner_id, pattern_id, _dismiss)
        LOGGER.info("Pattern %s dismissed by owner=%s", pattern_id, owner_id)
        return dismissed

    def rename_folder(self, owner_id: str, folder_id: str, name: str) -> int:
        """Refresh the cached destination name after a folder rename."""
        return self.store.rename_folder(owner_id, folder_id, name)


__all__ = ["OrganizationEngine"]
