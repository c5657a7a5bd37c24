"""Rank destination folders for a file from the owner's learned patterns."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from foldcast.config.models import SuggestionSettings
from foldcast.patterns.errors import ValidationError
from foldcast.patterns.models import (
    FileDescriptor,
    MatchContext,
    OrganizationPattern,
    Suggestion,
    ensure_utc,
)
from foldcast.patterns.store import PatternStore

from .explanations import describe_pattern
from .matcher import TriggerMatcher
from .scoring import ConfidenceScorer

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _Candidate:
    pattern: OrganizationPattern
    score: float

    def rank_key(self) -> tuple:
        return (
            -self.score,
            -self.pattern.occurrences,
            -ensure_utc(self.pattern.last_occurrence).timestamp(),
        )


@dataclass(slots=True)
class _DestinationGroup:
    best: _Candidate
    members: List[_Candidate] = field(default_factory=list)


class SuggestionEngine:
    """Match, score, merge, and rank patterns into suggestions."""

    def __init__(
        self,
        store: PatternStore,
        settings: SuggestionSettings | None = None,
        *,
        matcher: TriggerMatcher | None = None,
        scorer: ConfidenceScorer | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or SuggestionSettings()
        self.matcher = matcher or TriggerMatcher()
        self.scorer = scorer or ConfidenceScorer()

    def suggest(
        self,
        owner_id: str,
        file: FileDescriptor,
        context: MatchContext | None = None,
        top_n: Optional[int] = None,
    ) -> List[Suggestion]:
        """Return up to ``top_n`` destination suggestions for ``file``.

        Patterns pointing at the same destination are merged into one
        suggestion whose confidence is the highest among them.

        Args:
            owner_id: User requesting suggestions.
            file: File to organize.
            context: Current folder, project label, and moment of the request.
            top_n: Maximum number of suggestions; defaults to configuration.

        Returns:
            list[Suggestion]: Suggestions ordered best first; empty when
            nothing matches.

        Raises:
            ValidationError: If ``top_n`` is smaller than one.
            StorageError: If the pattern store cannot be read.
        """
        limit = self.settings.default_top_n if top_n is None else top_n
        if limit < 1:
            raise ValidationError("top_n must be at least 1")

        context = context or MatchContext()
        candidates = [
            _Candidate(pattern, self.scorer.effective_score(pattern, context.moment))
            for pattern in self.store.list_patterns(owner_id)
            if self.matcher.matches(pattern, file, context, owner_id=owner_id)
        ]
        candidates = [c for c in candidates if c.score >= self.settings.min_score and c.score > 0]
        candidates.sort(key=_Candidate.rank_key)

        groups: Dict[str, _DestinationGroup] = {}
        for candidate in candidates:
            destination = candidate.pattern.destination_folder_id
            group = groups.get(destination)
            if group is None:
                group = groups[destination] = _DestinationGroup(best=candidate)
            group.members.append(candidate)

        suggestions = [self._to_suggestion(group) for group in groups.values()][:limit]
        LOGGER.debug(
            "Suggestions for owner=%s file=%s: %d matched, %d returned",
            owner_id,
            file.id,
            len(candidates),
            len(suggestions),
        )
        return suggestions

    def _to_suggestion(self, group: _DestinationGroup) -> Suggestion:
        best = group.best.pattern
        return Suggestion(
            destination_folder_id=best.destination_folder_id,
            destination_folder_name=best.destination_folder_name,
            confidence=max(member.pattern.confidence for member in group.members),
            score=group.best.score,
            pattern_id=best.id,
            explanation=best.ai_explanation or describe_pattern(best),
            occurrences=best.occurrences,
            merged_pattern_ids=[member.pattern.id for member in group.members],
        )


__all__ = ["SuggestionEngine"]
