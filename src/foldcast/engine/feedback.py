"""Apply explicit user responses to the pattern behind a suggestion."""

from __future__ import annotations

import logging

from foldcast.config.models import FeedbackSettings
from foldcast.patterns.errors import ValidationError
from foldcast.patterns.models import FeedbackAction, FeedbackEvent, OrganizationPattern
from foldcast.patterns.store import PatternStore

from .scoring import decay, reinforce

LOGGER = logging.getLogger(__name__)


class FeedbackProcessor:
    """Adjust confidence from accept/reject/ignore responses.

    Accepting is a stronger positive signal than an organic reinforcement,
    rejecting halves confidence (by default), and ignoring is a mild negative.
    Negative responses that push confidence under ``deactivation_floor``
    deactivate the pattern.
    """

    def __init__(self, store: PatternStore, settings: FeedbackSettings | None = None) -> None:
        self.store = store
        self.settings = settings or FeedbackSettings()

    def record(
        self, owner_id: str, pattern_id: str, action: FeedbackAction | str
    ) -> OrganizationPattern:
        """Record ``action`` against the owner's pattern and return the update.

        Raises:
            ValidationError: If ``action`` is not a known feedback action.
            NotFoundError: If the pattern does not belong to ``owner_id``.
        """
        try:
            resolved = FeedbackAction(action)
        except ValueError as exc:
            raise ValidationError(f"Unknown feedback action: {action!r}") from exc

        settings = self.settings
        event = FeedbackEvent(action=resolved)

        def _apply(pattern: OrganizationPattern) -> None:
            if resolved is FeedbackAction.ACCEPTED:
                pattern.confidence = reinforce(pattern.confidence, settings.accept_rate)
            else:
                rate = (
                    settings.reject_rate
                    if resolved is FeedbackAction.REJECTED
                    else settings.ignore_rate
                )
                pattern.confidence = decay(pattern.confidence, rate)
                if pattern.is_active and pattern.confidence < settings.deactivation_floor:
                    pattern.is_active = False
            pattern.feedback.add(event, limit=settings.history_limit)

        updated = self.store.mutate(owner_id, pattern_id, _apply)
        if not updated.is_active:
            LOGGER.info("Pattern %s is inactive after %s feedback", pattern_id, resolved.value)
        LOGGER.debug(
            "Feedback %s on pattern %s -> confidence=%.3f",
            resolved.value,
            pattern_id,
            updated.confidence,
        )
        return updated


__all__ = ["FeedbackProcessor"]
