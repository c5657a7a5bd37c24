"""Tests for applying accept/reject/ignore feedback."""

from __future__ import annotations

import pytest

from foldcast.config.models import FeedbackSettings
from foldcast.engine import FeedbackProcessor, SuggestionEngine
from foldcast.patterns import (
    FeedbackAction,
    FileDescriptor,
    FileTypeTrigger,
    InMemoryPatternStore,
    NotFoundError,
    OrganizationPattern,
    ValidationError,
)


def _store_with_pattern(
    confidence: float = 0.3,
) -> tuple[InMemoryPatternStore, OrganizationPattern]:
    """Return a store holding one PDF pattern for ``alice``.

    Args:
        confidence: Initial confidence of the pattern.

    Returns:
        tuple[InMemoryPatternStore, OrganizationPattern]: The store and its pattern.
    """
    store = InMemoryPatternStore()
    pattern = store.insert(
        OrganizationPattern(
            owner_id="alice",
            trigger=FileTypeTrigger(extension="pdf"),
            destination_folder_id="finance",
            confidence=confidence,
        )
    )
    return store, pattern


def test_two_rejections_deactivate_pattern() -> None:
    """Ensure two rejections of a new pattern drop it below the floor."""
    store, pattern = _store_with_pattern(0.3)
    processor = FeedbackProcessor(store)

    first = processor.record("alice", pattern.id, "rejected")
    second = processor.record("alice", pattern.id, FeedbackAction.REJECTED)

    assert first.confidence == pytest.approx(0.15)
    assert first.is_active
    assert second.confidence == pytest.approx(0.075)
    assert not second.is_active
    assert second.feedback.rejected_count == 2


def test_deactivated_pattern_is_not_suggested() -> None:
    """Ensure a deactivated pattern stops producing suggestions."""
    store, pattern = _store_with_pattern(0.9)
    processor = FeedbackProcessor(store)
    invoice = FileDescriptor(id="f", display_name="invoice.pdf")
    engine = SuggestionEngine(store)
    assert engine.suggest("alice", invoice)

    for _ in range(4):
        processor.record("alice", pattern.id, "rejected")

    assert engine.suggest("alice", invoice) == []
    assert store.get("alice", pattern.id).is_active is False


def test_accept_is_stronger_than_organic_reinforcement() -> None:
    """Ensure an accept raises confidence more than a recorded move."""
    store, pattern = _store_with_pattern(0.3)

    accepted = FeedbackProcessor(store).record("alice", pattern.id, "accepted")

    assert accepted.confidence == pytest.approx(0.51)
    assert accepted.confidence > 0.44
    assert accepted.feedback.accepted_count == 1


def test_ignore_is_a_mild_negative() -> None:
    """Ensure an ignore lowers confidence slightly without deactivating."""
    store, pattern = _store_with_pattern(0.5)

    ignored = FeedbackProcessor(store).record("alice", pattern.id, "ignored")

    assert ignored.confidence == pytest.approx(0.45)
    assert ignored.is_active
    assert ignored.feedback.ignored_count == 1


def test_accept_does_not_reactivate() -> None:
    """Ensure accepting an inactive pattern raises confidence but keeps it inactive."""
    store, pattern = _store_with_pattern(0.3)
    processor = FeedbackProcessor(store)
    processor.record("alice", pattern.id, "rejected")
    processor.record("alice", pattern.id, "rejected")

    accepted = processor.record("alice", pattern.id, "accepted")

    assert accepted.confidence > 0.075
    assert not accepted.is_active


def test_unknown_action_is_rejected() -> None:
    """Ensure unknown feedback actions raise ValidationError."""
    store, pattern = _store_with_pattern()

    with pytest.raises(ValidationError):
        FeedbackProcessor(store).record("alice", pattern.id, "shrugged")


def test_other_owner_cannot_touch_pattern() -> None:
    """Ensure feedback from another owner is reported as not found."""
    store, pattern = _store_with_pattern()

    with pytest.raises(NotFoundError):
        FeedbackProcessor(store).record("mallory", pattern.id, "rejected")
    assert store.get("alice", pattern.id).feedback.total == 0


def test_missing_pattern_raises_not_found() -> None:
    """Ensure feedback on an unknown pattern raises NotFoundError."""
    store, _ = _store_with_pattern()

    with pytest.raises(NotFoundError):
        FeedbackProcessor(store).record("alice", "does-not-exist", "accepted")


def test_history_is_capped() -> None:
    """Ensure only the configured number of recent events is kept."""
    store, pattern = _store_with_pattern(0.3)
    processor = FeedbackProcessor(store, FeedbackSettings(history_limit=3))

    for _ in range(5):
        updated = processor.record("alice", pattern.id, "accepted")

    assert updated.feedback.accepted_count == 5
    assert len(updated.feedback.recent) == 3
