"""Tests for the engine facade and background recording."""

from __future__ import annotations

import random
import threading
from pathlib import Path

import pytest

from foldcast.config import FoldcastConfig
from foldcast.engine import (
    BackgroundRecorder,
    OrganizationEngine,
    PatternRecorder,
    RecordRequest,
    StaticFolderDirectory,
)
from foldcast.patterns import (
    FileDescriptor,
    InMemoryPatternStore,
    JsonPatternStore,
    MatchContext,
    NotFoundError,
)


def _invoice(index: int = 1) -> FileDescriptor:
    """Return a numbered PDF invoice descriptor.

    Args:
        index: Number embedded in the file name.

    Returns:
        FileDescriptor: Descriptor for ``invoice_<index>.pdf``.
    """
    name = f"invoice_{index}.pdf"
    return FileDescriptor(id=name, display_name=name, mime_type="application/pdf")


def _engine() -> OrganizationEngine:
    """Return an in-memory engine that knows the inbox and finance folders.

    Returns:
        OrganizationEngine: Engine backed by a fresh in-memory store.
    """
    return OrganizationEngine(
        InMemoryPatternStore(),
        folders=StaticFolderDirectory({"inbox": "Inbox", "finance": "Finance"}),
    )


def test_learn_suggest_and_reject_cycle() -> None:
    """Ensure learned patterns are suggested and disappear after rejections."""
    engine = _engine()
    for index in range(3):
        engine.record_pattern("alice", _invoice(index), "inbox", "finance")

    suggestions = engine.get_suggestions(
        "alice", _invoice(9), MatchContext(current_folder_id="inbox")
    )
    assert [s.destination_folder_name for s in suggestions] == ["Finance"]
    assert suggestions[0].explanation == "PDF files from 'Inbox' usually end up in 'Finance'"

    pattern_id = suggestions[0].pattern_id
    for _ in range(4):
        engine.record_feedback("alice", pattern_id, "rejected")

    inbox = MatchContext(current_folder_id="inbox")
    assert engine.get_suggestions("alice", _invoice(9), inbox) == []
    assert engine.list_patterns("alice") == []
    assert len(engine.list_patterns("alice", include_inactive=True)) == 1


@pytest.mark.parametrize("seed", [0, 1, 7, 42, 2024])
def test_mixed_recordings_and_feedback_keep_confidence_bounded(seed: int) -> None:
    """Ensure confidence stays in [0, 1] and moves the right way for every step.

    Args:
        seed: Seed for the sequence of recordings and feedback actions.
    """
    rng = random.Random(seed)
    engine = _engine()
    current = engine.record_pattern("alice", _invoice(0), "inbox", "finance")
    assert current is not None

    for step in range(60):
        action = rng.choice(["record", "record", "accepted", "rejected", "ignored"])
        before = engine.store.get("alice", current.id).confidence

        if action == "record":
            updated = engine.record_pattern("alice", _invoice(step), "inbox", "finance")
            assert updated is not None
            if updated.id == current.id:
                assert updated.confidence >= before
            current = updated
        else:
            updated = engine.record_feedback("alice", current.id, action)
            if action == "accepted":
                assert updated.confidence >= before
            else:
                assert updated.confidence <= before

        for pattern in engine.list_patterns("alice", include_inactive=True):
            assert 0.0 <= pattern.confidence <= 1.0
        assert len(engine.list_patterns("alice")) <= 1


def test_list_patterns_orders_by_confidence() -> None:
    """Ensure listed patterns are ordered by descending confidence."""
    engine = _engine()
    engine.record_pattern("alice", _invoice(), None, "archive")
    for index in range(2):
        engine.record_pattern("alice", _invoice(index), "inbox", "finance")

    listed = engine.list_patterns("alice")

    assert [p.destination_folder_id for p in listed] == ["finance", "archive"]


def test_dismiss_pattern_hides_it() -> None:
    """Ensure dismissed patterns leave the active listing and stay owner-scoped."""
    engine = _engine()
    pattern = engine.record_pattern("alice", _invoice(), "inbox", "finance")
    assert pattern is not None

    dismissed = engine.dismiss_pattern("alice", pattern.id)

    assert not dismissed.is_active
    assert engine.list_patterns("alice") == []
    with pytest.raises(NotFoundError):
        engine.dismiss_pattern("bob", pattern.id)


def test_rename_folder_refreshes_suggestion_names() -> None:
    """Ensure suggestions use the destination's new name after a rename."""
    engine = _engine()
    engine.record_pattern("alice", _invoice(), "inbox", "finance")

    assert engine.rename_folder("alice", "finance", "Money") == 1
    suggestions = engine.get_suggestions(
        "alice", _invoice(2), MatchContext(current_folder_id="inbox")
    )
    assert suggestions[0].destination_folder_name == "Money"


def test_concurrent_recordings_are_all_counted() -> None:
    """Ensure concurrent recordings of one move all reach a single pattern."""
    engine = _engine()
    workers = 8
    per_worker = 25
    barrier = threading.Barrier(workers)

    def _work() -> None:
        """Record the same move repeatedly once every worker is ready."""
        barrier.wait()
        for index in range(per_worker):
            engine.record_pattern("alice", _invoice(index), "inbox", "finance")

    threads = [threading.Thread(target=_work) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    patterns = engine.list_patterns("alice")
    assert len(patterns) == 1
    assert patterns[0].occurrences == workers * per_worker
    assert 0.0 <= patterns[0].confidence <= 1.0


def test_submit_record_runs_in_background() -> None:
    """Ensure submitted recordings are applied once the queue is flushed."""
    engine = _engine()
    try:
        for index in range(5):
            assert engine.submit_record("alice", _invoice(index), "inbox", "finance")
        engine.flush()
    finally:
        engine.close()

    patterns = engine.list_patterns("alice")
    assert patterns[0].occurrences == 5


def test_background_recorder_drops_when_full() -> None:
    """Ensure submissions beyond the queue capacity are dropped, not blocked."""
    gate = threading.Event()

    class _SlowRecorder(PatternRecorder):
        def record(self, *args, **kwargs):
            """Block until the test opens the gate."""
            gate.wait(timeout=5)
            return None

    background = BackgroundRecorder(_SlowRecorder(InMemoryPatternStore()), max_pending=1)
    request = RecordRequest(
        owner_id="alice", file=_invoice(), source_folder_id="inbox", destination_folder_id="x"
    )
    try:
        accepted = [background.submit(request) for _ in range(5)]
    finally:
        gate.set()
        background.stop()

    assert accepted[0] is True
    assert False in accepted
    assert not background.running


def test_background_recorder_stop_keeps_busy_worker(caplog: pytest.LogCaptureFixture) -> None:
    """Ensure a stop that times out leaves the worker tracked until it finishes.

    Args:
        caplog: Log capture fixture provided by pytest.
    """
    gate = threading.Event()
    started = threading.Event()

    class _BlockedRecorder(PatternRecorder):
        def record(self, *args, **kwargs):
            """Block until the test opens the gate."""
            started.set()
            gate.wait(timeout=5)
            return None

    background = BackgroundRecorder(_BlockedRecorder(InMemoryPatternStore()))
    request = RecordRequest(
        owner_id="alice", file=_invoice(), source_folder_id="inbox", destination_folder_id="x"
    )
    try:
        assert background.submit(request)
        assert started.wait(timeout=5)

        with caplog.at_level("WARNING", logger="foldcast.engine.background"):
            background.stop(timeout=0.05)

        assert background.running
        assert "still busy" in caplog.text
    finally:
        gate.set()
        background.stop()

    assert not background.running


def test_from_config_uses_json_store(tmp_path: Path) -> None:
    """Ensure from_config persists to the configured JSON document.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    config = FoldcastConfig.model_validate({"store": {"path": str(tmp_path / "p.json")}})

    engine = OrganizationEngine.from_config(config)
    engine.record_pattern("alice", _invoice(), "inbox", "finance")

    assert isinstance(engine.store, JsonPatternStore)
    reopened = OrganizationEngine.from_config(config)
    assert reopened.list_patterns("alice")[0].destination_folder_id == "finance"
    transient = OrganizationEngine.from_config(config, persistent=False)
    assert isinstance(transient.store, InMemoryPatternStore)
