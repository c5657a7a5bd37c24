"""Tests for the in-memory and JSON pattern stores."""

from __future__ import annotations

import json
import threading
from contextlib import nullcontext
from pathlib import Path

import pytest

from foldcast.engine import PatternRecorder
from foldcast.patterns import (
    ConflictError,
    DuplicatePatternError,
    FileDescriptor,
    FileTypeTrigger,
    InMemoryPatternStore,
    JsonPatternStore,
    NotFoundError,
    OrganizationPattern,
    SourceFolderTrigger,
    StorageError,
    ValidationError,
)


def _pattern(owner: str = "alice", destination: str = "finance", **kwargs) -> OrganizationPattern:
    """Return an unsaved source-folder pattern for tests.

    Args:
        owner: Owner of the pattern.
        destination: Destination folder id.
        **kwargs: Field overrides, including an alternative ``trigger``.

    Returns:
        OrganizationPattern: Pattern ready to insert.
    """
    trigger = kwargs.pop("trigger", SourceFolderTrigger(source_folder_id="inbox", extension="pdf"))
    return OrganizationPattern(
        owner_id=owner,
        trigger=trigger,
        destination_folder_id=destination,
        destination_folder_name=kwargs.pop("destination_folder_name", "Finance"),
        confidence=kwargs.pop("confidence", 0.3),
        **kwargs,
    )


def _bump(pattern: OrganizationPattern) -> None:
    """Increment the occurrence count of ``pattern`` in place.

    Args:
        pattern: Pattern handed to ``mutate``.
    """
    pattern.occurrences += 1


def test_insert_and_get_returns_independent_copies() -> None:
    """Ensure callers cannot change stored patterns through returned copies."""
    store = InMemoryPatternStore()
    created = store.insert(_pattern())

    fetched = store.get("alice", created.id)
    fetched.confidence = 0.99

    assert created.revision == 1
    assert store.get("alice", created.id).confidence == pytest.approx(0.3)


def test_get_from_another_owner_is_not_found() -> None:
    """Ensure patterns are invisible to other owners."""
    store = InMemoryPatternStore()
    created = store.insert(_pattern())

    with pytest.raises(NotFoundError):
        store.get("bob", created.id)
    assert store.list_patterns("bob") == []


def test_insert_rejects_duplicate_active_key() -> None:
    """Ensure a second active pattern with the same key is refused."""
    store = InMemoryPatternStore()
    store.insert(_pattern())

    with pytest.raises(DuplicatePatternError):
        store.insert(_pattern())


def test_insert_allows_duplicate_key_once_previous_is_inactive() -> None:
    """Ensure a deactivated pattern no longer blocks its key."""
    store = InMemoryPatternStore()
    first = store.insert(_pattern())
    store.mutate("alice", first.id, lambda pattern: setattr(pattern, "is_active", False))

    second = store.insert(_pattern())

    assert second.id != first.id
    assert [p.id for p in store.list_patterns("alice")] == [second.id]
    assert len(store.list_patterns("alice", include_inactive=True)) == 2


def test_insert_rejects_empty_trigger() -> None:
    """Ensure a trigger without conditions is rejected."""
    store = InMemoryPatternStore()

    with pytest.raises(ValidationError):
        store.insert(_pattern(trigger=FileTypeTrigger()))


def test_replace_with_stale_revision_conflicts() -> None:
    """Ensure replace refuses a revision that another write superseded."""
    store = InMemoryPatternStore()
    created = store.insert(_pattern())
    store.mutate("alice", created.id, lambda pattern: setattr(pattern, "occurrences", 2))

    created.occurrences = 5
    with pytest.raises(ConflictError):
        store.replace(created, expected_revision=1)
    assert store.get("alice", created.id).occurrences == 2


def test_find_active_matches_trigger_and_destination() -> None:
    """Ensure find_active compares the full trigger and the destination."""
    store = InMemoryPatternStore()
    created = store.insert(_pattern())

    narrow = SourceFolderTrigger(source_folder_id="inbox", extension="pdf")
    found = store.find_active("alice", narrow, "finance")
    missing = store.find_active("alice", SourceFolderTrigger(source_folder_id="inbox"), "finance")

    assert found is not None and found.id == created.id
    assert missing is None


class _FlakyStore(InMemoryPatternStore):
    """Store whose first replace loses a race against another writer."""

    def __init__(self) -> None:
        """Allow a few retries and count the simulated conflicts."""
        super().__init__(max_update_retries=3)
        self.conflicts = 0

    def replace(self, pattern, *, expected_revision):
        """Let a competing writer commit first on the first call."""
        if self.conflicts == 0:
            self.conflicts += 1
            racer = self.get(pattern.owner_id, pattern.id)
            racer.occurrences += 1
            super().replace(racer, expected_revision=racer.revision)
        return super().replace(pattern, expected_revision=expected_revision)

    def _atomic(self):
        """Drop the lock so the competing write can interleave."""
        return nullcontext()


def test_mutate_retries_after_conflict_without_losing_updates() -> None:
    """Ensure mutate retries on conflict and keeps the competing increment."""
    store = _FlakyStore()
    created = store.insert(_pattern())

    updated = store.mutate("alice", created.id, _bump)

    assert store.conflicts == 1
    assert updated.occurrences == 3


def test_mutate_gives_up_with_storage_error() -> None:
    """Ensure mutate raises StorageError once its retries are exhausted."""

    class _AlwaysConflicting(InMemoryPatternStore):
        def replace(self, pattern, *, expected_revision):
            """Report a conflict on every attempt."""
            raise ConflictError("busy")

    store = _AlwaysConflicting(max_update_retries=2)
    created = store.insert(_pattern())

    with pytest.raises(StorageError):
        store.mutate("alice", created.id, lambda pattern: None)


def test_rename_folder_updates_cached_names() -> None:
    """Ensure rename_folder touches only patterns whose cached name changes."""
    store = InMemoryPatternStore()
    first = store.insert(_pattern())
    store.insert(_pattern(trigger=FileTypeTrigger(extension="pdf")))
    store.insert(_pattern(destination="archive", destination_folder_name="Archive"))

    updated = store.rename_folder("alice", "finance", "Money")

    assert updated == 2
    assert store.get("alice", first.id).destination_folder_name == "Money"
    assert store.rename_folder("alice", "finance", "Money") == 0


def test_json_store_persists_between_instances(tmp_path: Path) -> None:
    """Ensure a reopened JSON store sees previously written patterns.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    path = tmp_path / "state" / "patterns.json"
    store = JsonPatternStore(path)
    created = store.insert(_pattern())

    reloaded = JsonPatternStore(path)
    fetched = reloaded.get("alice", created.id)

    assert fetched.trigger == created.trigger
    assert fetched.revision == 1
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["patterns"][0]["trigger"]["kind"] == "source_folder_to_destination"
    assert not (path.parent / ".patterns.json.tmp").exists()


def test_json_store_invalid_document_raises_storage_error(tmp_path: Path) -> None:
    """Ensure an unreadable document surfaces as StorageError.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    path = tmp_path / "patterns.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StorageError):
        JsonPatternStore(path)


def test_json_store_rolls_back_when_write_fails(tmp_path: Path) -> None:
    """Ensure a failed write leaves the stored pattern unchanged.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    path = tmp_path / "patterns.json"
    store = JsonPatternStore(path)
    created = store.insert(_pattern())

    def _fail() -> None:
        """Simulate a failed write to disk."""
        raise StorageError("disk full")

    store._after_write = _fail  # type: ignore[method-assign]

    with pytest.raises(StorageError):
        store.mutate("alice", created.id, lambda pattern: setattr(pattern, "occurrences", 9))
    assert store.get("alice", created.id).occurrences == 1


def test_json_stores_sharing_a_file_keep_every_update(tmp_path: Path) -> None:
    """Ensure alternating writers on one document never overwrite each other.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    path = tmp_path / "patterns.json"
    first = JsonPatternStore(path)
    second = JsonPatternStore(path)

    created = first.insert(_pattern())
    second.mutate("alice", created.id, _bump)
    first.mutate("alice", created.id, _bump)

    assert first.get("alice", created.id).occurrences == 3
    assert second.get("alice", created.id).occurrences == 3
    assert JsonPatternStore(path).get("alice", created.id).revision == 3


def test_json_stores_sharing_a_file_keep_other_owners(tmp_path: Path) -> None:
    """Ensure a write through one store keeps patterns added through another.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    path = tmp_path / "patterns.json"
    first = JsonPatternStore(path)
    second = JsonPatternStore(path)

    first.insert(_pattern(owner="alice"))
    second.insert(_pattern(owner="bob"))

    reopened = JsonPatternStore(path)
    assert len(reopened.list_patterns("alice")) == 1
    assert len(reopened.list_patterns("bob")) == 1


def test_json_stores_sharing_a_file_reject_duplicates(tmp_path: Path) -> None:
    """Ensure the duplicate check sees patterns inserted through another store.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    path = tmp_path / "patterns.json"
    first = JsonPatternStore(path)
    second = JsonPatternStore(path)

    first.insert(_pattern())

    with pytest.raises(DuplicatePatternError):
        second.insert(_pattern())
    assert len(JsonPatternStore(path).list_patterns("alice", include_inactive=True)) == 1


def test_recorders_sharing_a_json_file_reinforce_one_pattern(tmp_path: Path) -> None:
    """Ensure recorders on separate stores of one document count every move.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    path = tmp_path / "patterns.json"
    first = PatternRecorder(JsonPatternStore(path))
    second = PatternRecorder(JsonPatternStore(path))
    invoice = FileDescriptor(id="f1", display_name="invoice_1.pdf", mime_type="application/pdf")

    for recorder in (first, second, first):
        assert recorder.record("alice", invoice, "inbox", "finance") is not None
    second.record("bob", invoice, "inbox", "finance")

    reopened = JsonPatternStore(path)
    alice = reopened.list_patterns("alice", include_inactive=True)
    assert len(alice) == 1
    assert alice[0].occurrences == 3
    assert reopened.list_patterns("bob")[0].occurrences == 1


def test_json_stores_sharing_a_file_under_threads(tmp_path: Path) -> None:
    """Ensure concurrent writers through separate stores lose no increment.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    path = tmp_path / "patterns.json"
    created = JsonPatternStore(path).insert(_pattern())
    stores = [JsonPatternStore(path) for _ in range(2)]
    failures: list[BaseException] = []

    def _worker(store: JsonPatternStore) -> None:
        """Bump the shared pattern through ``store``, keeping any failure.

        Args:
            store: Store used by this thread.
        """
        try:
            for _ in range(10):
                store.mutate("alice", created.id, _bump)
        except BaseException as exc:  # surfaced through the assertion below
            failures.append(exc)

    threads = [threading.Thread(target=_worker, args=(store,)) for store in stores]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert failures == []
    assert JsonPatternStore(path).get("alice", created.id).occurrences == 21
