"""Persistence for learned organization patterns."""

from __future__ import annotations

import abc
import json
import logging
import os
import threading
from contextlib import contextmanager, nullcontext
from pathlib import Path
from typing import Callable, ContextManager, Dict, Iterator, List, Optional

from filelock import FileLock, Timeout
from pydantic import ValidationError as PydanticValidationError

from .errors import (
    ConflictError,
    DuplicatePatternError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .models import OrganizationPattern, PatternCollection, Trigger, utcnow

LOGGER = logging.getLogger(__name__)

PatternMutation = Callable[[OrganizationPattern], None]


class PatternStore(abc.ABC):
    """Owner-partitioned access to organization patterns.

    Implementations hold no business rules. They guarantee that a pattern is
    only ever visible to its owner, that inserts cannot create a second active
    pattern with the same key, and that ``replace`` rejects stale revisions so
    that ``mutate`` never loses a concurrent update.
    """

    def __init__(self, *, max_update_retries: int = 8) -> None:
        self._max_update_retries = max(1, max_update_retries)

    @abc.abstractmethod
    def list_patterns(
        self, owner_id: str, *, include_inactive: bool = False
    ) -> List[OrganizationPattern]:
        """Return copies of the owner's patterns."""

    @abc.abstractmethod
    def get(self, owner_id: str, pattern_id: str) -> OrganizationPattern:
        """Return a copy of one pattern.

        Raises:
            NotFoundError: If the pattern is unknown or belongs to another owner.
        """

    @abc.abstractmethod
    def insert(self, pattern: OrganizationPattern) -> OrganizationPattern:
        """Persist a new pattern.

        Raises:
            ValidationError: If the trigger is empty.
            DuplicatePatternError: If an active pattern with the same key exists.
        """

    @abc.abstractmethod
    def replace(
        self, pattern: OrganizationPattern, *, expected_revision: int
    ) -> OrganizationPattern:
        """Overwrite a stored pattern if its revision is still ``expected_revision``.

        Raises:
            NotFoundError: If the pattern does not exist for its owner.
            ConflictError: If another writer committed first.
        """

    def find_active(
        self, owner_id: str, trigger: Trigger, destination_folder_id: str
    ) -> Optional[OrganizationPattern]:
        """Return the active pattern with the given trigger and destination, if any."""
        wanted = (trigger.key(), destination_folder_id)
        for pattern in self.list_patterns(owner_id):
            if pattern.key() == wanted:
                return pattern
        return None

    def mutate(
        self, owner_id: str, pattern_id: str, mutation: PatternMutation
    ) -> OrganizationPattern:
        """Apply ``mutation`` as an atomic read-modify-write and return the result.

        Conflicting writers are retried against a fresh copy, so increments
        made by concurrent callers are never overwritten.

        Raises:
            NotFoundError: If the pattern does not exist for ``owner_id``.
            StorageError: If the update kept conflicting after all retries.
        """
        for attempt in range(1, self._max_update_retries + 1):
            with self._atomic():
                current = self.get(owner_id, pattern_id)
                revision = current.revision
                mutation(current)
                try:
                    return self.replace(current, expected_revision=revision)
                except ConflictError:
                    LOGGER.debug(
                        "Revision conflict on pattern %s (attempt %d/%d)",
                        pattern_id,
                        attempt,
                        self._max_update_retries,
                    )
        raise StorageError(
            f"Pattern {pattern_id} kept changing; gave up after {self._max_update_retries} attempts"
        )

    def rename_folder(self, owner_id: str, folder_id: str, name: str) -> int:
        """Refresh the cached destination name on the owner's patterns.

        Returns:
            int: Number of patterns whose cached name changed.
        """
        updated = 0
        for pattern in self.list_patterns(owner_id, include_inactive=True):
            if pattern.destination_folder_id != folder_id:
                continue
            if pattern.destination_folder_name == name:
                continue

            def _rename(target: OrganizationPattern) -> None:
                target.destination_folder_name = name

            self.mutate(owner_id, pattern.id, _rename)
            updated += 1
        return updated

    def _atomic(self) -> ContextManager[object]:
        """Return a guard held across one read-modify-write cycle."""
        return nullcontext()


class InMemoryPatternStore(PatternStore):
    """Pattern store kept in process memory.

    A re-entrant lock is held only for the duration of a single call (or a
    single ``mutate`` cycle), which makes every read-modify-write atomic
    within the process. Subclasses widen the guard through ``_guard``.
    """

    def __init__(self, *, max_update_retries: int = 8) -> None:
        super().__init__(max_update_retries=max_update_retries)
        self._lock = threading.RLock()
        self._patterns: Dict[str, Dict[str, OrganizationPattern]] = {}

    def list_patterns(
        self, owner_id: str, *, include_inactive: bool = False
    ) -> List[OrganizationPattern]:
        with self._guard():
            owned = self._patterns.get(owner_id, {})
            return [
                pattern.model_copy(deep=True)
                for pattern in owned.values()
                if include_inactive or pattern.is_active
            ]

    def get(self, owner_id: str, pattern_id: str) -> OrganizationPattern:
        with self._guard():
            pattern = self._patterns.get(owner_id, {}).get(pattern_id)
            if pattern is None:
                raise NotFoundError(f"Pattern {pattern_id} not found for owner {owner_id}")
            return pattern.model_copy(deep=True)

    def insert(self, pattern: OrganizationPattern) -> OrganizationPattern:
        if pattern.trigger.is_empty():
            raise ValidationError("A pattern trigger must populate at least one condition")
        with self._guard():
            owned = self._patterns.setdefault(pattern.owner_id, {})
            if pattern.id in owned:
                raise ConflictError(f"Pattern {pattern.id} already exists")
            if pattern.is_active:
                key = pattern.key()
                for existing in owned.values():
                    if existing.is_active and existing.key() == key:
                        raise DuplicatePatternError(
                            f"Active pattern {existing.id} already covers this trigger"
                        )
            stored = pattern.model_copy(deep=True)
            stored.revision = 1
            stored.updated_at = utcnow()
            self._commit(owned, stored)
            return stored.model_copy(deep=True)

    def replace(
        self, pattern: OrganizationPattern, *, expected_revision: int
    ) -> OrganizationPattern:
        if pattern.trigger.is_empty():
            raise ValidationError("A pattern trigger must populate at least one condition")
        with self._guard():
            owned = self._patterns.get(pattern.owner_id, {})
            current = owned.get(pattern.id)
            if current is None:
                raise NotFoundError(f"Pattern {pattern.id} not found for owner {pattern.owner_id}")
            if current.revision != expected_revision:
                raise ConflictError(
                    f"Pattern {pattern.id} is at revision {current.revision}, "
                    f"expected {expected_revision}"
                )
            stored = pattern.model_copy(deep=True)
            stored.revision = expected_revision + 1
            stored.updated_at = utcnow()
            self._commit(owned, stored)
            return stored.model_copy(deep=True)

    def _atomic(self) -> ContextManager[object]:
        return self._guard()

    def _guard(self) -> ContextManager[object]:
        """Return the guard held by every call that touches ``_patterns``."""
        return self._lock

    def _commit(self, owned: Dict[str, OrganizationPattern], stored: OrganizationPattern) -> None:
        previous = owned.get(stored.id)
        owned[stored.id] = stored
        try:
            self._after_write()
        except StorageError:
            if previous is None:
                del owned[stored.id]
            else:
                owned[stored.id] = previous
            raise

    def _after_write(self) -> None:
        """Hook invoked while the lock is held after every successful write."""

    def _all_patterns(self) -> List[OrganizationPattern]:
        return [pattern for owned in self._patterns.values() for pattern in owned.values()]


class JsonPatternStore(InMemoryPatternStore):
    """Pattern store backed by a JSON document that several processes may share.

    Every call takes an exclusive lock file next to the document and reloads
    the document before touching it, so revision checks, duplicate checks, and
    the rewrite all see the latest state written by any process. A ``mutate``
    cycle holds the lock from its read to its write.
    """

    def __init__(
        self,
        path: Path | str,
        *,
        max_update_retries: int = 8,
        lock_timeout: float = 30.0,
    ) -> None:
        """Open the document at ``path``, validating it if it already exists.

        Args:
            path: Location of the JSON document.
            max_update_retries: Attempts made by optimistic update cycles.
            lock_timeout: Seconds to wait for another process to release the
                lock file before giving up.

        Raises:
            StorageError: If the document exists but cannot be read or parsed.
        """
        super().__init__(max_update_retries=max_update_retries)
        self._path = Path(path).expanduser()
        self._file_lock = FileLock(
            str(self._path.with_name(f".{self._path.name}.lock")), timeout=lock_timeout
        )
        self._depth = 0
        self._replace_contents(self._load())

    @property
    def path(self) -> Path:
        """Return the location of the backing JSON document."""
        return self._path

    @contextmanager
    def _guard(self) -> Iterator[None]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            self._path.parent.mkdir(parents=True, exist_ok=True)
            try:
                self._file_lock.acquire()
            except Timeout as exc:
                raise StorageError(f"Timed out waiting for lock on {self._path}") from exc
            self._depth = 1
            try:
                self._replace_contents(self._load())
                yield
            finally:
                self._depth = 0
                self._file_lock.release()

    def _replace_contents(self, collection: PatternCollection) -> None:
        self._patterns = {}
        for pattern in collection.patterns:
            self._patterns.setdefault(pattern.owner_id, {})[pattern.id] = pattern

    def _load(self) -> PatternCollection:
        if not self._path.exists():
            return PatternCollection()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise StorageError(f"Unable to read pattern store {self._path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise StorageError(f"Invalid pattern store data: {exc}") from exc

        try:
            return PatternCollection.model_validate(data)
        except PydanticValidationError as exc:
            raise StorageError(f"Invalid pattern store data: {exc}") from exc

    def _after_write(self) -> None:
        collection = PatternCollection(patterns=self._all_patterns())
        payload = collection.model_dump(mode="json")
        try:
            with self._staging_file() as staging:
                staging.write_text(json.dumps(payload, indent=2), encoding="utf-8")
                os.replace(staging, self._path)
        except OSError as exc:
            raise StorageError(f"Unable to write pattern store {self._path}: {exc}") from exc

    @contextmanager
    def _staging_file(self) -> Iterator[Path]:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._path.with_name(f".{self._path.name}.tmp")
        try:
            yield staging
        finally:
            if staging.exists():
                staging.unlink()


__all__ = ["PatternStore", "PatternMutation", "InMemoryPatternStore", "JsonPatternStore"]
