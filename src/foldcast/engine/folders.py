"""Folder metadata supplied by the host application."""

from __future__ import annotations

from typing import Mapping, Optional, Protocol


class FolderDirectory(Protocol):
    """Look up display names of folders owned by a user."""

    def folder_name(self, owner_id: str, folder_id: str) -> Optional[str]:
        """Return the folder's display name, or ``None`` when it is unknown."""


class StaticFolderDirectory:
    """Folder names from a fixed mapping; used by the CLI and in tests."""

    def __init__(self, names: Mapping[str, str] | None = None) -> None:
        self._names = dict(names or {})

    def folder_name(self, owner_id: str, folder_id: str) -> Optional[str]:
        return self._names.get(folder_id)


__all__ = ["FolderDirectory", "StaticFolderDirectory"]
