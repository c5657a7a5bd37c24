"""Turn observed display names into reusable name patterns."""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Literal, Optional

GeneralizationMode = Literal["off", "exact", "digits", "aggressive"]

_DIGIT_RUN = re.compile(r"\d+")
_SEPARATOR_RUN = re.compile(r"[-_. ]+")
_DIGIT_CLASS = r"\d+"
_SEPARATOR_CLASS = r"[-_. ]+"


class NameGeneralizer:
    """Derive a regular expression from a display name.

    Modes:
        ``off``: never derive a pattern.
        ``exact``: the escaped display name; only that name matches.
        ``digits``: every digit run becomes ``\\d+``, so ``invoice_2024.pdf``
            yields ``invoice_\\d+\\.pdf``. Names without digits yield nothing.
        ``aggressive``: as ``digits``, and separator runs inside the stem
            become ``[-_. ]+`` so ``invoice-2024`` and ``invoice 2025`` agree.

    Output is deterministic and intended for case-insensitive ``fullmatch``.
    """

    def __init__(self, mode: GeneralizationMode = "digits") -> None:
        self.mode = mode

    def generalize(self, display_name: str) -> Optional[str]:
        """Return a regex for ``display_name`` or ``None`` when no pattern applies."""
        name = display_name.strip()
        if not name or self.mode == "off":
            return None
        if self.mode == "exact":
            return re.escape(name)
        if not _DIGIT_RUN.search(name):
            return None

        path = PurePosixPath(name)
        stem, suffix = (path.stem, path.suffix) if path.suffix else (name, "")
        if self.mode == "aggressive":
            pieces = [
                self._digits(chunk) for chunk in _SEPARATOR_RUN.split(stem)
            ]
            body = _SEPARATOR_CLASS.join(pieces)
        else:
            body = self._digits(stem)
        return body + self._digits(suffix)

    @staticmethod
    def _digits(chunk: str) -> str:
        parts = _DIGIT_RUN.split(chunk)
        return _DIGIT_CLASS.join(re.escape(part) for part in parts)


__all__ = ["GeneralizationMode", "NameGeneralizer"]
