"""Decide whether a stored pattern applies to a file."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

from foldcast.patterns.models import FileDescriptor, MatchContext, OrganizationPattern

LOGGER = logging.getLogger(__name__)


def weekday_index(moment: datetime) -> int:
    """Return the weekday of ``moment`` with Sunday as 0."""
    return (moment.weekday() + 1) % 7


@lru_cache(maxsize=512)
def _compile(pattern: str) -> Optional[re.Pattern[str]]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        LOGGER.warning("Ignoring invalid name pattern %r: %s", pattern, exc)
        return None


def _same_text(expected: str, actual: Optional[str]) -> bool:
    return actual is not None and expected.casefold() == actual.casefold()


def _match_mime(expected: Any, file: FileDescriptor, _: MatchContext) -> bool:
    return _same_text(expected, file.mime_type)


def _match_extension(expected: Any, file: FileDescriptor, _: MatchContext) -> bool:
    return _same_text(expected, file.resolved_extension)


def _match_name(expected: Any, file: FileDescriptor, _: MatchContext) -> bool:
    compiled = _compile(expected)
    return compiled is not None and compiled.fullmatch(file.display_name.strip()) is not None


def _match_source(expected: Any, _: FileDescriptor, context: MatchContext) -> bool:
    return context.current_folder_id is not None and context.current_folder_id == expected


def _match_project(expected: Any, _: FileDescriptor, context: MatchContext) -> bool:
    label = context.project_context
    if not label:
        return False
    return expected.casefold() in label.casefold()


def _match_hour(expected: Any, _: FileDescriptor, context: MatchContext) -> bool:
    return context.moment.hour == expected


def _match_weekday(expected: Any, _: FileDescriptor, context: MatchContext) -> bool:
    return weekday_index(context.moment) == expected


FieldCheck = Callable[[Any, FileDescriptor, MatchContext], bool]

_FIELD_CHECKS: Dict[str, FieldCheck] = {
    "mime_type": _match_mime,
    "extension": _match_extension,
    "name_pattern": _match_name,
    "source_folder_id": _match_source,
    "project_context": _match_project,
    "hour_of_day": _match_hour,
    "day_of_week": _match_weekday,
}


class TriggerMatcher:
    """Check trigger conditions; ranking is left to the scorer."""

    def matches(
        self,
        pattern: OrganizationPattern,
        file: FileDescriptor,
        context: MatchContext | None = None,
        *,
        owner_id: str | None = None,
    ) -> bool:
        """Return True when every populated trigger field holds for ``file``.

        Args:
            pattern: Stored pattern to test.
            file: File being organized.
            context: Where and when the file is being handled.
            owner_id: Requesting user; patterns of other users never match.

        Returns:
            bool: Whether the pattern is compatible with the file.
        """
        if not pattern.is_active:
            return False
        if owner_id is not None and pattern.owner_id != owner_id:
            return False

        conditions = pattern.trigger.populated_fields()
        if not conditions:
            return False

        context = context or MatchContext()
        for name, expected in conditions.items():
            check = _FIELD_CHECKS.get(name)
            if check is None or not check(expected, file, context):
                return False
        return True


__all__ = ["TriggerMatcher", "weekday_index"]
