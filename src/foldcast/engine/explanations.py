"""Human-readable explanations attached to patterns and suggestions.

The engine never depends on explanations for matching or ranking. Hosts may
plug in their own ``ExplanationProvider`` (for example one backed by a
language model); the bundled provider renders deterministic templates.
"""

from __future__ import annotations

from typing import Optional, Protocol

from foldcast.patterns.models import OrganizationPattern, PatternKind

_DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


class ExplanationProvider(Protocol):
    """Produce a short rationale for a newly learned pattern."""

    def explain(
        self,
        pattern: OrganizationPattern,
        *,
        source_folder_name: Optional[str] = None,
        destination_folder_name: Optional[str] = None,
    ) -> Optional[str]:
        """Return an explanation or ``None`` when nothing useful can be said."""


def _file_label(pattern: OrganizationPattern) -> str:
    fields = pattern.trigger.populated_fields()
    extension = fields.get("extension")
    if extension:
        return f"{extension.upper()} files"
    mime_type = fields.get("mime_type")
    if mime_type:
        return f"{mime_type} files"
    return "files"


def describe_pattern(
    pattern: OrganizationPattern,
    *,
    source_folder_name: Optional[str] = None,
    destination_folder_name: Optional[str] = None,
) -> str:
    """Render a template sentence describing what ``pattern`` learned."""
    destination = destination_folder_name or pattern.destination_folder_name
    fields = pattern.trigger.populated_fields()
    files = _file_label(pattern)
    kind = pattern.pattern_kind

    if kind is PatternKind.SOURCE_FOLDER_TO_DESTINATION:
        source = source_folder_name or "that folder"
        return f"{files[0].upper()}{files[1:]} from '{source}' usually end up in '{destination}'"
    if kind is PatternKind.PROJECT_BASED:
        project = fields.get("project_context", "this project")
        return f"You typically organize {project} {files} into '{destination}'"
    if kind is PatternKind.FILE_NAME_PATTERN_TO_FOLDER:
        return f"Files named like this usually go to '{destination}'"
    if kind is PatternKind.TIME_BASED:
        moments = []
        if "day_of_week" in fields:
            moments.append(f"on {_DAY_NAMES[fields['day_of_week']]}")
        if "hour_of_day" in fields:
            moments.append(f"around {fields['hour_of_day']:02d}:00")
        return f"You usually file things into '{destination}' {' '.join(moments)}".rstrip()
    return f"You usually move {files} to '{destination}'"


class TemplateExplanationProvider:
    """Explanation provider backed by ``describe_pattern``."""

    def explain(
        self,
        pattern: OrganizationPattern,
        *,
        source_folder_name: Optional[str] = None,
        destination_folder_name: Optional[str] = None,
    ) -> Optional[str]:
        return describe_pattern(
            pattern,
            source_folder_name=source_folder_name,
            destination_folder_name=destination_folder_name,
        )


__all__ = ["ExplanationProvider", "TemplateExplanationProvider", "describe_pattern"]
