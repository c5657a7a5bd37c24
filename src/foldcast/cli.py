"""Command line interface for the foldcast organization engine."""

from __future__ import annotations

import difflib
from typing import Any, Optional

import click
import yaml
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from foldcast.config import ConfigError, ConfigManager, FoldcastConfig, resolve_with_precedence
from foldcast.engine import OrganizationEngine, StaticFolderDirectory
from foldcast.logs import configure_logging
from foldcast.patterns import (
    EngineError,
    FeedbackAction,
    FileDescriptor,
    MatchContext,
    ObservedContext,
    OrganizationPattern,
    Suggestion,
)

console = Console()

_FEEDBACK_CHOICES = [action.value for action in FeedbackAction]


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """
    if json_output:
        console.print_json(data={"error": {"code": code, "message": message}})
        raise SystemExit(1)
    raise click.ClickException(message) from original


def _error_code(exc: Exception) -> str:
    """Return a snake_case identifier such as ``not_found_error`` for ``exc``."""
    name = type(exc).__name__
    return "".join(f"_{char.lower()}" if char.isupper() else char for char in name).lstrip("_")


def _open_engine(
    *,
    json_output: bool,
    folder_names: Optional[dict[str, str]] = None,
) -> tuple[FoldcastConfig, OrganizationEngine]:
    """Load configuration, set up logging, and open the persistent engine."""
    try:
        manager = ConfigManager()
        config = manager.load()
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
        raise  # unreachable; keeps type checkers informed

    configure_logging(config.logging)
    folders = StaticFolderDirectory({k: v for k, v in (folder_names or {}).items() if v})
    try:
        engine = OrganizationEngine.from_config(config, folders=folders)
    except EngineError as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        raise
    return config, engine


def _file_descriptor(
    file_name: str,
    file_id: Optional[str],
    mime_type: Optional[str],
    extension: Optional[str],
    size: Optional[int],
) -> FileDescriptor:
    return FileDescriptor(
        id=file_id or file_name,
        display_name=file_name,
        mime_type=mime_type,
        extension=extension,
        size=size,
    )


def _pattern_payload(pattern: OrganizationPattern) -> dict[str, Any]:
    payload = pattern.model_dump(mode="json")
    payload["pattern_kind"] = pattern.pattern_kind.value
    return payload


def _describe_trigger(pattern: OrganizationPattern) -> str:
    fields = pattern.trigger.populated_fields()
    return ", ".join(f"{name}={value}" for name, value in fields.items())


def _suggestion_table(suggestions: list[Suggestion]) -> Table:
    table = Table(title="Suggested destinations")
    table.add_column("#", justify="right")
    table.add_column("Folder")
    table.add_column("Confidence", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Seen", justify="right")
    table.add_column("Why")
    table.add_column("Pattern", overflow="fold")
    for index, suggestion in enumerate(suggestions, start=1):
        table.add_row(
            str(index),
            suggestion.destination_folder_name,
            f"{suggestion.confidence:.0%}",
            f"{suggestion.score:.2f}",
            str(suggestion.occurrences),
            suggestion.explanation,
            suggestion.pattern_id,
        )
    return table


def _pattern_table(patterns: list[OrganizationPattern]) -> Table:
    table = Table(title="Learned patterns")
    table.add_column("Pattern", overflow="fold")
    table.add_column("Kind")
    table.add_column("Trigger")
    table.add_column("Destination")
    table.add_column("Confidence", justify="right")
    table.add_column("Seen", justify="right")
    table.add_column("Feedback (+/-/~)")
    table.add_column("Active")
    for pattern in patterns:
        feedback = pattern.feedback
        table.add_row(
            pattern.id,
            pattern.pattern_kind.value,
            _describe_trigger(pattern),
            pattern.destination_folder_name,
            f"{pattern.confidence:.0%}",
            str(pattern.occurrences),
            f"{feedback.accepted_count}/{feedback.rejected_count}/{feedback.ignored_count}",
            "yes" if pattern.is_active else "no",
        )
    return table


def _emit(message: Any, *, quiet: bool) -> None:
    if not quiet:
        console.print(message)


def _assign_nested(target: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign ``value`` at a dotted location inside ``target``.

    Raises:
        ConfigError: If a non-mapping value is encountered along the path.
    """
    node = target
    for segment in path[:-1]:
        existing = node.setdefault(segment, {})
        if not isinstance(existing, dict):
            raise ConfigError(
                f"Cannot assign into '{segment}' because it is not a mapping in the config file."
            )
        node = existing
    node[path[-1]] = value


_file_options = [
    click.option("--file-name", required=True, help="Display name of the file."),
    click.option("--file-id", help="Host identifier of the file (defaults to the file name)."),
    click.option("--mime", "mime_type", help="MIME type of the file."),
    click.option("--extension", help="Extension override when the name has none."),
    click.option("--size", type=click.IntRange(min=0), help="File size in bytes."),
]


def _with_file_options(command: Any) -> Any:
    for option in reversed(_file_options):
        command = option(command)
    return command


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="foldcast")
def cli() -> None:
    """foldcast learns where you file things and suggests destination folders."""


@cli.command()
@click.argument("owner")
@click.argument("destination")
@_with_file_options
@click.option("--source", "source_folder_id", help="Folder the file was moved out of.")
@click.option("--destination-name", help="Display name of DESTINATION.")
@click.option("--source-name", help="Display name of the source folder.")
@click.option("--project", "project_context", help="Project label active during the move.")
@click.option("--action-before", default="uploaded", show_default=True, help="Preceding action.")
@click.option(
    "--minutes-since-upload",
    type=click.FloatRange(min=0),
    help="Minutes between upload and this move.",
)
@click.option("--json", "json_output", is_flag=True, help="Emit the recorded pattern as JSON.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
def record(
    owner: str,
    destination: str,
    file_name: str,
    file_id: Optional[str],
    mime_type: Optional[str],
    extension: Optional[str],
    size: Optional[int],
    source_folder_id: Optional[str],
    destination_name: Optional[str],
    source_name: Optional[str],
    project_context: Optional[str],
    action_before: str,
    minutes_since_upload: Optional[float],
    json_output: bool,
    quiet: bool,
) -> None:
    """Record that OWNER moved a file into DESTINATION."""
    folder_names = {destination: destination_name or "", source_folder_id or "": source_name or ""}
    config, engine = _open_engine(json_output=json_output, folder_names=folder_names)
    quiet = quiet or config.cli.quiet_default
    file = _file_descriptor(file_name, file_id, mime_type, extension, size)
    observed = ObservedContext(
        action_before=action_before,
        minutes_since_upload=minutes_since_upload,
        project_context=project_context,
    )

    pattern = engine.record_pattern(
        owner,
        file,
        source_folder_id,
        destination,
        observed,
        destination_folder_name=destination_name,
    )

    if json_output:
        console.print_json(data={"pattern": _pattern_payload(pattern) if pattern else None})
        return
    if pattern is None:
        _emit("[yellow]No pattern recorded for this move.[/yellow]", quiet=quiet)
        return
    _emit(
        f"[green]Pattern {pattern.id} ({pattern.pattern_kind.value}) -> "
        f"{pattern.destination_folder_name}: occurrences={pattern.occurrences}, "
        f"confidence={pattern.confidence:.2f}.[/green]",
        quiet=quiet,
    )


@cli.command()
@click.argument("owner")
@_with_file_options
@click.option("--folder", "current_folder_id", help="Folder the file is in or uploaded into.")
@click.option("--project", "project_context", help="Project label of the current view.")
@click.option("--top", "top_n", type=int, help="Maximum number of suggestions.")
@click.option("--json", "json_output", is_flag=True, help="Emit suggestions as JSON.")
def suggest(
    owner: str,
    file_name: str,
    file_id: Optional[str],
    mime_type: Optional[str],
    extension: Optional[str],
    size: Optional[int],
    current_folder_id: Optional[str],
    project_context: Optional[str],
    top_n: Optional[int],
    json_output: bool,
) -> None:
    """Suggest destination folders for a file owned by OWNER."""
    _, engine = _open_engine(json_output=json_output)
    file = _file_descriptor(file_name, file_id, mime_type, extension, size)
    context = MatchContext(current_folder_id=current_folder_id, project_context=project_context)

    try:
        suggestions = engine.get_suggestions(owner, file, context, top_n)
    except EngineError as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(
            data={"suggestions": [suggestion.model_dump(mode="json") for suggestion in suggestions]}
        )
        return
    if not suggestions:
        console.print("[yellow]No suggestions yet; keep organizing to teach foldcast.[/yellow]")
        return
    console.print(_suggestion_table(suggestions))


@cli.command()
@click.argument("owner")
@click.argument("pattern_id")
@click.argument("action", type=click.Choice(_FEEDBACK_CHOICES))
@click.option("--json", "json_output", is_flag=True, help="Emit the updated pattern as JSON.")
def feedback(owner: str, pattern_id: str, action: str, json_output: bool) -> None:
    """Record OWNER's ACTION on the suggestion produced by PATTERN_ID."""
    _, engine = _open_engine(json_output=json_output)
    try:
        pattern = engine.record_feedback(owner, pattern_id, action)
    except EngineError as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data={"pattern": _pattern_payload(pattern)})
        return
    status = "active" if pattern.is_active else "inactive"
    console.print(
        f"[green]Recorded {action} for {pattern.id}: confidence={pattern.confidence:.2f} "
        f"({status}).[/green]"
    )


@cli.command()
@click.argument("owner")
@click.option("--all", "include_inactive", is_flag=True, help="Include inactive patterns.")
@click.option("--json", "json_output", is_flag=True, help="Emit patterns as JSON.")
def patterns(owner: str, include_inactive: bool, json_output: bool) -> None:
    """List the patterns learned for OWNER."""
    _, engine = _open_engine(json_output=json_output)
    learned = engine.list_patterns(owner, include_inactive=include_inactive)

    if json_output:
        console.print_json(data={"patterns": [_pattern_payload(pattern) for pattern in learned]})
        return
    if not learned:
        console.print(f"[yellow]No patterns learned for {owner}.[/yellow]")
        return
    console.print(_pattern_table(learned))


@cli.command()
@click.argument("owner")
@click.argument("pattern_id")
@click.option("--json", "json_output", is_flag=True, help="Emit the dismissed pattern as JSON.")
def dismiss(owner: str, pattern_id: str, json_output: bool) -> None:
    """Stop suggesting PATTERN_ID to OWNER (kept for history)."""
    _, engine = _open_engine(json_output=json_output)
    try:
        pattern = engine.dismiss_pattern(owner, pattern_id)
    except EngineError as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data={"pattern": _pattern_payload(pattern)})
        return
    console.print(f"[green]Pattern {pattern.id} dismissed.[/green]")


@cli.command("rename-folder")
@click.argument("owner")
@click.argument("folder_id")
@click.argument("name")
@click.option("--json", "json_output", is_flag=True, help="Emit the update count as JSON.")
def rename_folder(owner: str, folder_id: str, name: str, json_output: bool) -> None:
    """Refresh the cached NAME of FOLDER_ID on OWNER's patterns."""
    _, engine = _open_engine(json_output=json_output)
    try:
        updated = engine.rename_folder(owner, folder_id, name)
    except EngineError as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data={"folder_id": folder_id, "name": name, "updated": updated})
        return
    console.print(f"[green]Updated {updated} pattern(s) pointing at {folder_id}.[/green]")


@cli.group()
def config() -> None:
    """Manage foldcast configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules."""
    manager = ConfigManager()
    try:
        loaded = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if len(segments) < 2:
        raise click.ClickException(
            "KEY must specify a dotted path such as 'feedback.reject_rate'."
        )

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        file_data = manager.load_file_overrides()
        _assign_nested(file_data, segments, parsed_value)
        resolve_with_precedence(defaults=FoldcastConfig(), file_overrides=file_data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(file_data)
    after = manager.read_text().splitlines()
    diff = [
        line
        for line in difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
        if "# Last updated:" not in line
    ]
    if any(line.startswith(("+", "-")) and not line.startswith(("+++", "---")) for line in diff):
        console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
        console.print(f"[green]Updated {'.'.join(segments)}.[/green]")
    else:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
